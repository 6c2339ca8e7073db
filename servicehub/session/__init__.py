from servicehub.session.context import SessionContext

__all__ = ["SessionContext"]
