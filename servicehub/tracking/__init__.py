from servicehub.tracking.session import TrackingSession, TrackingView

__all__ = ["TrackingSession", "TrackingView"]
