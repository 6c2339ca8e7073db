"""Client-side bearer credential storage."""

import logging
from typing import Optional

logger = logging.getLogger(__name__)


class CredentialStore:
    """Holds the bearer token for the current process.

    The token is only ever written by the session context (login) and
    cleared by logout or an authentication failure.
    """

    def __init__(self, token: Optional[str] = None) -> None:
        self._token = token

    @property
    def token(self) -> Optional[str]:
        return self._token

    def set(self, token: str) -> None:
        if not token or not token.strip():
            raise ValueError("Bearer token must be a non-empty string")
        self._token = token.strip()
        logger.debug("Credential stored")

    def clear(self) -> None:
        if self._token is not None:
            logger.info("Credential cleared")
        self._token = None

    def authorization_header(self) -> dict[str, str]:
        """``Authorization`` header for the current token, or nothing."""
        if not self._token:
            return {}
        return {"Authorization": f"Bearer {self._token}"}
