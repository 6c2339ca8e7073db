"""Authenticated identity data models."""

from typing import Optional

from pydantic import Field

from servicehub.schemas.base import WireModel


class Identity(WireModel):
    """Logged-in user as returned by the auth endpoints."""
    user_id: str = Field(alias="_id")
    name: str = ""
    email: Optional[str] = None
    role: str = "user"
