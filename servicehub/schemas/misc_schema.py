"""Emergency, payment and community payloads."""

from datetime import datetime
from enum import Enum
from typing import Optional, Union

from pydantic import Field

from servicehub.schemas.base import WireModel


class EmergencyType(str, Enum):
    GENERAL = "general"
    SOS = "sos"
    MEDICAL = "medical"
    FIRE = "fire"
    SECURITY = "security"
    VEHICLE = "vehicle"
    HOME = "home"


class GeoPosition(WireModel):
    latitude: float
    longitude: float


class EmergencyAlert(WireModel):
    """Body of ``POST /emergency/alert``."""
    type: EmergencyType = EmergencyType.GENERAL
    description: str
    location: GeoPosition
    user_id: str


class PaymentIntent(WireModel):
    client_secret: Optional[str] = None
    payment_intent_id: Optional[str] = None
    amount: Optional[float] = None


class Comment(WireModel):
    id: Optional[str] = Field(default=None, alias="_id")
    content: str
    author: Union[str, dict, None] = None
    created_at: Optional[datetime] = None


class CommunityPost(WireModel):
    id: str = Field(alias="_id")
    title: str
    content: str
    comments: list[Comment] = Field(default_factory=list)
    created_at: Optional[datetime] = None
