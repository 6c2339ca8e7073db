"""Expert directory data models."""

from typing import Optional

from pydantic import Field

from servicehub.catalog import ServiceCategory
from servicehub.schemas.base import WireModel


class ExpertUser(WireModel):
    name: str = ""
    avatar: Optional[str] = None
    phone: Optional[str] = None


class ExpertService(WireModel):
    category: ServiceCategory = ServiceCategory.OTHER
    description: str = ""
    hourly_rate: Optional[float] = None
    experience: Optional[float] = None


class ExpertRating(WireModel):
    average: float = 0.0
    count: int = 0


class ExpertSummary(WireModel):
    """Expert record as listed by the directory. Display data only."""

    id: str = Field(alias="_id")
    user: ExpertUser = Field(default_factory=ExpertUser)
    services: list[ExpertService] = Field(default_factory=list)
    rating: ExpertRating = Field(default_factory=ExpertRating)
    is_online: bool = False

    @property
    def primary_service(self) -> Optional[ExpertService]:
        return self.services[0] if self.services else None

    def rate_for(self, category: Optional[ServiceCategory]) -> Optional[float]:
        """Hourly rate the expert lists for ``category``, if any."""
        for service in self.services:
            if service.category == category:
                return service.hourly_rate
        return None

    def to_ref(self, category: Optional[ServiceCategory] = None) -> "ExpertRef":
        service = None
        if category is not None:
            service = next((s for s in self.services if s.category == category), None)
        service = service or self.primary_service
        return ExpertRef(
            id=self.id,
            name=self.user.name,
            category=service.category if service else None,
            hourly_rate=service.hourly_rate if service else None,
            rating=self.rating.average,
        )


class ExpertRef(WireModel):
    """Weak reference to a selected expert plus a display snapshot.

    Only ``id`` is ever sent to the backend.
    """

    id: str
    name: str = ""
    category: Optional[ServiceCategory] = None
    hourly_rate: Optional[float] = None
    rating: Optional[float] = None
