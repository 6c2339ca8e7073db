"""Service category and urgency catalog.

Every ``ServiceCategory`` member has exactly one entry in ``SERVICE_CATALOG``;
``get_category_info`` never falls back to a default, and the module refuses
to import if a member is missing.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)


class ServiceCategory(str, Enum):
    """Closed set of bookable service categories."""
    PLUMBER = "plumber"
    ELECTRICIAN = "electrician"
    CARPENTER = "carpenter"
    PAINTER = "painter"
    CLEANER = "cleaner"
    MECHANIC = "mechanic"
    TECHNICIAN = "technician"
    COOK = "cook"
    GARDENER = "gardener"
    OTHER = "other"


class Urgency(str, Enum):
    """How soon the customer needs the service."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    EMERGENCY = "emergency"


@dataclass(frozen=True)
class CategoryInfo:
    name: str
    icon: str
    description: str


@dataclass(frozen=True)
class UrgencyInfo:
    label: str
    description: str


SERVICE_CATALOG: dict[ServiceCategory, CategoryInfo] = {
    ServiceCategory.PLUMBER: CategoryInfo(
        "Plumbing", "🚰", "Leaks, taps, toilets, pipes and water heaters."
    ),
    ServiceCategory.ELECTRICIAN: CategoryInfo(
        "Electrical", "⚡", "Wiring, switchboards, lighting and appliance faults."
    ),
    ServiceCategory.CARPENTER: CategoryInfo(
        "Carpentry", "🔨", "Furniture repair, doors, windows and fitted woodwork."
    ),
    ServiceCategory.PAINTER: CategoryInfo(
        "Painting", "🎨", "Interior and exterior painting and touch-ups."
    ),
    ServiceCategory.CLEANER: CategoryInfo(
        "Cleaning", "🧹", "Home, kitchen, bathroom and deep cleaning."
    ),
    ServiceCategory.MECHANIC: CategoryInfo(
        "Mechanic", "🔧", "Vehicle servicing and on-site repairs."
    ),
    ServiceCategory.TECHNICIAN: CategoryInfo(
        "Technician", "💻", "Computers, networks and home electronics."
    ),
    ServiceCategory.COOK: CategoryInfo(
        "Cooking", "👨‍🍳", "Home cooks for daily meals and events."
    ),
    ServiceCategory.GARDENER: CategoryInfo(
        "Gardening", "🌱", "Lawn care, planting and garden maintenance."
    ),
    ServiceCategory.OTHER: CategoryInfo(
        "Other", "🛠️", "Anything else around the home."
    ),
}

URGENCY_LEVELS: dict[Urgency, UrgencyInfo] = {
    Urgency.LOW: UrgencyInfo("Low Priority", "Schedule at your convenience"),
    Urgency.MEDIUM: UrgencyInfo("Medium Priority", "Within a few days"),
    Urgency.HIGH: UrgencyInfo("High Priority", "As soon as possible"),
    Urgency.EMERGENCY: UrgencyInfo("Emergency", "Immediate attention needed"),
}

_missing = set(ServiceCategory) - set(SERVICE_CATALOG)
if _missing:
    raise RuntimeError(f"SERVICE_CATALOG missing categories: {sorted(c.value for c in _missing)}")
_missing_urgency = set(Urgency) - set(URGENCY_LEVELS)
if _missing_urgency:
    raise RuntimeError(f"URGENCY_LEVELS missing levels: {sorted(u.value for u in _missing_urgency)}")


def get_category_info(category: ServiceCategory) -> CategoryInfo:
    """Get display details for a category."""
    return SERVICE_CATALOG[category]


def get_all_categories() -> list[dict]:
    """Return all categories with basic display info, in menu order."""
    return [
        {"id": category.value, "name": info.name, "icon": info.icon}
        for category, info in SERVICE_CATALOG.items()
    ]


def match_category(query: str) -> Optional[ServiceCategory]:
    """Match free text to a category by id or display name. Returns None if no match."""
    normalized = query.lower().strip()
    if not normalized:
        return None
    for category, info in SERVICE_CATALOG.items():
        if normalized in (category.value, info.name.lower()):
            return category
    for category, info in SERVICE_CATALOG.items():
        if category.value in normalized or info.name.lower() in normalized:
            return category
    logger.debug("No category matched for %r", query)
    return None
