"""Typed wrappers for each backend resource consumed by the client."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Optional, TypeVar

from pydantic import BaseModel, ValidationError

from servicehub.catalog import ServiceCategory
from servicehub.errors import ApiError
from servicehub.schemas.booking_schema import (
    Booking,
    BookingDraft,
    BookingPage,
    BookingStatus,
    Coordinates,
)
from servicehub.schemas.expert_schema import ExpertSummary
from servicehub.schemas.misc_schema import (
    Comment,
    CommunityPost,
    EmergencyAlert,
    PaymentIntent,
)
from servicehub.schemas.tracking_schema import TrackingHistory

if TYPE_CHECKING:
    from servicehub.client.api import ApiClient

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


def _unwrap(payload: dict[str, Any], key: Optional[str] = None) -> Any:
    """Strip the backend's ``{"success": ..., <key>: ...}`` envelope."""
    if payload.get("success") is False:
        raise ApiError(200, payload.get("message") or "Request was not successful", payload)
    if key is None:
        return payload
    if key not in payload:
        raise ApiError(200, f"Response is missing '{key}'", payload)
    return payload[key]


def _parse(model: type[ModelT], data: Any) -> ModelT:
    """Validate a response body, reporting an unreadable one as ``ApiError``."""
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        logger.error("Unreadable %s in response: %s", model.__name__, exc)
        raise ApiError(200, f"Unexpected {model.__name__} data from server") from exc


class _Resource:
    def __init__(self, client: ApiClient) -> None:
        self._client = client


class BookingsApi(_Resource):
    async def create(self, draft: BookingDraft) -> Booking:
        payload = await self._client.post("/bookings", json=draft.to_request())
        booking = _parse(Booking, _unwrap(payload, "booking"))
        logger.info("Booking created: %s", booking.id)
        return booking

    async def my_bookings(
        self,
        status: Optional[BookingStatus] = None,
        page: int = 1,
        limit: int = 10,
    ) -> BookingPage:
        payload = await self._client.get(
            "/bookings/my-bookings",
            params={"status": status.value if status else None, "page": page, "limit": limit},
        )
        body = _unwrap(payload)
        pagination = body.get("pagination") or {}
        return _parse(BookingPage, {
            "bookings": body.get("bookings", []),
            "page": pagination.get("page", page),
            "pages": pagination.get("pages", 1),
            "total": pagination.get("total", 0),
        })

    async def get(self, booking_id: str) -> Booking:
        payload = await self._client.get(f"/bookings/{booking_id}")
        return _parse(Booking, _unwrap(payload, "booking"))

    async def update_status(
        self, booking_id: str, status: BookingStatus, note: Optional[str] = None
    ) -> Booking:
        body: dict[str, Any] = {"status": status.value}
        if note:
            body["note"] = note
        payload = await self._client.put(f"/bookings/{booking_id}/status", json=body)
        return _parse(Booking, _unwrap(payload, "booking"))

    async def add_message(self, booking_id: str, message: str, type: str = "text") -> dict[str, Any]:
        payload = await self._client.post(
            f"/bookings/{booking_id}/messages", json={"message": message, "type": type}
        )
        return _unwrap(payload)

    async def cancel(self, booking_id: str, reason: Optional[str] = None) -> Optional[Booking]:
        payload = await self._client.put(
            f"/bookings/{booking_id}/cancel", json={"reason": reason} if reason else {}
        )
        body = _unwrap(payload)
        if "booking" in body:
            return _parse(Booking, body["booking"])
        return None


class ExpertsApi(_Resource):
    async def search(
        self,
        category: ServiceCategory,
        coordinates: Coordinates,
        limit: int = 10,
        page: int = 1,
    ) -> list[ExpertSummary]:
        payload = await self._client.get(
            "/experts",
            params={
                "category": category.value,
                "location": f"{coordinates.lat},{coordinates.lng}",
                "limit": limit,
                "page": page,
            },
        )
        return [_parse(ExpertSummary, e) for e in _unwrap(payload, "experts")]

    async def get(self, expert_id: str) -> ExpertSummary:
        payload = await self._client.get(f"/experts/{expert_id}")
        return _parse(ExpertSummary, _unwrap(payload, "expert"))


class PaymentsApi(_Resource):
    async def create_payment_intent(self, amount: float, booking_id: str) -> PaymentIntent:
        payload = await self._client.post(
            "/payments/create-payment-intent",
            json={"amount": amount, "bookingId": booking_id},
        )
        return _parse(PaymentIntent, _unwrap(payload))


class TrackingApi(_Resource):
    async def history(self, booking_id: str) -> TrackingHistory:
        payload = await self._client.get(f"/tracking/history/{booking_id}")
        return _parse(TrackingHistory, _unwrap(payload, "tracking"))


class EmergencyApi(_Resource):
    async def send_alert(self, alert: EmergencyAlert) -> dict[str, Any]:
        payload = await self._client.post("/emergency/alert", json=alert.to_wire())
        logger.info("Emergency alert posted (%s)", alert.type.value)
        return _unwrap(payload)


class CommunityApi(_Resource):
    async def list_posts(self, page: int = 1, limit: int = 20) -> list[CommunityPost]:
        payload = await self._client.get("/community/posts", params={"page": page, "limit": limit})
        return [_parse(CommunityPost, p) for p in _unwrap(payload).get("posts", [])]

    async def create_post(self, title: str, content: str) -> CommunityPost:
        if not title.strip() or not content.strip():
            raise ValueError("Please fill in all fields")
        payload = await self._client.post(
            "/community/posts", json={"title": title.strip(), "content": content.strip()}
        )
        return _parse(CommunityPost, _unwrap(payload, "post"))

    async def add_comment(self, post_id: str, content: str) -> Comment:
        if not content.strip():
            raise ValueError("Please enter a comment")
        payload = await self._client.post(
            f"/community/posts/{post_id}/comments", json={"content": content.strip()}
        )
        return _parse(Comment, _unwrap(payload, "comment"))
