from servicehub.realtime.channel import (
    EMERGENCY_ALERT,
    EMERGENCY_NOTIFICATION,
    EXPERT_ARRIVED,
    EXPERT_LOCATION_UPDATE,
    INBOUND_EVENTS,
    INCOMING_VIDEO_CALL,
    JOIN_ROOM,
    TRACKING_STARTED,
    VIDEO_CALL_ACCEPTED,
    RealtimeChannel,
)

__all__ = [
    "RealtimeChannel",
    "INBOUND_EVENTS",
    "JOIN_ROOM",
    "EMERGENCY_ALERT",
    "EXPERT_LOCATION_UPDATE",
    "EXPERT_ARRIVED",
    "TRACKING_STARTED",
    "EMERGENCY_NOTIFICATION",
    "INCOMING_VIDEO_CALL",
    "VIDEO_CALL_ACCEPTED",
]
