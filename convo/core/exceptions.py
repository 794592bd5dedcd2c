# convo/core/exceptions.py
"""
Business exceptions for the room/session layer.

Every per-operation error is a ConvoError carrying a short wire ``code``
so the WebSocket and HTTP layers can report it to the requester uniformly.
"""


class ConvoError(Exception):
    """Base class for all room/session errors."""

    code = "error"


# ============ Not found ============

class NotFound(ConvoError):
    code = "not_found"


class RoomNotFound(NotFound):
    """Room does not exist (never created, closed or reaped)."""
    code = "room_not_found"

    def __init__(self, room_code):
        self.room_code = room_code
        super().__init__(f"Room {room_code} does not exist")


# ============ Validation ============

class ValidationError(ConvoError):
    code = "validation_error"


class InvalidMessage(ValidationError):
    """Message text rejected by the validator."""
    code = "invalid_message"

    def __init__(self, reason, detail: str):
        self.reason = reason
        super().__init__(detail)


# ============ Capacity ============

class CapacityExceeded(ConvoError):
    code = "capacity_exceeded"


class RoomFull(CapacityExceeded):
    """Room already holds the maximum number of messages."""
    code = "room_full"

    def __init__(self, room_code, limit: int):
        self.room_code = room_code
        self.limit = limit
        super().__init__(
            f"Room has reached maximum message limit of {limit}"
        )


# ============ Room state ============

class InvalidRoomState(ConvoError):
    code = "invalid_room_state"


class EmptyRoom(InvalidRoomState):
    """Summary requested for a room without messages."""
    code = "empty_room"

    def __init__(self, room_code):
        self.room_code = room_code
        super().__init__("No messages to summarize")


class AlreadySummarizing(InvalidRoomState):
    """A summary is in flight (or was just delivered) for this room."""
    code = "already_summarizing"

    def __init__(self, room_code):
        self.room_code = room_code
        super().__init__(f"A summary is already being generated for room {room_code}")


# ============ External collaborator ============

class GatewayError(ConvoError):
    """Summarization service failed or returned unusable output."""
    code = "summary_failed"


# ============ Startup ============

class ConfigurationError(ConvoError):
    """Required configuration is missing or malformed. Fatal at startup."""
    code = "configuration_error"
