# convo/services/message_validator.py
"""
Message validation: pure checks, no state.
"""
from enum import Enum
from typing import Any

from convo.core.exceptions import InvalidMessage

DEFAULT_MAX_MESSAGE_LENGTH = 5000


class RejectionReason(str, Enum):
    WRONG_TYPE = "wrong_type"
    EMPTY = "empty"
    TOO_LONG = "too_long"


def validate_message(raw: Any, max_length: int = DEFAULT_MAX_MESSAGE_LENGTH) -> str:
    """
    Check a raw message and return the text to store (trimmed).

    The length limit applies to the raw string, before trimming.

    Raises:
        InvalidMessage: with ``reason`` set to a RejectionReason
    """
    if not isinstance(raw, str):
        raise InvalidMessage(RejectionReason.WRONG_TYPE, "Message must be a non-empty string")

    text = raw.strip()
    if not text:
        raise InvalidMessage(RejectionReason.EMPTY, "Message cannot be empty")

    if len(raw) > max_length:
        raise InvalidMessage(
            RejectionReason.TOO_LONG,
            f"Message exceeds maximum length of {max_length} characters",
        )

    return text
