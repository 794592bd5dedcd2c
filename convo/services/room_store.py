# convo/services/room_store.py

from __future__ import annotations

import random
import string
from typing import Callable, Dict, List, Optional

from convo.core.clock import Clock, SystemClock
from convo.core.exceptions import RoomNotFound
from convo.core.logging import get_logger
from convo.models.models import Room

logger = get_logger(__name__)

ROOM_CODE_ALPHABET = string.ascii_uppercase + string.digits
ROOM_CODE_LENGTH = 6


def generate_room_code() -> str:
    """
    Generate a random 6-character room code, e.g. "K3ZQ7A".

    Uniqueness is not checked here (the store does it). 36^6 codes make
    collisions rare but not impossible.
    """
    return "".join(random.choices(ROOM_CODE_ALPHABET, k=ROOM_CODE_LENGTH))


# ============================================================================
# IN-MEMORY ROOM STORE
# ============================================================================
class RoomStore:
    """
    Owns every live Room, keyed by room code.

    Rooms live in memory only and disappear on restart. Callers borrow a
    Room for the duration of a single operation and never keep it.

    Attributes:
        rooms: Dictionary mapping room code -> Room

    Usage:
        store = RoomStore()
        code = store.create()
        room = store.get(code)
        store.remove(code)
    """

    def __init__(
        self,
        clock: Optional[Clock] = None,
        code_factory: Callable[[], str] = generate_room_code,
    ) -> None:
        self.rooms: Dict[str, Room] = {}
        self.clock = clock or SystemClock()
        self.code_factory = code_factory

    def create(self) -> str:
        """
        Create an empty room under a fresh code.

        Returns:
            The new room code, unique among live rooms.
        """
        code = self.code_factory()
        while code in self.rooms:
            logger.warning("Room code collision detected, regenerating")
            code = self.code_factory()

        now = self.clock.now()
        self.rooms[code] = Room(code=code, created_at=now, last_activity_at=now)
        logger.info("✓ Created room %s (%d live)", code, len(self.rooms))
        return code

    def exists(self, code: str) -> bool:
        return code in self.rooms

    def get(self, code: str) -> Room:
        """
        Get a room by code.

        Raises:
            RoomNotFound: no live room with this code
        """
        room = self.rooms.get(code)
        if room is None:
            raise RoomNotFound(code)
        return room

    def remove(self, code: str) -> bool:
        """
        Delete a room. Idempotent.

        Returns:
            True if the room was deleted, False if it didn't exist
        """
        if self.rooms.pop(code, None) is None:
            return False
        logger.info("✗ Removed room %s (%d live)", code, len(self.rooms))
        return True

    def remove_if(self, code: str, room: Room) -> bool:
        """Delete the room only if ``code`` still maps to this exact instance."""
        if self.rooms.get(code) is not room:
            return False
        return self.remove(code)

    def codes(self) -> List[str]:
        return list(self.rooms.keys())

    def list_rooms(self) -> List[Room]:
        return list(self.rooms.values())

    def __len__(self) -> int:
        return len(self.rooms)
