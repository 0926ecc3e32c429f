import logging
import random
import threading
from typing import Dict, List, Optional

from trivia.models import Room

logger = logging.getLogger(__name__)

# No 0/O or 1/I
ROOM_CODE_ALPHABET = 'ABCDEFGHJKLMNPQRSTUVWXYZ23456789'
ROOM_CODE_LENGTH = 5


def generate_room_code(rng=None, length=ROOM_CODE_LENGTH) -> str:
    rng = rng or random
    return ''.join(rng.choices(ROOM_CODE_ALPHABET, k=length))


def normalize_code(code) -> Optional[str]:
    if not isinstance(code, str):
        return None
    return code.strip().upper() or None


class RoomRegistry:
    """Live rooms keyed by their code.

    Only the map itself is guarded here; everything inside a Room is
    serialized by the session machine through the room's own lock.
    """

    def __init__(self, rng: Optional[random.Random] = None):
        self._rooms: Dict[str, Room] = {}
        self._lock = threading.Lock()
        self._rng = rng or random.Random()

    def create_room(self) -> Room:
        with self._lock:
            code = generate_room_code(self._rng)
            while code in self._rooms:
                logger.warning(f"[room-code-collision] code={code}, regenerating")
                code = generate_room_code(self._rng)
            room = Room(code=code)
            self._rooms[code] = room
        logger.info(f"[room-created] code={code}")
        return room

    def get(self, code) -> Optional[Room]:
        key = normalize_code(code)
        if key is None:
            return None
        with self._lock:
            return self._rooms.get(key)

    def remove(self, code) -> None:
        key = normalize_code(code)
        with self._lock:
            removed = self._rooms.pop(key, None) if key else None
        if removed is not None:
            logger.info(f"[room-removed] code={key}")

    def find_by_participant(self, handle) -> Optional[Room]:
        with self._lock:
            rooms = list(self._rooms.values())
        for room in rooms:
            if handle in room.participants:
                return room
        return None

    def codes(self) -> List[str]:
        with self._lock:
            return list(self._rooms)

    def clear(self) -> None:
        with self._lock:
            self._rooms.clear()

    def __contains__(self, code) -> bool:
        return self.get(code) is not None

    def __len__(self) -> int:
        with self._lock:
            return len(self._rooms)
