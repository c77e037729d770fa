"""
Room inventory and room-type matching.
"""
from typing import Dict, Iterable, List, Optional

from models.schemas import Room, RoomType

# Subject name keyword -> room type for lessons whose room type is auto.
# First match wins, so longer keywords come before their substrings.
SUBJECT_ROOM_MAP = {
    "physical education": RoomType.PE,
    "computer science": RoomType.COMPUTER_LAB,
    "pe": RoomType.PE,
    "sports": RoomType.PE,
    "science": RoomType.LAB,
    "physics": RoomType.LAB,
    "chemistry": RoomType.LAB,
    "biology": RoomType.LAB,
    "computer": RoomType.COMPUTER_LAB,
    "ict": RoomType.COMPUTER_LAB,
    "library": RoomType.LIBRARY,
}


def infer_room_type(subject_name: Optional[str]) -> RoomType:
    """Guess the room type a subject needs from its name."""
    words = (subject_name or "").lower()
    tokens = set(words.replace("-", " ").split())
    for keyword, room_type in SUBJECT_ROOM_MAP.items():
        # short keywords ("pe", "ict") must match a whole word
        if (" " in keyword or len(keyword) > 3) and keyword in words:
            return room_type
        if keyword in tokens:
            return room_type
    return RoomType.REGULAR


class RoomInventory:
    """Rooms ordered by id, grouped by type."""

    def __init__(self, rooms: Iterable[Room] = ()):
        self.rooms: List[Room] = sorted(rooms, key=lambda r: r.id)
        self.by_type: Dict[RoomType, List[Room]] = {}
        for room in self.rooms:
            self.by_type.setdefault(room.type, []).append(room)

    def __len__(self) -> int:
        return len(self.rooms)

    def __bool__(self) -> bool:
        return bool(self.rooms)

    def ranked_options(
        self,
        required_type: Optional[RoomType],
        preferred_type: Optional[RoomType] = None,
        min_capacity: Optional[int] = None,
    ) -> List[tuple]:
        """
        Rooms usable for a lesson as ``(rank, room)`` pairs in preference order.

        With ``required_type`` only rooms of that type that hold ``min_capacity``
        qualify. Otherwise every room qualifies: rooms of ``preferred_type`` rank
        ahead of the rest, and rooms too small for ``min_capacity`` rank last.
        """
        options = []
        for room in self.rooms:
            too_small = min_capacity is not None and room.capacity < min_capacity
            if required_type is not None:
                if room.type == required_type and not too_small:
                    options.append((0, room))
                continue
            rank = 0 if preferred_type is not None and room.type == preferred_type else 1
            if too_small:
                rank += 2
            options.append((rank, room))
        options.sort(key=lambda option: (option[0], option[1].id))
        return options
