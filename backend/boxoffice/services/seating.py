"""
Seat identity scheme and the theatre layout.

A seat is identified by ``SeatId(section, row, number)``. Its canonical string
token is the join key between price areas, seat locks and order items:

    "A-12"                   main floor (section = MAIN_FLOOR_SECTION), row A, seat 12
    "Side-Left-40"           side seating, section "Side-Left", no row
    "Llozha Djathtas-17-2"   box 17 of "Llozha Djathtas", seat 2 in the box

``TheatreLayout`` builds every Seat once. Request handling looks seats up by
token in the layout; ``decode_seat_id`` exists for tokens coming from stored
rules or external input and inverts ``encode_seat_id`` for every layout seat.
"""

from dataclasses import dataclass
from functools import lru_cache
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

from boxoffice.core.config import get_settings

SIDE_MARKER = "Side"
SIDE_SECTIONS = ("Side-Left", "Side-Right")
SEPARATOR = "-"


class InvalidSeatId(ValueError):
    pass


@dataclass(frozen=True, order=True)
class SeatId:
    section: str
    row: Optional[str]
    number: int

    def __post_init__(self):
        if not self.section:
            raise InvalidSeatId("seat section must not be empty")
        if self.row is not None and (not self.row or SEPARATOR in self.row):
            raise InvalidSeatId(f"invalid row {self.row!r}")
        if self.number < 1:
            raise InvalidSeatId(f"seat number must be positive, got {self.number}")

    @property
    def token(self) -> str:
        return encode_seat_id(self)

    def __str__(self) -> str:
        return self.token


@dataclass(frozen=True)
class Seat:
    id: SeatId
    x: int = 0
    y: int = 0
    tier: str = ""

    @property
    def token(self) -> str:
        return self.id.token

    @property
    def label(self) -> str:
        if self.id.section in SIDE_SECTIONS:
            side = self.id.section.split(SEPARATOR, 1)[1]
            return f"{side} side, seat {self.id.number}"
        if self.id.row is None:
            return f"{self.id.section}, seat {self.id.number}"
        if self.id.section == get_settings().MAIN_FLOOR_SECTION:
            return f"Row {self.id.row}, seat {self.id.number}"
        return f"{self.id.section}, box {self.id.row}, seat {self.id.number}"


def _main_floor(main_floor: Optional[str]) -> str:
    return main_floor or get_settings().MAIN_FLOOR_SECTION


def encode_seat_id(seat_id: SeatId, main_floor: Optional[str] = None) -> str:
    if seat_id.section == _main_floor(main_floor) and seat_id.row is not None:
        return f"{seat_id.row}{SEPARATOR}{seat_id.number}"
    if seat_id.row is None:
        return f"{seat_id.section}{SEPARATOR}{seat_id.number}"
    return f"{seat_id.section}{SEPARATOR}{seat_id.row}{SEPARATOR}{seat_id.number}"


def _parse_number(raw: str, token: str) -> int:
    try:
        number = int(raw)
    except ValueError:
        raise InvalidSeatId(f"seat number in {token!r} is not an integer")
    if number < 1:
        raise InvalidSeatId(f"seat number in {token!r} must be positive")
    return number


def decode_seat_id(token: str, main_floor: Optional[str] = None) -> SeatId:
    """Inverse of ``encode_seat_id``. Raises ``InvalidSeatId`` for malformed tokens."""
    if not isinstance(token, str) or not token.strip():
        raise InvalidSeatId("seat id must be a non-empty string")

    parts = token.strip().split(SEPARATOR)
    if any(not part for part in parts):
        raise InvalidSeatId(f"seat id {token!r} has an empty component")

    if len(parts) == 2:
        return SeatId(_main_floor(main_floor), parts[0], _parse_number(parts[1], token))

    if len(parts) == 3 and parts[0] == SIDE_MARKER:
        return SeatId(f"{parts[0]}{SEPARATOR}{parts[1]}", None, _parse_number(parts[2], token))

    if len(parts) in (3, 4):
        section = " ".join(parts[:-2])
        return SeatId(section, parts[-2], _parse_number(parts[-1], token))

    if len(parts) > 4:
        return SeatId(" ".join(parts[:-1]), None, _parse_number(parts[-1], token))

    raise InvalidSeatId(f"seat id {token!r} has no section or number")


# Layout definition. Rows are listed back to front, as seen from the stage.

PLATEA_ROWS: Tuple[Tuple[str, int], ...] = tuple(
    (row, 32) for row in ("R", "Q", "P", "N", "M", "L", "K", "J", "H", "G", "F", "E", "D", "C")
) + (("B", 30), ("A", 28))

FIRST_TIER_BOXES: Tuple[Tuple[str, str, int], ...] = tuple(
    ("Llozha Djathtas", box, seats)
    for box, seats in (("17", 3), ("18", 3), ("19", 3), ("20", 3), ("21", 3), ("22", 3), ("23", 2), ("24", 2))
) + tuple(
    ("Llozha Majtas", box, seats)
    for box, seats in (("24", 2), ("23", 2), ("22", 3), ("21", 3), ("20", 3), ("19", 3), ("18", 3), ("17", 3))
)

FIRST_TIER_SIDES: Dict[str, Sequence[int]] = {
    "Side-Left": (8, 7, 6, 5, 4, 3, 2, 1),
    "Side-Right": (1, 2, 3, 4, 5, 6, 7, 8),
}

# Gallery rows: either a plain seat count or explicit inclusive ranges.
GALLERY_ROWS: Tuple[Tuple[str, Sequence[Tuple[int, int]]], ...] = (
    ("Z", ((1, 6), (20, 25))),
    ("Y", ((1, 6), (20, 25))),
    ("X", ((7, 19),)),
    ("W", ((1, 33),)),
    ("V", ((1, 33),)),
    ("U", ((1, 33),)),
    ("T", ((1, 33),)),
    ("S", ((1, 31),)),
)

GALLERY_SIDES: Dict[str, Sequence[int]] = {
    "Side-Left": (47, 46, 45, 44, 43, 42, 41, 40),
    "Side-Right": (57, 56, 55, 54, 53, 52, 51, 50),
}

SEAT_PITCH = 30


class TheatreLayout:
    """Immutable registry of every seat in the hall, keyed by canonical token."""

    def __init__(self, seats: Sequence[Seat]):
        self._seats: Dict[str, Seat] = {}
        for seat in seats:
            if seat.token in self._seats:
                raise InvalidSeatId(f"duplicate seat {seat.token!r} in layout")
            self._seats[seat.token] = seat

    def __iter__(self) -> Iterator[Seat]:
        return iter(self._seats.values())

    def __len__(self) -> int:
        return len(self._seats)

    def __contains__(self, token: object) -> bool:
        return token in self._seats

    def get(self, token: str) -> Optional[Seat]:
        return self._seats.get(token)

    def tokens(self) -> List[str]:
        return list(self._seats)

    @classmethod
    def build(cls, main_floor: Optional[str] = None) -> "TheatreLayout":
        main_floor = _main_floor(main_floor)
        seats: List[Seat] = []

        for y, (row, count) in enumerate(PLATEA_ROWS):
            for number in range(1, count + 1):
                seats.append(Seat(SeatId(main_floor, row, number), number * SEAT_PITCH, y * SEAT_PITCH, "Platea"))

        for x, (section, box, count) in enumerate(FIRST_TIER_BOXES):
            for number in range(1, count + 1):
                seats.append(Seat(SeatId(section, box, number), x * SEAT_PITCH, -number * SEAT_PITCH, "Llozha 1"))

        for section, numbers in FIRST_TIER_SIDES.items():
            for y, number in enumerate(numbers):
                seats.append(Seat(SeatId(section, None, number), 0, y * SEAT_PITCH, "Llozha 1"))

        for y, (row, ranges) in enumerate(GALLERY_ROWS):
            for start, end in ranges:
                for number in range(start, end + 1):
                    seats.append(Seat(SeatId(main_floor, row, number), number * SEAT_PITCH, y * SEAT_PITCH, "Llozha 2"))

        for section, numbers in GALLERY_SIDES.items():
            for y, number in enumerate(numbers):
                seats.append(Seat(SeatId(section, None, number), 0, y * SEAT_PITCH, "Llozha 2"))

        return cls(seats)


@lru_cache()
def get_layout() -> TheatreLayout:
    return TheatreLayout.build()
