"""
Pricing resolution for a single seat.

A price area's selectors are stored as a JSON object. Each key that is present
constrains the match and all present keys must hold:

    rows          seat row must be set and listed
    blocks        seat section must be listed (``sections`` is an alias)
    seats         canonical seat token must be listed
    seatNumbers   seat number must be listed

An object with none of these keys parses to ``MatchAll``: the area applies to
every seat in the hall (global override).

``resolve_price`` evaluates areas by priority, highest first, and the first
matching area decides status and price. It performs no I/O and is used both to
render seat maps and to price orders server side.
"""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple, Union

from boxoffice.core.exceptions import InvariantViolation
from boxoffice.core.logging import get_logger
from boxoffice.services.seating import SeatId, encode_seat_id

logger = get_logger(__name__)


class SaleStatus(str, Enum):
    FOR_SALE = "FOR_SALE"
    NOT_FOR_SALE = "NOT_FOR_SALE"
    ADMIN_RESERVED = "ADMIN_RESERVED"


class SeatSelector(ABC):
    @abstractmethod
    def matches(self, seat: SeatId) -> bool:
        ...


@dataclass(frozen=True)
class MatchAll(SeatSelector):
    def matches(self, seat: SeatId) -> bool:
        return True


@dataclass(frozen=True)
class RowSelector(SeatSelector):
    rows: FrozenSet[str]

    def matches(self, seat: SeatId) -> bool:
        return seat.row is not None and seat.row in self.rows


@dataclass(frozen=True)
class SectionSelector(SeatSelector):
    sections: FrozenSet[str]

    def matches(self, seat: SeatId) -> bool:
        return seat.section in self.sections


@dataclass(frozen=True)
class SeatIdSelector(SeatSelector):
    seat_ids: FrozenSet[str]

    def matches(self, seat: SeatId) -> bool:
        return encode_seat_id(seat) in self.seat_ids


@dataclass(frozen=True)
class SeatNumberSelector(SeatSelector):
    numbers: FrozenSet[int]

    def matches(self, seat: SeatId) -> bool:
        return seat.number in self.numbers


@dataclass(frozen=True)
class AllOf(SeatSelector):
    parts: Tuple[SeatSelector, ...]

    def matches(self, seat: SeatId) -> bool:
        return all(part.matches(seat) for part in self.parts)


def _string_list(payload: Mapping[str, Any], key: str) -> FrozenSet[str]:
    values = payload[key]
    if not isinstance(values, list):
        raise InvariantViolation(f"selector '{key}' must be a list", {"key": key})
    return frozenset(str(value) for value in values)


def _number_list(payload: Mapping[str, Any], key: str) -> FrozenSet[int]:
    values = payload[key]
    if not isinstance(values, list):
        raise InvariantViolation(f"selector '{key}' must be a list", {"key": key})
    try:
        return frozenset(int(value) for value in values)
    except (TypeError, ValueError):
        raise InvariantViolation(f"selector '{key}' must hold integers", {"key": key})


def parse_selectors(raw: Union[str, Mapping[str, Any], None]) -> SeatSelector:
    """Parse stored selector JSON. Raises ``InvariantViolation`` when corrupt."""
    if raw is None:
        raise InvariantViolation("selectors are missing")
    if isinstance(raw, str):
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError as e:
            raise InvariantViolation(f"selectors are not valid JSON: {e.msg}")
    else:
        payload = raw
    if not isinstance(payload, Mapping):
        raise InvariantViolation("selectors must be a JSON object")

    parts = []
    if "rows" in payload:
        parts.append(RowSelector(_string_list(payload, "rows")))
    for key in ("blocks", "sections"):
        if key in payload:
            parts.append(SectionSelector(_string_list(payload, key)))
    if "seats" in payload:
        parts.append(SeatIdSelector(_string_list(payload, "seats")))
    if "seatNumbers" in payload:
        parts.append(SeatNumberSelector(_number_list(payload, "seatNumbers")))

    if not parts:
        return MatchAll()
    return AllOf(tuple(parts))


def build_selectors(
    seats: Optional[Iterable[str]] = None,
    rows: Optional[Iterable[str]] = None,
    sections: Optional[Iterable[str]] = None,
    seat_numbers: Optional[Iterable[int]] = None,
) -> str:
    """Serialize selector dimensions; ``None`` means the dimension is absent."""
    payload = {}
    if rows is not None:
        payload["rows"] = list(rows)
    if sections is not None:
        payload["blocks"] = list(sections)
    if seats is not None:
        payload["seats"] = list(seats)
    if seat_numbers is not None:
        payload["seatNumbers"] = list(seat_numbers)
    return json.dumps(payload)


@dataclass(frozen=True)
class PriceResolution:
    status: SaleStatus
    price: Optional[int] = None
    rule_id: Optional[int] = None
    area_name: Optional[str] = None
    color: Optional[str] = None

    @property
    def purchasable(self) -> bool:
        return self.status == SaleStatus.FOR_SALE and self.price is not None


NOT_FOR_SALE = PriceResolution(status=SaleStatus.NOT_FOR_SALE)


def _rule_order(rule) -> tuple:
    # Ties on priority go to the older (lower id) rule so input order never matters.
    rule_id = rule.id if rule.id is not None else 0
    return (-rule.priority, rule_id, rule.name or "")


def compile_rules(rules: Iterable) -> List[Tuple[Any, SeatSelector]]:
    """
    Sort price areas by precedence and parse their selectors once.
    Areas with corrupt selectors are logged and left out.
    """
    compiled = []
    for rule in sorted(rules, key=_rule_order):
        try:
            selector = parse_selectors(rule.selectors)
        except InvariantViolation as e:
            logger.warning(
                "price_area_selectors_invalid",
                rule_id=rule.id,
                rule_name=rule.name,
                error=e.message,
            )
            continue
        if rule.sale_status not in SaleStatus.__members__:
            logger.warning("price_area_status_invalid", rule_id=rule.id, sale_status=rule.sale_status)
            continue
        compiled.append((rule, selector))
    return compiled


def _first_match(seat: SeatId, compiled: List[Tuple[Any, SeatSelector]]) -> PriceResolution:
    for rule, selector in compiled:
        if selector.matches(seat):
            return PriceResolution(
                status=SaleStatus(rule.sale_status),
                price=rule.price,
                rule_id=rule.id,
                area_name=rule.name,
                color=rule.color or None,
            )
    return NOT_FOR_SALE


def resolve_price(seat: SeatId, rules: Iterable) -> PriceResolution:
    """
    ``rules`` are price areas (ORM rows or anything with id, name, priority,
    sale_status, price, color, selectors).
    """
    return _first_match(seat, compile_rules(rules))


def resolve_prices(seats: Iterable[SeatId], rules: Iterable) -> Dict[SeatId, PriceResolution]:
    """``resolve_price`` for many seats, parsing each area's selectors once."""
    compiled = compile_rules(rules)
    return {seat: _first_match(seat, compiled) for seat in seats}
