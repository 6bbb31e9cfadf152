"""Reporting contracts: stored snapshots, filters and aggregates."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Iterable

from lottery_commission.commission.contracts import CommissionSnapshot


TICKET_STATUS_CANCELLED = "CANCELLED"

DIMENSION_WINDOW = "window"
DIMENSION_SELLER = "seller"
DIMENSION_LOTTERY = "lottery"
DIMENSION_DRAW = "draw"
DIMENSION_TOTAL = "total"
GROUPED_DIMENSIONS: tuple[str, ...] = (DIMENSION_WINDOW, DIMENSION_SELLER, DIMENSION_LOTTERY, DIMENSION_DRAW)

_CENT = Decimal("0.01")


class AggregationFilterError(ValueError):
    """Raised when an aggregation filter is internally inconsistent."""


@dataclass(frozen=True)
class AggregationFilter:
    """Optional reporting constraints; every present field is ANDed."""

    window_id: str | None = None
    seller_id: str | None = None
    bank_id: str | None = None
    draw_id: str | None = None
    lottery_id: str | None = None
    date_from: date | None = None
    date_to: date | None = None
    ticket_ids: tuple[str, ...] | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "date_from", _as_date(self.date_from, "date_from"))
        object.__setattr__(self, "date_to", _as_date(self.date_to, "date_to"))
        if self.date_from and self.date_to and self.date_from > self.date_to:
            raise AggregationFilterError("INVALID_DATE_RANGE")
        if self.ticket_ids is not None:
            object.__setattr__(self, "ticket_ids", _unique_ids(self.ticket_ids))

    def as_dict(self) -> dict[str, Any]:
        return {
            "window_id": self.window_id,
            "seller_id": self.seller_id,
            "bank_id": self.bank_id,
            "draw_id": self.draw_id,
            "lottery_id": self.lottery_id,
            "date_from": self.date_from.isoformat() if self.date_from else None,
            "date_to": self.date_to.isoformat() if self.date_to else None,
            "ticket_ids": list(self.ticket_ids) if self.ticket_ids else None,
        }


@dataclass(frozen=True)
class SnapshotWithTicket:
    ticket_id: str
    jugada_id: str
    snapshot: CommissionSnapshot
    listero_snapshot: CommissionSnapshot
    amount: float
    bet_type: str
    final_multiplier: float | None
    lottery_id: str
    window_id: str
    seller_id: str | None
    draw_id: str
    business_date: str
    display_names: dict[str, str | None] = field(default_factory=dict)
    seller_window_id: str | None = None
    seller_window_name: str | None = None

    def group_key(self, dimension: str) -> str | None:
        if dimension == DIMENSION_WINDOW:
            return self.window_id
        if dimension == DIMENSION_SELLER:
            return self.seller_id
        if dimension == DIMENSION_LOTTERY:
            return self.lottery_id
        if dimension == DIMENSION_DRAW:
            return self.draw_id
        if dimension == DIMENSION_TOTAL:
            return None
        raise AggregationFilterError(f"unsupported dimension: {dimension!r}")


@dataclass(frozen=True)
class AggregationResult:
    group_key: str | None
    display_name: str | None
    total_sales: Decimal = Decimal("0.00")
    total_commission: Decimal = Decimal("0.00")
    total_listero_commission: Decimal = Decimal("0.00")
    total_seller_commission: Decimal = Decimal("0.00")
    ticket_count: int = 0
    jugada_count: int = 0
    window_id: str | None = None
    window_name: str | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "group_key": self.group_key,
            "display_name": self.display_name,
            "total_sales": str(self.total_sales),
            "total_commission": str(self.total_commission),
            "total_listero_commission": str(self.total_listero_commission),
            "total_seller_commission": str(self.total_seller_commission),
            "ticket_count": self.ticket_count,
            "jugada_count": self.jugada_count,
            "window_id": self.window_id,
            "window_name": self.window_name,
        }


def to_money(value: Any) -> Decimal:
    """Quantize a stored amount (float, int, Decimal or None) to cents."""
    if value is None:
        return Decimal("0.00")
    return Decimal(str(value)).quantize(_CENT)


def _as_date(value: Any, field_name: str) -> date | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip()[:10])
    except ValueError as exc:
        raise AggregationFilterError(f"{field_name} must be an ISO date") from exc


def _unique_ids(values: Iterable[str]) -> tuple[str, ...]:
    seen: dict[str, None] = {}
    for value in values:
        text = str(value or "").strip()
        if text:
            seen.setdefault(text, None)
    return tuple(seen)
