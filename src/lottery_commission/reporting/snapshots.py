"""Commission snapshot reads and consistency checks.

Snapshots are the only source of truth for commission reporting; nothing here
re-runs the resolver or mutates a stored row.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
import logging
from typing import Any, Iterable, Sequence

from lottery_commission.commission.config import DEFAULT_AMOUNT_TOLERANCE, DEFAULT_PERIOD_STATUSES
from lottery_commission.commission.contracts import ORIGIN_WINDOW, CommissionSnapshot

from .contracts import AggregationFilter, SnapshotWithTicket
from .predicates import SqlPredicate, apply_filter, base_predicate
from .storage import CommissionStore


logger = logging.getLogger(__name__)

TICKET_ID_CHUNK_SIZE = 500

_SNAPSHOT_SELECT = """
SELECT j.jugada_id, j.ticket_id, j.bet_type, j.final_multiplier, j.amount,
       j.commission_percent, j.commission_amount, j.commission_origin, j.commission_rule_id,
       j.listero_commission_amount,
       t.lottery_id, t.window_id, t.seller_id, t.draw_id, t.business_date,
       w.display_name, s.display_name, l.display_name, d.display_name,
       s.window_id, sw.display_name
FROM cm_jugada j
INNER JOIN cm_ticket t ON j.ticket_id = t.ticket_id
LEFT JOIN cm_actor w ON t.window_id = w.actor_id
LEFT JOIN cm_actor s ON t.seller_id = s.actor_id
LEFT JOIN cm_actor sw ON s.window_id = sw.actor_id
LEFT JOIN cm_lottery l ON t.lottery_id = l.lottery_id
LEFT JOIN cm_draw d ON t.draw_id = d.draw_id
"""


class CommissionSnapshotReader:
    def __init__(self, *, store: CommissionStore, period_statuses: Sequence[str] = DEFAULT_PERIOD_STATUSES) -> None:
        self.store = store
        self.period_statuses = tuple(period_statuses)

    def snapshots_for_tickets(self, ticket_ids: Iterable[str]) -> dict[str, list[SnapshotWithTicket]]:
        unique_ids = list(dict.fromkeys(str(item).strip() for item in ticket_ids if str(item or "").strip()))
        result: dict[str, list[SnapshotWithTicket]] = {}
        for start in range(0, len(unique_ids), TICKET_ID_CHUNK_SIZE):
            chunk = unique_ids[start : start + TICKET_ID_CHUNK_SIZE]
            predicate = _eligible_predicate()
            predicate.add_in("j.ticket_id", chunk)
            for item in self._read(predicate):
                result.setdefault(item.ticket_id, []).append(item)
        return result

    def snapshots_for_period(self, filters: AggregationFilter) -> list[SnapshotWithTicket]:
        predicate = apply_filter(_eligible_predicate(), filters)
        predicate.add_in("t.status", self.period_statuses)
        return self._read(predicate)

    def _read(self, predicate: SqlPredicate) -> list[SnapshotWithTicket]:
        sql = f"{_SNAPSHOT_SELECT} WHERE {predicate.where_sql()} ORDER BY t.ticket_id, j.jugada_id"
        return [_row_to_snapshot(row) for row in self.store.fetch_all(sql, predicate.params)]


@dataclass(frozen=True)
class InvalidSnapshot:
    ticket_id: str
    jugada_id: str
    expected_amount: Decimal
    stored_amount: Decimal
    reason: str

    def as_dict(self) -> dict[str, Any]:
        return {
            "ticket_id": self.ticket_id,
            "jugada_id": self.jugada_id,
            "expected_amount": str(self.expected_amount),
            "stored_amount": str(self.stored_amount),
            "reason": self.reason,
        }


@dataclass(frozen=True)
class SnapshotValidationReport:
    valid: bool
    missing_snapshots: tuple[str, ...]
    invalid_snapshots: tuple[InvalidSnapshot, ...]

    def as_dict(self) -> dict[str, Any]:
        return {
            "valid": self.valid,
            "missing_snapshots": list(self.missing_snapshots),
            "invalid_snapshots": [item.as_dict() for item in self.invalid_snapshots],
        }


def expected_commission_amount(amount: Any, percent: Any) -> Decimal:
    return Decimal(str(amount or 0)) * Decimal(str(percent or 0)) / Decimal(100)


def is_snapshot_consistent(
    amount: Any,
    percent: Any,
    stored_amount: Any,
    *,
    tolerance: float = DEFAULT_AMOUNT_TOLERANCE,
) -> bool:
    """True when the stored amount is within ``tolerance`` of amount*percent/100."""
    delta = abs(Decimal(str(stored_amount or 0)) - expected_commission_amount(amount, percent))
    return delta <= Decimal(str(tolerance))


class CommissionSnapshotValidator:
    """Read-only consistency check; findings are reported, never corrected."""

    def __init__(self, *, reader: CommissionSnapshotReader, tolerance: float = DEFAULT_AMOUNT_TOLERANCE) -> None:
        self.reader = reader
        self.tolerance = tolerance

    def validate(self, ticket_ids: Iterable[str]) -> SnapshotValidationReport:
        requested = list(dict.fromkeys(str(item).strip() for item in ticket_ids if str(item or "").strip()))
        snapshots = self.reader.snapshots_for_tickets(requested)
        missing: list[str] = []
        invalid: list[InvalidSnapshot] = []
        for ticket_id in requested:
            rows = snapshots.get(ticket_id) or []
            if not rows:
                missing.append(ticket_id)
                continue
            for item in rows:
                stored = item.snapshot.commission_amount
                percent = item.snapshot.commission_percent
                if is_snapshot_consistent(item.amount, percent, stored, tolerance=self.tolerance):
                    continue
                expected = expected_commission_amount(item.amount, percent)
                invalid.append(
                    InvalidSnapshot(
                        ticket_id=ticket_id,
                        jugada_id=item.jugada_id,
                        expected_amount=expected.quantize(Decimal("0.01")),
                        stored_amount=Decimal(str(stored)),
                        reason=f"COMMISSION_AMOUNT_MISMATCH: expected {expected:.2f}, got {stored:.2f}",
                    )
                )
        if missing or invalid:
            logger.warning(
                "commission snapshot validation failed tickets=%s missing=%s invalid=%s",
                len(requested),
                len(missing),
                len(invalid),
            )
        return SnapshotValidationReport(
            valid=not missing and not invalid,
            missing_snapshots=tuple(missing),
            invalid_snapshots=tuple(invalid),
        )


def _eligible_predicate() -> SqlPredicate:
    predicate = base_predicate()
    predicate.add("t.is_active = {}", 1)
    return predicate


def _row_to_snapshot(row: Any) -> SnapshotWithTicket:
    amount = float(row[4] or 0)
    listero_amount = float(row[9] or 0)
    snapshot = CommissionSnapshot(
        commission_percent=float(row[5] or 0),
        commission_amount=float(row[6] or 0),
        commission_origin=str(row[7]) if row[7] is not None else None,
        commission_rule_id=str(row[8]) if row[8] is not None else None,
    )
    # Listero commission is stored as an absolute amount without a rule id, so the
    # percent is reconstructed and the origin inferred from a positive amount.
    listero_snapshot = CommissionSnapshot(
        commission_percent=(listero_amount / amount) * 100 if amount > 0 else 0.0,
        commission_amount=listero_amount,
        commission_origin=ORIGIN_WINDOW if listero_amount > 0 else None,
        commission_rule_id=None,
    )
    return SnapshotWithTicket(
        ticket_id=str(row[1]),
        jugada_id=str(row[0]),
        snapshot=snapshot,
        listero_snapshot=listero_snapshot,
        amount=amount,
        bet_type=str(row[2]),
        final_multiplier=float(row[3]) if row[3] is not None else None,
        lottery_id=str(row[10]),
        window_id=str(row[11]),
        seller_id=str(row[12]) if row[12] is not None else None,
        draw_id=str(row[13]),
        business_date=str(row[14]),
        display_names={
            "window": row[15],
            "seller": row[16],
            "lottery": row[17],
            "draw": row[18],
        },
        seller_window_id=str(row[19]) if row[19] is not None else None,
        seller_window_name=row[20],
    )
