"""Administrative recalculation preview.

Compares stored seller snapshots with what the current seller policy would
resolve today. This is a dry run: snapshots are immutable and no write path
exists for them, so any correction has to be a separate, explicit operation.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
import logging
from typing import Any, Iterable

from lottery_commission.commission.contracts import CommissionContractError, CommissionResolutionInput
from lottery_commission.commission.errors import ActorNotFoundError, CommissionError, reason_code
from lottery_commission.commission.resolver import CommissionResolver, build_commission_snapshot

from .snapshots import CommissionSnapshotReader


logger = logging.getLogger(__name__)

DRIFT_UNCHANGED = "UNCHANGED"
DRIFT_CHANGED = "DRIFTED"
DRIFT_UNRESOLVABLE = "UNRESOLVABLE"
NO_SELLER = "NO_SELLER"


@dataclass(frozen=True)
class RecalculationDrift:
    ticket_id: str
    jugada_id: str
    status: str
    stored_percent: float
    stored_amount: float
    stored_rule_id: str | None
    current_percent: float | None = None
    current_amount: float | None = None
    current_rule_id: str | None = None
    reason_code: str | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "ticket_id": self.ticket_id,
            "jugada_id": self.jugada_id,
            "status": self.status,
            "stored_percent": self.stored_percent,
            "stored_amount": self.stored_amount,
            "stored_rule_id": self.stored_rule_id,
            "current_percent": self.current_percent,
            "current_amount": self.current_amount,
            "current_rule_id": self.current_rule_id,
            "reason_code": self.reason_code,
        }


def preview_recalculation(
    reader: CommissionSnapshotReader,
    resolver: CommissionResolver,
    ticket_ids: Iterable[str],
) -> tuple[RecalculationDrift, ...]:
    drifts: list[RecalculationDrift] = []
    for rows in reader.snapshots_for_tickets(ticket_ids).values():
        for item in rows:
            stored = item.snapshot
            base = {
                "ticket_id": item.ticket_id,
                "jugada_id": item.jugada_id,
                "stored_percent": stored.commission_percent,
                "stored_amount": stored.commission_amount,
                "stored_rule_id": stored.commission_rule_id,
            }
            if not item.seller_id:
                drifts.append(RecalculationDrift(status=DRIFT_UNRESOLVABLE, reason_code=NO_SELLER, **base))
                continue
            try:
                resolution = resolver.dry_run(
                    CommissionResolutionInput(
                        actor_id=item.seller_id,
                        lottery_id=item.lottery_id,
                        bet_type=item.bet_type,
                        final_multiplier=item.final_multiplier,
                    )
                )
            except (CommissionError, ActorNotFoundError, CommissionContractError) as exc:
                drifts.append(RecalculationDrift(status=DRIFT_UNRESOLVABLE, reason_code=reason_code(exc), **base))
                continue
            current = build_commission_snapshot(resolution, item.amount)
            unchanged = (
                Decimal(str(current.commission_percent)) == Decimal(str(stored.commission_percent))
                and current.commission_rule_id == stored.commission_rule_id
            )
            drifts.append(
                RecalculationDrift(
                    status=DRIFT_UNCHANGED if unchanged else DRIFT_CHANGED,
                    current_percent=current.commission_percent,
                    current_amount=current.commission_amount,
                    current_rule_id=current.commission_rule_id,
                    **base,
                )
            )
    changed = sum(1 for item in drifts if item.status != DRIFT_UNCHANGED)
    logger.info("commission recalculation preview jugadas=%s drifted_or_unresolvable=%s", len(drifts), changed)
    return tuple(drifts)
