"""Commission resolution audit trail."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
import json
import logging
from typing import Any, Protocol


AUDIT_ACTION_RESOLVE = "COMMISSION_RESOLVE"
AUDIT_STATUS_RESOLVED = "RESOLVED"
AUDIT_STATUS_REJECTED = "REJECTED"


@dataclass(frozen=True)
class CommissionAuditEvent:
    status: str
    actor_id: str
    lottery_id: str
    bet_type: str
    final_multiplier: float | None
    policy_present: bool
    origin: str
    percent: float | None
    rule_id: str | None
    reason_code: str | None
    emitted_at_utc: str
    action: str = AUDIT_ACTION_RESOLVE

    def as_dict(self) -> dict[str, Any]:
        return {
            "action": self.action,
            "status": self.status,
            "actor_id": self.actor_id,
            "lottery_id": self.lottery_id,
            "bet_type": self.bet_type,
            "final_multiplier": self.final_multiplier,
            "policy_present": self.policy_present,
            "origin": self.origin,
            "percent": self.percent,
            "rule_id": self.rule_id,
            "reason_code": self.reason_code,
            "emitted_at_utc": self.emitted_at_utc,
        }


class CommissionAuditSink(Protocol):
    def emit(self, event: CommissionAuditEvent) -> None: ...


class LoggingAuditSink:
    """Writes each audit event as one canonical JSON log line."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._logger = logger or logging.getLogger("lottery_commission.audit")

    def emit(self, event: CommissionAuditEvent) -> None:
        payload = json.dumps(event.as_dict(), sort_keys=True, ensure_ascii=True, separators=(",", ":"))
        if event.status == AUDIT_STATUS_REJECTED:
            self._logger.warning("commission audit %s", payload)
            return
        self._logger.info("commission audit %s", payload)


def utc_now() -> str:
    return datetime.now(tz=timezone.utc).isoformat().replace("+00:00", "Z")
