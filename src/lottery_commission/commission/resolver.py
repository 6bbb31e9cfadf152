"""Single-tier commission resolver.

``resolve_from_policy`` is the only matching entry point; ``CommissionResolver``
wraps it with policy lookup, validation and the audit trail.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Callable, Protocol

from .config import CommissionSettings
from .contracts import (
    BET_TYPE_REVENTADO,
    COMMISSION_ORIGINS,
    ORIGIN_SELLER,
    CommissionContractError,
    CommissionPolicy,
    CommissionResolution,
    CommissionResolutionInput,
    CommissionSnapshot,
    MatchResult,
)
from .errors import CommissionRuleMissingError, reason_code
from .matching import match_rule
from .observability import (
    AUDIT_STATUS_REJECTED,
    AUDIT_STATUS_RESOLVED,
    CommissionAuditEvent,
    CommissionAuditSink,
    LoggingAuditSink,
    utc_now,
)
from .policy import parse_policy


_CENT = Decimal("0.01")


class PolicyLookup(Protocol):
    def get_actor_policy(self, actor_id: str) -> Any | None: ...


def resolve_from_policy(
    policy: CommissionPolicy | None,
    resolution_input: CommissionResolutionInput,
    *,
    enforce_reventado: bool = True,
    origin: str = ORIGIN_SELLER,
) -> CommissionResolution:
    """Resolve a commission from one already-parsed policy, without storage access.

    An absent policy resolves to 0%. REVENTADO bets must carry a nonzero
    commission when ``enforce_reventado`` is set; NUMERO may resolve to 0%.
    """
    if policy is None:
        picked = MatchResult(percent=0.0, rule_id=None)
    else:
        picked = match_rule(
            policy,
            bet_type=resolution_input.bet_type,
            lottery_id=resolution_input.lottery_id,
            final_multiplier=resolution_input.final_multiplier,
        )
    if resolution_input.bet_type == BET_TYPE_REVENTADO and enforce_reventado and picked.percent == 0:
        raise CommissionRuleMissingError(
            f"no rule or default for REVENTADO lottery_id={resolution_input.lottery_id}"
        )
    return CommissionResolution(percent=picked.percent, origin=origin, rule_id=picked.rule_id)


class CommissionResolver:
    def __init__(
        self,
        *,
        policy_lookup: PolicyLookup,
        audit_sink: CommissionAuditSink | None = None,
        enforce_reventado: bool = True,
        origin: str = ORIGIN_SELLER,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        if origin not in COMMISSION_ORIGINS:
            raise CommissionContractError(f"origin must be one of {sorted(COMMISSION_ORIGINS)}")
        self.policy_lookup = policy_lookup
        self.audit_sink = audit_sink or LoggingAuditSink()
        self.enforce_reventado = enforce_reventado
        self.origin = origin
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @classmethod
    def from_settings(
        cls,
        settings: CommissionSettings,
        *,
        policy_lookup: PolicyLookup,
        audit_sink: CommissionAuditSink | None = None,
    ) -> "CommissionResolver":
        return cls(
            policy_lookup=policy_lookup,
            audit_sink=audit_sink,
            enforce_reventado=settings.enforce_reventado_commission,
            origin=settings.resolver_origin,
        )

    def resolve(self, resolution_input: CommissionResolutionInput) -> CommissionResolution:
        """Resolve for bet placement; emits exactly one audit event per call."""
        policy: CommissionPolicy | None = None
        try:
            policy = self.current_policy(resolution_input.actor_id)
            resolution = self._resolve(policy, resolution_input)
        except Exception as exc:
            self._emit(
                resolution_input,
                status=AUDIT_STATUS_REJECTED,
                policy_present=policy is not None,
                resolution=None,
                reason=reason_code(exc),
            )
            raise
        self._emit(
            resolution_input,
            status=AUDIT_STATUS_RESOLVED,
            policy_present=policy is not None,
            resolution=resolution,
            reason=None,
        )
        return resolution

    def dry_run(self, resolution_input: CommissionResolutionInput) -> CommissionResolution:
        """Resolve against the current policy without an audit event; nothing is persisted."""
        return self._resolve(self.current_policy(resolution_input.actor_id), resolution_input)

    def current_policy(self, actor_id: str) -> CommissionPolicy | None:
        raw_policy = self.policy_lookup.get_actor_policy(actor_id)
        return parse_policy(raw_policy, origin=self.origin, now=self._clock())

    def _resolve(
        self,
        policy: CommissionPolicy | None,
        resolution_input: CommissionResolutionInput,
    ) -> CommissionResolution:
        return resolve_from_policy(
            policy,
            resolution_input,
            enforce_reventado=self.enforce_reventado,
            origin=self.origin,
        )

    def _emit(
        self,
        resolution_input: CommissionResolutionInput,
        *,
        status: str,
        policy_present: bool,
        resolution: CommissionResolution | None,
        reason: str | None,
    ) -> None:
        self.audit_sink.emit(
            CommissionAuditEvent(
                status=status,
                actor_id=resolution_input.actor_id,
                lottery_id=resolution_input.lottery_id,
                bet_type=resolution_input.bet_type,
                final_multiplier=resolution_input.final_multiplier,
                policy_present=policy_present,
                origin=self.origin,
                percent=resolution.percent if resolution else None,
                rule_id=resolution.rule_id if resolution else None,
                reason_code=reason,
                emitted_at_utc=utc_now(),
            )
        )


def build_commission_snapshot(resolution: CommissionResolution, amount: float | Decimal) -> CommissionSnapshot:
    commission = (Decimal(str(amount)) * Decimal(str(resolution.percent)) / Decimal(100)).quantize(
        _CENT, rounding=ROUND_HALF_UP
    )
    return CommissionSnapshot(
        commission_percent=resolution.percent,
        commission_amount=float(commission),
        commission_origin=resolution.origin,
        commission_rule_id=resolution.rule_id,
    )
