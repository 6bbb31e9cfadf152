from __future__ import annotations

from datetime import datetime, timezone
import json
import logging
from pathlib import Path
from typing import Any

import pytest

from lottery_commission.commission.config import CommissionSettings
from lottery_commission.commission.contracts import (
    CommissionContractError,
    CommissionResolution,
    CommissionResolutionInput,
)
from lottery_commission.commission.errors import (
    COMMISSION_RULE_MISSING,
    ActorNotFoundError,
    CommissionRuleMissingError,
)
from lottery_commission.commission.observability import (
    AUDIT_STATUS_REJECTED,
    AUDIT_STATUS_RESOLVED,
    CommissionAuditEvent,
    LoggingAuditSink,
)
from lottery_commission.commission.resolver import (
    CommissionResolver,
    build_commission_snapshot,
    resolve_from_policy,
)
from lottery_commission.reporting.storage import CommissionStore


NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class _FakeLookup:
    def __init__(self, policies: dict[str, Any]) -> None:
        self.policies = policies
        self.calls: list[str] = []

    def get_actor_policy(self, actor_id: str) -> Any | None:
        self.calls.append(actor_id)
        if actor_id not in self.policies:
            raise ActorNotFoundError(actor_id)
        return self.policies[actor_id]


class _RecordingSink:
    def __init__(self) -> None:
        self.events: list[CommissionAuditEvent] = []

    def emit(self, event: CommissionAuditEvent) -> None:
        self.events.append(event)


def _policy(default_percent: float, rules: list[dict[str, Any]] | None = None) -> dict[str, Any]:
    return {"version": 1, "defaultPercent": default_percent, "rules": rules or []}


def _resolver(policies: dict[str, Any], **kwargs: Any) -> tuple[CommissionResolver, _RecordingSink]:
    sink = _RecordingSink()
    resolver = CommissionResolver(
        policy_lookup=_FakeLookup(policies),
        audit_sink=sink,
        clock=lambda: NOW,
        **kwargs,
    )
    return resolver, sink


def _input(bet_type: str, multiplier: float | None = None, actor_id: str = "seller-1") -> CommissionResolutionInput:
    return CommissionResolutionInput(
        actor_id=actor_id,
        lottery_id="L1",
        bet_type=bet_type,
        final_multiplier=multiplier,
    )


def test_phase3_reventado_without_rule_and_zero_default_is_rejected() -> None:
    resolver, sink = _resolver({"seller-1": _policy(0, [{"id": "n1", "betType": "NUMERO", "percent": 5}])})
    with pytest.raises(CommissionRuleMissingError) as excinfo:
        resolver.resolve(_input("REVENTADO", 50))
    assert excinfo.value.code == COMMISSION_RULE_MISSING
    assert excinfo.value.status_code == 422
    assert len(sink.events) == 1
    event = sink.events[0]
    assert event.status == AUDIT_STATUS_REJECTED
    assert event.reason_code == COMMISSION_RULE_MISSING
    assert event.policy_present is True
    assert event.percent is None


def test_phase3_reventado_with_nonzero_default_resolves() -> None:
    resolver, sink = _resolver({"seller-1": _policy(4)})
    resolution = resolver.resolve(_input("REVENTADO", 50))
    assert resolution == CommissionResolution(percent=4.0, origin="SELLER", rule_id=None)
    assert [event.status for event in sink.events] == [AUDIT_STATUS_RESOLVED]
    assert sink.events[0].percent == 4.0


def test_phase3_numero_may_resolve_to_zero() -> None:
    resolver, sink = _resolver({"seller-1": _policy(0)})
    resolution = resolver.resolve(_input("NUMERO", 70))
    assert resolution.percent == 0
    assert resolution.rule_id is None
    assert sink.events[0].status == AUDIT_STATUS_RESOLVED


def test_phase3_absent_policy_resolves_to_zero_and_enforces_reventado() -> None:
    resolver, sink = _resolver({"seller-1": None})
    assert resolver.resolve(_input("NUMERO")).percent == 0
    with pytest.raises(CommissionRuleMissingError):
        resolver.resolve(_input("REVENTADO"))
    assert [event.policy_present for event in sink.events] == [False, False]


def test_phase3_malformed_and_expired_policies_behave_as_absent() -> None:
    expired = dict(_policy(9), effectiveTo="2026-01-01T00:00:00Z")
    resolver, sink = _resolver({"seller-1": {"version": 7}, "seller-2": expired})
    assert resolver.resolve(_input("NUMERO")).percent == 0
    assert resolver.resolve(_input("NUMERO", actor_id="seller-2")).percent == 0
    assert all(event.policy_present is False for event in sink.events)


def test_phase3_enforcement_can_be_disabled() -> None:
    resolver, _ = _resolver({"seller-1": _policy(0)}, enforce_reventado=False)
    assert resolver.resolve(_input("REVENTADO")).percent == 0


def test_phase3_not_found_propagates_unmodified_and_is_audited() -> None:
    resolver, sink = _resolver({})
    with pytest.raises(ActorNotFoundError) as excinfo:
        resolver.resolve(_input("NUMERO", actor_id="ghost"))
    assert excinfo.value.actor_id == "ghost"
    assert sink.events[0].status == AUDIT_STATUS_REJECTED
    assert sink.events[0].reason_code == "ACTOR_NOT_FOUND"


def test_phase3_resolution_uses_matching_rule_id() -> None:
    rules = [
        {"id": "wide", "betType": "REVENTADO", "percent": 3, "multiplierRange": {"min": 0, "max": 100}},
        {"id": "narrow", "betType": "REVENTADO", "percent": 9, "multiplierRange": {"min": 0, "max": 10}},
    ]
    resolver, _ = _resolver({"seller-1": json.dumps(_policy(0, rules))})
    resolution = resolver.resolve(_input("REVENTADO", 500))
    assert resolution.percent == 9
    assert resolution.rule_id == "narrow"


def test_phase3_dry_run_emits_no_audit_event() -> None:
    resolver, sink = _resolver({"seller-1": _policy(6)})
    assert resolver.dry_run(_input("NUMERO")).percent == 6
    assert sink.events == []


def test_phase3_resolve_from_policy_is_pure() -> None:
    assert resolve_from_policy(None, _input("NUMERO")).percent == 0
    with pytest.raises(CommissionRuleMissingError):
        resolve_from_policy(None, _input("REVENTADO"))
    resolution = resolve_from_policy(None, _input("REVENTADO"), enforce_reventado=False, origin="WINDOW")
    assert resolution.origin == "WINDOW"


def test_phase3_input_contract_is_checked() -> None:
    with pytest.raises(CommissionContractError):
        CommissionResolutionInput(actor_id="s", lottery_id="L1", bet_type="PALE")
    with pytest.raises(CommissionContractError):
        CommissionResolutionInput(actor_id="s", lottery_id=" ", bet_type="NUMERO")
    with pytest.raises(CommissionContractError):
        CommissionResolver(policy_lookup=_FakeLookup({}), origin="CASHIER")


def test_phase3_from_settings_carries_origin_and_enforcement() -> None:
    settings = CommissionSettings(
        version="v0",
        policy_id="commission.settings.v0",
        revision="r1",
        enforce_reventado_commission=False,
        resolver_origin="WINDOW",
        amount_tolerance=0.01,
        period_statuses=("ACTIVE",),
        store_locator=None,
        content_digest="0" * 64,
    )
    sink = _RecordingSink()
    resolver = CommissionResolver.from_settings(settings, policy_lookup=_FakeLookup({"w": None}), audit_sink=sink)
    resolution = resolver.resolve(_input("REVENTADO", actor_id="w"))
    assert resolution.origin == "WINDOW"
    assert resolution.percent == 0
    assert sink.events[0].origin == "WINDOW"


def test_phase3_snapshot_amount_rounds_half_up_to_cents() -> None:
    snapshot = build_commission_snapshot(CommissionResolution(percent=5, origin="SELLER", rule_id="r1"), 33.35)
    assert snapshot.commission_amount == 1.67
    assert snapshot.commission_percent == 5
    assert snapshot.commission_origin == "SELLER"
    assert snapshot.commission_rule_id == "r1"


def test_phase3_store_acts_as_policy_lookup(tmp_path: Path) -> None:
    store = CommissionStore(locator=str(tmp_path / "commission.sqlite"))
    store.upsert_actor(
        actor_id="seller-1",
        tier="SELLER",
        display_name="Seller One",
        commission_policy=_policy(0, [{"id": "r1", "betType": "NUMERO", "percent": 12.5}]),
    )
    resolver = CommissionResolver(policy_lookup=store, audit_sink=_RecordingSink(), clock=lambda: NOW)
    assert resolver.resolve(_input("NUMERO")).rule_id == "r1"
    with pytest.raises(ActorNotFoundError):
        resolver.resolve(_input("NUMERO", actor_id="missing"))


def test_phase3_logging_sink_writes_canonical_json(caplog: pytest.LogCaptureFixture) -> None:
    resolver = CommissionResolver(policy_lookup=_FakeLookup({"seller-1": _policy(3)}), audit_sink=LoggingAuditSink())
    with caplog.at_level(logging.INFO, logger="lottery_commission.audit"):
        resolver.resolve(_input("NUMERO"))
    records = [record for record in caplog.records if record.name == "lottery_commission.audit"]
    assert len(records) == 1
    payload = json.loads(records[0].getMessage().split(" ", 2)[2])
    assert payload["action"] == "COMMISSION_RESOLVE"
    assert payload["status"] == "RESOLVED"
    assert payload["percent"] == 3.0


def test_phase3_non_finite_policy_cannot_bypass_reventado_enforcement() -> None:
    resolver, sink = _resolver({"seller-1": '{"version": 1, "defaultPercent": NaN, "rules": []}'})
    with pytest.raises(CommissionRuleMissingError):
        resolver.resolve(_input("REVENTADO", 50))
    assert sink.events[0].policy_present is False
    assert sink.events[0].reason_code == COMMISSION_RULE_MISSING


@pytest.mark.parametrize(
    "rule",
    [
        {"id": "zero-band", "betType": "REVENTADO", "percent": 0, "multiplierRange": {"min": 0, "max": 1000}},
        {"id": "zero-flat", "betType": "REVENTADO", "percent": 0},
    ],
)
def test_phase3_reventado_rule_with_zero_percent_is_rejected(rule: dict[str, Any]) -> None:
    resolver, sink = _resolver({"seller-1": _policy(5, [rule])})
    with pytest.raises(CommissionRuleMissingError):
        resolver.resolve(_input("REVENTADO", 50))
    assert sink.events[0].status == AUDIT_STATUS_REJECTED
    assert sink.events[0].policy_present is True


def test_phase3_numero_rule_with_zero_percent_keeps_rule_id() -> None:
    rules = [{"id": "zero-numero", "betType": "NUMERO", "percent": 0, "multiplierRange": {"min": 0, "max": 100}}]
    resolver, _ = _resolver({"seller-1": _policy(5, rules)})
    resolution = resolver.resolve(_input("NUMERO", 70))
    assert resolution.percent == 0
    assert resolution.rule_id == "zero-numero"
