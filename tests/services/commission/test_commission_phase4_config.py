from __future__ import annotations

import logging
from pathlib import Path

import pytest

from lottery_commission.commission.config import (
    DEFAULT_PERIOD_STATUSES,
    CommissionConfigError,
    load_commission_settings,
)
from lottery_commission.logging_utils import AuditFilter


_BASE_SETTINGS = """
version: v0
policy_id: commission.settings.v0
revision: r1
resolver:
  enforce_reventado_commission: true
  origin: seller
snapshots:
  amount_tolerance: 0.02
  period_statuses: [active, paid]
store:
  locator: {locator}
"""


def _write(tmp_path: Path, text: str, name: str = "settings.yaml") -> Path:
    path = tmp_path / name
    path.write_text(text, encoding="utf-8")
    return path


def test_phase4_repo_settings_load_with_defaults() -> None:
    settings = load_commission_settings("config/commission/settings_v0.yaml")
    assert settings.version == "v0"
    assert settings.enforce_reventado_commission is True
    assert settings.resolver_origin == "SELLER"
    assert settings.amount_tolerance == 0.01
    assert settings.period_statuses == DEFAULT_PERIOD_STATUSES
    assert len(settings.content_digest) == 64


def test_phase4_settings_are_normalized(tmp_path: Path) -> None:
    settings = load_commission_settings(_write(tmp_path, _BASE_SETTINGS.format(locator="store.sqlite")))
    assert settings.resolver_origin == "SELLER"
    assert settings.amount_tolerance == 0.02
    assert settings.period_statuses == ("ACTIVE", "PAID")
    assert settings.store_locator == "store.sqlite"


def test_phase4_digest_is_deterministic_and_content_sensitive(tmp_path: Path) -> None:
    first = load_commission_settings(_write(tmp_path, _BASE_SETTINGS.format(locator="a.sqlite"), "a.yaml"))
    again = load_commission_settings(_write(tmp_path, _BASE_SETTINGS.format(locator="a.sqlite"), "b.yaml"))
    other = load_commission_settings(_write(tmp_path, _BASE_SETTINGS.format(locator="c.sqlite"), "c.yaml"))
    assert first.content_digest == again.content_digest
    assert first.content_digest != other.content_digest


def test_phase4_minimal_settings_fall_back_to_defaults(tmp_path: Path) -> None:
    settings = load_commission_settings(_write(tmp_path, "version: v0\npolicy_id: p\nrevision: r0\n"))
    assert settings.enforce_reventado_commission is True
    assert settings.resolver_origin == "SELLER"
    assert settings.period_statuses == DEFAULT_PERIOD_STATUSES
    assert settings.store_locator is None


@pytest.mark.parametrize(
    "text",
    [
        "- just\n- a list\n",
        "policy_id: p\nrevision: r0\n",
        "version: v0\npolicy_id: p\nrevision: r0\nresolver:\n  enforce_reventado_commission: 'yes'\n",
        "version: v0\npolicy_id: p\nrevision: r0\nresolver:\n  origin: CASHIER\n",
        "version: v0\npolicy_id: p\nrevision: r0\nsnapshots:\n  amount_tolerance: -0.5\n",
        "version: v0\npolicy_id: p\nrevision: r0\nsnapshots:\n  period_statuses: []\n",
        "version: v0\npolicy_id: p\nrevision: r0\nsnapshots:\n  period_statuses: [ACTIVE, cancelled]\n",
        "version: v0\npolicy_id: p\nrevision: r0\nstore: sqlite.db\n",
    ],
)
def test_phase4_invalid_settings_fail_closed(tmp_path: Path, text: str) -> None:
    with pytest.raises(CommissionConfigError):
        load_commission_settings(_write(tmp_path, text))


def test_phase4_audit_filter_only_passes_audit_logger() -> None:
    audit_filter = AuditFilter()

    def _record(name: str) -> logging.LogRecord:
        return logging.LogRecord(name, logging.INFO, __file__, 1, "msg", None, None)

    assert audit_filter.filter(_record("lottery_commission.audit")) is True
    assert audit_filter.filter(_record("lottery_commission.commission.policy")) is False
