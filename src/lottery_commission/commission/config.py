"""Commission settings loader."""

from __future__ import annotations

from dataclasses import dataclass
import hashlib
import json
from pathlib import Path
from typing import Any, Mapping

import yaml

from .contracts import COMMISSION_ORIGINS, ORIGIN_SELLER


DEFAULT_SETTINGS_PATH = "config/commission/settings_v0.yaml"
DEFAULT_AMOUNT_TOLERANCE = 0.01
DEFAULT_PERIOD_STATUSES: tuple[str, ...] = ("ACTIVE", "EVALUATED", "PAID", "SETTLED")


class CommissionConfigError(ValueError):
    """Raised when commission settings payloads are invalid."""


@dataclass(frozen=True)
class CommissionSettings:
    version: str
    policy_id: str
    revision: str
    enforce_reventado_commission: bool
    resolver_origin: str
    amount_tolerance: float
    period_statuses: tuple[str, ...]
    store_locator: str | None
    content_digest: str


def load_commission_settings(path: Path | str = DEFAULT_SETTINGS_PATH) -> CommissionSettings:
    payload = yaml.safe_load(Path(path).read_text(encoding="utf-8"))
    if not isinstance(payload, Mapping):
        raise CommissionConfigError("commission settings must be a mapping")

    version = _require_non_empty_str(payload.get("version"), "version")
    policy_id = _require_non_empty_str(payload.get("policy_id"), "policy_id")
    revision = _require_non_empty_str(payload.get("revision"), "revision")

    resolver = _optional_mapping(payload.get("resolver"), "resolver")
    enforce = resolver.get("enforce_reventado_commission", True)
    if not isinstance(enforce, bool):
        raise CommissionConfigError("resolver.enforce_reventado_commission must be a boolean")
    origin = str(resolver.get("origin") or ORIGIN_SELLER).strip().upper()
    if origin not in COMMISSION_ORIGINS:
        raise CommissionConfigError(f"resolver.origin must be one of {sorted(COMMISSION_ORIGINS)}")

    snapshots = _optional_mapping(payload.get("snapshots"), "snapshots")
    tolerance = _non_negative_float(
        snapshots.get("amount_tolerance", DEFAULT_AMOUNT_TOLERANCE),
        "snapshots.amount_tolerance",
    )
    statuses_raw = snapshots.get("period_statuses")
    if statuses_raw is None:
        period_statuses = DEFAULT_PERIOD_STATUSES
    else:
        period_statuses = tuple(
            item.upper() for item in _to_non_empty_list(statuses_raw, "snapshots.period_statuses")
        )
    if "CANCELLED" in period_statuses:
        raise CommissionConfigError("snapshots.period_statuses must not include CANCELLED")

    store = _optional_mapping(payload.get("store"), "store")
    store_locator = str(store.get("locator") or "").strip() or None

    digest_payload = {
        "version": version,
        "policy_id": policy_id,
        "revision": revision,
        "resolver": {"enforce_reventado_commission": enforce, "origin": origin},
        "snapshots": {"amount_tolerance": tolerance, "period_statuses": list(period_statuses)},
        "store": {"locator": store_locator},
    }
    canonical = json.dumps(digest_payload, sort_keys=True, ensure_ascii=True, separators=(",", ":"))
    content_digest = hashlib.sha256(canonical.encode("utf-8")).hexdigest()

    return CommissionSettings(
        version=version,
        policy_id=policy_id,
        revision=revision,
        enforce_reventado_commission=enforce,
        resolver_origin=origin,
        amount_tolerance=tolerance,
        period_statuses=period_statuses,
        store_locator=store_locator,
        content_digest=content_digest,
    )


def _optional_mapping(value: Any, field_name: str) -> Mapping[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise CommissionConfigError(f"{field_name} must be a mapping when provided")
    return value


def _require_non_empty_str(value: Any, field_name: str) -> str:
    text = str(value or "").strip()
    if not text:
        raise CommissionConfigError(f"{field_name} must be a non-empty string")
    return text


def _to_non_empty_list(value: Any, field_name: str) -> list[str]:
    if not isinstance(value, list) or not value:
        raise CommissionConfigError(f"{field_name} must be a non-empty list")
    normalized: list[str] = []
    for index, item in enumerate(value):
        text = str(item or "").strip()
        if not text:
            raise CommissionConfigError(f"{field_name}[{index}] must be non-empty")
        normalized.append(text)
    return normalized


def _non_negative_float(value: Any, field_name: str) -> float:
    if isinstance(value, bool):
        raise CommissionConfigError(f"{field_name} must be a non-negative number")
    try:
        parsed = float(value)
    except (TypeError, ValueError) as exc:
        raise CommissionConfigError(f"{field_name} must be a non-negative number") from exc
    if parsed < 0:
        raise CommissionConfigError(f"{field_name} must be a non-negative number")
    return parsed
