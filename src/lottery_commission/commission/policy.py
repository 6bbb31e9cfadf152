"""Commission policy validation and normalization.

Raw policy documents are stored per actor as opaque JSON. ``parse_policy`` turns
one into a versioned value type or returns ``None``; malformed, expired and
not-yet-effective documents all collapse to "no policy" so callers never branch
on partially valid input. Every rejection is logged with a reason code.
"""

from __future__ import annotations

from datetime import datetime, timezone
import json
import logging
import math
from typing import Any, Callable, Mapping

from jsonschema import Draft202012Validator

from .contracts import (
    BET_TYPES,
    POLICY_VERSION_V1,
    CommissionPolicy,
    CommissionPolicyV1,
    CommissionRule,
    MultiplierRange,
)


logger = logging.getLogger(__name__)

POLICY_NOT_OBJECT = "POLICY_NOT_OBJECT"
POLICY_VERSION_UNSUPPORTED = "POLICY_VERSION_UNSUPPORTED"
DEFAULT_PERCENT_NOT_NUMERIC = "DEFAULT_PERCENT_NOT_NUMERIC"
RULES_NOT_LIST = "RULES_NOT_LIST"
RULE_INVALID = "RULE_INVALID"
POLICY_SCHEMA_INVALID = "POLICY_SCHEMA_INVALID"
EFFECTIVE_WINDOW_INVALID = "EFFECTIVE_WINDOW_INVALID"
POLICY_NOT_YET_EFFECTIVE = "POLICY_NOT_YET_EFFECTIVE"
POLICY_EXPIRED = "POLICY_EXPIRED"

_PERCENT_SCHEMA: dict[str, Any] = {"type": "number", "minimum": 0, "maximum": 100}

POLICY_V1_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["version", "defaultPercent", "rules"],
    "properties": {
        "version": {"const": POLICY_VERSION_V1},
        "defaultPercent": _PERCENT_SCHEMA,
        "rules": {"type": "array", "items": {"$ref": "#/$defs/rule"}},
    },
    "$defs": {
        "rule": {
            "type": "object",
            "required": ["id", "percent"],
            "properties": {
                "id": {"type": ["string", "integer"]},
                "betType": {"enum": [*sorted(BET_TYPES), None]},
                "percent": _PERCENT_SCHEMA,
                "loteriaId": {"type": ["string", "null"]},
                "lotteryId": {"type": ["string", "null"]},
                "multiplierRange": {
                    "anyOf": [
                        {"type": "null"},
                        {
                            "type": "object",
                            "required": ["min", "max"],
                            "properties": {
                                "min": {"type": "number"},
                                "max": {"type": "number"},
                            },
                        },
                    ]
                },
            },
        }
    },
}

_POLICY_V1_VALIDATOR = Draft202012Validator(POLICY_V1_SCHEMA)


class _PolicyRejected(ValueError):
    def __init__(self, reason_code: str, detail: str = "") -> None:
        self.reason_code = reason_code
        self.detail = detail
        super().__init__(f"{reason_code}:{detail}" if detail else reason_code)


def parse_policy(
    raw: Any,
    *,
    origin: str | None = None,
    now: datetime | None = None,
) -> CommissionPolicy | None:
    """Return the effective policy for ``raw`` or ``None``. Never raises."""
    if raw is None:
        return None
    try:
        policy = _parse(raw)
        _ensure_effective(policy, _as_utc(now) if now is not None else datetime.now(timezone.utc))
    except _PolicyRejected as exc:
        logger.warning(
            "commission policy rejected reason_code=%s origin=%s detail=%s",
            exc.reason_code,
            origin or "-",
            exc.detail or "-",
        )
        return None
    return policy


def _parse(raw: Any) -> CommissionPolicy:
    payload = raw
    if isinstance(raw, (str, bytes, bytearray)):
        try:
            payload = json.loads(raw)
        except ValueError as exc:
            raise _PolicyRejected(POLICY_NOT_OBJECT, "policy text is not valid JSON") from exc
    if not isinstance(payload, Mapping):
        raise _PolicyRejected(POLICY_NOT_OBJECT, type(payload).__name__)

    version = payload.get("version")
    parser = _POLICY_PARSERS.get(version) if _is_int(version) else None
    if parser is None:
        raise _PolicyRejected(POLICY_VERSION_UNSUPPORTED, repr(version))
    return parser(payload)


def _parse_v1(payload: Mapping[str, Any]) -> CommissionPolicyV1:
    if not _is_number(payload.get("defaultPercent")):
        raise _PolicyRejected(DEFAULT_PERCENT_NOT_NUMERIC)
    rules_raw = payload.get("rules")
    if not isinstance(rules_raw, list):
        raise _PolicyRejected(RULES_NOT_LIST)
    for index, item in enumerate(rules_raw):
        if not isinstance(item, Mapping):
            raise _PolicyRejected(RULE_INVALID, f"rules[{index}] is not an object")
        if not str(item.get("id") or "").strip():
            raise _PolicyRejected(RULE_INVALID, f"rules[{index}] missing id")
        if not _is_number(item.get("percent")):
            raise _PolicyRejected(RULE_INVALID, f"rules[{index}] percent is not numeric")
        range_raw = item.get("multiplierRange")
        if isinstance(range_raw, Mapping) and any(_is_non_finite(range_raw.get(key)) for key in ("min", "max")):
            raise _PolicyRejected(RULE_INVALID, f"rules[{index}].multiplierRange bound is not finite")

    errors = sorted(_POLICY_V1_VALIDATOR.iter_errors(dict(payload)), key=lambda item: list(item.path))
    if errors:
        first = errors[0]
        path = ".".join(str(item) for item in first.path) or "<root>"
        raise _PolicyRejected(POLICY_SCHEMA_INVALID, f"{path}:{first.message}")

    rules = tuple(_parse_rule(index, item) for index, item in enumerate(rules_raw))
    return CommissionPolicyV1(
        default_percent=float(payload["defaultPercent"]),
        rules=rules,
        effective_from=_parse_timestamp(payload.get("effectiveFrom"), "effectiveFrom"),
        effective_to=_parse_timestamp(payload.get("effectiveTo"), "effectiveTo"),
    )


def _parse_rule(index: int, item: Mapping[str, Any]) -> CommissionRule:
    range_raw = item.get("multiplierRange")
    multiplier_range: MultiplierRange | None = None
    if isinstance(range_raw, Mapping):
        multiplier_range = MultiplierRange(min=float(range_raw["min"]), max=float(range_raw["max"]))
        if multiplier_range.min > multiplier_range.max:
            raise _PolicyRejected(POLICY_SCHEMA_INVALID, f"rules[{index}].multiplierRange min > max")
    lottery_id = item.get("loteriaId")
    if lottery_id is None:
        lottery_id = item.get("lotteryId")
    return CommissionRule(
        rule_id=str(item["id"]).strip(),
        bet_type=item.get("betType"),
        percent=float(item["percent"]),
        lottery_id=str(lottery_id or "").strip() or None,
        multiplier_range=multiplier_range,
    )


_POLICY_PARSERS: dict[int, Callable[[Mapping[str, Any]], CommissionPolicy]] = {
    POLICY_VERSION_V1: _parse_v1,
}


def _ensure_effective(policy: CommissionPolicy, now: datetime) -> None:
    if policy.is_effective(now):
        return
    if policy.effective_from is not None and now < policy.effective_from:
        raise _PolicyRejected(POLICY_NOT_YET_EFFECTIVE, policy.effective_from.isoformat())
    raise _PolicyRejected(POLICY_EXPIRED, policy.effective_to.isoformat() if policy.effective_to else "-")


def _parse_timestamp(value: Any, field_name: str) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return _as_utc(value)
    if not isinstance(value, str):
        raise _PolicyRejected(EFFECTIVE_WINDOW_INVALID, f"{field_name} must be an ISO-8601 string")
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as exc:
        raise _PolicyRejected(EFFECTIVE_WINDOW_INVALID, f"{field_name}={value!r}") from exc
    return _as_utc(parsed)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def _is_non_finite(value: Any) -> bool:
    return isinstance(value, float) and not math.isfinite(value)
