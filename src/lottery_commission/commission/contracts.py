"""Commission value types shared by the resolver and reporting surfaces."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any


BET_TYPE_NUMERO = "NUMERO"
BET_TYPE_REVENTADO = "REVENTADO"
BET_TYPES: set[str] = {BET_TYPE_NUMERO, BET_TYPE_REVENTADO}

ORIGIN_SELLER = "SELLER"
ORIGIN_WINDOW = "WINDOW"
ORIGIN_BANK = "BANK"
COMMISSION_ORIGINS: set[str] = {ORIGIN_SELLER, ORIGIN_WINDOW, ORIGIN_BANK}

POLICY_VERSION_V1 = 1


class CommissionContractError(ValueError):
    """Raised when commission inputs violate the resolver contract."""


@dataclass(frozen=True)
class MultiplierRange:
    min: float
    max: float

    def contains(self, value: float) -> bool:
        return self.min <= value <= self.max

    @property
    def width(self) -> float:
        return self.max - self.min


@dataclass(frozen=True)
class CommissionRule:
    rule_id: str
    bet_type: str | None
    percent: float
    lottery_id: str | None = None
    multiplier_range: MultiplierRange | None = None

    def applies_to(self, *, bet_type: str, lottery_id: str) -> bool:
        if self.bet_type != bet_type:
            return False
        return not self.lottery_id or self.lottery_id == lottery_id


@dataclass(frozen=True)
class CommissionPolicyV1:
    default_percent: float
    rules: tuple[CommissionRule, ...]
    effective_from: datetime | None = None
    effective_to: datetime | None = None
    version: int = POLICY_VERSION_V1

    def is_effective(self, now: datetime) -> bool:
        if self.effective_from is not None and now < self.effective_from:
            return False
        if self.effective_to is not None and now > self.effective_to:
            return False
        return True


# Tagged union keyed by ``version``; new policy versions are added here.
CommissionPolicy = CommissionPolicyV1


@dataclass(frozen=True)
class CommissionResolutionInput:
    actor_id: str
    lottery_id: str
    bet_type: str
    final_multiplier: float | None = None

    def __post_init__(self) -> None:
        if self.bet_type not in BET_TYPES:
            raise CommissionContractError(f"bet_type must be one of {sorted(BET_TYPES)}")
        if not str(self.lottery_id or "").strip():
            raise CommissionContractError("lottery_id must be non-empty")


@dataclass(frozen=True)
class MatchResult:
    percent: float
    rule_id: str | None


@dataclass(frozen=True)
class CommissionResolution:
    percent: float
    origin: str
    rule_id: str | None


@dataclass(frozen=True)
class CommissionSnapshot:
    """Commission values frozen onto a jugada when it is created."""

    commission_percent: float
    commission_amount: float
    commission_origin: str | None
    commission_rule_id: str | None

    def as_dict(self) -> dict[str, Any]:
        return {
            "commission_percent": self.commission_percent,
            "commission_amount": self.commission_amount,
            "commission_origin": self.commission_origin,
            "commission_rule_id": self.commission_rule_id,
        }
