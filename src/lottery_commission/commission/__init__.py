"""Commission resolution surfaces."""

from .config import CommissionConfigError, CommissionSettings, load_commission_settings
from .contracts import (
    BET_TYPE_NUMERO,
    BET_TYPE_REVENTADO,
    ORIGIN_BANK,
    ORIGIN_SELLER,
    ORIGIN_WINDOW,
    CommissionPolicy,
    CommissionPolicyV1,
    CommissionResolution,
    CommissionResolutionInput,
    CommissionRule,
    CommissionSnapshot,
    MatchResult,
    MultiplierRange,
)
from .errors import (
    COMMISSION_RULE_MISSING,
    ActorNotFoundError,
    CommissionError,
    CommissionRuleMissingError,
    CommissionStoreError,
)
from .matching import match_numero, match_reventado, match_rule
from .policy import parse_policy
from .resolver import CommissionResolver, build_commission_snapshot, resolve_from_policy

__all__ = [
    "BET_TYPE_NUMERO",
    "BET_TYPE_REVENTADO",
    "ORIGIN_BANK",
    "ORIGIN_SELLER",
    "ORIGIN_WINDOW",
    "COMMISSION_RULE_MISSING",
    "ActorNotFoundError",
    "CommissionConfigError",
    "CommissionError",
    "CommissionPolicy",
    "CommissionPolicyV1",
    "CommissionResolution",
    "CommissionResolutionInput",
    "CommissionResolver",
    "CommissionRule",
    "CommissionRuleMissingError",
    "CommissionSettings",
    "CommissionSnapshot",
    "CommissionStoreError",
    "MatchResult",
    "MultiplierRange",
    "build_commission_snapshot",
    "load_commission_settings",
    "match_numero",
    "match_reventado",
    "match_rule",
    "parse_policy",
    "resolve_from_policy",
]
