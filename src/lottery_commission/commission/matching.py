"""Rule matching for commission policies.

NUMERO rules are a priority-ordered list: the first declared rule whose
multiplier range contains the bet's multiplier wins. REVENTADO bands may be
nested, so the narrowest ranged rule wins regardless of declaration order.
Both fall back to the first rangeless rule and then to the policy default.
"""

from __future__ import annotations

from .contracts import (
    BET_TYPE_NUMERO,
    BET_TYPE_REVENTADO,
    CommissionContractError,
    CommissionPolicy,
    CommissionRule,
    MatchResult,
)


def match_numero(
    policy: CommissionPolicy,
    lottery_id: str,
    final_multiplier: float | None = None,
) -> MatchResult:
    rules = _eligible_rules(policy, bet_type=BET_TYPE_NUMERO, lottery_id=lottery_id)
    if final_multiplier is not None:
        for rule in rules:
            if rule.multiplier_range is not None and rule.multiplier_range.contains(final_multiplier):
                return MatchResult(percent=rule.percent, rule_id=rule.rule_id)
    return _rangeless_or_default(policy, rules)


def match_reventado(policy: CommissionPolicy, lottery_id: str) -> MatchResult:
    rules = _eligible_rules(policy, bet_type=BET_TYPE_REVENTADO, lottery_id=lottery_id)
    ranged = [rule for rule in rules if rule.multiplier_range is not None]
    if ranged:
        # min() keeps the first declared rule when width and min tie.
        narrowest = min(
            ranged,
            key=lambda rule: (rule.multiplier_range.width, rule.multiplier_range.min),  # type: ignore[union-attr]
        )
        return MatchResult(percent=narrowest.percent, rule_id=narrowest.rule_id)
    return _rangeless_or_default(policy, rules)


def match_rule(
    policy: CommissionPolicy,
    *,
    bet_type: str,
    lottery_id: str,
    final_multiplier: float | None = None,
) -> MatchResult:
    if bet_type == BET_TYPE_NUMERO:
        return match_numero(policy, lottery_id, final_multiplier)
    if bet_type == BET_TYPE_REVENTADO:
        return match_reventado(policy, lottery_id)
    raise CommissionContractError(f"unsupported bet_type: {bet_type!r}")


def _eligible_rules(policy: CommissionPolicy, *, bet_type: str, lottery_id: str) -> list[CommissionRule]:
    return [rule for rule in policy.rules if rule.applies_to(bet_type=bet_type, lottery_id=lottery_id)]


def _rangeless_or_default(policy: CommissionPolicy, rules: list[CommissionRule]) -> MatchResult:
    for rule in rules:
        if rule.multiplier_range is None:
            return MatchResult(percent=rule.percent, rule_id=rule.rule_id)
    return MatchResult(percent=policy.default_percent, rule_id=None)
