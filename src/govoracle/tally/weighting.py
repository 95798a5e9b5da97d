"""Weighting rules and share percentages.

A weighting rule maps a voter's PowerSnapshot (and the proposal being
tallied) to one integer vote weight. Rules are selected by name from
configuration:

    developer / sp / client / token_holder   one power dimension
    sum                                      all four dimensions added
    proposal                                 dimensions weighted by the proposal's shares

Weights are plain Python ints, so totals are exact at any magnitude.
"""

from __future__ import annotations

import decimal
from collections.abc import Callable, Mapping
from decimal import ROUND_HALF_UP, Decimal

from ..core.exceptions import ConfigException
from ..core.models import PowerDimension, PowerSnapshot, Proposal

WeightingRule = Callable[[PowerSnapshot, Proposal], int]

HUNDRED = Decimal(100)
CENT = Decimal("0.01")


class DimensionRule:
    """Weight = one power component."""

    def __init__(self, dimension: PowerDimension):
        self.dimension = dimension

    def __call__(self, snapshot: PowerSnapshot, proposal: Proposal) -> int:
        return snapshot.component(self.dimension)

    def __repr__(self) -> str:
        return f"DimensionRule({self.dimension.value})"


def sum_rule(snapshot: PowerSnapshot, proposal: Proposal) -> int:
    return snapshot.total


def proposal_rule(snapshot: PowerSnapshot, proposal: Proposal) -> int:
    """Integer linear combination of the components using the proposal's shares."""
    return sum(snapshot.component(d) * proposal.share(d) for d in PowerDimension)


RULES: dict[str, WeightingRule] = {
    "developer": DimensionRule(PowerDimension.DEVELOPER),
    "sp": DimensionRule(PowerDimension.SP),
    "client": DimensionRule(PowerDimension.CLIENT),
    "token_holder": DimensionRule(PowerDimension.TOKEN_HOLDER),
    "sum": sum_rule,
    "proposal": proposal_rule,
}


def get_rule(name: str) -> WeightingRule:
    """Look up a weighting rule by its configured name.

    Raises:
        ConfigException: unknown rule name
    """
    try:
        return RULES[name.lower()]
    except KeyError:
        raise ConfigException(f"Unknown tally rule {name!r}; expected one of {', '.join(sorted(RULES))}") from None


def share_percentages(
    option_totals: Mapping[str, Mapping[PowerDimension, int]],
    shares: Mapping[PowerDimension, int],
    vote_count: int,
) -> dict[str, Decimal]:
    """Percentage of the outcome won by each option.

    For every dimension with a nonzero grand total, an option earns
    option_total / grand_total of that dimension's share; the sum is
    normalized by the shares actually used and scaled to 100. The rounding
    remainder goes to the leading option (split evenly between tied
    leaders) and values are rounded to two decimals. With no votes every
    option gets 0.
    """
    if vote_count == 0 or not option_totals:
        return {option: Decimal("0.00") for option in option_totals}

    with decimal.localcontext() as ctx:
        ctx.prec = 60
        grand = {d: sum(t.get(d, 0) for t in option_totals.values()) for d in PowerDimension}
        used = [d for d in PowerDimension if grand[d] != 0]
        used_shares = sum(shares.get(d, 0) for d in used)

        raw: dict[str, Decimal] = {}
        for option, totals in option_totals.items():
            if used_shares == 0:
                raw[option] = Decimal(0)
                continue
            weight = sum((Decimal(totals.get(d, 0)) / Decimal(grand[d]) * shares.get(d, 0) for d in used), Decimal(0))
            raw[option] = weight / used_shares * HUNDRED

        remainder = HUNDRED - sum(raw.values())
        top = max(raw.values())
        leaders = [option for option, value in raw.items() if value == top]
        for option in leaders:
            raw[option] += remainder / len(leaders)

        return {option: value.quantize(CENT, rounding=ROUND_HALF_UP) for option, value in raw.items()}
