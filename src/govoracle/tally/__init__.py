"""Vote tally: ballots, weighting rules and the tally engine."""

from .ballots import BallotReader, parse_selection
from .engine import TallyOutcome, TallyRunResult, VoteTallyEngine, latest_votes
from .weighting import RULES, get_rule, share_percentages

__all__ = [
    "RULES",
    "BallotReader",
    "TallyOutcome",
    "TallyRunResult",
    "VoteTallyEngine",
    "get_rule",
    "latest_votes",
    "parse_selection",
    "share_percentages",
]
