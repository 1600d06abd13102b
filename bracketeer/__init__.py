"""
Bracketeer - Single-elimination brackets you can run from a browser

Seed a roster, play it out match by match (or let the coin decide), and
watch the winners climb the tree.
"""

__version__ = "0.1.0"

from .bracket import (
    # Data types
    BracketMode,
    Competitor,
    Match,
    Bracket,
    # Errors
    InvalidDecisionError,
    BracketModeError,
    BracketIntegrityError,
    # Builder
    build_bracket,
    check_integrity,
    match_records,
    round_count,
)

from .progression import (
    record_result,
    rename_competitor,
)

from .scoring import (
    MatchTimer,
    pick_winner,
    decide_match,
)

__all__ = [
    # Version
    "__version__",
    # Bracket
    "BracketMode",
    "Competitor",
    "Match",
    "Bracket",
    "InvalidDecisionError",
    "BracketModeError",
    "BracketIntegrityError",
    "build_bracket",
    "check_integrity",
    "match_records",
    "round_count",
    # Progression
    "record_result",
    "rename_competitor",
    # Scoring
    "MatchTimer",
    "pick_winner",
    "decide_match",
]
