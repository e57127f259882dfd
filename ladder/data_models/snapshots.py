"""
Immutable snapshots exchanged between the match store, the player store and
the rank reconciler.

A match update is delivered as a ``(before, after)`` pair of MatchSnapshot,
and the player store hands PlayerSnapshot values to the decision function
of a rank transaction.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple

from ladder.database.models import MatchStatus


@dataclass(frozen=True)
class MatchSnapshot:
    """State of one match record at a point in time."""
    match_id: int
    league_id: str
    status: MatchStatus
    challenger_id: str
    defender_id: str
    score_challenger: int = 0
    score_defender: int = 0

    @classmethod
    def from_record(cls, match) -> "MatchSnapshot":
        """Capture a Match ORM row."""
        return cls(
            match_id=match.id,
            league_id=match.league_id,
            status=match.status,
            challenger_id=match.challenger_id,
            defender_id=match.defender_id,
            score_challenger=match.score_challenger or 0,
            score_defender=match.score_defender or 0,
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "MatchSnapshot":
        """Build a snapshot from a raw event payload (status is case-insensitive)."""
        status = data['status']
        if not isinstance(status, MatchStatus):
            status = MatchStatus(str(status).lower())
        return cls(
            match_id=data['match_id'],
            league_id=data['league_id'],
            status=status,
            challenger_id=data['challenger_id'],
            defender_id=data['defender_id'],
            score_challenger=int(data.get('score_challenger') or 0),
            score_defender=int(data.get('score_defender') or 0),
        )


@dataclass(frozen=True)
class PlayerSnapshot:
    """Rank of one player as read inside a rank transaction."""
    player_id: str
    rank: int
    version: int = 1


@dataclass(frozen=True)
class RankChange:
    """Before/after rank of one player touched by a swap."""
    player_id: str
    rank_before: int
    rank_after: int


class ReconciliationOutcome(Enum):
    NOT_TRIGGERED = "not_triggered"        # Update was not a transition into completed
    DEFENDER_WON = "defender_won"          # Defender won or tied, nothing to do
    SWAPPED = "swapped"                    # Challenger took the defender's rank
    ALREADY_OUTRANKS = "already_outranks"  # Challenger won but already ranked higher


@dataclass(frozen=True)
class ReconciliationResult:
    """Settled outcome of one rank reconciliation invocation."""
    match_id: int
    outcome: ReconciliationOutcome
    changes: Tuple[RankChange, ...] = ()

    @property
    def mutated(self) -> bool:
        return self.outcome is ReconciliationOutcome.SWAPPED


RankWriteSet = Dict[str, int]
PlayerSnapshots = Dict[str, Optional[PlayerSnapshot]]
