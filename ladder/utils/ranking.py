"""
Ladder ranking rules.

Pure functions shared by the rank reconciler and the match operations. None
of them touch the database, which keeps the decision part of a rank
transaction replayable on every optimistic-concurrency retry.
"""

import math
from typing import Optional

from ladder.data_models.snapshots import (
    MatchSnapshot, PlayerSnapshot, PlayerSnapshots, RankWriteSet
)
from ladder.database.models import MatchStatus
from ladder.utils.exceptions import ChallengeValidationError, MissingPlayerRecordError


def is_completion_transition(before: MatchSnapshot, after: MatchSnapshot) -> bool:
    """True only for the edge ``status != completed -> status == completed``."""
    return before.status != MatchStatus.COMPLETED and after.status == MatchStatus.COMPLETED


def challenger_won(match: MatchSnapshot) -> bool:
    """
    Strict score comparison. A tie counts as the challenger not winning, so
    the defender keeps the rank.
    """
    return match.score_challenger > match.score_defender


def decide_rank_swap(match: MatchSnapshot, snapshots: PlayerSnapshots) -> RankWriteSet:
    """
    Decide the rank writes for a match the challenger won.

    Args:
        match: After-state of the completed match
        snapshots: Player snapshots keyed by player id, None for absent records

    Returns:
        {challenger_id: defender_rank, defender_id: challenger_rank} when the
        challenger was worse-ranked, otherwise an empty write-set

    Raises:
        MissingPlayerRecordError: If either player record is absent
    """
    challenger = snapshots.get(match.challenger_id)
    defender = snapshots.get(match.defender_id)

    missing = [
        player_id for player_id, snapshot in (
            (match.challenger_id, challenger), (match.defender_id, defender)
        ) if snapshot is None
    ]
    if missing:
        raise MissingPlayerRecordError(match.league_id, missing, match_id=match.match_id)

    if challenger.rank > defender.rank:
        return {
            match.challenger_id: defender.rank,
            match.defender_id: challenger.rank,
        }
    return {}


def validate_challenge(challenger: Optional[PlayerSnapshot], defender: Optional[PlayerSnapshot]) -> None:
    """
    A challenge is only valid upwards: the challenger must hold a worse rank
    (greater number) than the defender.

    Raises:
        ChallengeValidationError: If the challenge breaks the ladder rules
    """
    if challenger is None or defender is None:
        raise ChallengeValidationError("Players not found")

    if challenger.player_id == defender.player_id:
        raise ChallengeValidationError("A player cannot challenge themselves")

    if challenger.rank <= defender.rank:
        raise ChallengeValidationError(
            "The challenger must hold a worse rank (higher number) than the defender"
        )


def calculate_win_rate(wins: int, losses: int) -> int:
    """Win rate as a percentage rounded half up, 0 when no games were played."""
    total = wins + losses
    if total <= 0:
        return 0
    return int(math.floor(wins * 100 / total + 0.5))
