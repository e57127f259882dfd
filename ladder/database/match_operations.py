"""
Match Operations Module - challenge ladder match store

Provides the operational layer for match records: creating challenges,
recording scores and status changes, and querying matches per league.

Every committed update is published to the match update dispatcher as a
before/after snapshot pair, which is how the rank reconciler learns that a
match completed. Publishing happens after the match commit: a failing
reaction surfaces to the caller but never rolls the match update back.

The win/loss counters of both players are bumped inside the match
transaction on the completion edge only, so re-saving a completed match
never counts it twice. Ranks are left to the reconciler.

Architecture Patterns:
- Challenge creation validated against the ladder rules
- Score/status updates captured as immutable snapshots
- SQLAlchemy failures wrapped into StoreUnavailableError
"""

from datetime import datetime
from typing import List, Optional, Union
from contextlib import asynccontextmanager
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ladder.config import Config
from ladder.data_models.snapshots import MatchSnapshot
from ladder.database.models import Match, MatchStatus, Player
from ladder.utils.exceptions import (
    LadderError, MatchNotFoundError, MatchValidationError, StoreUnavailableError
)
from ladder.utils.logger import setup_logger
from ladder.utils.ranking import challenger_won, is_completion_transition, validate_challenge

logger = setup_logger(__name__)


class MatchOperations:
    """
    Core service class for match lifecycle management.

    Collaborators are injected: the database for match records, the player
    store for rank lookups during challenge validation, and the dispatcher
    that receives every committed update.
    """

    def __init__(self, database, player_store, dispatcher):
        """Initialize with database, player store and match update dispatcher"""
        self.db = database
        self.player_store = player_store
        self.dispatcher = dispatcher
        self.logger = logger

    @asynccontextmanager
    async def _get_session_context(self, session: Optional[AsyncSession] = None):
        """
        Provides a session context. Uses the provided session if available,
        otherwise creates and manages a new session.
        """
        if session:
            # If a session is provided, we do not manage its lifecycle
            yield session
        else:
            async with self.db.get_session() as new_session:
                yield new_session

    # ============================================================================
    # Challenge creation
    # ============================================================================

    async def create_challenge(
        self,
        league_id: str,
        challenger_id: str,
        defender_id: str,
        match_format: Optional[str] = None,
        scheduled_at: Optional[datetime] = None
    ) -> Match:
        """
        Schedule a match between two players of the same league.

        Args:
            league_id: League both players belong to
            challenger_id: Player issuing the challenge
            defender_id: Player defending their rank
            match_format: Series format, e.g. "BO7"
            scheduled_at: When the match is scheduled, defaults to now

        Returns:
            Match: The created match in SCHEDULED status with zero scores

        Raises:
            ChallengeValidationError: If the players are missing, identical,
                or the challenger does not hold a worse rank
            StoreUnavailableError: If the database operation fails
        """
        challenger = await self.player_store.get_snapshot(league_id, challenger_id)
        defender = await self.player_store.get_snapshot(league_id, defender_id)
        validate_challenge(challenger, defender)

        try:
            async with self.db.transaction() as session:
                match = Match(
                    league_id=league_id,
                    challenger_id=challenger_id,
                    defender_id=defender_id,
                    status=MatchStatus.SCHEDULED,
                    score_challenger=0,
                    score_defender=0,
                    format=match_format or Config.DEFAULT_MATCH_FORMAT,
                    scheduled_at=scheduled_at or datetime.now()
                )
                session.add(match)
                await session.flush()
        except SQLAlchemyError as e:
            self.logger.error(f"Failed to create challenge {challenger_id} -> {defender_id}: {e}")
            raise StoreUnavailableError("challenge creation", str(e)) from e

        self.logger.info(
            f"Challenge created: {challenger_id} (rank {challenger.rank}) vs "
            f"{defender_id} (rank {defender.rank}) as match {match.id}"
        )
        return match

    # ============================================================================
    # Result recording
    # ============================================================================

    async def update_match(
        self,
        match_id: int,
        score_challenger: Optional[int] = None,
        score_defender: Optional[int] = None,
        status: Optional[Union[MatchStatus, str]] = None
    ) -> Match:
        """
        Record scores and/or a status change, then publish the update.

        Args:
            match_id: Match to update
            score_challenger: New challenger score, unchanged if None
            score_defender: New defender score, unchanged if None
            status: New status (enum or its value), unchanged if None

        Returns:
            Match: The updated match

        Raises:
            MatchNotFoundError: If the match does not exist
            MatchValidationError: If a score is negative or the status unknown
            StoreUnavailableError: If the database operation fails
            LadderError: Whatever a subscribed reaction raised after its
                delivery budget was spent
        """
        for label, score in (("challenger", score_challenger), ("defender", score_defender)):
            if score is not None and (not isinstance(score, int) or isinstance(score, bool) or score < 0):
                raise MatchValidationError(f"Invalid {label} score {score!r}: must be a non-negative integer")

        if status is not None and not isinstance(status, MatchStatus):
            try:
                status = MatchStatus(str(status).lower())
            except ValueError:
                raise MatchValidationError(f"Unknown match status {status!r}")

        try:
            async with self.db.transaction() as session:
                match = await session.get(Match, match_id)
                if match is None:
                    raise MatchNotFoundError(match_id)

                before = MatchSnapshot.from_record(match)

                if score_challenger is not None:
                    match.score_challenger = score_challenger
                if score_defender is not None:
                    match.score_defender = score_defender
                if status is not None:
                    match.status = status

                await session.flush()
                after = MatchSnapshot.from_record(match)

                if is_completion_transition(before, after):
                    await self._record_result(session, after)
        except LadderError:
            raise
        except SQLAlchemyError as e:
            self.logger.error(f"Failed to update match {match_id}: {e}")
            raise StoreUnavailableError("match update", str(e)) from e

        self.logger.info(
            f"Match {match_id} updated: {before.status.value} -> {after.status.value}, "
            f"score {after.score_challenger}-{after.score_defender}"
        )

        await self.dispatcher.publish(before, after)
        return match

    async def _record_result(self, session: AsyncSession, match: MatchSnapshot) -> None:
        """Count a freshly completed match in both players' win/loss records. Ties go to the defender."""
        if challenger_won(match):
            winner_id, loser_id = match.challenger_id, match.defender_id
        else:
            winner_id, loser_id = match.defender_id, match.challenger_id

        winner = await session.get(Player, (match.league_id, winner_id))
        loser = await session.get(Player, (match.league_id, loser_id))

        if winner is not None:
            winner.wins = (winner.wins or 0) + 1
        if loser is not None:
            loser.losses = (loser.losses or 0) + 1
        if winner is None or loser is None:
            self.logger.warning(
                f"Match {match.match_id} completed with a missing player record; "
                f"stats recorded only for players still in '{match.league_id}'"
            )

    async def complete_match(self, match_id: int, score_challenger: int, score_defender: int) -> Match:
        """Record final scores and mark the match completed."""
        return await self.update_match(
            match_id,
            score_challenger=score_challenger,
            score_defender=score_defender,
            status=MatchStatus.COMPLETED
        )

    # ============================================================================
    # Utility Functions
    # ============================================================================

    async def get_match(self, match_id: int, session: Optional[AsyncSession] = None) -> Optional[Match]:
        """
        Retrieve Match by ID.

        Returns:
            Match if exists, None otherwise
        """
        async with self._get_session_context(session) as s:
            return await s.get(Match, match_id)

    async def list_matches(
        self,
        league_id: str,
        status: Optional[MatchStatus] = None,
        session: Optional[AsyncSession] = None
    ) -> List[Match]:
        """List a league's matches, most recently scheduled first."""
        async with self._get_session_context(session) as s:
            query = select(Match).where(Match.league_id == league_id)
            if status is not None:
                query = query.where(Match.status == status)
            query = query.order_by(Match.scheduled_at.desc(), Match.id.desc())

            result = await s.execute(query)
            return list(result.scalars().all())
