"""
Player Operations Module

Business logic for leagues and their ranked players.

Key functionality:
- create_league(): Register a league partition
- register_player(): Append a player at the bottom of a league's ladder
- get_ladder(): Players of a league ordered by rank (1 first)
- delete_player(): Remove a player and close the gap in the ladder

New players always take the next free rank, so the ranks of a league stay
the contiguous set 1..N that rank swaps only ever permute.
"""

import uuid
from typing import List, Optional
from contextlib import asynccontextmanager
from sqlalchemy import select, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ladder.database.models import League, Player
from ladder.utils.exceptions import LadderError, PlayerValidationError, StoreUnavailableError
from ladder.utils.logger import setup_logger

logger = setup_logger(__name__)


class PlayerOperations:
    """Business logic operations for league and player management."""

    def __init__(self, database):
        """Initialize with database instance"""
        self.db = database
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

    async def create_league(self, league_id: str, name: str) -> League:
        """Create a league, or return the existing one with the same id."""
        if not league_id or not league_id.strip():
            raise PlayerValidationError("League id cannot be empty")

        try:
            async with self.db.transaction() as session:
                league = await session.get(League, league_id)
                if league:
                    self.logger.debug(f"League '{league_id}' already exists")
                    return league

                league = League(id=league_id, name=name)
                session.add(league)
        except SQLAlchemyError as e:
            raise StoreUnavailableError("league creation", str(e)) from e

        self.logger.info(f"Created league '{league_id}' ({name})")
        return league

    async def get_league(self, league_id: str, session: Optional[AsyncSession] = None) -> Optional[League]:
        async with self._get_session_context(session) as s:
            return await s.get(League, league_id)

    async def register_player(
        self,
        league_id: str,
        nickname: str,
        main_character: Optional[str] = None,
        player_id: Optional[str] = None
    ) -> Player:
        """
        Add a player to the bottom of a league's ladder.

        Args:
            league_id: League to join
            nickname: Display name, required
            main_character: Optional main character
            player_id: Explicit id, generated when omitted

        Returns:
            Player: The new player holding rank max(rank) + 1

        Raises:
            PlayerValidationError: If the nickname is blank, the league is
                unknown or the id is taken
            StoreUnavailableError: If the database operation fails
        """
        if not nickname or not nickname.strip():
            raise PlayerValidationError("Nickname is required")

        try:
            async with self.db.transaction() as session:
                if await session.get(League, league_id) is None:
                    raise PlayerValidationError(f"League '{league_id}' not found")

                player_id = player_id or uuid.uuid4().hex
                if await session.get(Player, (league_id, player_id)) is not None:
                    raise PlayerValidationError(f"Player '{player_id}' already exists in league '{league_id}'")

                result = await session.execute(
                    select(func.coalesce(func.max(Player.rank), 0)).where(Player.league_id == league_id)
                )
                next_rank = result.scalar() + 1

                player = Player(
                    league_id=league_id,
                    id=player_id,
                    nickname=nickname.strip(),
                    main_character=main_character,
                    rank=next_rank,
                    wins=0,
                    losses=0
                )
                session.add(player)
        except LadderError:
            raise
        except SQLAlchemyError as e:
            self.logger.error(f"Failed to register player {nickname} in league '{league_id}': {e}")
            raise StoreUnavailableError("player registration", str(e)) from e

        self.logger.info(f"Player {player.nickname} ({player.id}) added at rank {player.rank} in '{league_id}'")
        return player

    async def get_player(
        self, league_id: str, player_id: str, session: Optional[AsyncSession] = None
    ) -> Optional[Player]:
        async with self._get_session_context(session) as s:
            return await s.get(Player, (league_id, player_id))

    async def get_ladder(self, league_id: str, session: Optional[AsyncSession] = None) -> List[Player]:
        """Get a league's players ordered by rank, best first"""
        async with self._get_session_context(session) as s:
            result = await s.execute(
                select(Player)
                .where(Player.league_id == league_id)
                .order_by(Player.rank.asc())
            )
            return list(result.scalars().all())

    async def delete_player(self, league_id: str, player_id: str) -> None:
        """
        Remove a player from a league's ladder.

        Players ranked below the removed one move up by one rank in the same
        transaction, so the league keeps ranks 1..N. Their version counters
        are bumped, which makes an in-flight rank swap replay its read.

        Raises:
            PlayerValidationError: If the player does not exist
            StoreUnavailableError: If the database operation fails
        """
        try:
            async with self.db.transaction() as session:
                player = await session.get(Player, (league_id, player_id))
                if player is None:
                    raise PlayerValidationError(f"Player '{player_id}' not found in league '{league_id}'")

                removed_rank = player.rank
                await session.delete(player)

                result = await session.execute(
                    select(Player)
                    .where(Player.league_id == league_id, Player.rank > removed_rank)
                    .order_by(Player.rank.asc())
                )
                below = list(result.scalars().all())
                for other in below:
                    other.rank -= 1
        except LadderError:
            raise
        except SQLAlchemyError as e:
            self.logger.error(f"Failed to delete player {player_id} from league '{league_id}': {e}")
            raise StoreUnavailableError("player deletion", str(e)) from e

        self.logger.info(
            f"Player {player_id} removed from rank {removed_rank} in '{league_id}', "
            f"{len(below)} player(s) moved up"
        )
