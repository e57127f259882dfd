"""
Player Store - atomic rank transactions over a league partition.

A rank transaction is modelled as a pure decision function from "current
snapshot of the requested player records" to "write-set of new ranks". The
store reads the snapshot, runs the decision, and commits the write-set with
compare-on-commit of every record version. When a concurrent writer got
there first the whole read-decide-write sequence is replayed, never just the
write step.

Retry policy:
- Optimistic conflicts are retried up to ``max_attempts`` times with
  exponential backoff, then surface as TransactionConflictError
- Infrastructure failures surface immediately as StoreUnavailableError
- Anything raised by the decision function aborts the transaction with no
  writes and propagates unchanged
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Callable, Iterable, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ladder.config import Config
from ladder.data_models.snapshots import PlayerSnapshot, PlayerSnapshots, RankWriteSet
from ladder.database.models import Player
from ladder.utils.exceptions import (
    MissingPlayerRecordError, StoreUnavailableError, TransactionConflictError
)
from ladder.utils.logger import setup_logger

logger = setup_logger(__name__)

RankDecision = Callable[[PlayerSnapshots], RankWriteSet]


class OptimisticConflict(Exception):
    """A record changed between the snapshot read and the commit."""
    pass


class PlayerStore(ABC):
    """Transaction contract every player store implements."""

    def __init__(self, max_attempts: Optional[int] = None, retry_backoff: Optional[float] = None):
        self.max_attempts = max_attempts or Config.RANK_SWAP_MAX_ATTEMPTS
        self.retry_backoff = Config.RANK_SWAP_RETRY_BACKOFF if retry_backoff is None else retry_backoff
        self.logger = logger

    @abstractmethod
    async def get_snapshot(self, league_id: str, player_id: str) -> Optional[PlayerSnapshot]:
        """Point read of one player record, None when absent."""

    @abstractmethod
    async def _attempt(
        self, league_id: str, player_ids: Tuple[str, ...], decide: RankDecision, operation: str
    ) -> RankWriteSet:
        """Run one read-decide-write pass, raising OptimisticConflict on a stale commit."""

    async def run_rank_transaction(
        self,
        league_id: str,
        player_ids: Iterable[str],
        decide: RankDecision,
        operation: str = "rank transaction"
    ) -> RankWriteSet:
        """
        Atomically apply the write-set chosen by ``decide``.

        Args:
            league_id: League partition holding the players
            player_ids: Players to read into the snapshot
            decide: Pure function mapping the snapshot to {player_id: new_rank}
            operation: Label used in logs and errors

        Returns:
            The committed write-set (empty when nothing was written)

        Raises:
            TransactionConflictError: If every attempt hit a concurrent write
            StoreUnavailableError: If the backing store failed
        """
        player_ids = tuple(dict.fromkeys(player_ids))

        for attempt in range(1, self.max_attempts + 1):
            try:
                return await self._attempt(league_id, player_ids, decide, operation)
            except OptimisticConflict as e:
                if attempt == self.max_attempts:
                    self.logger.error(f"Giving up on {operation} after {attempt} attempts: {e}")
                    raise TransactionConflictError(operation, attempt) from e
                self.logger.warning(f"Retry attempt {attempt} for {operation}: {e}")
                await asyncio.sleep(self.retry_backoff * (2 ** (attempt - 1)))  # Exponential backoff


class SqlPlayerStore(PlayerStore):
    """Player store backed by the SQLAlchemy database and the Player version counter."""

    def __init__(self, database, max_attempts: Optional[int] = None, retry_backoff: Optional[float] = None):
        super().__init__(max_attempts, retry_backoff)
        self.db = database

    async def get_snapshot(self, league_id: str, player_id: str) -> Optional[PlayerSnapshot]:
        try:
            async with self.db.get_session() as session:
                player = await session.get(Player, (league_id, player_id))
                if player is None:
                    return None
                return PlayerSnapshot(player.id, player.rank, player.version)
        except SQLAlchemyError as e:
            raise StoreUnavailableError("player read", str(e)) from e

    async def _attempt(
        self, league_id: str, player_ids: Tuple[str, ...], decide: RankDecision, operation: str
    ) -> RankWriteSet:
        try:
            async with self.db.transaction() as session:
                result = await session.execute(
                    select(Player).where(
                        Player.league_id == league_id,
                        Player.id.in_(player_ids)
                    )
                )
                records = {player.id: player for player in result.scalars().all()}
                snapshots = {
                    player_id: (
                        PlayerSnapshot(player_id, records[player_id].rank, records[player_id].version)
                        if player_id in records else None
                    )
                    for player_id in player_ids
                }

                writes = dict(decide(snapshots))

                for player_id, rank in writes.items():
                    if player_id not in records:
                        raise MissingPlayerRecordError(league_id, [player_id], operation=operation)
                    records[player_id].rank = rank
                # Commit on context exit; the versioned UPDATE raises StaleDataError on conflict

            return writes
        except StaleDataError as e:
            raise OptimisticConflict(str(e)) from e
        except SQLAlchemyError as e:
            raise StoreUnavailableError("rank transaction", str(e)) from e
