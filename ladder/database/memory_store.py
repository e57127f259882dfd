"""
Dict-backed player store with the same transaction contract as the SQL one.

Writes of a write-set are staged on a copy of the records and published in
one assignment, so a failure between two writes leaves nothing visible.
The ``before_commit`` and ``between_writes`` hooks let callers simulate a
concurrent writer or a crash in the middle of a commit.
"""

import asyncio
from typing import Callable, Dict, Optional, Tuple

from ladder.data_models.snapshots import PlayerSnapshot, RankWriteSet
from ladder.database.player_store import OptimisticConflict, PlayerStore, RankDecision
from ladder.utils.exceptions import MissingPlayerRecordError


class InMemoryPlayerStore(PlayerStore):
    """Player store over a dict of snapshots keyed by (league_id, player_id)."""

    def __init__(self, max_attempts: Optional[int] = None, retry_backoff: float = 0.0):
        super().__init__(max_attempts, retry_backoff)
        self._records: Dict[Tuple[str, str], PlayerSnapshot] = {}
        self.before_commit: Optional[Callable[[str, RankWriteSet], None]] = None
        self.between_writes: Optional[Callable[[str], None]] = None
        self.transactions_started = 0
        self.commits = 0

    def put(self, league_id: str, player_id: str, rank: int) -> None:
        """Create or overwrite a player record, bumping its version."""
        current = self._records.get((league_id, player_id))
        version = current.version + 1 if current else 1
        self._records[(league_id, player_id)] = PlayerSnapshot(player_id, rank, version)

    def remove(self, league_id: str, player_id: str) -> None:
        self._records.pop((league_id, player_id), None)

    def ranks(self, league_id: str) -> Dict[str, int]:
        return {
            player_id: snapshot.rank
            for (league, player_id), snapshot in self._records.items()
            if league == league_id
        }

    async def get_snapshot(self, league_id: str, player_id: str) -> Optional[PlayerSnapshot]:
        return self._records.get((league_id, player_id))

    async def _attempt(
        self, league_id: str, player_ids: Tuple[str, ...], decide: RankDecision, operation: str
    ) -> RankWriteSet:
        self.transactions_started += 1
        snapshots = {player_id: self._records.get((league_id, player_id)) for player_id in player_ids}
        await asyncio.sleep(0)  # Yield like a real read would

        writes = dict(decide(snapshots))
        if not writes:
            return {}

        if self.before_commit:
            self.before_commit(league_id, writes)

        staged = dict(self._records)
        for index, (player_id, rank) in enumerate(writes.items()):
            if index and self.between_writes:
                self.between_writes(player_id)
            read = snapshots.get(player_id)
            current = staged.get((league_id, player_id))
            if read is None and current is None:
                raise MissingPlayerRecordError(league_id, [player_id], operation=operation)
            if read is None or current is None or current.version != read.version:
                raise OptimisticConflict(f"Player '{player_id}' changed since it was read")
            staged[(league_id, player_id)] = PlayerSnapshot(player_id, rank, current.version + 1)

        self._records = staged
        self.commits += 1
        return writes
