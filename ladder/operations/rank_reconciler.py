"""
Rank Reconciler - rank swap reaction to completed matches

Invoked with the before/after snapshots of every match update. Only the edge
transition into ``completed`` is acted upon; later edits of an already
completed match never re-run the swap.

Ladder rule:
- A challenger who beats a better-ranked defender takes the defender's rank
  and the defender takes the challenger's former rank
- A defender win (or a tie) changes nothing
- A challenger who already outranks the defender keeps both ranks as they are

Delivery of match updates is at-least-once. A duplicate delivery of the
completion edge reads the already swapped ranks and settles as
"already outranks", so no rank is swapped back.
"""

from typing import Dict

from ladder.data_models.snapshots import (
    MatchSnapshot, PlayerSnapshots, RankChange, ReconciliationOutcome,
    ReconciliationResult, RankWriteSet
)
from ladder.database.player_store import PlayerStore
from ladder.utils.exceptions import MissingPlayerRecordError
from ladder.utils.logger import setup_logger
from ladder.utils.ranking import challenger_won, decide_rank_swap, is_completion_transition

logger = setup_logger(__name__)


class RankReconciler:
    """Applies the rank swap for a match that just completed."""

    def __init__(self, player_store: PlayerStore):
        self.store = player_store
        self.logger = logger

    async def handle_match_update(self, before: MatchSnapshot, after: MatchSnapshot) -> ReconciliationResult:
        """
        React to one match update.

        Args:
            before: Match state prior to the update
            after: Match state after the update

        Returns:
            ReconciliationResult for benign outcomes (not triggered, defender
            won, swapped, already outranks)

        Raises:
            MissingPlayerRecordError: If a player record is absent (no writes made)
            TransactionConflictError: If concurrent writers exhausted the retries
            StoreUnavailableError: If the player store failed
        """
        if not is_completion_transition(before, after):
            self.logger.debug(
                f"Match {after.match_id} update {before.status.value} -> {after.status.value} "
                f"does not complete the match, skipping"
            )
            return ReconciliationResult(after.match_id, ReconciliationOutcome.NOT_TRIGGERED)

        try:
            return await self._reconcile(after)
        except MissingPlayerRecordError as e:
            self.logger.error(
                f"Rank swap aborted for match {after.match_id} in league '{after.league_id}' "
                f"(challenger '{after.challenger_id}', defender '{after.defender_id}'): {e}"
            )
            raise
        except Exception as e:
            self.logger.error(f"Transaction failed for match {after.match_id}: {e}", exc_info=True)
            raise

    async def _reconcile(self, match: MatchSnapshot) -> ReconciliationResult:
        if not challenger_won(match):
            self.logger.info(
                f"Defender won. No rank change. Match {match.match_id}: "
                f"{match.challenger_id} {match.score_challenger}-{match.score_defender} {match.defender_id}"
            )
            return ReconciliationResult(match.match_id, ReconciliationOutcome.DEFENDER_WON)

        # Snapshot of the attempt that committed; replaced on every retry
        last_read: Dict[str, int] = {}

        def decide(snapshots: PlayerSnapshots) -> RankWriteSet:
            writes = decide_rank_swap(match, snapshots)
            last_read.clear()
            last_read.update({player_id: snapshot.rank for player_id, snapshot in snapshots.items()})
            return writes

        writes = await self.store.run_rank_transaction(
            match.league_id,
            (match.challenger_id, match.defender_id),
            decide,
            operation=f"rank swap for match {match.match_id}"
        )

        if not writes:
            self.logger.info(
                f"Challenger won but was already higher rank. No swap. Match {match.match_id}: "
                f"{match.challenger_id} (rank {last_read.get(match.challenger_id)}) vs "
                f"{match.defender_id} (rank {last_read.get(match.defender_id)})"
            )
            return ReconciliationResult(match.match_id, ReconciliationOutcome.ALREADY_OUTRANKS)

        changes = tuple(
            RankChange(player_id, last_read[player_id], new_rank)
            for player_id, new_rank in writes.items()
        )
        challenger_before = last_read[match.challenger_id]
        defender_before = last_read[match.defender_id]
        self.logger.info(
            f"Ranks swapped: {match.challenger_id} ({challenger_before} -> {defender_before}) vs "
            f"{match.defender_id} ({defender_before} -> {challenger_before}) for match {match.match_id}"
        )
        return ReconciliationResult(match.match_id, ReconciliationOutcome.SWAPPED, changes)
