"""Rank reconciler behaviour against the in-memory player store."""

import logging
from collections import Counter

import pytest

from ladder.data_models.snapshots import ReconciliationOutcome
from ladder.database.models import MatchStatus
from ladder.operations.rank_reconciler import RankReconciler
from ladder.utils.exceptions import MissingPlayerRecordError, TransactionConflictError

SCHEDULED = MatchStatus.SCHEDULED
IN_PROGRESS = MatchStatus.IN_PROGRESS
COMPLETED = MatchStatus.COMPLETED


@pytest.fixture()
def reconciler(memory_store):
    return RankReconciler(memory_store)


def seed(store, league_id, challenger_rank, defender_rank, others=()):
    store.put(league_id, "challenger", challenger_rank)
    store.put(league_id, "defender", defender_rank)
    for index, rank in enumerate(others):
        store.put(league_id, f"other-{index}", rank)


async def complete(reconciler, make_match, score_challenger, score_defender, before=IN_PROGRESS, **kwargs):
    return await reconciler.handle_match_update(
        make_match(status=before, score_challenger=score_challenger, score_defender=score_defender, **kwargs),
        make_match(status=COMPLETED, score_challenger=score_challenger, score_defender=score_defender, **kwargs),
    )


async def test_scenario_a_worse_ranked_challenger_takes_rank(reconciler, memory_store, make_match, league_id, caplog):
    seed(memory_store, league_id, 10, 5)

    with caplog.at_level(logging.INFO):
        result = await complete(reconciler, make_match, 3, 1)

    assert result.outcome is ReconciliationOutcome.SWAPPED
    assert memory_store.ranks(league_id) == {"challenger": 5, "defender": 10}
    assert {(c.player_id, c.rank_before, c.rank_after) for c in result.changes} == {
        ("challenger", 10, 5),
        ("defender", 5, 10),
    }
    assert "Ranks swapped: challenger (10 -> 5) vs defender (5 -> 10)" in caplog.text


async def test_scenario_b_better_ranked_challenger_keeps_ranks(reconciler, memory_store, make_match, league_id, caplog):
    seed(memory_store, league_id, 3, 7)

    with caplog.at_level(logging.INFO):
        result = await complete(reconciler, make_match, 2, 0)

    assert result.outcome is ReconciliationOutcome.ALREADY_OUTRANKS
    assert memory_store.ranks(league_id) == {"challenger": 3, "defender": 7}
    assert memory_store.commits == 0
    assert "already higher rank" in caplog.text


async def test_scenario_c_tie_is_a_defender_win(reconciler, memory_store, make_match, league_id):
    seed(memory_store, league_id, 10, 5)

    result = await complete(reconciler, make_match, 1, 1)

    assert result.outcome is ReconciliationOutcome.DEFENDER_WON
    assert memory_store.ranks(league_id) == {"challenger": 10, "defender": 5}
    assert memory_store.transactions_started == 0


async def test_scenario_d_defender_win_logs_and_changes_nothing(reconciler, memory_store, make_match, league_id, caplog):
    seed(memory_store, league_id, 10, 5)

    with caplog.at_level(logging.INFO):
        result = await complete(reconciler, make_match, 1, 3)

    assert result.outcome is ReconciliationOutcome.DEFENDER_WON
    assert not result.mutated
    assert memory_store.ranks(league_id) == {"challenger": 10, "defender": 5}
    assert "Defender won" in caplog.text


async def test_scenario_e_edit_of_completed_match_does_not_rerun(reconciler, memory_store, make_match, league_id):
    seed(memory_store, league_id, 10, 5)

    result = await complete(reconciler, make_match, 3, 1, before=COMPLETED)

    assert result.outcome is ReconciliationOutcome.NOT_TRIGGERED
    assert memory_store.ranks(league_id) == {"challenger": 10, "defender": 5}
    assert memory_store.transactions_started == 0


@pytest.mark.parametrize("before,after", [
    (SCHEDULED, IN_PROGRESS),
    (IN_PROGRESS, IN_PROGRESS),
    (COMPLETED, COMPLETED),
    (IN_PROGRESS, MatchStatus.CANCELLED),
    (COMPLETED, IN_PROGRESS),
])
async def test_non_completion_updates_never_touch_the_store(
    reconciler, memory_store, make_match, league_id, before, after
):
    seed(memory_store, league_id, 10, 5)

    result = await reconciler.handle_match_update(
        make_match(status=before, score_challenger=3, score_defender=0),
        make_match(status=after, score_challenger=3, score_defender=0),
    )

    assert result.outcome is ReconciliationOutcome.NOT_TRIGGERED
    assert memory_store.transactions_started == 0
    assert memory_store.commits == 0


@pytest.mark.parametrize("challenger_rank,defender_rank", [(1, 2), (2, 9), (7, 1), (9, 2), (4, 3)])
@pytest.mark.parametrize("score_challenger,score_defender", [(0, 2), (2, 2), (3, 1)])
async def test_ranks_stay_a_permutation(
    reconciler, memory_store, make_match, league_id,
    challenger_rank, defender_rank, score_challenger, score_defender
):
    taken = {challenger_rank, defender_rank}
    others = [rank for rank in range(1, 11) if rank not in taken]
    seed(memory_store, league_id, challenger_rank, defender_rank, others)
    ranks_before = memory_store.ranks(league_id)

    await complete(reconciler, make_match, score_challenger, score_defender)

    ranks_after = memory_store.ranks(league_id)
    assert Counter(ranks_after.values()) == Counter(ranks_before.values())

    swapped = score_challenger > score_defender and challenger_rank > defender_rank
    if swapped:
        assert ranks_after["challenger"] == defender_rank
        assert ranks_after["defender"] == challenger_rank
    else:
        assert ranks_after == ranks_before
    # Bystanders are never written
    assert {k: v for k, v in ranks_after.items() if k.startswith("other")} == \
        {k: v for k, v in ranks_before.items() if k.startswith("other")}


@pytest.mark.parametrize("missing", ["challenger", "defender"])
async def test_missing_player_fails_without_writes(
    reconciler, memory_store, make_match, league_id, caplog, missing
):
    seed(memory_store, league_id, 10, 5)
    memory_store.remove(league_id, missing)
    ranks_before = memory_store.ranks(league_id)

    with caplog.at_level(logging.INFO):
        with pytest.raises(MissingPlayerRecordError) as excinfo:
            await complete(reconciler, make_match, 3, 1, match_id=77)

    assert excinfo.value.missing_ids == (missing,)
    assert memory_store.ranks(league_id) == ranks_before
    assert memory_store.commits == 0
    # Not retried by the store
    assert memory_store.transactions_started == 1

    errors = [record for record in caplog.records if record.levelno == logging.ERROR]
    assert errors and "match 77" in errors[0].getMessage()
    assert "challenger" in errors[0].getMessage() and "defender" in errors[0].getMessage()


async def test_fault_between_writes_leaves_both_ranks_untouched(reconciler, memory_store, make_match, league_id):
    seed(memory_store, league_id, 10, 5)

    def crash(player_id):
        raise RuntimeError("store crashed mid-commit")

    memory_store.between_writes = crash

    with pytest.raises(RuntimeError):
        await complete(reconciler, make_match, 3, 1)

    assert memory_store.ranks(league_id) == {"challenger": 10, "defender": 5}
    assert memory_store.commits == 0


async def test_conflict_replays_the_whole_transaction(reconciler, memory_store, make_match, league_id):
    seed(memory_store, league_id, 10, 5)
    calls = []

    def concurrent_writer(league, writes):
        # First attempt: another match moved the defender to rank 12 before our commit
        if not calls:
            memory_store.put(league, "defender", 12)
        calls.append(dict(writes))

    memory_store.before_commit = concurrent_writer

    result = await complete(reconciler, make_match, 3, 1)

    # Second attempt re-read defender at 12: challenger at 10 already outranks
    assert calls == [{"challenger": 5, "defender": 10}]
    assert memory_store.transactions_started == 2
    assert result.outcome is ReconciliationOutcome.ALREADY_OUTRANKS
    assert memory_store.ranks(league_id) == {"challenger": 10, "defender": 12}


async def test_conflict_with_fresh_ranks_swaps_the_reread_values(reconciler, memory_store, make_match, league_id):
    seed(memory_store, league_id, 10, 5)
    memory_store.put(league_id, "third", 4)

    def concurrent_writer(league, writes):
        if memory_store.transactions_started == 1:
            # Concurrent swap between defender (5) and third (4)
            memory_store.put(league, "defender", 4)
            memory_store.put(league, "third", 5)

    memory_store.before_commit = concurrent_writer

    result = await complete(reconciler, make_match, 3, 1)

    assert result.outcome is ReconciliationOutcome.SWAPPED
    assert memory_store.ranks(league_id) == {"challenger": 4, "defender": 10, "third": 5}


async def test_conflict_retries_are_bounded(reconciler, memory_store, make_match, league_id):
    seed(memory_store, league_id, 10, 5)

    def always_conflicting(league, writes):
        current = memory_store.ranks(league)["defender"]
        memory_store.put(league, "defender", current)

    memory_store.before_commit = always_conflicting

    with pytest.raises(TransactionConflictError) as excinfo:
        await complete(reconciler, make_match, 3, 1)

    assert excinfo.value.attempts == memory_store.max_attempts
    assert excinfo.value.retryable is True
    assert memory_store.transactions_started == memory_store.max_attempts
    assert memory_store.ranks(league_id) == {"challenger": 10, "defender": 5}


async def test_duplicate_delivery_does_not_swap_back(reconciler, memory_store, make_match, league_id):
    seed(memory_store, league_id, 10, 5)

    first = await complete(reconciler, make_match, 3, 1)
    second = await complete(reconciler, make_match, 3, 1)

    assert first.outcome is ReconciliationOutcome.SWAPPED
    assert second.outcome is ReconciliationOutcome.ALREADY_OUTRANKS
    assert memory_store.ranks(league_id) == {"challenger": 5, "defender": 10}


async def test_uses_the_league_of_the_match(reconciler, memory_store, make_match, league_id):
    seed(memory_store, league_id, 10, 5)
    seed(memory_store, "sf6", 2, 1)

    await complete(reconciler, make_match, 3, 1, league_id="sf6")

    assert memory_store.ranks("sf6") == {"challenger": 1, "defender": 2}
    assert memory_store.ranks(league_id) == {"challenger": 10, "defender": 5}


async def test_memory_store_rejects_writes_to_absent_players(memory_store, league_id):
    seed(memory_store, league_id, 10, 5)

    with pytest.raises(MissingPlayerRecordError, match="during rank swap for match 9"):
        await memory_store.run_rank_transaction(
            league_id, ["challenger", "ghost"], lambda snapshots: {"challenger": 1, "ghost": 10},
            operation="rank swap for match 9"
        )

    assert memory_store.ranks(league_id) == {"challenger": 10, "defender": 5}
    assert memory_store.transactions_started == 1
