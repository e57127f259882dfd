"""Shared pytest fixtures for the ladder test suite."""

import pytest

from ladder.data_models.snapshots import MatchSnapshot
from ladder.database.database import Database
from ladder.database.memory_store import InMemoryPlayerStore
from ladder.database.models import MatchStatus
from ladder.main import LadderApp

LEAGUE_ID = "tekken8"


@pytest.fixture()
def league_id() -> str:
    return LEAGUE_ID


@pytest.fixture()
def make_match():
    """Factory for match snapshots with sensible defaults."""

    def _make(
        status=MatchStatus.COMPLETED,
        score_challenger=0,
        score_defender=0,
        challenger_id="challenger",
        defender_id="defender",
        match_id=1,
        league_id=LEAGUE_ID,
    ) -> MatchSnapshot:
        return MatchSnapshot(
            match_id=match_id,
            league_id=league_id,
            status=status,
            challenger_id=challenger_id,
            defender_id=defender_id,
            score_challenger=score_challenger,
            score_defender=score_defender,
        )

    return _make


@pytest.fixture()
def memory_store() -> InMemoryPlayerStore:
    return InMemoryPlayerStore(max_attempts=3, retry_backoff=0.0)


@pytest.fixture()
def db_path(tmp_path):
    return tmp_path / "ladder_test.db"


@pytest.fixture()
async def db(db_path):
    database = Database(f"sqlite+aiosqlite:///{db_path}")
    await database.initialize()
    yield database
    await database.close()


@pytest.fixture()
async def app(tmp_path):
    ladder_app = LadderApp(f"sqlite:///{tmp_path / 'ladder_app.db'}")
    await ladder_app.setup()
    ladder_app.player_store.retry_backoff = 0.0
    await ladder_app.players.create_league(LEAGUE_ID, "Tekken 8")
    yield ladder_app
    await ladder_app.close()
