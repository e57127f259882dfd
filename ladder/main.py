import argparse
import asyncio
import sys
from typing import Optional

from ladder.config import Config
from ladder.database.database import Database
from ladder.database.match_operations import MatchOperations
from ladder.database.player_store import SqlPlayerStore
from ladder.operations.player_operations import PlayerOperations
from ladder.operations.rank_reconciler import RankReconciler
from ladder.services.match_events import MatchUpdateDispatcher
from ladder.utils.logger import setup_logger

class LadderApp:
    """Wires the match store, the player store and the rank reconciler together"""

    def __init__(self, database_url: Optional[str] = None):
        self.logger = setup_logger(__name__)
        self.db = Database(database_url)
        self.player_store: Optional[SqlPlayerStore] = None
        self.dispatcher: Optional[MatchUpdateDispatcher] = None
        self.reconciler: Optional[RankReconciler] = None
        self.matches: Optional[MatchOperations] = None
        self.players: Optional[PlayerOperations] = None

    async def setup(self):
        """Initialize the database and subscribe the reconciler to match updates"""
        self.logger.info("Setting up ladder service...")
        Config.validate()

        await self.db.initialize()

        self.player_store = SqlPlayerStore(self.db)
        self.reconciler = RankReconciler(self.player_store)
        self.dispatcher = MatchUpdateDispatcher()
        self.dispatcher.subscribe(self.reconciler.handle_match_update)

        self.players = PlayerOperations(self.db)
        self.matches = MatchOperations(self.db, self.player_store, self.dispatcher)

        self.logger.info("Ladder service setup complete!")

    async def close(self):
        await self.db.close()

    async def __aenter__(self):
        await self.setup()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

async def print_standings(league_id: str) -> int:
    async with LadderApp() as app:
        league = await app.players.get_league(league_id)
        if league is None:
            app.logger.error(f"League '{league_id}' not found")
            return 1

        print(f"{league.name} ({league.id})")
        for player in await app.players.get_ladder(league_id):
            print(
                f"{player.rank:>4}. {player.nickname:<24} {player.main_character or '-':<16} "
                f"{player.wins or 0}W {player.losses or 0}L ({player.win_rate}%)"
            )
    return 0

def main():
    """Print the standings of a league"""
    parser = argparse.ArgumentParser(description="Show a challenge ladder")
    parser.add_argument('league', nargs='?', default=Config.DEFAULT_LEAGUE_ID, help="League id")
    args = parser.parse_args()

    sys.exit(asyncio.run(print_standings(args.league)))

if __name__ == "__main__":
    main()
