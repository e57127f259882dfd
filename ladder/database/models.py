from sqlalchemy import (
    Column, Integer, String, DateTime, ForeignKey, Enum as SQLEnum,
    CheckConstraint, Index
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func
from enum import Enum

Base = declarative_base()

class MatchStatus(Enum):
    """Status of a match from scheduling to completion"""
    SCHEDULED = "scheduled"      # Challenge accepted, waiting to be played
    IN_PROGRESS = "in_progress"  # Match is live
    COMPLETED = "completed"      # Final scores recorded
    CANCELLED = "cancelled"      # Match cancelled by an admin

class League(Base):
    __tablename__ = 'leagues'

    id = Column(String(64), primary_key=True)  # Slug, e.g. "tekken8"
    name = Column(String(200), nullable=False)

    # Metadata
    created_at = Column(DateTime, default=func.now())

    # Relationships
    players = relationship("Player", back_populates="league", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<League(id='{self.id}', name='{self.name}')>"

class Player(Base):
    """
    A ranked player inside one league partition.

    Rank is a total order within the league (1 is best). Uniqueness is kept by
    only ever exchanging two existing rank values, never by a DB constraint,
    since a swap passes through a state where both rows share a value.
    """
    __tablename__ = 'players'

    league_id = Column(String(64), ForeignKey('leagues.id'), primary_key=True)
    id = Column(String(64), primary_key=True)
    nickname = Column(String(100), nullable=False)
    main_character = Column(String(100))

    # Ladder standing
    rank = Column(Integer, nullable=False)

    # Informational stats
    wins = Column(Integer, default=0)
    losses = Column(Integer, default=0)

    # Optimistic concurrency counter, bumped by the ORM on every UPDATE
    version = Column(Integer, nullable=False, default=1)

    # Metadata
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    # Relationships
    league = relationship("League", back_populates="players")

    __mapper_args__ = {'version_id_col': version}
    __table_args__ = (
        CheckConstraint('rank > 0', name='ck_player_rank_positive'),
        Index('ix_players_league_rank', 'league_id', 'rank'),
    )

    @property
    def win_rate(self) -> int:
        from ladder.utils.ranking import calculate_win_rate
        return calculate_win_rate(self.wins or 0, self.losses or 0)

    def __repr__(self):
        return f"<Player(league='{self.league_id}', id='{self.id}', nickname='{self.nickname}', rank={self.rank})>"

class Match(Base):
    """
    A challenge between two players of the same league.

    Player references are plain identifiers: players may be removed by admins
    while their matches are kept.
    """
    __tablename__ = 'matches'

    id = Column(Integer, primary_key=True)
    league_id = Column(String(64), ForeignKey('leagues.id'), nullable=False, index=True)
    challenger_id = Column(String(64), nullable=False)
    defender_id = Column(String(64), nullable=False)

    # Results
    status = Column(SQLEnum(MatchStatus), nullable=False, default=MatchStatus.SCHEDULED)
    score_challenger = Column(Integer, nullable=False, default=0)
    score_defender = Column(Integer, nullable=False, default=0)
    format = Column(String(10), default='BO7')

    # Timing
    scheduled_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint('score_challenger >= 0', name='ck_match_score_challenger'),
        CheckConstraint('score_defender >= 0', name='ck_match_score_defender'),
    )

    def __repr__(self):
        return (
            f"<Match(id={self.id}, league='{self.league_id}', status={self.status.value}, "
            f"{self.challenger_id} {self.score_challenger}-{self.score_defender} {self.defender_id})>"
        )
