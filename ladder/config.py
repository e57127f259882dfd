import os
from dotenv import load_dotenv

load_dotenv()

class Config:
    """Ladder service configuration settings"""

    # Database settings
    DATABASE_URL = os.getenv('DATABASE_URL', 'sqlite:///ladder.db')

    # Logging settings
    DEBUG = os.getenv('DEBUG', 'False').lower() == 'true'
    LOG_TO_FILE = os.getenv('LOG_TO_FILE', 'False').lower() == 'true'
    LOG_DIR = os.getenv('LOG_DIR', 'logs')

    # League settings
    DEFAULT_LEAGUE_ID = os.getenv('DEFAULT_LEAGUE_ID', 'tekken8')
    DEFAULT_MATCH_FORMAT = os.getenv('DEFAULT_MATCH_FORMAT', 'BO7')

    # Rank swap transaction settings
    RANK_SWAP_MAX_ATTEMPTS = int(os.getenv('RANK_SWAP_MAX_ATTEMPTS', 5))
    RANK_SWAP_RETRY_BACKOFF = float(os.getenv('RANK_SWAP_RETRY_BACKOFF', 0.05))  # Seconds, doubled per attempt

    # Match update delivery settings
    TRIGGER_MAX_DELIVERIES = int(os.getenv('TRIGGER_MAX_DELIVERIES', 3))

    @classmethod
    def validate(cls):
        """Validate that required configuration is present"""
        if not cls.DATABASE_URL:
            raise ValueError("DATABASE_URL is required")
        if not cls.DEFAULT_LEAGUE_ID:
            raise ValueError("DEFAULT_LEAGUE_ID is required")
        if cls.RANK_SWAP_MAX_ATTEMPTS < 1:
            raise ValueError("RANK_SWAP_MAX_ATTEMPTS must be at least 1")
        if cls.TRIGGER_MAX_DELIVERIES < 1:
            raise ValueError("TRIGGER_MAX_DELIVERIES must be at least 1")
        if cls.RANK_SWAP_RETRY_BACKOFF < 0:
            raise ValueError("RANK_SWAP_RETRY_BACKOFF cannot be negative")
