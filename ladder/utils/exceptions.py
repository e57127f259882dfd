"""
Custom exceptions for the ladder service with operator-friendly messages.

Every exception carries a ``retryable`` flag read by the match update
dispatcher: retryable failures are redelivered, the rest end the delivery.
"""

from typing import Iterable, Optional


class LadderError(Exception):
    """Base exception for ladder-related errors."""
    retryable = False

    def __init__(self, message: str, user_message: str = None):
        super().__init__(message)
        self.user_message = user_message or message


class MissingPlayerRecordError(LadderError):
    """Raised when a match references a player record that does not exist."""

    def __init__(
        self,
        league_id: str,
        missing_ids: Iterable[str],
        match_id: Optional[int] = None,
        operation: Optional[str] = None
    ):
        self.league_id = league_id
        self.missing_ids = tuple(missing_ids)
        self.match_id = match_id
        self.operation = operation
        context = f" (match {match_id})" if match_id is not None else ""
        if operation:
            context += f" during {operation}"
        super().__init__(
            f"Player record(s) {', '.join(self.missing_ids)} not found in league '{league_id}'{context}",
            "Player document does not exist!"
        )


class TransactionConflictError(LadderError):
    """Raised when optimistic concurrency retries are exhausted."""
    retryable = True

    def __init__(self, operation: str, attempts: int):
        self.operation = operation
        self.attempts = attempts
        super().__init__(
            f"Transaction failed for {operation} after {attempts} attempts",
            "Ranks were modified concurrently. Please try again."
        )


class StoreUnavailableError(LadderError):
    """Raised when the backing store fails for infrastructure reasons."""
    retryable = True

    def __init__(self, operation: str, details: str = None):
        self.operation = operation
        super().__init__(
            f"Database error during {operation}: {details}",
            "Database error occurred. Please try again later."
        )


class ChallengeValidationError(LadderError):
    """Raised when a challenge breaks the ladder rules."""

    def __init__(self, reason: str):
        super().__init__(f"Invalid challenge: {reason}", reason)


class MatchNotFoundError(LadderError):
    """Raised when a match is not found."""

    def __init__(self, match_id: int):
        self.match_id = match_id
        super().__init__(f"Match {match_id} not found")


class MatchValidationError(LadderError):
    """Raised when match update data is invalid."""


class PlayerValidationError(LadderError):
    """Raised when player data validation fails."""
