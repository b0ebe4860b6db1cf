from datetime import datetime, timedelta

from src.config import DeliverySettings


class RetryPolicy:
    """Exponential backoff and attempt budget for webhook delivery."""

    DEFAULT_MAX_ATTEMPTS = 5
    DEFAULT_INITIAL_BACKOFF = 5.0  # seconds
    DEFAULT_MULTIPLIER = 4.0

    def __init__(
        self,
        max_attempts: int | None = None,
        initial_backoff: float | None = None,
        multiplier: float | None = None,
    ):
        self.max_attempts = max_attempts if max_attempts is not None else self.DEFAULT_MAX_ATTEMPTS
        self.initial_backoff = (
            initial_backoff if initial_backoff is not None else self.DEFAULT_INITIAL_BACKOFF
        )
        self.multiplier = multiplier if multiplier is not None else self.DEFAULT_MULTIPLIER

    @classmethod
    def from_settings(cls, settings: DeliverySettings) -> "RetryPolicy":
        return cls(
            max_attempts=settings.max_attempts,
            initial_backoff=settings.initial_backoff_seconds,
            multiplier=settings.backoff_multiplier,
        )

    @staticmethod
    def is_success(status_code: int | None) -> bool:
        return status_code is not None and 200 <= status_code < 300

    def backoff_seconds(self, attempt: int) -> float:
        """Delay after the given (1-based) attempt fails: 5s, 20s, 80s, 320s..."""
        return self.initial_backoff * self.multiplier ** (max(attempt, 1) - 1)

    def next_retry_at(self, attempt: int, now: datetime) -> datetime:
        return now + timedelta(seconds=self.backoff_seconds(attempt))

    def has_attempts_remaining(self, attempt: int, max_attempts: int | None = None) -> bool:
        """True while ``attempt`` attempts made so far leave room for another."""
        limit = max_attempts if max_attempts is not None else self.max_attempts
        return attempt < limit
