"""Custom exceptions for the match prediction engine."""


class PredictError(Exception):
    """Base exception for all prediction engine errors."""


class ConfigError(PredictError):
    """Missing or invalid configuration."""


class FeedError(PredictError):
    """Error connecting to or reading from the match history API."""


class PlayerNotFoundError(FeedError):
    """The match history API does not know the requested player."""


class RateLimitError(FeedError):
    """The match history API rejected the request with a rate limit.

    ``retry_after_ms`` is ``None`` when the API gave no hint.
    """

    def __init__(self, message: str = "rate limited", retry_after_ms: int | None = None):
        super().__init__(message)
        self.retry_after_ms = retry_after_ms


class BacktestError(PredictError):
    """A backtest or training run cannot proceed."""


class InsufficientSamplesError(BacktestError):
    """Too few chronological samples to train a model."""

    def __init__(self, found: int, required: int):
        super().__init__(
            f"Not enough training samples ({found}). Need at least {required}."
        )
        self.found = found
        self.required = required
