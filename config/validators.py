"""Configuration validators."""

from src.exceptions import ConfigError


def validate_mcsr_api() -> None:
    """Raise ConfigError if the match history API settings are unusable."""
    from config.settings import settings
    if not settings.MCSR_API_BASE_URL.startswith(("http://", "https://")):
        raise ConfigError("MCSR_API_BASE_URL must be an http(s) URL")
    if settings.MCSR_API_PAGE_SIZE < 1:
        raise ConfigError("MCSR_API_PAGE_SIZE must be at least 1")
    if settings.MCSR_API_TIMEOUT_SECONDS <= 0:
        raise ConfigError("MCSR_API_TIMEOUT_SECONDS must be positive")


def validate_predict_settings() -> None:
    """Raise ConfigError if the prediction tunables are out of range."""
    from config.settings import settings
    if settings.PREDICT_DECAY_HALF_LIFE_HOURS <= 0:
        raise ConfigError("PREDICT_DECAY_HALF_LIFE_HOURS must be positive")
    if settings.PREDICT_RECENCY_HORIZON_DAYS <= 0:
        raise ConfigError("PREDICT_RECENCY_HORIZON_DAYS must be positive")
    if not 0.0 <= settings.PREDICT_RECENCY_FLOOR <= 1.0:
        raise ConfigError("PREDICT_RECENCY_FLOOR must be within [0, 1]")
    if settings.PREDICT_TARGET_SAMPLE < 1:
        raise ConfigError("PREDICT_TARGET_SAMPLE must be at least 1")
    if settings.PREDICT_MAX_MATCHES < 1 or settings.PREDICT_FETCH_BUFFER < 0:
        raise ConfigError("PREDICT_MAX_MATCHES must be at least 1 and PREDICT_FETCH_BUFFER non-negative")
    if not settings.PREDICT_MODEL_PATH.strip():
        raise ConfigError("PREDICT_MODEL_PATH is required")
