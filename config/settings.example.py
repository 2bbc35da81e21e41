"""Configuration template - copy to .env values and adjust as needed."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # === MCSR Ranked API ===
    MCSR_API_BASE_URL: str = "https://mcsrranked.com/api"
    MCSR_API_TIMEOUT_SECONDS: float = 8.0
    MCSR_API_PAGE_SIZE: int = 20

    # === Prediction Model ===
    PREDICT_MODEL_PATH: str = "data/predict-model.json"
    PREDICT_DECAY_HALF_LIFE_HOURS: float = 48.0
    PREDICT_TARGET_SAMPLE: int = 10
    PREDICT_RECENCY_HORIZON_DAYS: float = 14.0
    PREDICT_RECENCY_FLOOR: float = 0.35

    # === Predict command ===
    PREDICT_FETCH_BUFFER: int = 5
    PREDICT_MAX_MATCHES: int = 50

    # === Logging ===
    LOG_LEVEL: str = "INFO"

    model_config = {"env_file": ".env", "extra": "ignore"}

    @property
    def decay_ms(self) -> float:
        return self.PREDICT_DECAY_HALF_LIFE_HOURS * 60 * 60 * 1000


settings = Settings()
