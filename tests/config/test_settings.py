import pytest

from config import validators
from config.settings import Settings
from src.exceptions import ConfigError


def test_settings_has_mcsr_api_config():
    s = Settings()
    assert s.MCSR_API_BASE_URL.startswith("https://")
    assert s.MCSR_API_PAGE_SIZE >= 1
    assert s.MCSR_API_TIMEOUT_SECONDS > 0


def test_settings_has_prediction_defaults():
    s = Settings(_env_file=None)
    assert s.PREDICT_DECAY_HALF_LIFE_HOURS == 48.0
    assert s.PREDICT_TARGET_SAMPLE == 10
    assert s.PREDICT_RECENCY_HORIZON_DAYS == 14.0
    assert s.PREDICT_RECENCY_FLOOR == 0.35
    assert s.PREDICT_FETCH_BUFFER == 5
    assert s.PREDICT_MAX_MATCHES == 50


def test_settings_read_environment(monkeypatch):
    monkeypatch.setenv("PREDICT_MODEL_PATH", "/tmp/model.json")
    monkeypatch.setenv("PREDICT_TARGET_SAMPLE", "15")
    s = Settings(_env_file=None)
    assert s.PREDICT_MODEL_PATH == "/tmp/model.json"
    assert s.PREDICT_TARGET_SAMPLE == 15


def test_default_settings_validate(monkeypatch):
    monkeypatch.setattr("config.settings.settings", Settings(_env_file=None))
    validators.validate_mcsr_api()
    validators.validate_predict_settings()


@pytest.mark.parametrize(
    "field,value",
    [
        ("PREDICT_DECAY_HALF_LIFE_HOURS", 0.0),
        ("PREDICT_RECENCY_FLOOR", 1.5),
        ("PREDICT_TARGET_SAMPLE", 0),
        ("PREDICT_MODEL_PATH", "  "),
    ],
)
def test_invalid_predict_settings_raise(monkeypatch, field, value):
    monkeypatch.setattr("config.settings.settings", Settings(_env_file=None, **{field: value}))
    with pytest.raises(ConfigError):
        validators.validate_predict_settings()


def test_invalid_api_url_raises(monkeypatch):
    monkeypatch.setattr("config.settings.settings", Settings(_env_file=None, MCSR_API_BASE_URL="ftp://nope"))
    with pytest.raises(ConfigError):
        validators.validate_mcsr_api()


def test_decay_ms_follows_half_life():
    s = Settings(_env_file=None, PREDICT_DECAY_HALF_LIFE_HOURS=2.0)
    assert s.decay_ms == 2 * 60 * 60 * 1000
