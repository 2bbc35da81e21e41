"""Loading, validation and caching of persisted model artifacts."""

from __future__ import annotations

import json
import math
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

import structlog

from .model import FEATURE_NAMES, Calibration, ModelArtifact, TrainingSummary

logger = structlog.get_logger()

_MISSING = object()


def _finite_number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    number = float(value)
    return number if math.isfinite(number) else None


def _validate_calibration(value: Any) -> Calibration | None | object:
    """Return a Calibration, ``None`` when absent, or ``_MISSING`` if invalid."""
    if value is None:
        return None
    if not isinstance(value, dict):
        return _MISSING
    a = _finite_number(value.get("a"))
    b = _finite_number(value.get("b"))
    if a is None or b is None:
        return _MISSING
    return Calibration(a=a, b=b)


def _parse_training(value: Any) -> Optional[TrainingSummary]:
    if not isinstance(value, dict):
        return None
    heuristic = value.get("heuristic") or {}
    trained = value.get("trained") or {}
    try:
        return TrainingSummary(
            sample_count=int(value["sampleCount"]),
            train_count=int(value["trainCount"]),
            test_count=int(value["testCount"]),
            heuristic_test_brier=float(heuristic["testBrier"]),
            heuristic_test_log_loss=float(heuristic["testLogLoss"]),
            trained_test_brier=float(trained["testBrier"]),
            trained_test_log_loss=float(trained["testLogLoss"]),
        )
    except (KeyError, TypeError, ValueError):
        # Training metadata is informational only.
        return None


def validate_artifact(payload: Any) -> Optional[ModelArtifact]:
    """Build a ModelArtifact from decoded JSON, or reject it wholesale.

    Rejects when the intercept is not finite, the feature list is empty or
    names an unknown feature, a declared feature lacks a finite weight, or
    a calibration block is present but not finite.
    """
    if not isinstance(payload, dict):
        return None

    intercept = _finite_number(payload.get("intercept"))
    if intercept is None:
        return None

    raw_features = payload.get("features")
    if not isinstance(raw_features, list) or not raw_features:
        return None
    features: list[str] = []
    for raw in raw_features:
        name = raw.strip() if isinstance(raw, str) else ""
        if name not in FEATURE_NAMES:
            return None
        if name not in features:
            features.append(name)

    raw_weights = payload.get("weights")
    if not isinstance(raw_weights, dict):
        return None
    weights: dict[str, float] = {}
    for name in features:
        weight = _finite_number(raw_weights.get(name))
        if weight is None:
            return None
        weights[name] = weight

    calibration = _validate_calibration(payload.get("calibration"))
    if calibration is _MISSING:
        return None

    version = _finite_number(payload.get("version"))
    created_at = payload.get("createdAt")
    if not isinstance(created_at, str) or not created_at:
        created_at = datetime.now(timezone.utc).isoformat()

    return ModelArtifact(
        features=tuple(features),
        intercept=intercept,
        weights=weights,
        version=int(version) if version is not None else 1,
        created_at=created_at,
        calibration=calibration,
        training=_parse_training(payload.get("training")),
    )


class ModelArtifactStore:
    """Path-keyed cache of validated model artifacts.

    Owned by whatever composes the engine; a missing or invalid file is
    cached as ``None`` (use the heuristic) until ``invalidate`` is called.
    """

    def __init__(self, default_path: str | Path):
        self.default_path = Path(default_path)
        self._cache: dict[Path, Optional[ModelArtifact]] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls) -> "ModelArtifactStore":
        from config.settings import settings
        return cls(settings.PREDICT_MODEL_PATH)

    def _resolve(self, path: str | Path | None) -> Path:
        return Path(path if path is not None else self.default_path).expanduser().resolve()

    def get(self, path: str | Path | None = None) -> Optional[ModelArtifact]:
        resolved = self._resolve(path)
        with self._lock:
            if resolved not in self._cache:
                self._cache[resolved] = self._load(resolved)
            return self._cache[resolved]

    def invalidate(self, path: str | Path | None = None) -> None:
        """Drop one cached path, or every cached path when ``path`` is None."""
        with self._lock:
            if path is None:
                self._cache.clear()
            else:
                self._cache.pop(self._resolve(path), None)

    def save(self, artifact: ModelArtifact, path: str | Path | None = None) -> Path:
        resolved = self._resolve(path)
        resolved.parent.mkdir(parents=True, exist_ok=True)
        resolved.write_text(json.dumps(artifact.to_dict(), indent=2), encoding="utf-8")
        self.invalidate(resolved)
        logger.info("model_artifact_saved", path=str(resolved))
        return resolved

    @staticmethod
    def _load(path: Path) -> Optional[ModelArtifact]:
        if not path.exists():
            logger.debug("model_artifact_missing", path=str(path))
            return None
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.error("model_artifact_unreadable", path=str(path), error=str(exc))
            return None

        artifact = validate_artifact(payload)
        if artifact is None:
            logger.warning("model_artifact_rejected", path=str(path))
            return None
        logger.info(
            "model_artifact_loaded",
            path=str(path),
            version=artifact.version,
            features=len(artifact.features),
            calibrated=artifact.calibration is not None,
        )
        return artifact
