"""Trained logistic scoring model over head-to-head feature deltas."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

import numpy as np

from .features import PlayerFeatureStats

# ---------------------------------------------------------------------------
# Feature columns (order matters: saved models depend on column order)
# ---------------------------------------------------------------------------
FEATURE_NAMES = [
    "winrate_delta",
    "recency_winrate_delta",
    "avg_elo_delta",            # / 20
    "avg_opponent_elo_delta",   # / 400
    "current_streak_delta",     # / 8
    "best_streak_delta",        # / 12
    "sample_log_ratio",
]

PROBABILITY_EPSILON = 1e-6
NEUTRAL_ELO = 1500.0


@dataclass(frozen=True)
class Calibration:
    """Platt coefficients applied as ``sigmoid(a * logit(p) + b)``."""

    a: float
    b: float


@dataclass(frozen=True)
class TrainingSummary:
    sample_count: int
    train_count: int
    test_count: int
    heuristic_test_brier: float
    heuristic_test_log_loss: float
    trained_test_brier: float
    trained_test_log_loss: float


@dataclass(frozen=True)
class ModelArtifact:
    """A persisted logistic model; immutable once loaded."""

    features: tuple[str, ...]
    intercept: float
    weights: dict[str, float]
    version: int = 1
    created_at: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )
    calibration: Optional[Calibration] = None
    training: Optional[TrainingSummary] = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "version": self.version,
            "createdAt": self.created_at,
            "features": list(self.features),
            "intercept": self.intercept,
            "weights": {name: self.weights[name] for name in self.features},
            "calibration": (
                {"a": self.calibration.a, "b": self.calibration.b}
                if self.calibration
                else None
            ),
        }
        if self.training:
            payload["training"] = {
                "sampleCount": self.training.sample_count,
                "trainCount": self.training.train_count,
                "testCount": self.training.test_count,
                "heuristic": {
                    "testBrier": self.training.heuristic_test_brier,
                    "testLogLoss": self.training.heuristic_test_log_loss,
                },
                "trained": {
                    "testBrier": self.training.trained_test_brier,
                    "testLogLoss": self.training.trained_test_log_loss,
                },
            }
        return payload


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def sigmoid(value: float) -> float:
    # Split on sign so exp() never overflows.
    if value >= 0:
        z = math.exp(-value)
        return 1.0 / (1.0 + z)
    z = math.exp(value)
    return z / (1.0 + z)


def safe_logit(probability: float) -> float:
    p = _clamp(probability, PROBABILITY_EPSILON, 1 - PROBABILITY_EPSILON)
    return math.log(p / (1 - p))


def _safe_win_rate(player: PlayerFeatureStats) -> float:
    return _clamp(player.win_rate if player.win_rate is not None else 0.5, 0.0, 1.0)


def _safe_recency_win_rate(player: PlayerFeatureStats) -> float:
    if player.recency_win_rate is not None:
        return _clamp(player.recency_win_rate, 0.0, 1.0)
    return _safe_win_rate(player)


def _safe_avg_elo_delta(player: PlayerFeatureStats) -> float:
    value = player.mean_elo_delta
    return value if value is not None and math.isfinite(value) else 0.0


def build_feature_delta_vector(
    player_a: PlayerFeatureStats,
    player_b: PlayerFeatureStats,
) -> dict[str, float]:
    """Symmetric A-minus-B differences, scaled to stay near [-1, 1]."""
    opp_a = player_a.avg_opponent_elo if player_a.avg_opponent_elo is not None else NEUTRAL_ELO
    opp_b = player_b.avg_opponent_elo if player_b.avg_opponent_elo is not None else NEUTRAL_ELO
    sample_a = max(1, player_a.sample or 1)
    sample_b = max(1, player_b.sample or 1)

    return {
        "winrate_delta": _safe_win_rate(player_a) - _safe_win_rate(player_b),
        "recency_winrate_delta": _safe_recency_win_rate(player_a) - _safe_recency_win_rate(player_b),
        "avg_elo_delta": (_safe_avg_elo_delta(player_a) - _safe_avg_elo_delta(player_b)) / 20,
        "avg_opponent_elo_delta": (opp_a - opp_b) / 400,
        "current_streak_delta": (player_a.streak.current - player_b.streak.current) / 8,
        "best_streak_delta": (player_a.streak.best - player_b.streak.best) / 12,
        "sample_log_ratio": math.log(sample_a / sample_b),
    }


def feature_matrix(
    pairs: Iterable[tuple[PlayerFeatureStats, PlayerFeatureStats]],
    features: Iterable[str] = FEATURE_NAMES,
) -> np.ndarray:
    """Stack delta vectors into an ``(n, len(features))`` array."""
    columns = list(features)
    rows = [
        [vector[name] for name in columns]
        for vector in (build_feature_delta_vector(a, b) for a, b in pairs)
    ]
    return np.asarray(rows, dtype=float).reshape(len(rows), len(columns))


def apply_calibration(probability: float, calibration: Optional[Calibration]) -> float:
    if calibration is None:
        return probability
    return sigmoid(calibration.a * safe_logit(probability) + calibration.b)


def score_model_probability_a(
    artifact: ModelArtifact,
    player_a: PlayerFeatureStats,
    player_b: PlayerFeatureStats,
) -> float:
    """P(A wins) under ``artifact``, calibrated when it carries Platt terms."""
    vector = build_feature_delta_vector(player_a, player_b)
    score = artifact.intercept
    for name in artifact.features:
        value = vector.get(name)
        if value is None or not math.isfinite(value):
            continue
        score += artifact.weights[name] * value

    probability = apply_calibration(sigmoid(score), artifact.calibration)
    return _clamp(probability, PROBABILITY_EPSILON, 1 - PROBABILITY_EPSILON)
