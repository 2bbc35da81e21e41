"""Win-probability scoring and the prediction engine.

Two interchangeable scorers compute P(A wins) from a pair of
PlayerFeatureStats:

- HeuristicScorer: closed-form "form score" comparison
- TrainedScorer: logistic model loaded from a ModelArtifact

PredictionEngine picks one scorer per call (trained when the store holds a
valid artifact) and adds confidence and explanatory factors.
"""

from __future__ import annotations

import math
import time
from dataclasses import dataclass, field
from typing import Literal, Optional, Union

import structlog

from .features import PlayerFeatureStats
from .model import NEUTRAL_ELO, ModelArtifact, score_model_probability_a, sigmoid
from .model_store import ModelArtifactStore

logger = structlog.get_logger()

DAY_MS = 24 * 60 * 60 * 1000

# Bounds on the probabilities the engine reports.
MIN_PROBABILITY = 0.05
MAX_PROBABILITY = 0.95
HEURISTIC_SLOPE = 1.2
MAX_FACTORS = 4


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


class HeuristicScorer:
    kind: Literal["heuristic"] = "heuristic"

    @staticmethod
    def form_score(player: PlayerFeatureStats) -> float:
        win_rate = _clamp(player.form_win_rate, 0.0, 1.0)
        win_component = (win_rate - 0.5) * 1.1  # -0.55..0.55

        opponent_elo = player.avg_opponent_elo if player.avg_opponent_elo is not None else NEUTRAL_ELO
        opp_component = _clamp((opponent_elo - NEUTRAL_ELO) / 400, -1, 1) * 0.5

        avg_elo_delta = player.mean_elo_delta or 0.0
        elo_component = _clamp(avg_elo_delta / 15, -1, 1) * 0.5

        streak_component = _clamp(player.streak.current / 6, 0, 1) * 0.3

        return win_component + opp_component + elo_component + streak_component

    def probability_a(self, player_a: PlayerFeatureStats, player_b: PlayerFeatureStats) -> float:
        delta = self.form_score(player_a) - self.form_score(player_b)
        return _clamp(sigmoid(HEURISTIC_SLOPE * delta), MIN_PROBABILITY, MAX_PROBABILITY)


@dataclass(frozen=True)
class TrainedScorer:
    artifact: ModelArtifact
    kind: Literal["trained"] = "trained"

    def probability_a(self, player_a: PlayerFeatureStats, player_b: PlayerFeatureStats) -> float:
        return score_model_probability_a(self.artifact, player_a, player_b)


Scorer = Union[HeuristicScorer, TrainedScorer]


@dataclass(frozen=True)
class PredictionOutcome:
    winner: Literal["A", "B"]
    probability: float  # the winner's probability
    probability_a: float
    probability_b: float
    confidence: float
    factors: list[str] = field(default_factory=list)
    scorer: str = HeuristicScorer.kind


def _format_percent(value: float) -> str:
    return f"{_clamp(value, 0.0, 1.0) * 100:.1f}%"


def derive_factors(a: PlayerFeatureStats, b: PlayerFeatureStats) -> list[str]:
    """Human-readable reasons, in fixed priority order, at most four."""
    factors: list[str] = []

    win_a, win_b = a.form_win_rate, b.form_win_rate
    if abs(win_a - win_b) >= 0.05:
        factors.append(f"Recency winrate {_format_percent(win_a)} vs {_format_percent(win_b)}")

    if a.avg_opponent_elo is not None and b.avg_opponent_elo is not None:
        diff = a.avg_opponent_elo - b.avg_opponent_elo
        if abs(diff) >= 30:
            high, low = max(a.avg_opponent_elo, b.avg_opponent_elo), min(a.avg_opponent_elo, b.avg_opponent_elo)
            factors.append(f"Faced tougher opponents ({round(high)} vs {round(low)})")

    elo_a, elo_b = a.mean_elo_delta, b.mean_elo_delta
    if elo_a is not None and elo_b is not None and abs(elo_a - elo_b) >= 5:
        high, low = max(elo_a, elo_b), min(elo_a, elo_b)
        factors.append(f"Momentum: +{high:.1f} ΔElo vs {low:.1f}")

    if a.streak.current > b.streak.current + 1:
        factors.append(f"Streak: {a.streak.current}W")
    elif b.streak.current > a.streak.current + 1:
        factors.append(f"Streak: {b.streak.current}W")

    return factors[:MAX_FACTORS]


class PredictionEngine:
    """Turns two players' feature stats into a PredictionOutcome."""

    def __init__(
        self,
        store: Optional[ModelArtifactStore] = None,
        target_sample: int = 10,
        recency_horizon_ms: float = 14 * DAY_MS,
        recency_floor: float = 0.35,
    ):
        self.store = store
        self.target_sample = max(1, int(target_sample))
        self.recency_horizon_ms = max(1.0, float(recency_horizon_ms))
        self.recency_floor = _clamp(recency_floor, 0.0, 1.0)

    @classmethod
    def from_settings(cls, store: Optional[ModelArtifactStore] = None) -> "PredictionEngine":
        from config.settings import settings
        return cls(
            store=store,
            target_sample=settings.PREDICT_TARGET_SAMPLE,
            recency_horizon_ms=settings.PREDICT_RECENCY_HORIZON_DAYS * DAY_MS,
            recency_floor=settings.PREDICT_RECENCY_FLOOR,
        )

    def select_scorer(self) -> Scorer:
        """Trained scorer when the store holds a valid artifact."""
        artifact = self.store.get() if self.store is not None else None
        if artifact is not None:
            return TrainedScorer(artifact)
        return HeuristicScorer()

    def recency_factor(self, age_ms: float) -> float:
        return _clamp(1 - age_ms / self.recency_horizon_ms, self.recency_floor, 1.0)

    def confidence(
        self,
        a: PlayerFeatureStats,
        b: PlayerFeatureStats,
        target_sample: int,
        anchor_ms: int,
    ) -> float:
        sample_factor = _clamp(min(a.sample, b.sample) / target_sample, 0, 1)

        oldest = min(
            a.oldest_match_at if a.oldest_match_at is not None else anchor_ms,
            b.oldest_match_at if b.oldest_match_at is not None else anchor_ms,
        )
        recency_factor = self.recency_factor(max(0, anchor_ms - oldest))

        win_gap = abs(a.form_win_rate - b.form_win_rate)
        variance_factor = 0.6 + 0.4 * _clamp(win_gap * 2, 0, 1)  # 0.6..1

        blended = sample_factor * recency_factor * variance_factor
        return _clamp(0.35 + blended * 0.65, 0.1, 0.95)

    def predict(
        self,
        stats_a: Optional[PlayerFeatureStats],
        stats_b: Optional[PlayerFeatureStats],
        target_sample: Optional[int] = None,
        anchor_ms: Optional[int] = None,
        scorer: Optional[Scorer] = None,
    ) -> Optional[PredictionOutcome]:
        if stats_a is None or stats_b is None:
            return None
        target = max(1, int(target_sample)) if target_sample is not None else self.target_sample
        anchor = int(time.time() * 1000) if anchor_ms is None else anchor_ms
        scorer = scorer if scorer is not None else self.select_scorer()

        raw = scorer.probability_a(stats_a, stats_b)
        if not math.isfinite(raw):
            logger.warning("prediction_probability_not_finite", scorer=scorer.kind)
            return None
        probability_a = _clamp(raw, MIN_PROBABILITY, MAX_PROBABILITY)
        probability_b = 1 - probability_a
        winner: Literal["A", "B"] = "A" if probability_a >= 0.5 else "B"

        return PredictionOutcome(
            winner=winner,
            probability=probability_a if winner == "A" else probability_b,
            probability_a=probability_a,
            probability_b=probability_b,
            confidence=self.confidence(stats_a, stats_b, target, anchor),
            factors=derive_factors(stats_a, stats_b),
            scorer=scorer.kind,
        )
