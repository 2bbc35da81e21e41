"""Prediction call surface used by the chat ``!predict`` command."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Optional

import structlog

from src.feeds.mcsr import MatchHistoryProvider

from .features import DEFAULT_DECAY_MS, PlayerFeatureStats, compute_player_features
from .scoring import PredictionEngine, PredictionOutcome

logger = structlog.get_logger()


@dataclass(frozen=True)
class MatchupPrediction:
    player_a: PlayerFeatureStats
    player_b: PlayerFeatureStats
    outcome: PredictionOutcome
    match_count: int
    anchor_ms: int


class PredictService:
    """Fetches both players' histories and runs the prediction engine."""

    def __init__(
        self,
        provider: MatchHistoryProvider,
        engine: PredictionEngine,
        decay_ms: float = DEFAULT_DECAY_MS,
        fetch_buffer: int = 5,
        max_matches: int = 50,
    ):
        self.provider = provider
        self.engine = engine
        self.decay_ms = decay_ms
        self.fetch_buffer = max(0, fetch_buffer)
        self.max_matches = max(1, max_matches)

    @classmethod
    def from_settings(cls, provider: MatchHistoryProvider, engine: PredictionEngine) -> "PredictService":
        from config.settings import settings
        return cls(
            provider,
            engine,
            decay_ms=settings.decay_ms,
            fetch_buffer=settings.PREDICT_FETCH_BUFFER,
            max_matches=settings.PREDICT_MAX_MATCHES,
        )

    async def predict(
        self,
        player_a: str,
        player_b: str,
        match_count: int = 10,
        anchor_ms: Optional[int] = None,
    ) -> Optional[MatchupPrediction]:
        """Predict ``player_a`` vs ``player_b`` from their last ``match_count`` matches.

        Returns ``None`` when either player lacks usable ranked history.
        RateLimitError from the provider propagates to the caller.
        """
        name_a, name_b = player_a.strip(), player_b.strip()
        if not name_a or not name_b:
            raise ValueError("Need two player names to predict a matchup.")
        if name_a.lower() == name_b.lower():
            raise ValueError("Need two different players to predict a matchup.")

        count = max(1, min(self.max_matches, int(match_count)))
        anchor = int(time.time() * 1000) if anchor_ms is None else anchor_ms
        fetch_limit = count + self.fetch_buffer

        tasks = [
            asyncio.create_task(self.provider.fetch_matches(name, fetch_limit, ranked_only=True))
            for name in (name_a, name_b)
        ]
        try:
            matches_a, matches_b = await asyncio.gather(*tasks)
        except BaseException:
            # One fetch failed (or we were cancelled): stop the other request
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        stats_a = compute_player_features(
            matches_a, name_a, limit=count, decay_ms=self.decay_ms, anchor_ms=anchor
        )
        stats_b = compute_player_features(
            matches_b, name_b, limit=count, decay_ms=self.decay_ms, anchor_ms=anchor
        )
        if stats_a is None or stats_b is None:
            logger.info(
                "prediction_insufficient_data",
                player_a=name_a,
                player_b=name_b,
                has_a=stats_a is not None,
                has_b=stats_b is not None,
            )
            return None

        outcome = self.engine.predict(stats_a, stats_b, target_sample=count, anchor_ms=anchor)
        if outcome is None:
            return None

        logger.info(
            "prediction_made",
            player_a=name_a,
            player_b=name_b,
            winner=outcome.winner,
            probability=round(outcome.probability, 4),
            confidence=round(outcome.confidence, 4),
            scorer=outcome.scorer,
        )
        return MatchupPrediction(
            player_a=stats_a,
            player_b=stats_b,
            outcome=outcome,
            match_count=count,
            anchor_ms=anchor,
        )
