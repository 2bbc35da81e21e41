# tests/ml/test_service.py
"""Tests for the matchup prediction service."""

import asyncio

import pytest

from src.exceptions import RateLimitError
from src.ml.records import Participant, RawMatchRecord
from src.ml.scoring import PredictionEngine
from src.ml.service import PredictService

NOW = 1_700_000_000_000
HOUR_MS = 60 * 60 * 1000


class StubProvider:
    def __init__(self, histories, error=None):
        self.histories = histories
        self.error = error
        self.requests = []

    async def fetch_matches(self, player, limit, *, ranked_only=True, page_size=None):
        self.requests.append((player, limit, ranked_only))
        if self.error:
            raise self.error
        return self.histories.get(player.lower(), [])[:limit]


class SlowSiblingProvider:
    """First player is rate limited at once; the second takes a while to answer."""

    def __init__(self):
        self.cancelled = []
        self.finished = []

    async def fetch_matches(self, player, limit, *, ranked_only=True, page_size=None):
        if player == "limited":
            raise RateLimitError("slow down", retry_after_ms=1_000)
        try:
            await asyncio.sleep(0.05)
        except asyncio.CancelledError:
            self.cancelled.append(player)
            raise
        self.finished.append(player)
        return []


def history(player, results, opponent_elo=1500.0):
    """``results`` is newest first, True for a win."""
    records = []
    for i, won in enumerate(results):
        delta = 10.0 if won else -10.0
        records.append(
            RawMatchRecord(
                played_at_ms=NOW - (i + 1) * HOUR_MS,
                participants=(
                    Participant(player, f"{player}-uuid", elo_after=1500.0, elo_delta=delta),
                    Participant(f"opp{i}", f"opp{i}-uuid", elo_after=opponent_elo, elo_delta=-delta),
                ),
                match_id=f"{player}-{i}",
            )
        )
    return records


@pytest.fixture
def provider():
    return StubProvider({
        "hot": history("hot", [True] * 8 + [False, True, True, True], opponent_elo=1650.0),
        "cold": history("cold", [False, False, True, False, True, False, False, True, False, False]),
    })


class TestPredictService:
    @pytest.mark.asyncio
    async def test_predicts_in_form_player(self, provider):
        service = PredictService(provider, PredictionEngine())

        result = await service.predict("Hot", "Cold", match_count=10, anchor_ms=NOW)

        assert result.outcome.winner == "A"
        assert result.outcome.probability > 0.55
        assert result.player_a.sample == 10
        assert result.match_count == 10
        assert result.anchor_ms == NOW

    @pytest.mark.asyncio
    async def test_fetch_limit_includes_buffer(self, provider):
        service = PredictService(provider, PredictionEngine(), fetch_buffer=5)

        await service.predict("hot", "cold", match_count=10, anchor_ms=NOW)

        assert sorted(provider.requests) == [("cold", 15, True), ("hot", 15, True)]

    @pytest.mark.asyncio
    async def test_match_count_is_clamped(self, provider):
        service = PredictService(provider, PredictionEngine(), fetch_buffer=0, max_matches=5)

        result = await service.predict("hot", "cold", match_count=500, anchor_ms=NOW)

        assert result.match_count == 5
        assert result.player_a.sample == 5

    @pytest.mark.asyncio
    async def test_unknown_history_returns_none(self, provider):
        service = PredictService(provider, PredictionEngine())

        assert await service.predict("hot", "ghost", anchor_ms=NOW) is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("a,b", [("", "cold"), ("hot", "  "), ("hot", "HOT")])
    async def test_rejects_bad_player_pairs(self, provider, a, b):
        service = PredictService(provider, PredictionEngine())

        with pytest.raises(ValueError):
            await service.predict(a, b)

        assert provider.requests == []

    @pytest.mark.asyncio
    async def test_rate_limit_propagates(self):
        provider = StubProvider({}, error=RateLimitError("slow down", retry_after_ms=30_000))
        service = PredictService(provider, PredictionEngine())

        with pytest.raises(RateLimitError) as exc_info:
            await service.predict("hot", "cold")

        assert exc_info.value.retry_after_ms == 30_000

    @pytest.mark.asyncio
    async def test_rate_limit_cancels_other_fetch(self):
        provider = SlowSiblingProvider()
        service = PredictService(provider, PredictionEngine())

        with pytest.raises(RateLimitError):
            await service.predict("limited", "slow")

        assert provider.cancelled == ["slow"]
        await asyncio.sleep(0.1)
        assert provider.finished == []

    def test_from_settings_uses_configured_limits(self, provider):
        service = PredictService.from_settings(provider, PredictionEngine())

        assert service.fetch_buffer == 5
        assert service.max_matches == 50
        assert service.decay_ms == 48 * HOUR_MS
