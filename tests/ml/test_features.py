# tests/ml/test_features.py
"""Tests for per-player form feature extraction."""

import pytest

from src.ml.features import compute_player_features, project_match
from src.ml.records import Participant, RawMatchRecord


def make_match(
    match_id,
    winner,
    played_at,
    duration_ms=None,
    delta_a=None,
    delta_b=None,
    elo_a=None,
    elo_b=None,
):
    """Alpha vs Beta; ``winner`` is "A", "B" or None."""
    uuid_a, uuid_b = f"pa-{match_id}", f"pb-{match_id}"
    winner_uuid = {"A": uuid_a, "B": uuid_b}.get(winner)
    return RawMatchRecord(
        played_at_ms=played_at,
        participants=(
            Participant("Alpha", uuid_a, elo_after=elo_a, elo_delta=delta_a),
            Participant("Beta", uuid_b, elo_after=elo_b, elo_delta=delta_b),
        ),
        match_id=str(match_id),
        winner_uuid=winner_uuid,
        duration_ms=duration_ms if winner_uuid else None,
    )


@pytest.fixture
def three_matches():
    now = 1_700_000_000_000
    return now, [
        make_match(1, "A", now, 600_000, 12, -12, 1500, 1550),
        make_match(2, "A", now - 10_000, 620_000, 8, -8, 1520, 1500),
        make_match(3, "B", now - 20_000, 700_000, -15, 15, 1490, 1600),
    ]


class TestComputePlayerFeatures:
    """Aggregation over a player's recent window."""

    def test_aggregates_streaks_and_averages(self, three_matches):
        now, matches = three_matches

        stats = compute_player_features(matches, "Alpha", anchor_ms=now)

        assert stats.sample == 3
        assert stats.wins == 2
        assert stats.losses == 1
        assert stats.win_rate == pytest.approx(2 / 3)
        assert stats.total_elo_delta == 5
        assert stats.avg_elo_delta == pytest.approx(5 / 3)
        assert stats.avg_opponent_elo == 1550
        assert stats.durations.best_win == 600_000
        assert stats.durations.average_win == 610_000
        assert stats.streak.current == 2
        assert stats.streak.best == 2
        assert stats.newest_match_at == now
        assert stats.oldest_match_at == now - 20_000

    def test_input_order_does_not_matter(self, three_matches):
        now, matches = three_matches

        forward = compute_player_features(matches, "Alpha", anchor_ms=now)
        backward = compute_player_features(list(reversed(matches)), "Alpha", anchor_ms=now)

        assert forward == backward

    def test_recency_weighting_halves_per_decay_period(self):
        anchor = 2_000_000_000_000
        matches = [
            make_match(1, "A", anchor, delta_a=5, delta_b=-5),
            make_match(2, "B", anchor - 1_000, delta_a=-5, delta_b=5),
        ]

        stats = compute_player_features(matches, "Alpha", anchor_ms=anchor, decay_ms=1_000)

        # weights 1 and 0.5 -> 1 / 1.5
        assert stats.recency_win_rate == pytest.approx(2 / 3)
        assert stats.streak.current == 1
        assert stats.streak.best == 1

    def test_outcome_inferred_from_elo_delta(self):
        match = RawMatchRecord(
            played_at_ms=3_000,
            participants=(
                Participant("Alpha", "x", elo_after=1500, elo_delta=-12),
                Participant("Beta", "y", elo_after=1500, elo_delta=12),
            ),
            match_id="10",
        )

        stats = compute_player_features([match], "Alpha", anchor_ms=3_000)

        assert stats.wins == 0
        assert stats.losses == 1
        assert stats.win_rate == 0

    def test_limit_trims_to_most_recent(self):
        base = 5_000
        matches = [
            make_match(1, "A", base, delta_a=1, delta_b=-1),
            make_match(2, "B", base - 1_000, delta_a=-2, delta_b=2),
            make_match(3, "A", base - 2_000, delta_a=3, delta_b=-3),
        ]

        stats = compute_player_features(matches, "Alpha", anchor_ms=base, limit=2)

        assert stats.sample == 2
        assert stats.wins == 1
        assert stats.losses == 1
        assert stats.oldest_match_at == base - 1_000

    def test_current_streak_stops_at_first_loss(self):
        base = 100_000
        outcomes = ["A", "A", "B", "A", "A", "A", "B"]  # newest first
        matches = [make_match(i, w, base - i * 1_000, delta_a=1, delta_b=-1) for i, w in enumerate(outcomes)]

        stats = compute_player_features(matches, "Alpha", anchor_ms=base)

        assert stats.streak.current == 2
        assert stats.streak.best == 3
        assert stats.streak.current <= stats.streak.best <= stats.wins

    def test_unresolved_and_foreign_matches_are_excluded(self):
        matches = [
            make_match(1, None, 1_000),  # no winner, no deltas
            RawMatchRecord(
                played_at_ms=2_000,
                participants=(Participant("Gamma", "g"), Participant("Delta", "d")),
                winner_uuid="g",
            ),
        ]

        assert compute_player_features(matches, "Alpha", anchor_ms=3_000) is None

    def test_empty_history_returns_none(self):
        assert compute_player_features([], "Alpha") is None

    def test_player_lookup_is_case_insensitive(self, three_matches):
        now, matches = three_matches

        stats = compute_player_features(matches, "ALPHA", anchor_ms=now)

        assert stats is not None
        assert stats.sample == 3

    def test_counts_and_rates_stay_consistent(self, three_matches):
        now, matches = three_matches

        stats = compute_player_features(matches, "Alpha", anchor_ms=now)

        assert stats.wins + stats.losses == stats.sample
        assert 0 <= stats.win_rate <= 1
        assert 0 <= stats.recency_win_rate <= 1
        assert stats.oldest_match_at <= stats.newest_match_at


class TestProjectMatch:
    def test_projects_from_the_players_side(self):
        match = make_match(7, "B", 9_000, 500_000, -10, 10, 1480, 1620)

        view = project_match(match, "Alpha")

        assert view.is_win is False
        assert view.elo_delta == -10
        assert view.opponent_elo_after == 1620

    def test_absent_player_projects_to_none(self):
        assert project_match(make_match(7, "A", 9_000), "Gamma") is None
