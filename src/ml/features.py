"""Per-player form features aggregated from recent ranked match history."""

from __future__ import annotations

import math
import time
from dataclasses import dataclass, field
from typing import Iterable, Optional

from .records import RawMatchRecord, resolve_outcome

DEFAULT_LIMIT = 20
DEFAULT_DECAY_MS = 48 * 60 * 60 * 1000  # 48h half-life


@dataclass(frozen=True)
class PlayerMatchView:
    """One match seen from a single player's side."""

    played_at: int
    is_win: bool
    elo_delta: Optional[float] = None
    opponent_elo_after: Optional[float] = None
    duration_ms: Optional[float] = None  # only meaningful on wins


@dataclass(frozen=True)
class Durations:
    average_win: Optional[int] = None
    best_win: Optional[float] = None


@dataclass(frozen=True)
class Streak:
    current: int = 0
    best: int = 0


@dataclass(frozen=True)
class PlayerFeatureStats:
    """Aggregate over a player's most recent matches, anchored in time."""

    player: str
    sample: int
    wins: int
    losses: int
    win_rate: float
    total_elo_delta: float = 0.0
    recency_win_rate: Optional[float] = None
    avg_elo_delta: Optional[float] = None
    avg_opponent_elo: Optional[float] = None
    durations: Optional[Durations] = None
    streak: Streak = field(default_factory=Streak)
    newest_match_at: Optional[int] = None
    oldest_match_at: Optional[int] = None

    @property
    def form_win_rate(self) -> float:
        """Recency-weighted win rate when known, plain win rate otherwise."""
        if self.recency_win_rate is not None:
            return self.recency_win_rate
        return self.win_rate

    @property
    def mean_elo_delta(self) -> Optional[float]:
        if self.avg_elo_delta is not None:
            return self.avg_elo_delta
        if self.sample > 0:
            return self.total_elo_delta / self.sample
        return None


def _finite(value: Optional[float]) -> bool:
    return value is not None and math.isfinite(value)


def project_match(record: RawMatchRecord, player: str) -> Optional[PlayerMatchView]:
    """Project ``record`` onto ``player``; ``None`` if absent or unresolved."""
    participant = record.find_participant(player)
    if participant is None:
        return None

    is_win = resolve_outcome(record, participant)
    if is_win is None:
        return None

    opponent = record.opponent_of(participant)
    return PlayerMatchView(
        played_at=record.played_at_ms,
        is_win=is_win,
        elo_delta=participant.elo_delta,
        opponent_elo_after=opponent.elo_after if opponent else None,
        duration_ms=record.duration_ms,
    )


def compute_player_features(
    matches: Iterable[RawMatchRecord],
    player: str,
    limit: int = DEFAULT_LIMIT,
    decay_ms: float = DEFAULT_DECAY_MS,
    anchor_ms: Optional[int] = None,
) -> Optional[PlayerFeatureStats]:
    """Aggregate the ``limit`` most recent resolvable matches of ``player``.

    Returns ``None`` when no match survives projection, which callers treat
    as "insufficient data".
    """
    if not player or not player.strip():
        return None
    limit = max(1, int(limit))
    decay_ms = max(1.0, float(decay_ms))
    anchor = int(time.time() * 1000) if anchor_ms is None else anchor_ms

    views = [view for view in (project_match(m, player) for m in matches) if view]
    views.sort(key=lambda v: v.played_at, reverse=True)
    window = views[:limit]
    if not window:
        return None

    wins = losses = 0
    total_elo_delta = 0.0
    elo_delta_samples = 0
    opp_elo_total = 0.0
    opp_elo_samples = 0
    win_durations: list[float] = []

    weighted_wins = 0.0
    weight_total = 0.0

    current_streak = best_streak = rolling = 0
    tracking_current = True

    # Newest first: the current streak freezes at the first loss.
    for view in window:
        age_ms = max(0, anchor - view.played_at)
        weight = 0.5 ** (age_ms / decay_ms)

        if view.is_win:
            wins += 1
            rolling += 1
            best_streak = max(best_streak, rolling)
            if tracking_current:
                current_streak += 1
            if _finite(view.duration_ms):
                win_durations.append(view.duration_ms)
            weighted_wins += weight
        else:
            losses += 1
            rolling = 0
            tracking_current = False
        weight_total += weight

        if _finite(view.elo_delta):
            total_elo_delta += view.elo_delta
            elo_delta_samples += 1
        if _finite(view.opponent_elo_after):
            opp_elo_total += view.opponent_elo_after
            opp_elo_samples += 1

    sample = wins + losses
    durations = None
    if win_durations:
        durations = Durations(
            average_win=round(sum(win_durations) / len(win_durations)),
            best_win=min(win_durations),
        )

    return PlayerFeatureStats(
        player=player,
        sample=sample,
        wins=wins,
        losses=losses,
        win_rate=wins / sample if sample else 0.0,
        total_elo_delta=total_elo_delta,
        recency_win_rate=weighted_wins / weight_total if weight_total > 0 else None,
        avg_elo_delta=total_elo_delta / elo_delta_samples if elo_delta_samples else None,
        avg_opponent_elo=opp_elo_total / opp_elo_samples if opp_elo_samples else None,
        durations=durations,
        streak=Streak(current=current_streak, best=best_streak),
        newest_match_at=window[0].played_at,
        oldest_match_at=window[-1].played_at,
    )
