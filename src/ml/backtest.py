"""Chronological backtest of the prediction engine on real head-to-heads.

Replays matches played between members of a player pool. Each event is
scored only from the history both players had strictly before it, so no
information from the match itself (or later) leaks into its prediction.
"""

from __future__ import annotations

import bisect
import math
from dataclasses import asdict, dataclass, field
from typing import Literal, Optional

import numpy as np
import structlog

from src.exceptions import BacktestError
from src.feeds.mcsr import MatchHistoryProvider

from .features import DEFAULT_DECAY_MS, PlayerFeatureStats, compute_player_features
from .model import PROBABILITY_EPSILON
from .records import RawMatchRecord, resolve_winner
from .scoring import PredictionEngine, Scorer
from .validation.calibration import (
    BinaryMetrics,
    CalibrationBin,
    PlattModel,
    apply_platt_scaling,
    compute_binary_metrics,
    compute_calibration_bins,
    fit_platt_scaling,
)

logger = structlog.get_logger()

MIN_PLATT_TRAIN_SAMPLES = 20


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


@dataclass
class BacktestOptions:
    players: list[str]
    matches_per_player: int = 150
    feature_limit: int = 10
    min_history: Optional[int] = None  # defaults to feature_limit
    calibration_bins: int = 10
    train_fraction: float = 0.8

    @property
    def history_size(self) -> int:
        return max(20, int(self.matches_per_player))

    @property
    def window(self) -> int:
        return max(1, int(self.feature_limit))

    @property
    def required_history(self) -> int:
        return max(1, int(self.min_history if self.min_history is not None else self.window))

    @property
    def bins(self) -> int:
        return max(3, int(self.calibration_bins))

    @property
    def split_fraction(self) -> float:
        return _clamp(self.train_fraction, 0.5, 0.95)


@dataclass
class SkipCounts:
    missing_participants: int = 0
    missing_winner: int = 0
    missing_history: int = 0
    model_unavailable: int = 0


@dataclass(frozen=True)
class BacktestSample:
    """One historical event with both players' pre-match features."""

    match_key: str
    played_at: int
    player_a: str
    player_b: str
    label: Literal[0, 1]  # 1 when player_a won
    target_sample: int
    features_a: PlayerFeatureStats
    features_b: PlayerFeatureStats


@dataclass(frozen=True)
class PredictionSample:
    match_key: str
    played_at: int
    player_a: str
    player_b: str
    winner: str
    probability_a: float
    confidence: float
    label: Literal[0, 1]


@dataclass
class PreparedBacktestData:
    players: list[str]
    considered_matches: int
    skipped: SkipCounts
    samples: list[BacktestSample] = field(default_factory=list)


@dataclass
class BacktestReport:
    players: list[str]
    considered_matches: int
    eligible_matches: int
    train_samples: int
    test_samples: int
    skipped: SkipCounts
    scorer: str
    raw_train: BinaryMetrics
    raw_test: BinaryMetrics
    raw_calibration: list[CalibrationBin]
    calibrated_test: BinaryMetrics
    calibrated_calibration: list[CalibrationBin]
    platt: Optional[PlattModel] = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class _MatchEvent:
    key: str
    played_at: int
    player_a: str
    player_b: str
    winner: str


class _History:
    """A player's matches sorted oldest first, searchable by time."""

    def __init__(self, records: list[RawMatchRecord]):
        self.records = sorted(records, key=lambda r: r.played_at_ms)
        self.timestamps = [r.played_at_ms for r in self.records]

    def before(self, anchor_ms: int) -> list[RawMatchRecord]:
        return self.records[: bisect.bisect_left(self.timestamps, anchor_ms)]


def dedupe_players(players: list[str]) -> list[str]:
    seen: set[str] = set()
    unique: list[str] = []
    for name in players:
        trimmed = (name or "").strip()
        norm = trimmed.lower()
        if not norm or norm in seen:
            continue
        seen.add(norm)
        unique.append(trimmed)
    return unique


def parse_player_list(*sources: Optional[str]) -> list[str]:
    """Split comma- or newline-separated names; ``#`` starts a comment line."""
    names: list[str] = []
    for text in sources:
        for line in (text or "").splitlines():
            if line.strip().startswith("#"):
                continue
            names.extend(part for part in line.split(","))
    return dedupe_players(names)


def event_key(record: RawMatchRecord, sorted_pair: list[str]) -> str:
    """Stable identity of a match seen from either player's history."""
    if record.match_id is not None:
        return f"id:{record.match_id}"
    return f"seed:{record.played_at_ms}:{':'.join(sorted_pair)}"


def chronological_split(items: list, fraction: float) -> tuple[list, list]:
    """Oldest ``fraction`` for training, the rest for testing.

    Both sides are non-empty when there are at least two items; with fewer
    the same items serve as train and test.
    """
    if len(items) < 2:
        return items, items
    split = max(1, min(len(items) - 1, math.floor(len(items) * fraction)))
    return items[:split], items[split:]


class BacktestHarness:
    """Builds leakage-free samples and evaluates the engine on them."""

    def __init__(
        self,
        provider: MatchHistoryProvider,
        engine: PredictionEngine,
        decay_ms: float = DEFAULT_DECAY_MS,
    ):
        self.provider = provider
        self.engine = engine
        self.decay_ms = decay_ms

    async def build_samples(self, options: BacktestOptions) -> PreparedBacktestData:
        players = dedupe_players(options.players)
        if len(players) < 2:
            raise BacktestError("Backtest needs at least two distinct players.")
        pool = {name.lower() for name in players}

        # Sequential on purpose: the history API is rate limited.
        histories: dict[str, _History] = {}
        for player in players:
            records = await self.provider.fetch_matches(
                player, options.history_size, ranked_only=True
            )
            histories[player.lower()] = _History(records)
            logger.debug("backtest_history_loaded", player=player, matches=len(records))

        events, skipped = self._collect_events(histories, pool)

        samples: list[BacktestSample] = []
        for event in events:
            history_a = histories[event.player_a].before(event.played_at)
            history_b = histories[event.player_b].before(event.played_at)
            if len(history_a) < options.required_history or len(history_b) < options.required_history:
                skipped.missing_history += 1
                continue

            features_a = compute_player_features(
                history_a, event.player_a, limit=options.window,
                decay_ms=self.decay_ms, anchor_ms=event.played_at,
            )
            features_b = compute_player_features(
                history_b, event.player_b, limit=options.window,
                decay_ms=self.decay_ms, anchor_ms=event.played_at,
            )
            if features_a is None or features_b is None:
                skipped.model_unavailable += 1
                continue

            samples.append(
                BacktestSample(
                    match_key=event.key,
                    played_at=event.played_at,
                    player_a=event.player_a,
                    player_b=event.player_b,
                    label=1 if event.winner == event.player_a else 0,
                    target_sample=options.window,
                    features_a=features_a,
                    features_b=features_b,
                )
            )

        logger.info(
            "backtest_samples_built",
            players=len(players),
            considered=len(events),
            samples=len(samples),
            **asdict(skipped),
        )
        return PreparedBacktestData(
            players=players,
            considered_matches=len(events),
            skipped=skipped,
            samples=samples,
        )

    @staticmethod
    def _collect_events(
        histories: dict[str, _History],
        pool: set[str],
    ) -> tuple[list[_MatchEvent], SkipCounts]:
        seen: dict[str, _MatchEvent] = {}
        skipped = SkipCounts()

        for history in histories.values():
            for record in history.records:
                pair = record.participants[:2]
                if len(pair) < 2 or pair[0].key == pair[1].key:
                    skipped.missing_participants += 1
                    continue
                one, two = pair
                if one.key not in pool or two.key not in pool:
                    skipped.missing_participants += 1
                    continue
                winner = resolve_winner(record)
                if winner is None:
                    skipped.missing_winner += 1
                    continue

                key = event_key(record, sorted([one.key, two.key]))
                if key not in seen:
                    seen[key] = _MatchEvent(
                        key=key,
                        played_at=record.played_at_ms,
                        player_a=one.key,
                        player_b=two.key,
                        winner=winner.key,
                    )

        events = sorted(seen.values(), key=lambda e: e.played_at)
        return events, skipped

    def score_samples(
        self,
        samples: list[BacktestSample],
        skipped: SkipCounts,
        scorer: Optional[Scorer] = None,
    ) -> list[PredictionSample]:
        """Run every sample through the engine, oldest first."""
        scorer = scorer if scorer is not None else self.engine.select_scorer()
        predictions: list[PredictionSample] = []
        for sample in samples:
            outcome = self.engine.predict(
                sample.features_a,
                sample.features_b,
                target_sample=sample.target_sample,
                anchor_ms=sample.played_at,
                scorer=scorer,
            )
            if outcome is None:
                skipped.model_unavailable += 1
                continue
            predictions.append(
                PredictionSample(
                    match_key=sample.match_key,
                    played_at=sample.played_at,
                    player_a=sample.player_a,
                    player_b=sample.player_b,
                    winner=sample.player_a if sample.label else sample.player_b,
                    probability_a=_clamp(outcome.probability_a, PROBABILITY_EPSILON, 1 - PROBABILITY_EPSILON),
                    confidence=outcome.confidence,
                    label=sample.label,
                )
            )
        predictions.sort(key=lambda p: p.played_at)
        return predictions

    def evaluate(self, prepared: PreparedBacktestData, options: BacktestOptions) -> BacktestReport:
        skipped = SkipCounts(**asdict(prepared.skipped))
        scorer = self.engine.select_scorer()
        predictions = self.score_samples(prepared.samples, skipped, scorer)
        train, test = chronological_split(predictions, options.split_fraction)

        def arrays(rows: list[PredictionSample]) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
            return (
                np.array([r.label for r in rows], dtype=float),
                np.array([r.probability_a for r in rows], dtype=float),
                np.array([r.confidence for r in rows], dtype=float),
            )

        y_train, p_train, c_train = arrays(train)
        y_test, p_test, c_test = arrays(test)

        platt = (
            fit_platt_scaling(y_train, p_train)
            if len(train) >= MIN_PLATT_TRAIN_SAMPLES
            else None
        )
        p_test_calibrated = apply_platt_scaling(p_test, platt) if platt else p_test

        report = BacktestReport(
            players=prepared.players,
            considered_matches=prepared.considered_matches,
            eligible_matches=len(predictions),
            train_samples=len(train),
            test_samples=len(test),
            skipped=skipped,
            scorer=scorer.kind,
            raw_train=compute_binary_metrics(y_train, p_train, c_train),
            raw_test=compute_binary_metrics(y_test, p_test, c_test),
            raw_calibration=compute_calibration_bins(y_test, p_test, options.bins),
            calibrated_test=compute_binary_metrics(y_test, p_test_calibrated, c_test),
            calibrated_calibration=compute_calibration_bins(y_test, p_test_calibrated, options.bins),
            platt=platt,
        )
        logger.info(
            "backtest_complete",
            samples=report.eligible_matches,
            scorer=report.scorer,
            test_brier=report.raw_test.brier,
            test_log_loss=report.raw_test.log_loss,
            calibrated=platt is not None,
        )
        return report

    async def run(self, options: BacktestOptions) -> BacktestReport:
        prepared = await self.build_samples(options)
        return self.evaluate(prepared, options)


def format_backtest_report(report: BacktestReport) -> str:
    lines = [
        "Predict Backtest Report",
        f"Players: {', '.join(report.players)}",
        f"Scorer: {report.scorer}",
        f"Matches considered: {report.considered_matches}",
        f"Samples used: {report.eligible_matches} "
        f"(train {report.train_samples}, test {report.test_samples})",
        f"Skipped: history={report.skipped.missing_history}, "
        f"missingParticipants={report.skipped.missing_participants}, "
        f"missingWinner={report.skipped.missing_winner}, "
        f"modelUnavailable={report.skipped.model_unavailable}",
        "",
        f"Raw Test -> accuracy {report.raw_test.accuracy * 100:.1f}%, "
        f"brier {report.raw_test.brier:.4f}, logloss {report.raw_test.log_loss:.4f}, "
        f"ece {report.raw_test.ece:.4f}",
    ]
    if report.platt:
        lines.append(
            f"Calibrated Test -> accuracy {report.calibrated_test.accuracy * 100:.1f}%, "
            f"brier {report.calibrated_test.brier:.4f}, "
            f"logloss {report.calibrated_test.log_loss:.4f} "
            f"(a={report.platt.a:.4f}, b={report.platt.b:.4f})"
        )
    else:
        lines.append("Calibrated Test -> skipped (not enough training samples for Platt scaling)")
    lines += ["", "Calibration bins (test set):", "Range\tCount\tMeanPred\tObserved"]
    for bin_ in report.raw_calibration:
        if not bin_.count:
            continue
        lines.append(
            f"{bin_.start:.1f}-{bin_.end:.1f}\t{bin_.count}\t"
            f"{bin_.mean_predicted:.3f}\t{bin_.observed_win_rate:.3f}"
        )
    return "\n".join(lines)
