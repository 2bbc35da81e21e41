#!/usr/bin/env python3
# scripts/backtest_predict.py
"""Backtest the match predictor on head-to-heads within a player pool.

Usage:
    uv run python scripts/backtest_predict.py --players "Feinberg,doogile,Couriway"
    uv run python scripts/backtest_predict.py --players-file data/pool.txt \
        --matches-per-player 200 --feature-limit 10 --json-out reports/backtest.json
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

import structlog

from config.settings import settings
from config.validators import validate_mcsr_api, validate_predict_settings
from src.exceptions import BacktestError, FeedError, RateLimitError
from src.feeds.mcsr import McsrApiClient
from src.ml.backtest import BacktestHarness, BacktestOptions, format_backtest_report, parse_player_list
from src.ml.model_store import ModelArtifactStore
from src.ml.scoring import PredictionEngine
from src.utils.logging import configure_logging

logger = structlog.get_logger()


def add_backtest_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--players", type=str, default="", help="Comma-separated player names")
    parser.add_argument("--players-file", type=str, default=None, help="File with one player per line")
    parser.add_argument("--matches-per-player", type=int, default=150, help="History fetched per player")
    parser.add_argument(
        "--feature-limit",
        type=int,
        default=settings.PREDICT_TARGET_SAMPLE,
        help="Matches per feature window",
    )
    parser.add_argument("--min-history", type=int, default=None, help="Prior matches required per side")
    parser.add_argument("--bins", type=int, default=10, help="Calibration bins")
    parser.add_argument("--train-fraction", type=float, default=0.8, help="Chronological train share")


def read_players(args: argparse.Namespace) -> list[str]:
    file_text = None
    if args.players_file:
        path = Path(args.players_file)
        if not path.exists():
            logger.error("players_file_not_found", path=str(path))
            sys.exit(1)
        file_text = path.read_text(encoding="utf-8")
    return parse_player_list(args.players, file_text)


async def run(options: BacktestOptions, json_out: Path | None) -> int:
    store = ModelArtifactStore.from_settings()
    engine = PredictionEngine.from_settings(store)

    async with McsrApiClient.from_settings() as client:
        harness = BacktestHarness(client, engine, decay_ms=settings.decay_ms)
        try:
            report = await harness.run(options)
        except RateLimitError as exc:
            logger.error("backtest_rate_limited", retry_after_ms=exc.retry_after_ms)
            return 2
        except (BacktestError, FeedError) as exc:
            logger.error("backtest_failed", error=str(exc))
            return 1

    print(format_backtest_report(report))

    if json_out:
        json_out.parent.mkdir(parents=True, exist_ok=True)
        json_out.write_text(json.dumps(report.to_dict(), indent=2), encoding="utf-8")
        logger.info("backtest_report_written", path=str(json_out))
    return 0


def main():
    parser = argparse.ArgumentParser(description="Backtest the match predictor")
    add_backtest_arguments(parser)
    parser.add_argument("--json-out", type=str, default=None, help="Write the full report as JSON")
    args = parser.parse_args()

    configure_logging()
    validate_mcsr_api()
    validate_predict_settings()

    players = read_players(args)
    if len(players) < 2:
        logger.error("not_enough_players", count=len(players))
        sys.exit(1)

    options = BacktestOptions(
        players=players,
        matches_per_player=args.matches_per_player,
        feature_limit=args.feature_limit,
        min_history=args.min_history,
        calibration_bins=args.bins,
        train_fraction=args.train_fraction,
    )
    json_out = Path(args.json_out) if args.json_out else None
    sys.exit(asyncio.run(run(options, json_out)))


if __name__ == "__main__":
    main()
