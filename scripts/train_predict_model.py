#!/usr/bin/env python3
# scripts/train_predict_model.py
"""Train the logistic match predictor from head-to-heads within a player pool.

The model is saved only when it beats the heuristic on the held-out test
set (both Brier and log-loss), unless --force-save is given.

Usage:
    uv run python scripts/train_predict_model.py --players-file data/pool.txt
    uv run python scripts/train_predict_model.py --players "a,b,c" --iterations 1000 --force-save
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

import structlog

from config.settings import settings
from config.validators import validate_mcsr_api, validate_predict_settings
from scripts.backtest_predict import add_backtest_arguments, read_players
from src.exceptions import BacktestError, FeedError, InsufficientSamplesError, RateLimitError
from src.feeds.mcsr import McsrApiClient
from src.ml.backtest import BacktestHarness
from src.ml.model_store import ModelArtifactStore
from src.ml.scoring import PredictionEngine
from src.ml.train import Trainer, TrainingResult, TrainOptions
from src.utils.logging import configure_logging

logger = structlog.get_logger()


def print_summary(result: TrainingResult) -> None:
    print("\n" + "=" * 50)
    print("PREDICT MODEL TRAINING")
    print("=" * 50)
    print(f"Samples:        {result.sample_count} (train {result.train_count}, test {result.test_count})")
    print(
        f"Heuristic test: brier {result.heuristic_test.brier:.4f}, "
        f"logloss {result.heuristic_test.log_loss:.4f}, "
        f"accuracy {result.heuristic_test.accuracy * 100:.1f}%"
    )
    print(
        f"Trained test:   brier {result.trained_test.brier:.4f}, "
        f"logloss {result.trained_test.log_loss:.4f}, "
        f"accuracy {result.trained_test.accuracy * 100:.1f}%"
    )
    calibration = result.artifact.calibration
    if calibration:
        print(f"Platt:          a={calibration.a:.4f}, b={calibration.b:.4f}")
    print("Weights:")
    print(f"  intercept: {result.artifact.intercept:+.4f}")
    for name in result.artifact.features:
        print(f"  {name}: {result.artifact.weights[name]:+.4f}")
    if result.saved_path:
        print(f"Saved model to {result.saved_path}")
    else:
        print("Model not saved: it did not beat the heuristic (use --force-save to override)")
    print("=" * 50)


async def run(options: TrainOptions) -> int:
    store = ModelArtifactStore.from_settings()
    # Training compares against the heuristic, never a previously saved model.
    engine = PredictionEngine.from_settings(store=None)

    async with McsrApiClient.from_settings() as client:
        trainer = Trainer(BacktestHarness(client, engine, decay_ms=settings.decay_ms), store)
        try:
            result = await trainer.train(options)
        except RateLimitError as exc:
            logger.error("training_rate_limited", retry_after_ms=exc.retry_after_ms)
            return 2
        except InsufficientSamplesError as exc:
            logger.error("training_insufficient_samples", found=exc.found, required=exc.required)
            return 1
        except (BacktestError, FeedError) as exc:
            logger.error("training_failed", error=str(exc))
            return 1

    print_summary(result)
    return 0


def main():
    parser = argparse.ArgumentParser(description="Train the logistic match predictor")
    add_backtest_arguments(parser)
    parser.add_argument("--iterations", type=int, default=600, help="Gradient descent iterations")
    parser.add_argument("--learning-rate", type=float, default=0.08, help="Initial learning rate")
    parser.add_argument("--l2", type=float, default=0.001, help="L2 penalty on weights")
    parser.add_argument(
        "--model-out",
        type=str,
        default=None,
        help=f"Output model path (default {settings.PREDICT_MODEL_PATH})",
    )
    parser.add_argument("--force-save", action="store_true", help="Save even if the heuristic is better")
    args = parser.parse_args()

    configure_logging()
    validate_mcsr_api()
    validate_predict_settings()

    players = read_players(args)
    if len(players) < 2:
        logger.error("not_enough_players", count=len(players))
        sys.exit(1)

    options = TrainOptions(
        players=players,
        matches_per_player=args.matches_per_player,
        feature_limit=args.feature_limit,
        min_history=args.min_history,
        calibration_bins=args.bins,
        train_fraction=args.train_fraction,
        iterations=args.iterations,
        learning_rate=args.learning_rate,
        l2=args.l2,
        model_out=args.model_out,
        force_save=args.force_save,
    )
    sys.exit(asyncio.run(run(options)))


if __name__ == "__main__":
    main()
