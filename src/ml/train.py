# src/ml/train.py
"""Logistic-regression training for the head-to-head prediction model."""

from __future__ import annotations

from dataclasses import dataclass, replace
from pathlib import Path
from typing import Optional

import numpy as np
import structlog

from src.exceptions import InsufficientSamplesError

from .backtest import (
    BacktestHarness,
    BacktestOptions,
    BacktestSample,
    PreparedBacktestData,
    chronological_split,
)
from .model import (
    FEATURE_NAMES,
    PROBABILITY_EPSILON,
    Calibration,
    ModelArtifact,
    TrainingSummary,
    feature_matrix,
)
from .model_store import ModelArtifactStore
from .scoring import HeuristicScorer
from .validation.calibration import (
    BinaryMetrics,
    apply_platt_scaling,
    compute_binary_metrics,
    fit_platt_scaling,
    sigmoid_array,
)

logger = structlog.get_logger()

MIN_TRAINING_SAMPLES = 40


class LogisticModel:
    """Logistic regression fitted by batch gradient descent."""

    def __init__(self, features: Optional[list[str]] = None):
        self.features = list(features or FEATURE_NAMES)
        self.intercept = 0.0
        self.coef = np.zeros(len(self.features))

    def fit(
        self,
        X: np.ndarray,
        y: np.ndarray,
        iterations: int = 600,
        learning_rate: float = 0.08,
        l2: float = 0.001,
    ) -> "LogisticModel":
        """Fit weights; the learning rate decays linearly to 30% of its start.

        The L2 penalty applies to the weights, never the intercept.
        """
        X = np.asarray(X, dtype=float)
        y = np.asarray(y, dtype=float)
        n = len(y)
        if n == 0:
            raise ValueError("Cannot fit on an empty training set.")

        self.intercept = 0.0
        self.coef = np.zeros(X.shape[1])
        for it in range(iterations):
            progress = it / max(1, iterations - 1)
            lr = learning_rate * (1 - 0.7 * progress)

            diff = sigmoid_array(X @ self.coef + self.intercept) - y
            grad_intercept = diff.sum() / n
            grad_coef = X.T @ diff / n + l2 * self.coef

            self.intercept -= lr * grad_intercept
            self.coef = self.coef - lr * grad_coef

        return self

    def predict_proba(self, X: np.ndarray) -> np.ndarray:
        """Predict P(A wins) for each row."""
        z = np.asarray(X, dtype=float) @ self.coef + self.intercept
        return np.clip(sigmoid_array(z), PROBABILITY_EPSILON, 1 - PROBABILITY_EPSILON)

    def weights_by_feature(self) -> dict[str, float]:
        return {name: float(w) for name, w in zip(self.features, self.coef)}

    def to_artifact(
        self,
        calibration: Optional[Calibration] = None,
        training: Optional[TrainingSummary] = None,
    ) -> ModelArtifact:
        return ModelArtifact(
            features=tuple(self.features),
            intercept=float(self.intercept),
            weights=self.weights_by_feature(),
            calibration=calibration,
            training=training,
        )


@dataclass
class TrainOptions(BacktestOptions):
    iterations: int = 600
    learning_rate: float = 0.08
    l2: float = 0.001
    model_out: Optional[str] = None  # defaults to the store's path
    force_save: bool = False


@dataclass(frozen=True)
class TrainingResult:
    artifact: ModelArtifact
    sample_count: int
    train_count: int
    test_count: int
    heuristic_test: BinaryMetrics
    trained_test: BinaryMetrics
    improved: bool
    saved_path: Optional[Path] = None


class Trainer:
    """Fits, calibrates and (conditionally) persists the logistic model."""

    def __init__(self, harness: BacktestHarness, store: ModelArtifactStore):
        self.harness = harness
        self.store = store

    def _heuristic_predictions(self, samples: list[BacktestSample]) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
        labels, probs, confidences = [], [], []
        scorer = HeuristicScorer()
        for sample in samples:
            outcome = self.harness.engine.predict(
                sample.features_a,
                sample.features_b,
                target_sample=sample.target_sample,
                anchor_ms=sample.played_at,
                scorer=scorer,
            )
            if outcome is None:
                continue
            labels.append(sample.label)
            probs.append(outcome.probability_a)
            confidences.append(outcome.confidence)
        return (
            np.array(labels, dtype=float),
            np.clip(np.array(probs, dtype=float), PROBABILITY_EPSILON, 1 - PROBABILITY_EPSILON),
            np.array(confidences, dtype=float),
        )

    def fit_prepared(self, prepared: PreparedBacktestData, options: TrainOptions) -> TrainingResult:
        chronological = sorted(prepared.samples, key=lambda s: s.played_at)
        if len(chronological) < MIN_TRAINING_SAMPLES:
            raise InsufficientSamplesError(len(chronological), MIN_TRAINING_SAMPLES)

        train, test = chronological_split(chronological, options.split_fraction)
        X_train = feature_matrix((s.features_a, s.features_b) for s in train)
        X_test = feature_matrix((s.features_a, s.features_b) for s in test)
        y_train = np.array([s.label for s in train], dtype=float)
        y_test = np.array([s.label for s in test], dtype=float)

        logger.info("training_model", samples=len(chronological), features=len(FEATURE_NAMES))
        model = LogisticModel().fit(
            X_train,
            y_train,
            iterations=options.iterations,
            learning_rate=options.learning_rate,
            l2=options.l2,
        )

        train_pred = model.predict_proba(X_train)
        test_pred = model.predict_proba(X_test)
        calibration = fit_platt_scaling(y_train, train_pred)
        test_calibrated = apply_platt_scaling(test_pred, calibration) if calibration else test_pred

        heuristic_test = compute_binary_metrics(*self._heuristic_predictions(test))
        trained_test = compute_binary_metrics(y_test, test_calibrated)
        improved = (
            trained_test.log_loss < heuristic_test.log_loss
            and trained_test.brier < heuristic_test.brier
        )

        artifact = model.to_artifact(
            calibration=calibration,
            training=TrainingSummary(
                sample_count=len(chronological),
                train_count=len(train),
                test_count=len(test),
                heuristic_test_brier=heuristic_test.brier,
                heuristic_test_log_loss=heuristic_test.log_loss,
                trained_test_brier=trained_test.brier,
                trained_test_log_loss=trained_test.log_loss,
            ),
        )
        logger.info(
            "training_complete",
            heuristic_brier=heuristic_test.brier,
            heuristic_log_loss=heuristic_test.log_loss,
            trained_brier=trained_test.brier,
            trained_log_loss=trained_test.log_loss,
            improved=improved,
        )
        return TrainingResult(
            artifact=artifact,
            sample_count=len(chronological),
            train_count=len(train),
            test_count=len(test),
            heuristic_test=heuristic_test,
            trained_test=trained_test,
            improved=improved,
        )

    def persist(self, result: TrainingResult, options: TrainOptions) -> TrainingResult:
        """Save the artifact when it beat the heuristic or saving is forced."""
        if not result.improved and not options.force_save:
            logger.info("model_not_saved", reason="did_not_beat_heuristic")
            return result
        path = self.store.save(result.artifact, options.model_out)
        return replace(result, saved_path=path)

    async def train(self, options: TrainOptions) -> TrainingResult:
        prepared = await self.harness.build_samples(options)
        return self.persist(self.fit_prepared(prepared, options), options)
