# src/ml/validation/calibration.py
"""Binary-outcome metrics and probability calibration.

This module provides:
- Accuracy / Brier score / log-loss summaries for P(A wins) predictions
- Expected Calibration Error (ECE)
- Equal-width calibration bins (reliability table)
- Platt scaling fit and application
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional

import numpy as np
from numpy.typing import ArrayLike

from ..model import PROBABILITY_EPSILON, Calibration

# Platt scaling shares the artifact's calibration record.
PlattModel = Calibration

MIN_PLATT_SAMPLES = 10


@dataclass(frozen=True)
class BinaryMetrics:
    count: int
    accuracy: float
    avg_confidence: float
    brier: float
    log_loss: float
    ece: float


@dataclass(frozen=True)
class CalibrationBin:
    start: float
    end: float
    count: int
    mean_predicted: float
    observed_win_rate: float


def _clip(y_pred: ArrayLike) -> np.ndarray:
    return np.clip(np.asarray(y_pred, dtype=float), PROBABILITY_EPSILON, 1 - PROBABILITY_EPSILON)


def _logit(y_pred: ArrayLike) -> np.ndarray:
    p = _clip(y_pred)
    return np.log(p / (1 - p))


def sigmoid_array(z: ArrayLike) -> np.ndarray:
    # exp of a non-positive argument only, so no overflow warnings.
    z = np.asarray(z, dtype=float)
    ez = np.exp(-np.abs(z))
    return np.where(z >= 0, 1.0 / (1.0 + ez), ez / (1.0 + ez))


def expected_calibration_error(
    y_true: ArrayLike,
    y_pred: ArrayLike,
    n_bins: int = 10,
) -> float:
    """Calculate Expected Calibration Error (ECE).

    ECE measures the weighted average absolute difference between
    accuracy and confidence in each bin:

        ECE = sum_k (n_k / N) * |accuracy_k - confidence_k|

    Args:
        y_true: Binary ground truth labels (0 or 1)
        y_pred: Predicted probabilities in [0, 1]
        n_bins: Number of bins for grouping predictions

    Returns:
        ECE value in [0, 1], where 0 is perfectly calibrated
    """
    y_true = np.asarray(y_true, dtype=float)
    y_pred = np.asarray(y_pred, dtype=float)

    n = len(y_true)
    if n == 0:
        return 0.0

    bin_edges = np.linspace(0, 1, n_bins + 1)
    bin_indices = np.digitize(y_pred, bin_edges[1:-1])

    ece = 0.0
    for bin_idx in range(n_bins):
        mask = bin_indices == bin_idx
        n_k = np.sum(mask)
        if n_k == 0:
            continue
        accuracy_k = np.mean(y_true[mask])
        confidence_k = np.mean(y_pred[mask])
        ece += (n_k / n) * abs(accuracy_k - confidence_k)

    return float(ece)


def compute_binary_metrics(
    y_true: ArrayLike,
    y_pred: ArrayLike,
    confidence: Optional[ArrayLike] = None,
) -> BinaryMetrics:
    """Accuracy, Brier score and log-loss for P(A wins) predictions.

    Accuracy counts ``(p >= 0.5) == label``; probabilities are clipped away
    from 0 and 1 before any logarithm.
    """
    y_true = np.asarray(y_true, dtype=float)
    n = len(y_true)
    if n == 0:
        return BinaryMetrics(count=0, accuracy=0.0, avg_confidence=0.0, brier=0.0, log_loss=0.0, ece=0.0)

    p = _clip(y_pred)
    predicted = (p >= 0.5).astype(float)
    avg_confidence = 0.0
    if confidence is not None:
        avg_confidence = float(np.mean(np.clip(np.asarray(confidence, dtype=float), 0, 1)))

    return BinaryMetrics(
        count=n,
        accuracy=float(np.mean(predicted == y_true)),
        avg_confidence=avg_confidence,
        brier=float(np.mean((p - y_true) ** 2)),
        log_loss=float(np.mean(-(y_true * np.log(p) + (1 - y_true) * np.log(1 - p)))),
        ece=expected_calibration_error(y_true, p),
    )


def compute_calibration_bins(
    y_true: ArrayLike,
    y_pred: ArrayLike,
    n_bins: int = 10,
) -> list[CalibrationBin]:
    """Bucket predictions into equal-width probability bins.

    Empty bins are kept (count 0) so the table always has ``n_bins`` rows.
    """
    n_bins = max(2, int(n_bins))
    y_true = np.asarray(y_true, dtype=float)
    y_pred = np.asarray(y_pred, dtype=float)
    indices = np.minimum(
        n_bins - 1, np.floor(np.clip(y_pred, 0, 1) * n_bins).astype(int)
    )

    bins: list[CalibrationBin] = []
    for bin_idx in range(n_bins):
        mask = indices == bin_idx
        n_k = int(np.sum(mask))
        bins.append(
            CalibrationBin(
                start=bin_idx / n_bins,
                end=(bin_idx + 1) / n_bins,
                count=n_k,
                mean_predicted=float(np.mean(y_pred[mask])) if n_k else 0.0,
                observed_win_rate=float(np.mean(y_true[mask])) if n_k else 0.0,
            )
        )
    return bins


def fit_platt_scaling(
    y_true: ArrayLike,
    y_pred: ArrayLike,
    iterations: int = 40,
    ridge: float = 1e-4,
) -> Optional[PlattModel]:
    """Fit ``sigmoid(a * logit(p) + b)`` to labels by Newton's method.

    Starts from the identity map (a=1, b=0). Returns ``None`` with fewer
    than 10 samples or when the fit does not converge to finite values.
    """
    y_true = np.asarray(y_true, dtype=float)
    s = _logit(y_pred)
    if len(y_true) < MIN_PLATT_SAMPLES:
        return None

    a, b = 1.0, 0.0
    for _ in range(iterations):
        p = sigmoid_array(a * s + b)
        diff = p - y_true
        w = p * (1 - p)

        g_a = float(np.sum(diff * s))
        g_b = float(np.sum(diff))
        h_aa = ridge + float(np.sum(w * s * s))
        h_ab = float(np.sum(w * s))
        h_bb = ridge + float(np.sum(w))

        det = h_aa * h_bb - h_ab * h_ab
        if not math.isfinite(det) or abs(det) < 1e-12:
            break

        step_a = (h_bb * g_a - h_ab * g_b) / det
        step_b = (h_aa * g_b - h_ab * g_a) / det
        a -= step_a
        b -= step_b

        if abs(step_a) < 1e-6 and abs(step_b) < 1e-6:
            break

    if not math.isfinite(a) or not math.isfinite(b):
        return None
    return PlattModel(a=a, b=b)


def apply_platt_scaling(y_pred: ArrayLike, model: PlattModel) -> np.ndarray:
    """Recalibrate probabilities; the result stays inside (1e-6, 1-1e-6)."""
    calibrated = sigmoid_array(model.a * _logit(y_pred) + model.b)
    return _clip(calibrated)
