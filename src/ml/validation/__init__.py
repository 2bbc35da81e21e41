# src/ml/validation/__init__.py
"""Model validation tools."""

from .calibration import (
    BinaryMetrics,
    CalibrationBin,
    PlattModel,
    apply_platt_scaling,
    compute_binary_metrics,
    compute_calibration_bins,
    expected_calibration_error,
    fit_platt_scaling,
    sigmoid_array,
)

__all__ = [
    "BinaryMetrics",
    "CalibrationBin",
    "PlattModel",
    "apply_platt_scaling",
    "compute_binary_metrics",
    "compute_calibration_bins",
    "expected_calibration_error",
    "fit_platt_scaling",
    "sigmoid_array",
]
