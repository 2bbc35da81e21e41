"""Match-outcome prediction for ranked 1v1 speedrun matches.

This module turns recent match history into per-player form features,
scores head-to-head win probabilities (heuristic or trained logistic
model), and provides the chronological backtest and offline trainer used
to fit and calibrate the model artifact.
"""
