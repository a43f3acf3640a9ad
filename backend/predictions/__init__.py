"""Prediction resolution: correlation, scoring, leaderboards."""
