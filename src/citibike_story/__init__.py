"""
Citi Bike data story package.

This package contains:
- pipeline: normalization of raw trip / tract / demographic rows and the
  aggregations consumed by the map story and the dashboard charts
  (station counts, neighborhood / zone rollups, top OD flows, durations).
"""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("citibike-story")
except PackageNotFoundError:  # pragma: no cover - package not installed
    __version__ = "0.0.0"
