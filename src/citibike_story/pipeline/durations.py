# ============================================
# File: src/citibike_story/pipeline/durations.py
# Description:
#   Trip duration histogram (members vs casual riders) for the
#   dashboard duration chart.
#
#   - duration = ended_at - started_at, in minutes
#   - outliers (<= 0 or >= 180 min) are dropped first
#   - then only trips up to max_minutes are binned, bin_size wide
# ============================================

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, Optional

import pandas as pd

from .records import CASUAL, MEMBER, TripRecord

MAX_DURATION_MINUTES = 60
BIN_SIZE_MINUTES = 5
OUTLIER_CUTOFF_MINUTES = 180

USER_TYPES = (MEMBER, CASUAL)


@dataclass(frozen=True)
class DurationSummary:
    edges: list[float]
    counts: Dict[str, list[int]]
    means: Dict[str, Optional[float]]

    def to_frame(self) -> pd.DataFrame:
        rows: list[dict] = []
        for user_type in USER_TYPES:
            for i, count in enumerate(self.counts[user_type]):
                rows.append(
                    {
                        "user_type": user_type,
                        "bin_start_min": self.edges[i],
                        "bin_end_min": self.edges[i + 1],
                        "trips": count,
                        "mean_duration_min": self.means[user_type],
                    }
                )
        return pd.DataFrame(
            rows,
            columns=["user_type", "bin_start_min", "bin_end_min", "trips", "mean_duration_min"],
        )


def bin_edges(max_minutes: float, bin_size: float) -> list[float]:
    if bin_size <= 0 or max_minutes <= 0:
        raise ValueError("max_minutes and bin_size must be positive")
    edges: list[float] = []
    edge = 0.0
    while edge < max_minutes:
        edges.append(edge)
        edge += bin_size
    edges.append(float(max_minutes))
    return edges


def duration_minutes(trip: TripRecord) -> Optional[float]:
    """Trip duration in minutes, or None when a timestamp does not parse."""
    start = pd.to_datetime(trip.started_at or None, errors="coerce")
    end = pd.to_datetime(trip.ended_at or None, errors="coerce")
    if pd.isna(start) or pd.isna(end):
        return None
    return (end - start).total_seconds() / 60.0


def duration_summary(
    trips: Iterable[TripRecord],
    max_minutes: float = MAX_DURATION_MINUTES,
    bin_size: float = BIN_SIZE_MINUTES,
) -> DurationSummary:
    trips = list(trips)
    frame = pd.DataFrame(
        {
            "user_type": pd.Series([t.user_type for t in trips], dtype=object),
            "duration": pd.Series([duration_minutes(t) for t in trips], dtype=float),
        }
    )

    frame = frame[(frame["duration"] > 0) & (frame["duration"] < OUTLIER_CUTOFF_MINUTES)]
    frame = frame[frame["duration"] <= max_minutes]

    edges = bin_edges(max_minutes, bin_size)
    n_bins = len(edges) - 1
    # right=False leaves duration == max_minutes outside; it belongs to the last bin
    codes = pd.cut(frame["duration"], bins=edges, right=False, labels=False)
    codes = codes.fillna(n_bins - 1).astype(int)

    counts: Dict[str, list[int]] = {}
    means: Dict[str, Optional[float]] = {}
    for user_type in USER_TYPES:
        mask = frame["user_type"] == user_type
        per_bin = codes[mask].value_counts()
        counts[user_type] = [int(per_bin.get(i, 0)) for i in range(n_bins)]
        means[user_type] = float(frame.loc[mask, "duration"].mean()) if mask.any() else None

    return DurationSummary(edges=edges, counts=counts, means=means)
