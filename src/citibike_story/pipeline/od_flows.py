# ============================================
# File: src/citibike_story/pipeline/od_flows.py
# Description:
#   Origin-destination flows for the "top routes" bar chart and the
#   spider map:
#
#     (origin station, destination station) -> trip_count
#
#   Self-loops (round trips to the same dock) are dropped while counting.
#   The top-K selection only keeps pairs whose two stations can be drawn
#   and keeps the first-seen order among pairs with equal counts.
# ============================================

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, Mapping, Sequence

from shapely.geometry import LineString

from .records import TripRecord
from .stations import StationAggregate

TOP_K = 10
CURVE_OFFSET = 0.2
CURVE_SAMPLES = 16


@dataclass(frozen=True)
class ODPair:
    origin_id: str
    destination_id: str
    count: int


def aggregate(trips: Iterable[TripRecord]) -> list[ODPair]:
    """
    Count directed pairs. The result is in first-encountered order, which
    is the tie-break order used by top_k.
    """
    counts: Dict[tuple[str, str], int] = {}
    for trip in trips:
        origin = trip.start_station_id
        destination = trip.end_station_id
        if not origin or not destination or origin == destination:
            continue
        key = (origin, destination)
        counts[key] = counts.get(key, 0) + 1

    return [ODPair(origin_id=o, destination_id=d, count=c) for (o, d), c in counts.items()]


def top_k(
    pairs: Sequence[ODPair],
    k: int,
    station_index: Mapping[str, StationAggregate],
) -> list[ODPair]:
    """
    The ``k`` busiest pairs whose origin and destination are both in
    ``station_index``. Ties keep their input order.
    """
    if k < 0:
        raise ValueError(f"k must be >= 0, got {k}")

    drawable = [
        p
        for p in pairs
        if p.origin_id != p.destination_id
        and p.origin_id in station_index
        and p.destination_id in station_index
    ]
    # sorted() is stable: equal counts stay in input order
    ranked = sorted(drawable, key=lambda p: p.count, reverse=True)
    return ranked[:k]


def resolve_stations(
    pairs: Iterable[ODPair],
    station_index: Mapping[str, StationAggregate],
) -> list[StationAggregate]:
    """Stations touched by at least one pair, in first-reference order."""
    used: Dict[str, StationAggregate] = {}
    for pair in pairs:
        for sid in (pair.origin_id, pair.destination_id):
            if sid not in used and sid in station_index:
                used[sid] = station_index[sid]
    return list(used.values())


# ------------------ curve geometry ------------------


def curve_control_point(
    start: tuple[float, float],
    end: tuple[float, float],
    offset: float = CURVE_OFFSET,
) -> tuple[float, float]:
    """
    Quadratic Bezier control point: the segment midpoint pushed sideways
    by ``offset`` times the segment length (perpendicular to the segment).
    """
    x1, y1 = start
    x2, y2 = end
    mx = (x1 + x2) / 2
    my = (y1 + y2) / 2
    dx = x2 - x1
    dy = y2 - y1
    return (mx - offset * dy, my + offset * dx)


def curve_line(
    start: tuple[float, float],
    end: tuple[float, float],
    offset: float = CURVE_OFFSET,
    samples: int = CURVE_SAMPLES,
) -> LineString:
    cx, cy = curve_control_point(start, end, offset)
    coords: list[tuple[float, float]] = []
    for i in range(samples + 1):
        t = i / samples
        a = (1 - t) ** 2
        b = 2 * (1 - t) * t
        c = t**2
        coords.append(
            (
                a * start[0] + b * cx + c * end[0],
                a * start[1] + b * cy + c * end[1],
            )
        )
    return LineString(coords)


def pair_label(pair: ODPair, station_index: Mapping[str, StationAggregate]) -> str:
    origin = station_index.get(pair.origin_id)
    destination = station_index.get(pair.destination_id)
    start_name = (origin.name if origin else "") or pair.origin_id
    end_name = (destination.name if destination else "") or pair.destination_id
    return f"{start_name} → {end_name}"
