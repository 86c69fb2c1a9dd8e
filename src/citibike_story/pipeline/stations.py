# ============================================
# File: src/citibike_story/pipeline/stations.py
# Description:
#   Station-level counts for the station layer and the
#   departures-vs-arrivals map:
#
#     station id -> departures, arrivals, total, member / casual
#                   departures, departure share
#
#   Station identity (name, lat, lng) is fixed at the first sighting
#   of the id with usable coordinates and is never revised.
#   Counts can be recomputed for a time bucket (morning / afternoon /
#   evening / night / all) without losing stations that have no trips
#   in that bucket.
# ============================================

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Mapping, Optional, Sequence

from .records import MEMBER, TripRecord

NEUTRAL_SHARE = 0.5
UNKNOWN_HOUR = -1

ALL_BUCKET = "all"
# Half-open hour ranges [start, end)
TIME_BUCKETS: Dict[str, tuple[int, int]] = {
    "morning": (6, 12),
    "afternoon": (12, 18),
    "evening": (18, 24),
    "night": (0, 6),
}

# "2023-01-01 13:36:56.305" / "2023-01-01T13:36:56"
_HOUR_RE = re.compile(r"^\s*\d{4}-\d{2}-\d{2}[ T](\d{2}):")

TripPredicate = Callable[[TripRecord], bool]


@dataclass(frozen=True)
class StationAggregate:
    id: str
    name: str
    lat: float
    lng: float
    departure_count: int = 0
    arrival_count: int = 0
    member_count: int = 0
    casual_count: int = 0

    @property
    def total(self) -> int:
        return self.departure_count + self.arrival_count

    @property
    def departure_share(self) -> float:
        if self.total > 0:
            return self.departure_count / self.total
        return NEUTRAL_SHARE


# ------------------ time buckets ------------------


def parse_hour(started_at: Optional[str]) -> int:
    """Hour of day (0-23) from the start timestamp text, or UNKNOWN_HOUR."""
    if not started_at:
        return UNKNOWN_HOUR
    match = _HOUR_RE.match(started_at)
    if not match:
        return UNKNOWN_HOUR
    hour = int(match.group(1))
    return hour if 0 <= hour < 24 else UNKNOWN_HOUR


def in_time_bucket(hour: int, bucket: str) -> bool:
    if bucket == ALL_BUCKET:
        return True
    if bucket not in TIME_BUCKETS:
        raise ValueError(f"Unknown time bucket: {bucket!r}")
    if hour == UNKNOWN_HOUR:
        return False
    start, end = TIME_BUCKETS[bucket]
    return start <= hour < end


def bucket_predicate(bucket: str) -> TripPredicate:
    """
    Predicate selecting the trips of one time bucket. Trips whose hour
    cannot be parsed only match the "all" bucket.
    """
    if bucket != ALL_BUCKET and bucket not in TIME_BUCKETS:
        raise ValueError(f"Unknown time bucket: {bucket!r}")

    def predicate(trip: TripRecord) -> bool:
        return in_time_bucket(parse_hour(trip.started_at), bucket)

    return predicate


# ------------------ identity + counting ------------------


def build_station_index(trips: Iterable[TripRecord]) -> Dict[str, StationAggregate]:
    """
    Insert-if-absent pass over both endpoints of every trip. Returns
    zero-count stations keyed by id, in first-sighting order.
    """
    index: Dict[str, StationAggregate] = {}
    for trip in trips:
        if trip.start_station_id and trip.has_start_coordinates:
            if trip.start_station_id not in index:
                index[trip.start_station_id] = StationAggregate(
                    id=trip.start_station_id,
                    name=trip.start_station_name,
                    lat=trip.start_lat,
                    lng=trip.start_lng,
                )
        if trip.end_station_id and trip.has_end_coordinates:
            if trip.end_station_id not in index:
                index[trip.end_station_id] = StationAggregate(
                    id=trip.end_station_id,
                    name=trip.end_station_name,
                    lat=trip.end_lat,
                    lng=trip.end_lng,
                )
    return index


def _count(
    index: Mapping[str, StationAggregate],
    trips: Iterable[TripRecord],
) -> Dict[str, StationAggregate]:
    counts: Dict[str, list[int]] = {sid: [0, 0, 0, 0] for sid in index}

    for trip in trips:
        origin = counts.get(trip.start_station_id) if trip.start_station_id else None
        if origin is not None:
            origin[0] += 1
            if trip.user_type == MEMBER:
                origin[2] += 1
            else:
                origin[3] += 1
        destination = counts.get(trip.end_station_id) if trip.end_station_id else None
        if destination is not None:
            destination[1] += 1

    out: Dict[str, StationAggregate] = {}
    for sid, station in index.items():
        departures, arrivals, members, casuals = counts[sid]
        out[sid] = StationAggregate(
            id=station.id,
            name=station.name,
            lat=station.lat,
            lng=station.lng,
            departure_count=departures,
            arrival_count=arrivals,
            member_count=members,
            casual_count=casuals,
        )
    return out


def build_stations(trips: Sequence[TripRecord]) -> Dict[str, StationAggregate]:
    """One aggregate per station id over the whole trip stream."""
    return _count(build_station_index(trips), trips)


def recompute(
    trips: Sequence[TripRecord],
    predicate: TripPredicate,
    stations: Optional[Mapping[str, StationAggregate]] = None,
) -> Dict[str, StationAggregate]:
    """
    Recount the stations over the trips matching ``predicate``.

    Identity comes from ``stations`` when given, otherwise from the full
    (unfiltered) trip stream, so stations without trips in the bucket are
    still present with zero counts and a neutral departure share. A new
    map is returned; ``stations`` is left untouched.
    """
    index = stations if stations is not None else build_station_index(trips)
    return _count(index, (trip for trip in trips if predicate(trip)))


def recompute_bucket(
    trips: Sequence[TripRecord],
    bucket: str,
    stations: Optional[Mapping[str, StationAggregate]] = None,
) -> Dict[str, StationAggregate]:
    return recompute(trips, bucket_predicate(bucket), stations=stations)
