# ============================================
# File: src/citibike_story/pipeline/records.py
# Description:
#   Normalization of the raw rows handed over by the loader:
#
#   - trip rows (Citi Bike monthly CSV, 2020+ schema):
#     start_station_id, start_station_name, start_lat, start_lng,
#     end_station_id, end_station_name, end_lat, end_lng,
#     started_at, ended_at, member_casual
#
#   - demographic rows (transit equity CSV):
#     GEOID / geoid, pct_no_vehicle, total_households, county_fips
#
#   - tract features (GeoJSON): geoid / GEOID / ct2020, ntaname, geometry
#
#   Every row becomes either a typed record or a Rejected value.
#   Nothing here aggregates and nothing here raises on dirty data.
# ============================================

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Optional

import pandas as pd

GEOID_KEYS = ("geoid", "GEOID", "ct2020")
NEIGHBORHOOD_KEY = "ntaname"

MEMBER = "member"
CASUAL = "casual"

# Rejection reasons
MISSING_STATION_ID = "missing_station_id"
INVALID_COORDINATES = "invalid_coordinates"
MISSING_GEOID = "missing_geoid"

# Neighborhoods merged into one display zone. Names not listed are their own zone.
ZONE_MAPPING: dict[str, str] = {
    "Coney Island-Sea Gate": "Coney Island & Brighton Beach",
    "Brighton Beach": "Coney Island & Brighton Beach",
    "East New York-City Line": "East New York & Spring Creek",
    "Spring Creek-Starrett City": "East New York & Spring Creek",
    "Soundview-Bruckner-Bronx River": "Soundview & Parkchester",
    "Parkchester": "Soundview & Parkchester",
}


# ------------------ field parsing ------------------


@dataclass(frozen=True)
class FieldResult:
    ok: bool
    value: Any = None
    error: Optional[str] = None


def _ok(value: Any) -> FieldResult:
    return FieldResult(ok=True, value=value)


def _fail(error: str) -> FieldResult:
    return FieldResult(ok=False, error=error)


def is_missing(value: object) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def parse_text(value: object) -> FieldResult:
    """Identifier / name field: non-empty stripped text."""
    if is_missing(value):
        return _fail("missing")
    text = str(value).strip()
    # CSV readers without dtype=str turn "5905" into 5905.0
    if isinstance(value, float) and value.is_integer():
        text = str(int(value))
    return _ok(text)


def parse_float(value: object) -> FieldResult:
    if is_missing(value):
        return _fail("missing")
    try:
        number = float(str(value).strip().replace(",", ""))
    except ValueError:
        return _fail(f"not numeric: {value!r}")
    if not math.isfinite(number):
        return _fail(f"not finite: {value!r}")
    return _ok(number)


def parse_count(value: object) -> FieldResult:
    """Household counts: finite and not negative."""
    result = parse_float(value)
    if not result.ok:
        return result
    if result.value < 0:
        return _fail(f"negative count: {value!r}")
    return result


def parse_coordinate(value: object) -> FieldResult:
    """
    Latitude / longitude field. Zero is rejected as well: the trip exports
    use 0 as a placeholder for docks without a recorded position.
    """
    result = parse_float(value)
    if not result.ok:
        return result
    if result.value == 0:
        return _fail("zero coordinate")
    return result


def normalize_geoid(value: object) -> Optional[str]:
    """
    Canonical tract identifier: stripped text, float artifacts removed and
    leading zeros dropped, so "036061000100", "36061000100" and
    36061000100.0 all compare equal.
    """
    result = parse_text(value)
    if not result.ok:
        return None
    text = result.value
    if text.endswith(".0"):
        text = text[:-2]
    text = text.lstrip("0")
    return text or "0"


def _first_present(row: Mapping[str, object], keys: Iterable[str]) -> object:
    for key in keys:
        if key in row and not is_missing(row[key]):
            return row[key]
    return None


# ------------------ records ------------------


@dataclass(frozen=True)
class Rejected:
    reason: str
    detail: str = ""


@dataclass(frozen=True)
class TripRecord:
    start_station_id: Optional[str]
    start_station_name: str
    start_lat: Optional[float]
    start_lng: Optional[float]
    end_station_id: Optional[str]
    end_station_name: str
    end_lat: Optional[float]
    end_lng: Optional[float]
    started_at: str
    user_type: str
    ended_at: str = ""

    @property
    def has_start_coordinates(self) -> bool:
        return self.start_lat is not None and self.start_lng is not None

    @property
    def has_end_coordinates(self) -> bool:
        return self.end_lat is not None and self.end_lng is not None


@dataclass(frozen=True)
class DemographicRecord:
    geo_id: str
    total_households: float
    pct_no_vehicle: float
    county_fips: str = ""


@dataclass(frozen=True)
class TractRecord:
    geo_id: str
    neighborhood_name: str
    zone_name: str
    total_households: float = 0.0
    pct_no_vehicle: float = 0.0
    geometry: dict = field(default_factory=dict, compare=False)
    properties: dict = field(default_factory=dict, compare=False)


# ------------------ row normalizers ------------------


def _coordinate_or_none(value: object) -> Optional[float]:
    result = parse_coordinate(value)
    return result.value if result.ok else None


def _text_or_empty(value: object) -> str:
    result = parse_text(value)
    return result.value if result.ok else ""


def normalize_trip_row(
    row: Mapping[str, object],
    require_coordinates: bool = False,
) -> TripRecord | Rejected:
    """
    Build a TripRecord from one raw trip row.

    A row is rejected when neither endpoint carries a station id. With
    ``require_coordinates`` (map plotting) it is also rejected when any of
    the four coordinates is missing, non-numeric or zero; otherwise invalid
    coordinates are kept as None and the row still counts for id-keyed
    aggregates.
    """
    start_id = parse_text(row.get("start_station_id"))
    end_id = parse_text(row.get("end_station_id"))
    if not start_id.ok and not end_id.ok:
        return Rejected(MISSING_STATION_ID)

    coords = [
        parse_coordinate(row.get(key))
        for key in ("start_lat", "start_lng", "end_lat", "end_lng")
    ]
    if require_coordinates:
        bad = [c.error for c in coords if not c.ok]
        if bad:
            return Rejected(INVALID_COORDINATES, "; ".join(bad))

    start_lat, start_lng, end_lat, end_lng = (c.value if c.ok else None for c in coords)
    # A single valid latitude without its longitude is not a position.
    if start_lat is None or start_lng is None:
        start_lat = start_lng = None
    if end_lat is None or end_lng is None:
        end_lat = end_lng = None

    user_type = _text_or_empty(row.get("member_casual")).lower()

    return TripRecord(
        start_station_id=start_id.value if start_id.ok else None,
        start_station_name=_text_or_empty(row.get("start_station_name")),
        start_lat=start_lat,
        start_lng=start_lng,
        end_station_id=end_id.value if end_id.ok else None,
        end_station_name=_text_or_empty(row.get("end_station_name")),
        end_lat=end_lat,
        end_lng=end_lng,
        started_at=_text_or_empty(row.get("started_at")),
        ended_at=_text_or_empty(row.get("ended_at")),
        user_type=MEMBER if user_type == MEMBER else CASUAL,
    )


def normalize_demographic_row(row: Mapping[str, object]) -> DemographicRecord | Rejected:
    geo_id = normalize_geoid(_first_present(row, ("GEOID", "geoid")))
    if geo_id is None:
        return Rejected(MISSING_GEOID)

    households = parse_count(row.get("total_households"))
    pct = parse_float(row.get("pct_no_vehicle"))

    return DemographicRecord(
        geo_id=geo_id,
        total_households=households.value if households.ok else 0.0,
        pct_no_vehicle=pct.value if pct.ok else 0.0,
        county_fips=_text_or_empty(row.get("county_fips")),
    )


def normalize_tract_feature(
    feature: Mapping[str, Any],
    zone_mapping: Optional[Mapping[str, str]] = None,
) -> TractRecord | Rejected:
    """
    Build a TractRecord from one GeoJSON feature. The identifier fallback
    chain (geoid, GEOID, ct2020) is resolved here, once. The zone comes
    from ``zone_mapping``, or ZONE_MAPPING when none is given; pass {} to
    keep every neighborhood as its own zone.
    """
    props = dict(feature.get("properties") or {})
    geo_id = normalize_geoid(_first_present(props, GEOID_KEYS))
    if geo_id is None:
        return Rejected(MISSING_GEOID)

    neighborhood = _text_or_empty(props.get(NEIGHBORHOOD_KEY))
    mapping = ZONE_MAPPING if zone_mapping is None else zone_mapping

    return TractRecord(
        geo_id=geo_id,
        neighborhood_name=neighborhood,
        zone_name=mapping.get(neighborhood, neighborhood),
        geometry=dict(feature.get("geometry") or {}),
        properties=props,
    )


# ------------------ batch helpers ------------------


def _rows(rows: Iterable[Mapping[str, object]] | pd.DataFrame) -> Iterable[Mapping[str, object]]:
    if isinstance(rows, pd.DataFrame):
        return rows.to_dict("records")
    return rows


def normalize_trips(
    rows: Iterable[Mapping[str, object]] | pd.DataFrame,
    require_coordinates: bool = False,
) -> tuple[list[TripRecord], int]:
    """Returns (records, number of rejected rows)."""
    records: list[TripRecord] = []
    rejected = 0
    for row in _rows(rows):
        result = normalize_trip_row(row, require_coordinates=require_coordinates)
        if isinstance(result, Rejected):
            rejected += 1
            continue
        records.append(result)
    return records, rejected


def normalize_demographics(
    rows: Iterable[Mapping[str, object]] | pd.DataFrame,
) -> tuple[dict[str, DemographicRecord], int]:
    """Returns ({geo_id: record}, number of rejected rows). Later rows win."""
    by_id: dict[str, DemographicRecord] = {}
    rejected = 0
    for row in _rows(rows):
        result = normalize_demographic_row(row)
        if isinstance(result, Rejected):
            rejected += 1
            continue
        by_id[result.geo_id] = result
    return by_id, rejected


def normalize_tracts(
    features: Iterable[Mapping[str, Any]],
    zone_mapping: Optional[Mapping[str, str]] = None,
) -> tuple[list[TractRecord], int]:
    records: list[TractRecord] = []
    rejected = 0
    for feature in features:
        result = normalize_tract_feature(feature, zone_mapping=zone_mapping)
        if isinstance(result, Rejected):
            rejected += 1
            continue
        records.append(result)
    return records, rejected
