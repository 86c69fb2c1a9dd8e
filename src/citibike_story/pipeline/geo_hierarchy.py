# ============================================
# File: src/citibike_story/pipeline/geo_hierarchy.py
# Description:
#   Car-free household rates on the census tract -> neighborhood (NTA)
#   -> zone hierarchy used by the equity layer.
#
#   1) join_demographics: stamp households + pct_no_vehicle on every
#      tract by GEOID (unmatched tracts get zeros, they still render)
#   2) rollup: household-weighted average rate per key
#        rate = sum(households * pct) / sum(households)
#   3) annotate_tracts: denormalize the neighborhood and zone values
#      back onto each tract for the map
#
#   Zones merge neighborhoods that the ACS tables only report jointly
#   (see ZONE_MAPPING). Neighborhoods not in the table are their own zone.
# ============================================

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, replace
from typing import Callable, Dict, Iterable, Mapping, Optional, Sequence

from .records import ZONE_MAPPING, DemographicRecord, TractRecord, normalize_geoid

# County FIPS (with or without padding) -> borough label
FIPS_TO_BOROUGH: Dict[str, str] = {
    "5": "Bronx",
    "47": "Brooklyn",
    "61": "Manhattan",
    "81": "Queens",
    "85": "Staten Island",
}
DEFAULT_BOROUGH = "NYC"

LevelKeyFn = Callable[[TractRecord], Optional[str]]


@dataclass(frozen=True)
class RollupAggregate:
    key: str
    total_households: float
    weighted_car_free_rate: float


@dataclass(frozen=True)
class AnnotatedTract:
    tract: TractRecord
    borough: str
    nta_total_households: float
    nta_avg_car_free: float
    display_name: str
    display_households: float
    display_avg_car_free: float

    def to_properties(self) -> dict:
        """Feature properties for the equity layer."""
        props = dict(self.tract.properties)
        props.update(
            {
                "geoid_normalized": self.tract.geo_id,
                "ntaname": self.tract.neighborhood_name,
                "zone_name": self.tract.zone_name,
                "borough": self.borough,
                "pct_car_free": self.tract.pct_no_vehicle,
                "total_households": self.tract.total_households,
                "nta_total_households": self.nta_total_households,
                "nta_avg_car_free": self.nta_avg_car_free,
                "display_name": self.display_name,
                "display_households": self.display_households,
                "display_avg_car_free": self.display_avg_car_free,
            }
        )
        return props


# ------------------ level keys ------------------


def resolve_zone(neighborhood: str, zone_mapping: Optional[Mapping[str, str]] = None) -> str:
    mapping = ZONE_MAPPING if zone_mapping is None else zone_mapping
    return mapping.get(neighborhood, neighborhood)


def neighborhood_key(tract: TractRecord) -> Optional[str]:
    return tract.neighborhood_name or None


def zone_key(tract: TractRecord) -> Optional[str]:
    return tract.zone_name or None


def assign_zones(
    tracts: Iterable[TractRecord],
    zone_mapping: Optional[Mapping[str, str]] = None,
) -> list[TractRecord]:
    """Re-resolve every tract's zone under a (possibly different) merge table."""
    return [
        replace(t, zone_name=resolve_zone(t.neighborhood_name, zone_mapping))
        for t in tracts
    ]


def borough_for_fips(county_fips: Optional[str]) -> str:
    if not county_fips:
        return DEFAULT_BOROUGH
    key = str(county_fips).strip().lstrip("0")
    return FIPS_TO_BOROUGH.get(key, DEFAULT_BOROUGH)


# ------------------ join + rollup ------------------


def _by_normalized_id(
    demographics_by_id: Mapping[str, DemographicRecord],
) -> Dict[str, DemographicRecord]:
    lookup: Dict[str, DemographicRecord] = {}
    for raw_id, record in demographics_by_id.items():
        key = normalize_geoid(raw_id)
        if key is not None:
            lookup[key] = record
    return lookup


def join_demographics(
    tracts: Iterable[TractRecord],
    demographics_by_id: Mapping[str, DemographicRecord],
) -> list[TractRecord]:
    """
    Copy households and car-free rate onto each tract. Keys of
    ``demographics_by_id`` are normalized again here so callers can pass
    raw GEOIDs.
    """
    lookup = _by_normalized_id(demographics_by_id)
    joined: list[TractRecord] = []
    for tract in tracts:
        record = lookup.get(tract.geo_id)
        if record is None:
            joined.append(replace(tract, total_households=0.0, pct_no_vehicle=0.0))
        else:
            joined.append(
                replace(
                    tract,
                    total_households=record.total_households,
                    pct_no_vehicle=record.pct_no_vehicle,
                )
            )
    return joined


def rollup(tracts: Iterable[TractRecord], level_key: LevelKeyFn) -> Dict[str, RollupAggregate]:
    """
    Household-weighted car-free rate per key. Tracts whose key is empty
    are skipped; a key with zero households gets a rate of 0.
    """
    sums: dict[str, dict[str, float]] = defaultdict(
        lambda: {"households": 0.0, "car_free_households": 0.0}
    )
    for tract in tracts:
        key = level_key(tract)
        if not key:
            continue
        stats = sums[key]
        stats["households"] += tract.total_households
        stats["car_free_households"] += tract.total_households * tract.pct_no_vehicle

    out: Dict[str, RollupAggregate] = {}
    for key, stats in sums.items():
        households = stats["households"]
        rate = stats["car_free_households"] / households if households > 0 else 0.0
        out[key] = RollupAggregate(
            key=key,
            total_households=households,
            weighted_car_free_rate=rate,
        )
    return out


def annotate_tracts(
    tracts: Sequence[TractRecord],
    neighborhoods: Mapping[str, RollupAggregate],
    zones: Mapping[str, RollupAggregate],
    demographics_by_id: Optional[Mapping[str, DemographicRecord]] = None,
) -> list[AnnotatedTract]:
    demographics = _by_normalized_id(demographics_by_id or {})
    annotated: list[AnnotatedTract] = []

    for tract in tracts:
        nta = neighborhoods.get(tract.neighborhood_name)
        if nta is not None and nta.total_households > 0:
            nta_households = nta.total_households
            nta_rate = nta.weighted_car_free_rate
        else:
            nta_households = 0.0
            nta_rate = 0.0

        zone = zones.get(tract.zone_name)
        if zone is not None and zone.total_households > 0:
            display_name = tract.zone_name
            display_households = zone.total_households
            display_rate = zone.weighted_car_free_rate
        else:
            display_name = tract.neighborhood_name
            display_households = 0.0
            display_rate = 0.0

        record = demographics.get(tract.geo_id)
        annotated.append(
            AnnotatedTract(
                tract=tract,
                borough=borough_for_fips(record.county_fips if record else None),
                nta_total_households=nta_households,
                nta_avg_car_free=nta_rate,
                display_name=display_name,
                display_households=display_households,
                display_avg_car_free=display_rate,
            )
        )
    return annotated


def build_equity_layer(
    tracts: Sequence[TractRecord],
    demographics_by_id: Mapping[str, DemographicRecord],
) -> tuple[list[AnnotatedTract], Dict[str, RollupAggregate], Dict[str, RollupAggregate]]:
    """
    Join, roll up at both levels and annotate. Tracts keep the zone they
    were normalized with; use assign_zones to switch merge tables.

    Returns:
        (annotated tracts, neighborhood rollups, zone rollups)
    """
    joined = join_demographics(tracts, demographics_by_id)
    neighborhoods = rollup(joined, neighborhood_key)
    zones = rollup(joined, zone_key)
    annotated = annotate_tracts(joined, neighborhoods, zones, demographics_by_id)
    return annotated, neighborhoods, zones
