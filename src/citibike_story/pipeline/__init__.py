# ============================================
# File: src/citibike_story/pipeline/__init__.py
# Description:
#   Public orchestration function for the citibike_story pipeline.
#
#   Exposes:
#     - run_story_aggregation()
# ============================================

from __future__ import annotations

from pathlib import Path
from typing import Dict, Mapping, Optional

from tqdm import tqdm

from . import geo_hierarchy, od_flows, stations
from .durations import duration_summary
from .export import write_outputs
from .load_sources import read_demographics, read_tract_features, read_trips
from .records import normalize_demographics, normalize_tracts, normalize_trips

# Default input/output folders
DEFAULT_DATA_DIR = Path("data")
DEFAULT_OUTPUT_DIR = Path("web/data/processed")

DEFAULT_TRIPS = DEFAULT_DATA_DIR / "202301-citibike-50k.csv"
DEFAULT_DEMOGRAPHICS = DEFAULT_DATA_DIR / "nyc_transit_equity.csv"
DEFAULT_TRACTS = DEFAULT_DATA_DIR / "nyc_tracts.geojson"


def run_story_aggregation(
    trips_source: str | Path = DEFAULT_TRIPS,
    demographics_source: str | Path = DEFAULT_DEMOGRAPHICS,
    tracts_source: str | Path = DEFAULT_TRACTS,
    output_dir: str | Path = DEFAULT_OUTPUT_DIR,
    time_bucket: str = stations.ALL_BUCKET,
    top_k: int = od_flows.TOP_K,
    zone_mapping: Optional[Mapping[str, str]] = None,
    chunksize: int = 100_000,
) -> Dict[str, Path]:
    """
    Load the three sources, build every aggregate and write them to
    ``output_dir``.

    Returns:
        dict:
            mapping from output name (stations, neighborhood_rollups,
            zone_rollups, tracts, od_pairs, od_flows, durations) to the
            written file.
    """
    out_dir = Path(output_dir)

    steps = tqdm(total=4, desc="Building story data", unit="step")

    # ------------------------------
    # Load + normalize
    # ------------------------------
    trip_rows = read_trips(trips_source, chunksize=chunksize)
    trips, bad_trips = normalize_trips(trip_rows)
    # id-keyed aggregates keep trips with bad coordinates, the map cannot
    _, unplottable = normalize_trips(trip_rows, require_coordinates=True)
    demographics, bad_demo = normalize_demographics(read_demographics(demographics_source))
    tracts, bad_tracts = normalize_tracts(read_tract_features(tracts_source), zone_mapping)
    print(
        f"[pipeline] {len(trips)} trips ({bad_trips} rejected, "
        f"{unplottable} without map coordinates), "
        f"{len(demographics)} demographic rows ({bad_demo} rejected), "
        f"{len(tracts)} tracts ({bad_tracts} rejected)"
    )
    steps.update(1)

    # ------------------------------
    # Stations (time bucket)
    # ------------------------------
    station_index = stations.build_station_index(trips)
    station_map = stations.recompute_bucket(trips, time_bucket, stations=station_index)
    print(f"[pipeline] {len(station_map)} stations, bucket '{time_bucket}'")
    steps.update(1)

    # ------------------------------
    # Equity layer
    # ------------------------------
    annotated, neighborhoods, zones = geo_hierarchy.build_equity_layer(tracts, demographics)
    print(f"[pipeline] {len(neighborhoods)} neighborhoods, {len(zones)} zones")
    steps.update(1)

    # ------------------------------
    # OD flows
    # ------------------------------
    pairs = od_flows.aggregate(trips)
    top_pairs = od_flows.top_k(pairs, top_k, station_map)
    used = od_flows.resolve_stations(top_pairs, station_map)
    print(f"[pipeline] {len(pairs)} OD pairs, kept top {len(top_pairs)}")
    steps.update(1)
    steps.close()

    outputs = write_outputs(
        out_dir,
        stations=station_map,
        neighborhoods=neighborhoods,
        zones=zones,
        annotated=annotated,
        top_pairs=top_pairs,
        used_stations=used,
        durations=duration_summary(trips),
    )

    print("[pipeline] Story aggregation completed.")
    return outputs


__all__ = ["run_story_aggregation"]
