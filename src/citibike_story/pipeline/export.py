# ============================================
# File: src/citibike_story/pipeline/export.py
# Description:
#   Turn the aggregates into the files read by the web layer:
#
#     stations.geojson              point per station (counts, share)
#     neighborhood_rollups.csv      NTA -> households, car-free rate
#     zone_rollups.csv              zone -> households, car-free rate
#     tracts_equity.geojson         tracts with denormalized rollups
#     od_top_pairs.json             ranked pairs + labels + control points
#     od_top_flows.geojson          curved flow lines + used stations
#     trip_durations.csv            duration histogram per user type
# ============================================

from __future__ import annotations

import json
from pathlib import Path
from typing import Mapping, Sequence

import pandas as pd
from shapely.geometry import Point

from .durations import DurationSummary
from .geo_hierarchy import AnnotatedTract, RollupAggregate
from .od_flows import CURVE_OFFSET, ODPair, curve_control_point, curve_line, pair_label
from .stations import StationAggregate

# ------------------ rows / features ------------------


def station_feature(station: StationAggregate) -> dict:
    return {
        "type": "Feature",
        "geometry": Point(station.lng, station.lat).__geo_interface__,
        "properties": {
            "id": station.id,
            "name": station.name,
            "departures": station.departure_count,
            "arrivals": station.arrival_count,
            "total": station.total,
            "member": station.member_count,
            "casual": station.casual_count,
            "depart_share": round(station.departure_share, 4),
        },
    }


def stations_geojson(stations: Mapping[str, StationAggregate]) -> dict:
    return {
        "type": "FeatureCollection",
        "features": [station_feature(s) for s in stations.values()],
    }


def rollups_frame(rollups: Mapping[str, RollupAggregate], key_column: str) -> pd.DataFrame:
    rows = [
        {
            key_column: r.key,
            "total_households": r.total_households,
            "weighted_car_free_rate": r.weighted_car_free_rate,
        }
        for r in rollups.values()
    ]
    df = pd.DataFrame(rows, columns=[key_column, "total_households", "weighted_car_free_rate"])
    if not df.empty:
        df = df.sort_values(
            ["weighted_car_free_rate", key_column],
            ascending=[False, True],
        ).reset_index(drop=True)
    return df


def tracts_geojson(annotated: Sequence[AnnotatedTract]) -> dict:
    return {
        "type": "FeatureCollection",
        "features": [
            {
                "type": "Feature",
                "geometry": a.tract.geometry,
                "properties": a.to_properties(),
            }
            for a in annotated
        ],
    }


def od_pair_rows(
    pairs: Sequence[ODPair],
    station_index: Mapping[str, StationAggregate],
    offset: float = CURVE_OFFSET,
) -> list[dict]:
    rows: list[dict] = []
    for rank, pair in enumerate(pairs, start=1):
        origin = station_index[pair.origin_id]
        destination = station_index[pair.destination_id]
        cx, cy = curve_control_point(
            (origin.lng, origin.lat),
            (destination.lng, destination.lat),
            offset,
        )
        rows.append(
            {
                "rank": rank,
                "origin_id": pair.origin_id,
                "destination_id": pair.destination_id,
                "label": pair_label(pair, station_index),
                "trip_count": pair.count,
                "control_lng": cx,
                "control_lat": cy,
            }
        )
    return rows


def od_flows_geojson(
    pairs: Sequence[ODPair],
    used_stations: Sequence[StationAggregate],
    station_index: Mapping[str, StationAggregate],
    offset: float = CURVE_OFFSET,
) -> dict:
    features: list[dict] = []
    for row, pair in zip(od_pair_rows(pairs, station_index, offset), pairs):
        origin = station_index[pair.origin_id]
        destination = station_index[pair.destination_id]
        line = curve_line((origin.lng, origin.lat), (destination.lng, destination.lat), offset)
        features.append(
            {
                "type": "Feature",
                "geometry": line.__geo_interface__,
                "properties": row,
            }
        )
    features.extend(station_feature(s) for s in used_stations)
    return {"type": "FeatureCollection", "features": features}


# ------------------ writers ------------------


def _write_json(path: Path, payload: object) -> Path:
    print(f"[export] Writing {path}")
    path.write_text(json.dumps(payload), encoding="utf-8")
    return path


def _write_csv(path: Path, df: pd.DataFrame) -> Path:
    print(f"[export] Writing {path}")
    df.to_csv(path, index=False)
    return path


def write_outputs(
    out_dir: Path,
    stations: Mapping[str, StationAggregate],
    neighborhoods: Mapping[str, RollupAggregate],
    zones: Mapping[str, RollupAggregate],
    annotated: Sequence[AnnotatedTract],
    top_pairs: Sequence[ODPair],
    used_stations: Sequence[StationAggregate],
    durations: DurationSummary,
) -> dict[str, Path]:
    out_dir.mkdir(parents=True, exist_ok=True)

    return {
        "stations": _write_json(out_dir / "stations.geojson", stations_geojson(stations)),
        "neighborhood_rollups": _write_csv(
            out_dir / "neighborhood_rollups.csv", rollups_frame(neighborhoods, "neighborhood")
        ),
        "zone_rollups": _write_csv(out_dir / "zone_rollups.csv", rollups_frame(zones, "zone")),
        "tracts": _write_json(out_dir / "tracts_equity.geojson", tracts_geojson(annotated)),
        "od_pairs": _write_json(out_dir / "od_top_pairs.json", od_pair_rows(top_pairs, stations)),
        "od_flows": _write_json(
            out_dir / "od_top_flows.geojson",
            od_flows_geojson(top_pairs, used_stations, stations),
        ),
        "durations": _write_csv(out_dir / "trip_durations.csv", durations.to_frame()),
    }
