# ============================================
# File: src/citibike_story/pipeline/load_sources.py
# Description:
#   Read the raw sources used by the story:
#
#   - Citi Bike trip sample CSV (read in chunks, every column as str)
#   - transit equity CSV (GEOID, pct_no_vehicle, total_households, ...)
#   - census tract GeoJSON (geoid / GEOID, ntaname, polygon geometry)
#   - optional zone-mapping JSON ({"neighborhood": "zone", ...})
#
#   Every source can be a local path or an http(s) URL.
#   Whole-file failures (missing file, HTTP error) are raised here;
#   row-level problems are left to records.py.
# ============================================

from __future__ import annotations

import io
import json
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator

import pandas as pd
import requests
from tqdm import tqdm

TRIP_COLUMNS = [
    "start_station_id",
    "start_station_name",
    "start_lat",
    "start_lng",
    "end_station_id",
    "end_station_name",
    "end_lat",
    "end_lng",
    "started_at",
    "ended_at",
    "member_casual",
]

REQUEST_TIMEOUT = 60


def is_url(source: str | Path) -> bool:
    return str(source).startswith(("http://", "https://"))


def _fetch_text(url: str) -> str:
    print(f"[load_sources] Downloading {url}")
    resp = requests.get(url, timeout=REQUEST_TIMEOUT)
    resp.raise_for_status()
    return resp.text


def _local_path(source: str | Path) -> Path:
    path = Path(source)
    if not path.exists() or not path.is_file():
        raise FileNotFoundError(f"Source file not found: {path}")
    return path


def _csv_handle(source: str | Path) -> io.StringIO | Path:
    if is_url(source):
        return io.StringIO(_fetch_text(str(source)))
    return _local_path(source)


def iter_trip_chunks(source: str | Path, chunksize: int = 100_000) -> Iterator[pd.DataFrame]:
    """
    Yield trip rows in chunks. Only the known columns are kept; columns
    missing from the file come back as empty values.
    """
    handle = _csv_handle(source)
    reader: Iterable[pd.DataFrame] = pd.read_csv(
        handle,
        dtype=str,
        chunksize=chunksize,
        usecols=lambda c: c.strip() in TRIP_COLUMNS,
    )
    for chunk in reader:
        chunk = chunk.rename(columns=lambda c: c.strip())
        chunk = chunk.dropna(how="all")
        if chunk.empty:
            continue
        yield chunk.reindex(columns=TRIP_COLUMNS)


def read_trips(source: str | Path, chunksize: int = 100_000) -> pd.DataFrame:
    print(f"[load_sources] Reading trips from {source}")
    chunks = list(tqdm(iter_trip_chunks(source, chunksize=chunksize), desc="Trip chunks", unit="chunk"))
    if not chunks:
        return pd.DataFrame(columns=TRIP_COLUMNS)
    return pd.concat(chunks, ignore_index=True)


def read_demographics(source: str | Path) -> pd.DataFrame:
    print(f"[load_sources] Reading demographics from {source}")
    # GEOIDs must stay text, pandas would turn them into floats
    return pd.read_csv(_csv_handle(source), dtype=str)


def read_json(source: str | Path) -> Any:
    if is_url(source):
        return json.loads(_fetch_text(str(source)))
    return json.loads(_local_path(source).read_text(encoding="utf-8"))


def read_tract_features(source: str | Path) -> list[dict]:
    print(f"[load_sources] Reading tracts from {source}")
    data = read_json(source)
    features = data.get("features") if isinstance(data, dict) else None
    if not isinstance(features, list):
        raise RuntimeError(f"GeoJSON source has no feature list: {source}")
    return features


def read_zone_mapping(source: str | Path) -> Dict[str, str]:
    data = read_json(source)
    if not isinstance(data, dict):
        raise RuntimeError(f"Zone mapping must be a JSON object: {source}")
    return {str(k): str(v) for k, v in data.items()}
