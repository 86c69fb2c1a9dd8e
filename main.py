# main.py

from __future__ import annotations

import argparse
import sys
from pathlib import Path

# Ensure that the src/ directory is on sys.path when running
# `uv run main.py` from the project root.
ROOT_DIR = Path(__file__).resolve().parent
SRC_DIR = ROOT_DIR / "src"

if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from citibike_story.pipeline import (  # type: ignore[import]
    DEFAULT_DEMOGRAPHICS,
    DEFAULT_OUTPUT_DIR,
    DEFAULT_TRACTS,
    DEFAULT_TRIPS,
    run_story_aggregation,
)
from citibike_story.pipeline.load_sources import read_zone_mapping  # type: ignore[import]
from citibike_story.pipeline.od_flows import TOP_K  # type: ignore[import]
from citibike_story.pipeline.stations import ALL_BUCKET, TIME_BUCKETS  # type: ignore[import]


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Build station, equity and OD-flow aggregates for the Citi Bike story.",
    )
    parser.add_argument("--trips", default=str(DEFAULT_TRIPS), help="Trip CSV (path or URL).")
    parser.add_argument(
        "--demographics",
        default=str(DEFAULT_DEMOGRAPHICS),
        help="Transit equity CSV (path or URL).",
    )
    parser.add_argument("--tracts", default=str(DEFAULT_TRACTS), help="Tract GeoJSON (path or URL).")
    parser.add_argument("--out", default=str(DEFAULT_OUTPUT_DIR), help="Output directory.")
    parser.add_argument(
        "--time-bucket",
        default=ALL_BUCKET,
        choices=[ALL_BUCKET, *TIME_BUCKETS],
        help="Time bucket for station counts (default: all).",
    )
    parser.add_argument("--top-k", type=int, default=TOP_K, help="Number of OD pairs to keep.")
    parser.add_argument(
        "--zone-mapping",
        default=None,
        help="JSON object neighborhood -> zone replacing the built-in merge table.",
    )
    parser.add_argument("--chunksize", type=int, default=100_000, help="Trip CSV chunk size.")
    return parser.parse_args()


def main() -> None:
    """
    Build every aggregate consumed by the map story and the dashboard,
    then list the written files.
    """
    args = parse_args()
    if args.top_k < 0:
        raise SystemExit("--top-k must be >= 0")

    try:
        zone_mapping = read_zone_mapping(args.zone_mapping) if args.zone_mapping else None
        outputs = run_story_aggregation(
            trips_source=args.trips,
            demographics_source=args.demographics,
            tracts_source=args.tracts,
            output_dir=args.out,
            time_bucket=args.time_bucket,
            top_k=args.top_k,
            zone_mapping=zone_mapping,
            chunksize=args.chunksize,
        )
    except (FileNotFoundError, RuntimeError) as exc:
        raise SystemExit(str(exc)) from exc

    print("\nOutputs:")
    for name, out_path in outputs.items():
        print(f"  {name}: {out_path}")


if __name__ == "__main__":
    main()
