import json
import os
import subprocess
import sys
import tempfile
import unittest
from pathlib import Path

import pandas as pd


class TestStoryAggregationEndToEnd(unittest.TestCase):
    def _write_trips_csv(self, path: Path):
        rows = [
            "ride_id,rideable_type,started_at,ended_at,start_station_name,start_station_id,"
            "end_station_name,end_station_id,start_lat,start_lng,end_lat,end_lng,member_casual",
            "r1,classic_bike,2023-01-01 08:00:00,2023-01-01 08:10:00,Stop A,A,Stop B,B,40.70,-73.99,40.72,-73.98,member",
            "r2,classic_bike,2023-01-01 08:30:00,2023-01-01 08:45:00,Stop A,A,Stop B,B,40.70,-73.99,40.72,-73.98,casual",
            "r3,electric_bike,2023-01-01 13:00:00,2023-01-01 13:20:00,Stop B,B,Stop A,A,40.72,-73.98,40.70,-73.99,member",
            "r4,electric_bike,2023-01-01 19:00:00,2023-01-01 19:05:00,Stop C,C,Stop C,C,40.74,-73.97,40.74,-73.97,member",
            "r5,electric_bike,2023-01-01 22:00:00,2023-01-01 22:30:00,,,,,0,0,0,0,casual",
        ]
        path.write_text("\n".join(rows), encoding="utf-8")

    def _write_demographics_csv(self, path: Path):
        rows = [
            "GEOID,pct_no_vehicle,total_households,county_fips",
            "036005000100,0.6,100,005",
            "36005000200,0.2,300,005",
            "36081000100,0.4,50,081",
        ]
        path.write_text("\n".join(rows), encoding="utf-8")

    def _write_tracts_geojson(self, path: Path):
        features = []
        squares = [
            ("36005000100", "Parkchester", -73.86, 40.83),
            ("36005000200", "Soundview-Bruckner-Bronx River", -73.87, 40.82),
            ("36081000100", "Astoria", -73.92, 40.77),
            (None, "Nowhere", -73.0, 40.0),
        ]
        for geoid, name, x, y in squares:
            props = {"ntaname": name}
            if geoid:
                props["geoid"] = geoid
            features.append(
                {
                    "type": "Feature",
                    "properties": props,
                    "geometry": {
                        "type": "Polygon",
                        "coordinates": [[[x, y], [x + 0.01, y], [x + 0.01, y + 0.01], [x, y + 0.01], [x, y]]],
                    },
                }
            )
        path.write_text(json.dumps({"type": "FeatureCollection", "features": features}), encoding="utf-8")

    def _write_inputs(self, td: Path):
        self._write_trips_csv(td / "trips.csv")
        self._write_demographics_csv(td / "equity.csv")
        self._write_tracts_geojson(td / "tracts.geojson")

    def test_run_story_aggregation_outputs(self):
        from citibike_story.pipeline import run_story_aggregation

        with tempfile.TemporaryDirectory() as td:
            td = Path(td)
            self._write_inputs(td)
            out_dir = td / "out"

            outputs = run_story_aggregation(
                trips_source=td / "trips.csv",
                demographics_source=td / "equity.csv",
                tracts_source=td / "tracts.geojson",
                output_dir=out_dir,
                time_bucket="morning",
                top_k=5,
                chunksize=2,
            )
            for path in outputs.values():
                self.assertTrue(Path(path).exists())

            stations = json.loads((out_dir / "stations.geojson").read_text(encoding="utf-8"))
            by_id = {f["properties"]["id"]: f for f in stations["features"]}
            self.assertEqual(set(by_id), {"A", "B", "C"})
            self.assertEqual(by_id["A"]["properties"]["departures"], 2)
            self.assertEqual(by_id["A"]["properties"]["arrivals"], 0)
            self.assertEqual(by_id["C"]["properties"]["total"], 0)
            self.assertEqual(by_id["C"]["properties"]["depart_share"], 0.5)
            self.assertEqual(by_id["A"]["geometry"]["coordinates"], [-73.99, 40.70])

            pairs = json.loads((out_dir / "od_top_pairs.json").read_text(encoding="utf-8"))
            self.assertEqual([(p["origin_id"], p["destination_id"], p["trip_count"]) for p in pairs], [("A", "B", 2), ("B", "A", 1)])
            self.assertEqual(pairs[0]["label"], "Stop A → Stop B")

            flows = json.loads((out_dir / "od_top_flows.geojson").read_text(encoding="utf-8"))
            kinds = [f["geometry"]["type"] for f in flows["features"]]
            self.assertEqual(kinds.count("LineString"), 2)
            self.assertEqual(kinds.count("Point"), 2)

            zones = pd.read_csv(out_dir / "zone_rollups.csv")
            merged = zones.set_index("zone").loc["Soundview & Parkchester"]
            self.assertAlmostEqual(merged["weighted_car_free_rate"], (100 * 0.6 + 300 * 0.2) / 400)
            self.assertEqual(merged["total_households"], 400)

            nbhd = pd.read_csv(out_dir / "neighborhood_rollups.csv")
            self.assertEqual(len(nbhd), 3)

            tracts = json.loads((out_dir / "tracts_equity.geojson").read_text(encoding="utf-8"))
            self.assertEqual(len(tracts["features"]), 3)
            props = tracts["features"][0]["properties"]
            self.assertEqual(props["borough"], "Bronx")
            self.assertEqual(props["display_name"], "Soundview & Parkchester")

            durations = pd.read_csv(out_dir / "trip_durations.csv")
            self.assertEqual(int(durations["trips"].sum()), 4)

    def test_main_cli(self):
        repo_root = Path(__file__).resolve().parents[1]
        with tempfile.TemporaryDirectory() as td:
            td = Path(td)
            self._write_inputs(td)
            zone_file = td / "zones.json"
            zone_file.write_text(json.dumps({"Astoria": "Western Queens"}), encoding="utf-8")

            subprocess.check_call(
                [
                    os.environ.get("PYTHON", sys.executable),
                    str(repo_root / "main.py"),
                    "--trips",
                    str(td / "trips.csv"),
                    "--demographics",
                    str(td / "equity.csv"),
                    "--tracts",
                    str(td / "tracts.geojson"),
                    "--out",
                    str(td / "out"),
                    "--zone-mapping",
                    str(zone_file),
                ]
            )
            zones = pd.read_csv(td / "out" / "zone_rollups.csv")
            self.assertIn("Western Queens", set(zones["zone"]))
            self.assertIn("Parkchester", set(zones["zone"]))

    def test_missing_source(self):
        from citibike_story.pipeline import run_story_aggregation

        with tempfile.TemporaryDirectory() as td:
            with self.assertRaises(FileNotFoundError):
                run_story_aggregation(
                    trips_source=Path(td) / "nope.csv",
                    demographics_source=Path(td) / "nope.csv",
                    tracts_source=Path(td) / "nope.geojson",
                    output_dir=Path(td) / "out",
                )


if __name__ == "__main__":
    unittest.main()
