import math
import unittest

import pandas as pd


class TestFieldParsing(unittest.TestCase):
    def test_parse_coordinate(self):
        from citibike_story.pipeline.records import parse_coordinate

        self.assertEqual(parse_coordinate("40.7").value, 40.7)
        self.assertEqual(parse_coordinate(-73.99).value, -73.99)
        self.assertFalse(parse_coordinate("0").ok)
        self.assertFalse(parse_coordinate(0.0).ok)
        self.assertFalse(parse_coordinate("").ok)
        self.assertFalse(parse_coordinate(None).ok)
        self.assertFalse(parse_coordinate(float("nan")).ok)
        self.assertFalse(parse_coordinate("abc").ok)
        self.assertIn("not numeric", parse_coordinate("abc").error)

    def test_parse_text_integer_float(self):
        from citibike_story.pipeline.records import parse_text

        self.assertEqual(parse_text(" 5905.14 ").value, "5905.14")
        self.assertEqual(parse_text(6432.0).value, "6432")
        self.assertFalse(parse_text("   ").ok)

    def test_normalize_geoid_padding(self):
        from citibike_story.pipeline.records import normalize_geoid

        self.assertEqual(normalize_geoid("036061000100"), "36061000100")
        self.assertEqual(normalize_geoid("36061000100"), "36061000100")
        self.assertEqual(normalize_geoid(36061000100.0), "36061000100")
        self.assertEqual(normalize_geoid("36061000100.0"), "36061000100")
        self.assertIsNone(normalize_geoid(""))
        self.assertIsNone(normalize_geoid(None))


class TestTripNormalization(unittest.TestCase):
    def _row(self, **overrides):
        row = {
            "start_station_id": "A",
            "start_station_name": "Stop A",
            "start_lat": "40.70",
            "start_lng": "-73.99",
            "end_station_id": "B",
            "end_station_name": "Stop B",
            "end_lat": "40.72",
            "end_lng": "-73.98",
            "started_at": "2023-01-01 13:36:56.305",
            "ended_at": "2023-01-01 13:50:00",
            "member_casual": "member",
        }
        row.update(overrides)
        return row

    def test_valid_row(self):
        from citibike_story.pipeline.records import TripRecord, normalize_trip_row

        trip = normalize_trip_row(self._row())
        self.assertIsInstance(trip, TripRecord)
        self.assertEqual(trip.start_station_id, "A")
        self.assertEqual(trip.start_lat, 40.70)
        self.assertEqual(trip.user_type, "member")
        self.assertTrue(trip.has_start_coordinates)
        self.assertTrue(trip.has_end_coordinates)

    def test_missing_both_ids_rejected(self):
        from citibike_story.pipeline.records import MISSING_STATION_ID, Rejected, normalize_trip_row

        result = normalize_trip_row(self._row(start_station_id="", end_station_id=None))
        self.assertIsInstance(result, Rejected)
        self.assertEqual(result.reason, MISSING_STATION_ID)

    def test_bad_coordinates_kept_for_id_keyed_aggregates(self):
        from citibike_story.pipeline.records import TripRecord, normalize_trip_row

        trip = normalize_trip_row(self._row(end_lat="0", end_lng="0"))
        self.assertIsInstance(trip, TripRecord)
        self.assertEqual(trip.end_station_id, "B")
        self.assertFalse(trip.has_end_coordinates)
        self.assertIsNone(trip.end_lat)

    def test_half_coordinate_is_dropped(self):
        from citibike_story.pipeline.records import normalize_trip_row

        trip = normalize_trip_row(self._row(start_lng="n/a"))
        self.assertIsNone(trip.start_lat)
        self.assertIsNone(trip.start_lng)

    def test_bad_coordinates_rejected_for_plotting(self):
        from citibike_story.pipeline.records import INVALID_COORDINATES, Rejected, normalize_trip_row

        result = normalize_trip_row(self._row(start_lat="abc"), require_coordinates=True)
        self.assertIsInstance(result, Rejected)
        self.assertEqual(result.reason, INVALID_COORDINATES)

    def test_unknown_user_type_is_casual(self):
        from citibike_story.pipeline.records import normalize_trip_row

        self.assertEqual(normalize_trip_row(self._row(member_casual="Casual")).user_type, "casual")
        self.assertEqual(normalize_trip_row(self._row(member_casual="")).user_type, "casual")

    def test_normalize_trips_from_frame(self):
        from citibike_story.pipeline.records import normalize_trips

        df = pd.DataFrame(
            [
                self._row(),
                self._row(start_station_id=None, end_station_id=None),
                self._row(start_lat=math.nan),
            ]
        )
        records, rejected = normalize_trips(df)
        self.assertEqual(len(records), 2)
        self.assertEqual(rejected, 1)


class TestGeoNormalization(unittest.TestCase):
    def test_demographic_row(self):
        from citibike_story.pipeline.records import Rejected, normalize_demographic_row

        rec = normalize_demographic_row(
            {"GEOID": "036047000100", "pct_no_vehicle": "0.5", "total_households": "1,200", "county_fips": "047"}
        )
        self.assertEqual(rec.geo_id, "36047000100")
        self.assertEqual(rec.total_households, 1200.0)
        self.assertEqual(rec.pct_no_vehicle, 0.5)
        self.assertEqual(rec.county_fips, "047")

        lower = normalize_demographic_row({"geoid": "36047000100", "pct_no_vehicle": "bad"})
        self.assertEqual(lower.geo_id, "36047000100")
        self.assertEqual(lower.pct_no_vehicle, 0.0)
        self.assertEqual(lower.total_households, 0.0)

        self.assertIsInstance(normalize_demographic_row({"pct_no_vehicle": "0.1"}), Rejected)

    def test_negative_households_treated_as_malformed(self):
        from citibike_story.pipeline.records import normalize_demographic_row, parse_count

        self.assertFalse(parse_count("-50").ok)
        self.assertFalse(parse_count("inf").ok)
        self.assertTrue(parse_count("0").ok)

        rec = normalize_demographic_row({"GEOID": "36005000200", "pct_no_vehicle": "0.9", "total_households": "-50"})
        self.assertEqual(rec.total_households, 0.0)
        self.assertEqual(rec.pct_no_vehicle, 0.9)

    def test_tract_feature_default_zone_table(self):
        from citibike_story.pipeline.geo_hierarchy import resolve_zone
        from citibike_story.pipeline.records import normalize_tract_feature

        feature = {"properties": {"geoid": "36005021200", "ntaname": "Parkchester"}}
        tract = normalize_tract_feature(feature)
        self.assertEqual(tract.zone_name, "Soundview & Parkchester")
        self.assertEqual(tract.zone_name, resolve_zone("Parkchester"))

        unmerged = normalize_tract_feature(feature, zone_mapping={})
        self.assertEqual(unmerged.zone_name, "Parkchester")

    def test_tract_feature_identifier_chain(self):
        from citibike_story.pipeline.records import Rejected, normalize_tract_feature

        mapping = {"Parkchester": "Soundview & Parkchester"}
        for key in ("geoid", "GEOID", "ct2020"):
            feature = {
                "type": "Feature",
                "properties": {key: "36005021200", "ntaname": "Parkchester"},
                "geometry": {"type": "Polygon", "coordinates": []},
            }
            tract = normalize_tract_feature(feature, zone_mapping=mapping)
            self.assertEqual(tract.geo_id, "36005021200")
            self.assertEqual(tract.neighborhood_name, "Parkchester")
            self.assertEqual(tract.zone_name, "Soundview & Parkchester")

        identity = normalize_tract_feature({"properties": {"GEOID": "1", "ntaname": "Astoria"}})
        self.assertEqual(identity.zone_name, "Astoria")

        missing = normalize_tract_feature({"properties": {"ntaname": "Astoria"}})
        self.assertIsInstance(missing, Rejected)


if __name__ == "__main__":
    unittest.main()
