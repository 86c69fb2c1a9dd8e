from citibike_story.pipeline.records import TripRecord

COORDS = {
    "A": (40.70, -73.99),
    "B": (40.72, -73.98),
    "C": (40.74, -73.97),
    "D": (40.76, -73.96),
}


def make_trip(origin, destination, started_at="2023-01-01 08:15:00", user_type="member", ended_at=""):
    start = COORDS.get(origin, (None, None))
    end = COORDS.get(destination, (None, None))
    return TripRecord(
        start_station_id=origin,
        start_station_name=f"Stop {origin}" if origin else "",
        start_lat=start[0],
        start_lng=start[1],
        end_station_id=destination,
        end_station_name=f"Stop {destination}" if destination else "",
        end_lat=end[0],
        end_lng=end[1],
        started_at=started_at,
        ended_at=ended_at,
        user_type=user_type,
    )
