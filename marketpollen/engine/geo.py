"""
Geo utilities - distances and route ordering.
Pure functions, no I/O.
"""

import math
from typing import List, Optional, Sequence

from marketpollen.models import RouteStop

EARTH_RADIUS_M = 6_371_000


def distance_meters(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance between two points (haversine, spherical earth)."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lng2 - lng1)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return 2 * EARTH_RADIUS_M * math.asin(min(1.0, math.sqrt(a)))


def order_by_nearest_neighbor(
    origin_lat: float,
    origin_lng: float,
    stops: Sequence[RouteStop]
) -> List[RouteStop]:
    """
    Greedy nearest-neighbour tour from the origin.

    At each step the closest remaining stop is taken (first one wins on ties).
    Stops without coordinates are left out of the tour.
    """
    remaining = [s for s in stops if s.lat is not None and s.lng is not None]
    route: List[RouteStop] = []
    cur_lat, cur_lng = origin_lat, origin_lng

    while remaining:
        best_index = 0
        best_distance: Optional[float] = None
        for i, stop in enumerate(remaining):
            d = distance_meters(cur_lat, cur_lng, stop.lat, stop.lng)
            if best_distance is None or d < best_distance:
                best_index, best_distance = i, d

        nearest = remaining.pop(best_index)
        route.append(nearest)
        cur_lat, cur_lng = nearest.lat, nearest.lng

    return route
