"""
Geo-grid calculator

Lays out an N x N grid of search points around a business location.
Row 0 is the northern edge and column 0 the western edge.
"""

import math
from dataclasses import dataclass, asdict
from typing import Dict, List, Tuple

EARTH_RADIUS_MILES = 3958.8
COST_PER_POINT = 0.005
DEFAULT_ZOOM = 14

MIN_GRID_SIZE = 1
MAX_GRID_SIZE = 15
MAX_RADIUS_MILES = 50


@dataclass
class GridPoint:
    row: int
    col: int
    lat: float
    lng: float

    def to_dict(self) -> Dict:
        return asdict(self)


def destination_point(lat: float, lng: float, bearing: float, distance_miles: float) -> Tuple[float, float]:
    """Point reached from (lat, lng) after travelling along a bearing (degrees) on a great circle."""
    lat1 = math.radians(lat)
    lng1 = math.radians(lng)
    bearing_rad = math.radians(bearing)
    angular = distance_miles / EARTH_RADIUS_MILES

    lat2 = math.asin(
        math.sin(lat1) * math.cos(angular)
        + math.cos(lat1) * math.sin(angular) * math.cos(bearing_rad)
    )
    lng2 = lng1 + math.atan2(
        math.sin(bearing_rad) * math.sin(angular) * math.cos(lat1),
        math.cos(angular) - math.sin(lat1) * math.sin(lat2),
    )
    return math.degrees(lat2), math.degrees(lng2)


def haversine_distance_miles(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lng / 2) ** 2
    )
    return EARTH_RADIUS_MILES * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def generate_grid_points(
    center_lat: float,
    center_lng: float,
    grid_size: int,
    radius_miles: float,
) -> List[GridPoint]:
    """
    Evenly spaced grid points covering a square of side 2 * radius_miles.

    A grid of size 1 is just the center.

    Raises:
        ValueError: grid size outside 1..15 or radius outside (0, 50]
    """
    if grid_size < MIN_GRID_SIZE or grid_size > MAX_GRID_SIZE:
        raise ValueError(f"Grid size must be between {MIN_GRID_SIZE} and {MAX_GRID_SIZE}")
    if radius_miles <= 0 or radius_miles > MAX_RADIUS_MILES:
        raise ValueError(f"Radius must be between 0 and {MAX_RADIUS_MILES} miles")

    if grid_size == 1:
        return [GridPoint(row=0, col=0, lat=round(center_lat, 7), lng=round(center_lng, 7))]

    spacing = radius_miles * 2 / (grid_size - 1)

    north_lat, north_lng = destination_point(center_lat, center_lng, 0, radius_miles)
    corner_lat, corner_lng = destination_point(north_lat, north_lng, 270, radius_miles)

    points = []
    for row in range(grid_size):
        row_lat, row_lng = destination_point(corner_lat, corner_lng, 180, row * spacing)
        for col in range(grid_size):
            lat, lng = destination_point(row_lat, row_lng, 90, col * spacing)
            points.append(GridPoint(row=row, col=col, lat=round(lat, 7), lng=round(lng, 7)))

    return points


def get_grid_point_count(grid_size: int) -> int:
    return grid_size * grid_size


def get_grid_center(grid_size: int) -> Tuple[int, int]:
    center = grid_size // 2
    return center, center


def estimate_scan_cost(grid_size: int, keyword_count: int, cost_per_call: float = COST_PER_POINT) -> Dict:
    """Calls and dollar cost of one scan: one Maps SERP per point and keyword."""
    total_points = get_grid_point_count(grid_size)
    total_calls = total_points * keyword_count
    return {
        "totalPoints": total_points,
        "totalCalls": total_calls,
        "estimatedCost": round(total_calls * cost_per_call, 4),
    }


def get_grid_bounds(points: List[GridPoint]) -> Dict[str, float]:
    """Bounding box of a set of grid points."""
    if not points:
        raise ValueError("No grid points")
    lats = [p.lat for p in points]
    lngs = [p.lng for p in points]
    return {"north": max(lats), "south": min(lats), "east": max(lngs), "west": min(lngs)}


def format_coordinates(lat: float, lng: float, zoom: int = DEFAULT_ZOOM) -> str:
    """Maps SERP `location_coordinate` value."""
    return f"{lat:.7f},{lng:.7f},{zoom}"
