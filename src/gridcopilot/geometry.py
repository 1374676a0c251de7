"""Point-in-polygon tests over GeoJSON ring coordinates."""

from __future__ import annotations

from numbers import Real
from typing import Any, Sequence


def _ring_vertices(ring: Any) -> list[tuple[float, float]] | None:
    """Return ring vertices as (lng, lat) tuples, or None when malformed."""
    if not isinstance(ring, Sequence) or isinstance(ring, (str, bytes)):
        return None

    vertices: list[tuple[float, float]] = []
    for vertex in ring:
        if not isinstance(vertex, Sequence) or len(vertex) < 2:
            return None
        lng, lat = vertex[0], vertex[1]
        if isinstance(lng, bool) or isinstance(lat, bool):
            return None
        if not isinstance(lng, Real) or not isinstance(lat, Real):
            return None
        vertices.append((float(lng), float(lat)))
    return vertices


def point_in_polygon(lat: float, lng: float, ring: Sequence[Sequence[float]]) -> bool:
    """Even-odd ray casting against a ring of [lng, lat] pairs.

    The ring is treated as cyclic, so it does not need to repeat its first vertex.
    Malformed or empty rings contain nothing.
    """
    vertices = _ring_vertices(ring)
    if not vertices:
        return False

    inside = False
    j = len(vertices) - 1
    for i, (yi, xi) in enumerate(vertices):
        yj, xj = vertices[j]
        if (yi > lng) != (yj > lng) and lat < (xj - xi) * (lng - yi) / (yj - yi) + xi:
            inside = not inside
        j = i
    return inside


def _outer_ring(polygon: Any) -> Any:
    if isinstance(polygon, Sequence) and not isinstance(polygon, (str, bytes)) and polygon:
        return polygon[0]
    return None


def point_in_geometry(lat: float, lng: float, geometry: dict[str, Any] | None) -> bool:
    """Test a Polygon or MultiPolygon geometry using outer rings only.

    Inner (hole) rings are ignored: a point inside a hole still counts as inside.
    """
    if not isinstance(geometry, dict):
        return False

    coordinates = geometry.get("coordinates")
    if not isinstance(coordinates, Sequence) or isinstance(coordinates, (str, bytes)):
        return False

    geometry_type = geometry.get("type")
    if geometry_type == "Polygon":
        return point_in_polygon(lat, lng, _outer_ring(coordinates))
    if geometry_type == "MultiPolygon":
        return any(point_in_polygon(lat, lng, _outer_ring(polygon)) for polygon in coordinates)
    return False
