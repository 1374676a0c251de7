"""Point-in-polygon tests."""

from gridcopilot.geometry import point_in_geometry, point_in_polygon

SQUARE = [[0, 0], [0, 10], [10, 10], [10, 0]]


def test_centroid_inside_square() -> None:
    assert point_in_polygon(5, 5, SQUARE) is True


def test_far_point_outside_square() -> None:
    assert point_in_polygon(1000, 5, SQUARE) is False
    assert point_in_polygon(5, -20, SQUARE) is False


def test_vertex_answer_is_stable() -> None:
    first = point_in_polygon(0, 0, SQUARE)
    assert all(point_in_polygon(0, 0, SQUARE) == first for _ in range(5))


def test_closed_ring_matches_open_ring() -> None:
    closed = SQUARE + [SQUARE[0]]
    assert point_in_polygon(5, 5, closed) is True
    assert point_in_polygon(50, 50, closed) is False


def test_malformed_rings_contain_nothing() -> None:
    assert point_in_polygon(5, 5, []) is False
    assert point_in_polygon(5, 5, [["a", "b"], [1, 2], [3, 4]]) is False
    assert point_in_polygon(5, 5, [[1], [2], [3]]) is False
    assert point_in_polygon(5, 5, "not a ring") is False


def test_polygon_geometry_uses_outer_ring_only() -> None:
    hole = [[4, 4], [4, 6], [6, 6], [6, 4]]
    geometry = {"type": "Polygon", "coordinates": [SQUARE, hole]}
    assert point_in_geometry(5, 5, geometry) is True


def test_multipolygon_matches_any_member() -> None:
    far_square = [[20, 20], [20, 30], [30, 30], [30, 20]]
    geometry = {"type": "MultiPolygon", "coordinates": [[SQUARE], [far_square]]}
    assert point_in_geometry(25, 25, geometry) is True
    assert point_in_geometry(15, 15, geometry) is False


def test_unsupported_geometries_are_outside() -> None:
    assert point_in_geometry(5, 5, None) is False
    assert point_in_geometry(5, 5, {"type": "Point", "coordinates": [5, 5]}) is False
    assert point_in_geometry(5, 5, {"type": "Polygon"}) is False
    assert point_in_geometry(5, 5, {"type": "Polygon", "coordinates": []}) is False
