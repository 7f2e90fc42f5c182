from shapely.geometry import Point, Polygon, box

from aeroconflict.services.conflicts.intersect import IntersectionTester
from aeroconflict.services.geometry.capability import GeometryError, ShapelyGeometry

ZONE = box(0.5, 0.5, 1.5, 1.5)


class FailsFor(ShapelyGeometry):
    def __init__(self, bad, op="intersects"):
        self.bad = bad
        self.op = op

    def intersects(self, a, b):
        if self.op == "intersects" and a is self.bad:
            raise GeometryError("TopologyException")
        return super().intersects(a, b)

    def intersection(self, a, b):
        if self.op == "intersection" and a is self.bad:
            raise GeometryError("TopologyException")
        return super().intersection(a, b)


def test_overlapping_square_yields_quadrant():
    result = IntersectionTester().test([box(0, 0, 1, 1)], ZONE)
    assert result.hit
    assert result.hit_indices == [0]
    assert len(result.intersections) == 1
    assert result.intersections[0].area == 0.25


def test_disjoint_geometries_do_not_hit():
    result = IntersectionTester().test([box(10, 10, 11, 11), Point(-3, -3)], ZONE)
    assert not result.hit
    assert result.intersections == []


def test_pairs_are_evaluated_in_index_order():
    geoms = [box(1, 1, 2, 2), box(20, 20, 21, 21), box(0, 0, 0.75, 0.75)]
    result = IntersectionTester().test(geoms, ZONE)
    assert result.hit_indices == [0, 2]
    assert len(result.intersections) == 2


def test_failed_predicate_counts_as_no_hit_for_that_pair_only():
    bad = box(0, 0, 1, 1)
    good = box(1, 1, 2, 2)
    result = IntersectionTester(FailsFor(bad)).test([bad, good], ZONE)
    assert result.hit
    assert result.hit_indices == [1]


def test_failed_intersection_still_records_hit():
    bad = box(0, 0, 1, 1)
    result = IntersectionTester(FailsFor(bad, op="intersection")).test([bad], ZONE)
    assert result.hit
    assert result.intersections == []


def test_touching_boundary_is_a_hit():
    edge = Polygon([(1.5, 0.5), (2.5, 0.5), (2.5, 1.5), (1.5, 1.5)])
    result = IntersectionTester().test([edge], ZONE)
    assert result.hit
    assert result.intersections[0].geom_type in ("LineString", "MultiLineString")
