import json

from shapely.geometry import box, shape

from aeroconflict.services.conflicts.aggregate import aggregate, describe
from aeroconflict.services.conflicts.zones import ProtectionZone
from aeroconflict.services.geometry.capability import GeometryError, ShapelyGeometry

ZONE = ProtectionZone(procedure_id=42, name="Noise Zone A", geometry={}, severity="Critical")


class BrokenExport(ShapelyGeometry):
    def export(self, g):
        raise GeometryError("cannot export")


def test_description_names_procedure_and_area():
    assert describe(ZONE) == "Conflict with procedure 42 in protection area 'Noise Zone A'."


def test_no_intersection_shape_gives_empty_object():
    draft = aggregate(ZONE, [])
    assert draft.conflicting_geometry == "{}"
    assert json.loads(draft.conflicting_geometry) == {}
    assert draft.procedure_id == 42
    assert draft.severity == "Critical"


def test_single_intersection_is_exported_directly():
    draft = aggregate(ZONE, [box(0.5, 0.5, 1, 1)])
    geom = json.loads(draft.conflicting_geometry)
    assert geom["type"] == "Polygon"
    assert shape(geom).area == 0.25


def test_several_intersections_are_collected():
    draft = aggregate(ZONE, [box(0, 0, 1, 1), box(2, 2, 3, 3), box(5, 5, 6, 6)])
    geom = json.loads(draft.conflicting_geometry)
    assert geom["type"] == "GeometryCollection"
    assert len(geom["geometries"]) == 3


def test_export_failure_falls_back_to_empty_object():
    draft = aggregate(ZONE, [box(0, 0, 1, 1)], BrokenExport())
    assert draft.conflicting_geometry == "{}"
