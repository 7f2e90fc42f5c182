import json
import types

import pytest

from aeroconflict.services.geometry.normalize import (
    GeoJSONDecodeError,
    as_feature_collection,
    normalize,
    validate_geojson,
)
from conftest import feature_collection, square


def test_feature_collection_skips_features_without_geometry():
    fc = feature_collection(square(0, 0), square(2, 2), {"type": "Point", "coordinates": [5, 5]})
    fc["features"].insert(1, {"type": "Feature", "properties": {"note": "no geometry"}})
    fc["features"].append({"type": "Feature", "geometry": None, "properties": {}})

    geoms = list(normalize(fc))

    assert [g.geom_type for g in geoms] == ["Polygon", "Polygon", "Point"]
    assert geoms[1].bounds == (2.0, 2.0, 3.0, 3.0)


def test_unparsable_feature_is_skipped_not_fatal():
    fc = feature_collection(
        {"type": "Polygon", "coordinates": [[[0, 0], [1, 0]]]},  # 点が足りない
        {"type": "Hexagon", "coordinates": []},
        square(0, 0),
    )
    assert len(list(normalize(fc))) == 1


def test_feature_and_raw_geometry():
    feature = {"type": "Feature", "geometry": square(0, 0), "properties": {}}
    assert [g.geom_type for g in normalize(feature)] == ["Polygon"]
    assert [g.geom_type for g in normalize({"type": "Point", "coordinates": [1, 2]})] == ["Point"]
    assert list(normalize({"type": "Feature", "properties": {}})) == []


def test_geometry_collection_stays_one_geometry():
    gc = {"type": "GeometryCollection", "geometries": [square(0, 0), square(2, 2)]}
    geoms = list(normalize(gc))
    assert [g.geom_type for g in geoms] == ["GeometryCollection"]
    assert len(geoms[0].geoms) == 2


def test_accepts_json_text():
    text = json.dumps(feature_collection(square(0, 0), square(1, 1)))
    assert len(list(normalize(text))) == 2


def test_non_json_payload_raises_before_iteration():
    with pytest.raises(GeoJSONDecodeError):
        normalize("{not json")


def test_sequence_is_lazy_and_single_pass():
    seq = normalize(feature_collection(square(0, 0), square(3, 3)))
    assert isinstance(seq, types.GeneratorType)
    assert len(list(seq)) == 2
    assert list(seq) == []


def test_missing_features_array_yields_nothing():
    assert list(normalize({"type": "FeatureCollection"})) == []
    assert list(normalize([1, 2, 3])) == []


@pytest.mark.parametrize("payload, error", [
    ({}, "GeoJSON must have a 'type' field"),
    ({"type": "Feature"}, "Feature must have a 'geometry' field"),
    ({"type": "FeatureCollection"}, "FeatureCollection must have a 'features' field"),
    ({"type": "Circle", "coordinates": [0, 0]}, "Invalid geometry type: Circle"),
    ({"type": "Polygon"}, "Geometry must have a 'coordinates' field"),
    ({"type": "GeometryCollection"}, "GeometryCollection must have a 'geometries' field"),
])
def test_validate_geojson_errors(payload, error):
    assert validate_geojson(payload) == error


def test_validate_geojson_accepts_valid_payloads():
    assert validate_geojson(feature_collection(square(0, 0))) is None
    assert validate_geojson({"type": "Feature", "geometry": square(0, 0), "properties": {}}) is None
    assert validate_geojson({"type": "GeometryCollection", "geometries": [square(0, 0)]}) is None


def test_validate_geojson_checks_every_feature():
    fc = feature_collection(square(0, 0))
    fc["features"].append({"type": "Feature", "geometry": {"type": "Blob", "coordinates": []}})
    assert validate_geojson(fc) == "Invalid geometry type: Blob"


def test_as_feature_collection_wraps_feature_and_geometry():
    feature = {"type": "Feature", "geometry": square(0, 0), "properties": {"a": 1}}
    assert as_feature_collection(feature)["features"] == [feature]
    wrapped = as_feature_collection(square(0, 0))
    assert wrapped["type"] == "FeatureCollection"
    assert wrapped["features"][0]["geometry"] == square(0, 0)
    fc = feature_collection(square(0, 0))
    assert as_feature_collection(fc) is fc
