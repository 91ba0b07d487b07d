"""Tests for flat_viewer.decoders: extension routing and GeoJSON flattening."""

import datetime
import json

import pytest

from flat_viewer.decoders import decode_payload, extension_for
from flat_viewer.errors import DecodeError, UnsupportedFormatError


class TestExtensionFor:
    @pytest.mark.parametrize(
        "filename,expected",
        [
            ("data.csv", "csv"),
            ("dir/DATA.TSV", "tsv"),
            ("places.geo.json", "geojson"),
            ("places.geojson", "geojson"),
            ("config.yml", "yml"),
            ("README", ""),
        ],
    )
    def test_extension(self, filename, expected):
        assert extension_for(filename) == expected


class TestDelimited:
    def test_csv_rows_are_text(self):
        rows = decode_payload("name,amount\ngold,10\nsilver,5\n", "csv")
        assert rows == [{"name": "gold", "amount": "10"}, {"name": "silver", "amount": "5"}]

    def test_tsv(self):
        rows = decode_payload("a\tb\n1\t2\n", "tsv")
        assert rows == [{"a": "1", "b": "2"}]

    def test_empty_cells_stay_empty_strings(self):
        rows = decode_payload("a,b\n1,\n", "csv")
        assert rows == [{"a": "1", "b": ""}]

    def test_header_only(self):
        assert decode_payload("a,b\n", "csv") == []

    def test_empty_text(self):
        assert decode_payload("", "csv") == []

    def test_trailing_delimiter_keeps_columns_aligned(self):
        rows = decode_payload("a,b\n1,2,\n3,4,\n", "csv")
        assert rows == [{"a": "1", "b": "2"}, {"a": "3", "b": "4"}]

    def test_trailing_tab_keeps_columns_aligned(self):
        rows = decode_payload("a\tb\nx\ty\t\n", "tsv")
        assert rows == [{"a": "x", "b": "y"}]

    def test_malformed_csv_raises(self):
        with pytest.raises(DecodeError):
            decode_payload('a,b\n1,"2\n', "csv")


class TestJson:
    def test_object(self):
        assert decode_payload('{"a": [1, 2]}', "json") == {"a": [1, 2]}

    def test_key_order_preserved(self):
        payload = decode_payload('{"z": 1, "a": 2, "m": 3}', "json")
        assert list(payload) == ["z", "a", "m"]

    def test_invalid_json_raises(self):
        with pytest.raises(DecodeError):
            decode_payload("{oops", "json")

    def test_nan_rejected(self):
        with pytest.raises(DecodeError):
            decode_payload('{"a": NaN}', "json")


class TestYaml:
    def test_block_and_flow_styles(self):
        text = "items:\n  - name: a\n    tags: [x, y]\nmeta: {version: 1}\n"
        payload = decode_payload(text, "yaml")
        assert payload == {"items": [{"name": "a", "tags": ["x", "y"]}], "meta": {"version": 1}}

    def test_dates(self):
        payload = decode_payload("released: 2021-01-01\n", "yml")
        assert payload == {"released": datetime.date(2021, 1, 1)}

    def test_invalid_yaml_raises(self):
        with pytest.raises(DecodeError):
            decode_payload("a: [1, 2\nb: : :", "yaml")


class TestUnsupported:
    def test_rejects_unknown_extension(self):
        with pytest.raises(UnsupportedFormatError):
            decode_payload("whatever", "txt")


POINT = {"type": "Point", "coordinates": [1, 2]}


def _feature(name, geometry=POINT):
    return {"type": "Feature", "geometry": geometry, "properties": {"name": name}}


class TestGeoJson:
    def test_feature_collection_flattened(self):
        text = json.dumps({"type": "FeatureCollection", "features": [_feature("x")]})
        rows = decode_payload(text, "geojson")
        assert rows == [
            {
                "type": "Feature",
                "geometry.type": "Point",
                "geometry.coordinates": [1, 2],
                "properties.name": "x",
            }
        ]
        assert "geometry" not in rows[0]
        assert "properties" not in rows[0]

    def test_plain_json_extension_recognizes_geojson(self):
        text = json.dumps({"type": "FeatureCollection", "features": [_feature("x")]})
        assert decode_payload(text, "json")[0]["properties.name"] == "x"

    def test_bare_feature_array(self):
        text = json.dumps([_feature("a"), _feature("b")])
        rows = decode_payload(text, "geojson")
        assert [r["properties.name"] for r in rows] == ["a", "b"]

    def test_nested_properties_flatten_deeply(self):
        feature = {
            "type": "Feature",
            "geometry": POINT,
            "properties": {"address": {"city": "Oslo"}},
        }
        rows = decode_payload(json.dumps([feature]), "geojson")
        assert rows[0]["properties.address.city"] == "Oslo"

    def test_null_geometry(self):
        rows = decode_payload(json.dumps([_feature("a", geometry=None)]), "geojson")
        assert rows[0]["geometry"] is None
        assert rows[0]["properties.name"] == "a"

    def test_geometry_collection_passthrough(self):
        geometries = [POINT, {"type": "LineString", "coordinates": [[0, 0], [1, 1]]}]
        text = json.dumps({"type": "GeometryCollection", "geometries": geometries})
        assert decode_payload(text, "geojson") == geometries

    def test_bare_geometry_array_passthrough(self):
        geometries = [POINT, POINT]
        assert decode_payload(json.dumps(geometries), "geojson") == geometries

    def test_non_geojson_object_unchanged(self):
        payload = {"type": "Other", "features": []}
        assert decode_payload(json.dumps(payload), "geojson") == payload

    def test_mixed_array_unchanged(self):
        payload = [_feature("a"), {"id": 1}]
        assert decode_payload(json.dumps(payload), "json") == payload

    def test_empty_coordinates_still_a_geometry(self):
        empty = {"type": "Polygon", "coordinates": []}
        feature = {"type": "Feature", "geometry": empty, "properties": {"n": 1}}
        text = json.dumps({"type": "FeatureCollection", "features": [feature]})
        rows = decode_payload(text, "geojson")
        assert rows == [
            {
                "type": "Feature",
                "geometry.type": "Polygon",
                "geometry.coordinates": [],
                "properties.n": 1,
            }
        ]

    @pytest.mark.parametrize("coordinates", [None, 0, "", False])
    def test_falsy_coordinates_not_a_geometry(self, coordinates):
        payload = [_feature("a", geometry={"type": "Point", "coordinates": coordinates})]
        assert decode_payload(json.dumps(payload), "geojson") == payload
