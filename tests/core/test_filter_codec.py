"""Tests for flat_viewer.filter_codec: URL filter and view-state encoding."""

import pytest

from flat_viewer.filter_codec import (
    decode_filter_string,
    decode_view_state,
    encode_filter_string,
    encode_view_state,
    sort_direction,
)
from flat_viewer.models import GridViewState


class TestEncode:
    def test_pairs_joined(self):
        assert encode_filter_string({"price": (10, 20), "name": "gold"}) == "price=10,20&name=gold"

    def test_percent_encodes_once(self):
        assert encode_filter_string({"city": "New York"}) == "city=New%20York"

    def test_empty(self):
        assert encode_filter_string({}) == ""


class TestDecode:
    def test_round_trip(self):
        filters = {"price": (10, 20), "name": "gold"}
        assert decode_filter_string(encode_filter_string(filters)) == filters

    def test_round_trip_floats(self):
        filters = {"ratio": (0.5, 1.25)}
        assert decode_filter_string(encode_filter_string(filters)) == filters

    def test_round_trip_spaces(self):
        filters = {"city": "New York"}
        assert decode_filter_string(encode_filter_string(filters)) == filters

    def test_absent_is_none(self):
        assert decode_filter_string(None) is None
        assert decode_filter_string("") is None

    def test_drops_empty_segments(self):
        assert decode_filter_string("a=&=b&c=1") == {"c": "1"}

    def test_splits_on_first_equals(self):
        assert decode_filter_string("expr=a=b") == {"expr": "a=b"}

    def test_single_number_stays_string(self):
        assert decode_filter_string("n=5") == {"n": "5"}

    def test_three_parts_stay_string(self):
        assert decode_filter_string("a=1,2,3") == {"a": "1,2,3"}

    def test_non_numeric_pair_stays_string(self):
        assert decode_filter_string("a=x,y") == {"a": "x,y"}

    @pytest.mark.parametrize("value", ["1_0,2", " 1,2", "1,2 ", "inf,1", "nan,1", "0x1,2"])
    def test_loose_number_spellings_stay_string(self, value):
        assert decode_filter_string(f"a={value}") == {"a": value}

    def test_signed_and_exponent_pairs_are_ranges(self):
        assert decode_filter_string("a=-1.5,2e3") == {"a": (-1.5, 2000)}

    def test_numeric_looking_string_becomes_range(self):
        # A string filter of "1,2" can't be told apart from a range
        assert decode_filter_string(encode_filter_string({"a": "1,2"})) == {"a": (1, 2)}


class TestViewState:
    def test_round_trip(self):
        state = GridViewState(
            filters={"price": (10, 20)}, sort=["-price", "name"], sticky_column_name="name"
        )
        assert decode_view_state(encode_view_state(state)) == state

    def test_empty_state_has_no_params(self):
        assert encode_view_state(GridViewState()) == {}

    def test_decode_missing_params(self):
        assert decode_view_state({}) == GridViewState()

    def test_sort_direction(self):
        assert sort_direction("-price") == ("price", True)
        assert sort_direction("name") == ("name", False)
