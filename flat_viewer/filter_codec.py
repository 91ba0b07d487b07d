"""Grid view state <-> URL query-string encoding.

Filters travel as a single query-string value::

    price=10,20&name=gold

percent-encoded once as a whole, with URI-reserved characters left as-is.
A value with exactly one comma and numbers on both sides decodes to a
numeric range; anything else decodes to a string. String filters that happen
to look like ``"1,2"`` therefore come back as ranges.
"""

from __future__ import annotations

import math
import re
from typing import Mapping, Optional, Union
from urllib.parse import quote, unquote

from flat_viewer.models import FilterValue, GridViewState, Number

# Characters encodeURI leaves untouched besides alphanumerics and "-_.~"
URI_SAFE = ";,/?:@&=+$!*'()#"

DESCENDING_PREFIX = "-"

# Plain decimal or exponent notation; no digit separators or padding
NUMBER_PATTERN = re.compile(r"[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")


def _encode_value(value: FilterValue) -> str:
    if isinstance(value, (list, tuple)):
        return ",".join(str(part) for part in value)
    return str(value)


def encode_filter_string(filters: Mapping[str, FilterValue]) -> str:
    """Encode column filters as one percent-encoded query-string value."""
    joined = "&".join(f"{column}={_encode_value(value)}" for column, value in filters.items())
    return quote(joined, safe=URI_SAFE)


def _parse_number(text: str) -> Optional[Number]:
    if not NUMBER_PATTERN.fullmatch(text):
        return None
    number = float(text)
    if not math.isfinite(number):
        return None
    return int(number) if number.is_integer() else number


def _decode_value(value: str) -> FilterValue:
    parts = value.split(",")
    if len(parts) == 2:
        low, high = _parse_number(parts[0]), _parse_number(parts[1])
        if low is not None and high is not None:
            return (low, high)
    return value


def decode_filter_string(filter_string: Optional[str]) -> Optional[dict[str, FilterValue]]:
    """Decode a filter string produced by ``encode_filter_string``.

    Returns None when there is no filter state at all, so callers can tell
    "nothing in the URL" from "filters present". Segments with an empty
    column name or value are dropped.
    """
    if not filter_string:
        return None

    filters: dict[str, FilterValue] = {}
    for segment in unquote(filter_string).split("&"):
        column, _, value = segment.partition("=")
        if not column or not value:
            continue
        filters[column] = _decode_value(value)
    return filters


def encode_view_state(state: GridViewState) -> dict[str, str]:
    """Encode a full grid view state as URL query parameters. Empty parts are omitted."""
    params: dict[str, str] = {}
    if state.filters:
        params["filters"] = encode_filter_string(state.filters)
    if state.sort:
        params["sort"] = ",".join(state.sort)
    if state.sticky_column_name:
        params["stickyColumnName"] = state.sticky_column_name
    return params


def decode_view_state(params: Mapping[str, Union[str, None]]) -> GridViewState:
    """Rebuild a grid view state from URL query parameters."""
    sort = params.get("sort") or ""
    return GridViewState(
        filters=decode_filter_string(params.get("filters")) or {},
        sort=[column for column in sort.split(",") if column],
        sticky_column_name=params.get("stickyColumnName") or None,
    )


def sort_direction(sort_key: str) -> tuple[str, bool]:
    """Split a sort entry into (column, descending)."""
    if sort_key.startswith(DESCENDING_PREFIX):
        return sort_key[len(DESCENDING_PREFIX):], True
    return sort_key, False
