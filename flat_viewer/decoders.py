"""Payload decoders: route raw file text to a format parser by extension."""

from __future__ import annotations

import io
import json
import logging
import warnings
from typing import Any

import pandas as pd
import yaml

from flat_viewer.errors import DecodeError, UnsupportedFormatError

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = ["csv", "tsv", "json", "geojson", "topojson", "yml", "yaml"]

GEOMETRY_TYPES = (
    "Point",
    "MultiPoint",
    "LineString",
    "MultiLineString",
    "Polygon",
    "MultiPolygon",
)

DELIMITERS = {"csv": ",", "tsv": "\t"}


def extension_for(filename: str) -> str:
    """Return the routing extension for a filename (lower-cased, no dot)."""
    lowered = filename.lower()
    if lowered.endswith(".geo.json"):
        return "geojson"
    return lowered.rsplit(".", 1)[-1] if "." in lowered else ""


# -- Delimited text ------------------------------------------------------------


def _decode_delimited(text: str, extension: str) -> list[dict[str, Any]]:
    if not text.strip():
        return []
    try:
        # index_col=False: a trailing delimiter adds a surplus field, not an index
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", pd.errors.ParserWarning)
            df = pd.read_csv(
                io.StringIO(text),
                sep=DELIMITERS[extension],
                dtype=str,
                keep_default_na=False,
                index_col=False,
            )
    except (pd.errors.ParserError, UnicodeDecodeError) as e:
        raise DecodeError(f"Malformed {extension.upper()}: {e}", extension) from e

    # sanitize: short rows leave NaN behind
    df = df.astype(object).where(df.notna(), None)
    return df.to_dict(orient="records")


# -- JSON / GeoJSON ------------------------------------------------------------


def _reject_constant(name: str) -> Any:
    raise ValueError(f"Invalid JSON constant: {name}")


def _decode_json(text: str, extension: str) -> Any:
    try:
        return json.loads(text, parse_constant=_reject_constant)
    except ValueError as e:
        raise DecodeError(f"Invalid JSON: {e}", extension) from e


def _is_present(value: Any) -> bool:
    """Truthiness as JSON readers see it: empty arrays and objects count as present."""
    if value is None or value is False or value == "":
        return False
    if isinstance(value, (int, float)):
        return value == value and value != 0
    return True


def _is_geometry(value: Any) -> bool:
    return (
        isinstance(value, dict)
        and value.get("type") in GEOMETRY_TYPES
        and _is_present(value.get("coordinates"))
    )


def _is_feature(value: Any) -> bool:
    return (
        isinstance(value, dict)
        and value.get("type") == "Feature"
        and (value.get("geometry") is None or _is_geometry(value.get("geometry")))
        and "properties" in value
    )


def _flatten(value: dict[str, Any], prefix: str = "") -> dict[str, Any]:
    """Flatten nested objects into dotted keys. Lists are left intact."""
    flat: dict[str, Any] = {}
    for key, item in value.items():
        dotted = f"{prefix}.{key}" if prefix else str(key)
        if isinstance(item, dict) and item:
            flat.update(_flatten(item, dotted))
        else:
            flat[dotted] = item
    return flat


def flatten_feature(feature: dict[str, Any]) -> dict[str, Any]:
    """Flatten a GeoJSON Feature into ``geometry.*`` and ``properties.*`` columns."""
    return _flatten(feature)


def recognize_geojson(parsed: Any) -> Any:
    """Turn GeoJSON-shaped payloads into row lists; leave anything else untouched."""
    if isinstance(parsed, list):
        if parsed and all(_is_feature(item) for item in parsed):
            return [flatten_feature(item) for item in parsed]
        return parsed

    if not isinstance(parsed, dict):
        return parsed

    if parsed.get("type") == "FeatureCollection":
        features = parsed.get("features")
        if isinstance(features, list) and all(_is_feature(item) for item in features):
            return [flatten_feature(item) for item in features]
    elif parsed.get("type") == "GeometryCollection":
        geometries = parsed.get("geometries")
        if isinstance(geometries, list) and all(_is_geometry(item) for item in geometries):
            return geometries

    return parsed


# -- YAML ----------------------------------------------------------------------


def _decode_yaml(text: str, extension: str) -> Any:
    try:
        return yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise DecodeError(f"Invalid YAML: {e}", extension) from e


def decode_payload(text: str, extension: str) -> Any:
    """Decode raw file text into an object or array payload.

    Args:
        text: The raw file contents.
        extension: Routing extension as returned by ``extension_for``.

    Raises:
        UnsupportedFormatError: The extension is not a supported data format.
        DecodeError: The text is malformed for the claimed format.
    """
    extension = extension.lower().lstrip(".")
    if extension not in SUPPORTED_EXTENSIONS:
        raise UnsupportedFormatError(f"Unsupported file type: .{extension}")

    logger.debug("[DECODE] Decoding %d chars as %s", len(text), extension)

    if extension in DELIMITERS:
        return _decode_delimited(text, extension)
    if extension in ("yml", "yaml"):
        return _decode_yaml(text, extension)
    # json, geojson and topojson share the GeoJSON-aware path
    return recognize_geojson(_decode_json(text, extension))
