"""Shape normalization: turn decoded payloads into grid-ready tagged datasets.

Classification runs first and yields exactly one ``PayloadShape``; row
construction then matches on that shape:

- ``FLAT_ARRAY``: the payload is a list. One dataset, rows as-is.
- ``OBJECT_OF_OBJECTS``: every top-level value is an object. One dataset,
  pivoted into a row per key with the key injected as ``id``.
- ``OBJECT_OF_MIXED``: at least one top-level value is a scalar or list. One
  dataset per key.
- ``INVALID``: decode failure, a bare scalar or an empty object. One dataset
  carrying a stringified fallback.
"""

from __future__ import annotations

import enum
import json
import logging
from typing import Any, Union

from flat_viewer.decoders import decode_payload
from flat_viewer.errors import DecodeError, UnsupportedFormatError
from flat_viewer.models import RawFile, TaggedDataset

logger = logging.getLogger(__name__)


class PayloadShape(enum.Enum):
    FLAT_ARRAY = "flat_array"
    OBJECT_OF_OBJECTS = "object_of_objects"
    OBJECT_OF_MIXED = "object_of_mixed"
    INVALID = "invalid"


def classify_payload(payload: Any) -> PayloadShape:
    """Classify a decoded payload (or a DecodeError) into a PayloadShape."""
    if isinstance(payload, DecodeError):
        return PayloadShape.INVALID
    if isinstance(payload, list):
        return PayloadShape.FLAT_ARRAY
    if not isinstance(payload, dict) or not payload:
        return PayloadShape.INVALID
    # A list value is not an object here; array-of-objects entries split per key
    if all(isinstance(value, dict) for value in payload.values()):
        return PayloadShape.OBJECT_OF_OBJECTS
    return PayloadShape.OBJECT_OF_MIXED


def stringify_value(value: Any) -> str:
    """Render a value that can't be shown as rows.

    Objects and arrays are pretty-printed JSON with 2-space indents; scalars
    are coerced to strings, with JSON spelling for booleans and null.
    """
    if isinstance(value, (dict, list)):
        return json.dumps(value, indent=2, ensure_ascii=False, default=str)
    if value is None or isinstance(value, bool):
        return json.dumps(value)
    return str(value)


def dataset_key(key: Any) -> str:
    """Render a top-level key as text. YAML keys may be ints, booleans or dates."""
    return key if isinstance(key, str) else stringify_value(key)


def _pivot(payload: dict[Any, Any]) -> list[dict[str, Any]]:
    return [{**record, "id": dataset_key(key)} for key, record in payload.items()]


def _rows_for_key(key: str, value: Any) -> TaggedDataset:
    if not isinstance(value, list):
        return TaggedDataset(key=key, invalid_value=stringify_value(value))
    if value and isinstance(value[0], str):
        return TaggedDataset(key=key, rows=[{"value": item} for item in value])
    return TaggedDataset(key=key, rows=value)


def normalize_payload(
    payload: Union[Any, DecodeError], raw_text: str
) -> list[TaggedDataset]:
    """Normalize a decoded payload into an ordered list of TaggedDatasets.

    Args:
        payload: The decoded object/array, or the DecodeError raised while decoding.
        raw_text: The original file text, used as the fallback for decode failures.

    Returns:
        A non-empty list. Dataset order follows the payload's key order.
    """
    shape = classify_payload(payload)

    if shape is PayloadShape.INVALID:
        fallback = raw_text if isinstance(payload, DecodeError) else stringify_value(payload)
        return [TaggedDataset(invalid_value=fallback)]
    if shape is PayloadShape.FLAT_ARRAY:
        return [TaggedDataset(rows=payload)]
    if shape is PayloadShape.OBJECT_OF_OBJECTS:
        return [TaggedDataset(rows=_pivot(payload))]
    if shape is PayloadShape.OBJECT_OF_MIXED:
        return [_rows_for_key(dataset_key(key), value) for key, value in payload.items()]

    raise AssertionError(f"Unhandled payload shape: {shape}")


def load_datasets(raw_file: RawFile) -> list[TaggedDataset]:
    """Decode and normalize a fetched file. Never raises for bad file contents."""
    try:
        payload: Any = decode_payload(raw_file.text, raw_file.extension)
    except DecodeError as e:
        logger.warning("[NORMALIZE] Could not decode %s@%s: %s", raw_file.filename, raw_file.sha, e)
        payload = e
    except UnsupportedFormatError as e:
        logger.warning("[NORMALIZE] %s", e)
        payload = DecodeError(str(e), raw_file.extension)

    datasets = normalize_payload(payload, raw_file.text)
    logger.info(
        "[NORMALIZE] %s@%s -> %d dataset(s)", raw_file.filename, raw_file.sha[:7], len(datasets)
    )
    return datasets
