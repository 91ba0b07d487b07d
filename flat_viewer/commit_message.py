"""Flat commit message parsing.

The snapshot workflow writes commit messages shaped like::

    Flat: latest data (2021-01-01T00:00:00Z) (+120b)
    {"files":[{"name":"data.csv","deltaBytes":120,"date":"2021-01-01","source":"https://..."}]}

The first line is the human headline. Anything in parentheses on it is a
legacy byte-delta display and is dropped. Everything after the first newline
is a JSON block describing each written file. The block is advisory: when it
is missing or malformed the headline is still returned.
"""

from __future__ import annotations

import json
import logging
from typing import Optional

from pydantic import ValidationError

from flat_viewer.models import FlatCommitMetadata, FlatCommitRecord

logger = logging.getLogger(__name__)


def _split_message(message: str) -> tuple[str, Optional[str]]:
    """Return (headline, metadata block or None)."""
    first_line, sep, rest = message.partition("\n")
    headline = first_line.split("(", 1)[0].strip()
    if not sep or not rest.strip():
        return headline, None
    return headline, rest


def parse_flat_commit_metadata(message: Optional[str]) -> Optional[FlatCommitMetadata]:
    """Parse the JSON metadata block of a flat commit message.

    Returns None when the message has no block or the block is not valid
    ``{"files": [...]}`` JSON.
    """
    if not message:
        return None
    _, block = _split_message(message)
    if block is None:
        return None
    try:
        return FlatCommitMetadata.model_validate(json.loads(block))
    except (json.JSONDecodeError, ValidationError) as e:
        logger.debug("[COMMIT] Ignoring malformed metadata block: %s", e)
        return None


def parse_flat_commit_message(message: Optional[str], filename: str) -> Optional[FlatCommitRecord]:
    """Parse a flat commit message and pick out the metadata for ``filename``.

    Args:
        message: Full commit message text.
        filename: Path of the data file, matched exactly against ``files[].name``.

    Returns:
        None for an empty message. Otherwise a record with the headline and
        the matching file entry, or ``file=None`` when there is no match.
    """
    if not message:
        return None

    headline, _ = _split_message(message)
    metadata = parse_flat_commit_metadata(message)
    if metadata is None:
        return FlatCommitRecord(message=headline)

    match = next((f for f in metadata.files if f.name == filename), None)
    return FlatCommitRecord(message=headline, file=match)
