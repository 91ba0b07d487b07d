"""Local key/value cache for the GitHub access token."""

from __future__ import annotations

import json
import logging
import pathlib
from typing import Optional, Union

from flat_viewer.config import TOKEN_STORE_PATH

logger = logging.getLogger(__name__)

TOKEN_KEY = "flat-viewer-pat"


class TokenStore:
    """JSON-file backed key/value store holding an optional access token."""

    def __init__(self, path: Union[str, pathlib.Path] = TOKEN_STORE_PATH) -> None:
        self.path = pathlib.Path(path)

    def _read(self) -> dict:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("[TOKEN] Ignoring unreadable store %s: %s", self.path, e)
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, data: dict) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data), encoding="utf-8")

    def get_token(self) -> Optional[str]:
        token = self._read().get(TOKEN_KEY)
        return token if isinstance(token, str) and token else None

    def set_token(self, token: str) -> None:
        data = self._read()
        data[TOKEN_KEY] = token
        self._write(data)

    def clear_token(self) -> None:
        """Forget the token, e.g. after GitHub rejected it."""
        data = self._read()
        if data.pop(TOKEN_KEY, None) is not None:
            self._write(data)
            logger.info("[TOKEN] Cleared cached access token")
