"""QuerySession: debounced, superseding query execution for one view.

A session owns at most one QueryEngine. Switching datasets disposes the
previous engine before a new one is initialized. Query text is debounced and
every execution is tagged with ``(dataset_id, query_text)``; a result whose
tag is no longer the latest submission is discarded.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, NamedTuple, Optional

from flat_viewer.config import QUERY_DEBOUNCE_SECONDS
from flat_viewer.errors import QueryEngineStateError, QueryExecError, QueryInitError
from flat_viewer.models import FormatHint, QueryResult, QueryStatus, TaggedDataset
from flat_viewer.query_engine import QueryEngine

logger = logging.getLogger(__name__)

QueryKey = tuple[str, str]


class QueryOutcome(NamedTuple):
    """What happened to one execution.

    ``result`` is set only when the result was accepted. ``superseded`` is True
    when a newer submission or a dataset switch made the execution stale,
    whether it succeeded or failed.
    """

    result: Optional[QueryResult] = None
    superseded: bool = False


class QuerySession:
    """Tracks the active engine, the pending query and the latest result."""

    def __init__(
        self,
        debounce_seconds: float = QUERY_DEBOUNCE_SECONDS,
        engine_factory: Callable[[], QueryEngine] = QueryEngine,
    ) -> None:
        self.debounce_seconds = debounce_seconds
        self._engine_factory = engine_factory
        self._engine: Optional[QueryEngine] = None
        self._pending: Optional[asyncio.Task] = None
        self._latest: Optional[QueryKey] = None

        self.dataset_id: Optional[str] = None
        self.result: Optional[QueryResult] = None
        self.result_key: Optional[QueryKey] = None
        self.error: Optional[str] = None
        self.init_error: Optional[str] = None

    @property
    def status(self) -> QueryStatus:
        return self._engine.status if self._engine else "IDLE"

    async def __aenter__(self) -> "QuerySession":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    def _cancel_pending(self) -> None:
        if self._pending and not self._pending.done():
            self._pending.cancel()
        self._pending = None

    def _require_ready(self) -> QueryEngine:
        if self._engine is None or self._engine.status not in ("READY", "EXECUTING"):
            raise QueryEngineStateError(f"Query engine is not ready (state {self.status})")
        return self._engine

    async def load(
        self, dataset_id: str, dataset: TaggedDataset, format_hint: FormatHint = "json"
    ) -> None:
        """Dispose the current engine and initialize a new one for ``dataset``.

        Raises:
            QueryInitError: Loading failed; ``init_error`` holds the message.
        """
        self._cancel_pending()
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None

        self.dataset_id = dataset_id
        self._latest = None
        self.result = None
        self.result_key = None
        self.error = None
        self.init_error = None

        engine = self._engine_factory()
        self._engine = engine
        try:
            await engine.initialize(dataset, format_hint)
        except QueryInitError as e:
            self.init_error = str(e)
            logger.warning("[SESSION] Dataset %s failed to initialize: %s", dataset_id, e)
            raise
        logger.info("[SESSION] Dataset %s ready", dataset_id)

    def submit(self, query_text: str) -> asyncio.Task:
        """Schedule ``query_text`` after the debounce window, superseding any pending query."""
        self._require_ready()
        self._cancel_pending()
        key = (self.dataset_id or "", query_text)
        self._latest = key
        self._pending = asyncio.create_task(self._debounced(key))
        return self._pending

    async def _debounced(self, key: QueryKey) -> QueryOutcome:
        await asyncio.sleep(self.debounce_seconds)
        return await self._execute(key)

    async def run(self, query_text: str) -> QueryOutcome:
        """Execute immediately. A failed query leaves its message on ``error``."""
        self._require_ready()
        self._cancel_pending()
        key = (self.dataset_id or "", query_text)
        self._latest = key
        return await self._execute(key)

    async def _execute(self, key: QueryKey) -> QueryOutcome:
        engine = self._require_ready()
        try:
            result = await engine.execute(key[1])
        except QueryExecError as e:
            if not self._is_current(key, engine):
                return QueryOutcome(superseded=True)
            self.error = str(e)
            logger.info("[SESSION] Query failed: %s", e)
            return QueryOutcome()

        if not self._is_current(key, engine):
            logger.debug("[SESSION] Discarding stale result for %r", key)
            return QueryOutcome(superseded=True)

        self.result = result
        self.result_key = key
        self.error = None
        return QueryOutcome(result=result)

    def _is_current(self, key: QueryKey, engine: QueryEngine) -> bool:
        return key == self._latest and engine is self._engine

    async def wait_idle(self) -> None:
        """Wait for the pending debounced query, if any, to finish or be cancelled."""
        if self._pending is not None:
            await asyncio.wait({self._pending})

    async def close(self) -> None:
        """Cancel pending work and dispose the engine. Idempotent."""
        self._cancel_pending()
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
