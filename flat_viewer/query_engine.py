"""QueryEngine: ad-hoc SQL over one dataset, loaded into an in-memory store.

The store is an in-memory SQLite database owned by a single worker thread.
Every load, query and close runs on that worker, so the event loop never
blocks and calls are serialized in submission order.

States: IDLE -> INITIALIZING -> READY -> (EXECUTING -> READY)*, with FAILED
reachable from INITIALIZING or EXECUTING. ``dispose()`` returns to IDLE.
"""

from __future__ import annotations

import asyncio
import io
import json
import logging
import sqlite3
from concurrent.futures import ThreadPoolExecutor
from contextlib import asynccontextmanager
from datetime import date, datetime
from typing import Any, AsyncIterator, Optional

import pandas as pd

from flat_viewer.errors import QueryEngineStateError, QueryExecError, QueryInitError
from flat_viewer.models import FormatHint, QueryResult, QueryStatus, TaggedDataset

logger = logging.getLogger(__name__)

TABLE_NAME = "data"


def _to_sql_value(value: Any) -> Any:
    """SQLite only stores scalars; nested values are kept as JSON text."""
    if isinstance(value, (dict, list)):
        return json.dumps(value, default=str)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def unique_labels(labels: list[str]) -> list[str]:
    """Suffix repeated result column labels (`a`, `a_1`, ...) so no column is dropped."""
    seen: set[str] = set()
    unique = []
    for label in labels:
        candidate, n = label, 0
        while candidate in seen:
            n += 1
            candidate = f"{label}_{n}"
        seen.add(candidate)
        unique.append(candidate)
    return unique


def build_frame(rows: list[Any], format_hint: FormatHint = "json") -> pd.DataFrame:
    """Build the DataFrame loaded into the store.

    ``csv`` rows carry text cells, so they go back through pandas CSV type
    inference. ``json`` rows keep the types they were decoded with.
    """
    records = [row if isinstance(row, dict) else {"value": row} for row in rows]
    df = pd.DataFrame.from_records(records)
    if df.empty and not len(df.columns):
        raise ValueError("Dataset has no columns to load")
    df.columns = [str(c) for c in df.columns]
    df = df.astype(object).where(df.notna(), None).map(_to_sql_value)

    if format_hint == "csv":
        df = pd.read_csv(io.StringIO(df.to_csv(index=False)))
    return df


class QueryEngine:
    """Explicit resource handle: initialize, execute, dispose."""

    def __init__(self) -> None:
        self._status: QueryStatus = "IDLE"
        self._executor: Optional[ThreadPoolExecutor] = None
        self._conn: Optional[sqlite3.Connection] = None
        self._in_flight = 0
        self.init_error: Optional[str] = None

    @property
    def status(self) -> QueryStatus:
        return self._status

    @classmethod
    @asynccontextmanager
    async def open(
        cls, dataset: TaggedDataset, format_hint: FormatHint = "json"
    ) -> AsyncIterator["QueryEngine"]:
        """Initialize an engine for ``dataset`` and always dispose it on exit."""
        engine = cls()
        try:
            await engine.initialize(dataset, format_hint)
            yield engine
        finally:
            await engine.dispose()

    # -- Worker-side ---------------------------------------------------------

    def _load(self, rows: list[Any], format_hint: FormatHint) -> int:
        df = build_frame(rows, format_hint)
        conn = sqlite3.connect(":memory:", check_same_thread=False)
        try:
            df.to_sql(TABLE_NAME, conn, index=False)
        except Exception:
            conn.close()
            raise
        self._conn = conn
        return len(df)

    def _query(self, query_text: str) -> QueryResult:
        if self._conn is None:
            raise QueryEngineStateError("Query store is closed")
        try:
            cursor = self._conn.execute(query_text)
            records = cursor.fetchall()
        except (sqlite3.Error, sqlite3.Warning) as e:
            raise QueryExecError(str(e)) from e

        columns = unique_labels([col[0] for col in cursor.description or []])
        df = pd.DataFrame.from_records(records, columns=columns)
        df = df.astype(object).where(df.notna(), None)
        return QueryResult(
            num_rows=len(df),
            num_cols=len(columns),
            results=df.to_dict(orient="records"),
        )

    def _close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    # -- Public API ----------------------------------------------------------

    async def initialize(self, dataset: TaggedDataset, format_hint: FormatHint = "json") -> None:
        """Load ``dataset`` into the store under the ``data`` table.

        Raises:
            QueryEngineStateError: The engine was already initialized.
            QueryInitError: The dataset could not be loaded. The engine is FAILED
                and must be disposed; initialize a fresh engine to recover.
        """
        if self._status != "IDLE":
            raise QueryEngineStateError(f"Cannot initialize engine in state {self._status}")

        self._status = "INITIALIZING"
        self.init_error = None
        if dataset.rows is None:
            self._fail_init("Dataset has no rows to query")

        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="flat-query")
        loop = asyncio.get_running_loop()
        try:
            row_count = await loop.run_in_executor(
                self._executor, self._load, dataset.rows, format_hint
            )
        except Exception as e:
            logger.exception("[QUERY] Failed to load dataset %r", dataset.key)
            self._fail_init(f"Failed to initialize query store: {e}", e)

        self._status = "READY"
        logger.info("[QUERY] Loaded %d rows into table %s", row_count, TABLE_NAME)

    def _fail_init(self, message: str, cause: Optional[BaseException] = None) -> None:
        self._status = "FAILED"
        self.init_error = message
        raise QueryInitError(message) from cause

    async def execute(self, query_text: str) -> QueryResult:
        """Run one query and return its result set.

        Raises:
            QueryEngineStateError: The engine is not READY.
            QueryExecError: The query failed. The engine stays READY.
        """
        if self._status not in ("READY", "EXECUTING") or self._executor is None:
            raise QueryEngineStateError(f"Cannot execute query in state {self._status}")

        self._status = "EXECUTING"
        self._in_flight += 1
        loop = asyncio.get_running_loop()
        try:
            result = await loop.run_in_executor(self._executor, self._query, query_text)
        except (QueryExecError, QueryEngineStateError):
            raise
        except RuntimeError as e:
            # The worker is gone; nothing more can run against this store
            self._status = "FAILED"
            raise QueryExecError(f"Query store unavailable: {e}") from e
        finally:
            self._in_flight -= 1
            if self._status == "EXECUTING" and not self._in_flight:
                self._status = "READY"

        logger.debug("[QUERY] %r -> %d rows, %d cols", query_text, result.num_rows, result.num_cols)
        return result

    async def dispose(self) -> None:
        """Close the store and stop the worker. Safe to call in any state, repeatedly."""
        executor, self._executor = self._executor, None
        self._status = "IDLE"
        if executor is None:
            return
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(executor, self._close)
        finally:
            executor.shutdown(wait=False)
        logger.info("[QUERY] Disposed query store")
