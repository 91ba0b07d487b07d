"""Tests for flat_viewer.query_session: debounce, supersede and teardown."""

import asyncio

import pytest

from flat_viewer.errors import QueryEngineStateError, QueryInitError
from flat_viewer.models import QueryResult, TaggedDataset
from flat_viewer.query_engine import QueryEngine
from flat_viewer.query_session import QuerySession

DATASET = TaggedDataset(rows=[{"x": 1}, {"x": 2}])


class SlowEngine(QueryEngine):
    """Engine whose first query resolves after later ones."""

    def __init__(self) -> None:
        super().__init__()
        self.calls = []

    async def execute(self, query_text: str) -> QueryResult:
        self.calls.append(query_text)
        if query_text == "select 1":
            await asyncio.sleep(0.05)
        return await super().execute(query_text)


class TrackingEngine(QueryEngine):
    instances = []

    def __init__(self) -> None:
        super().__init__()
        self.disposed = 0
        TrackingEngine.instances.append(self)

    async def dispose(self) -> None:
        self.disposed += 1
        await super().dispose()


class TestLoad:
    @pytest.mark.asyncio
    async def test_ready_after_load(self):
        async with QuerySession(debounce_seconds=0) as session:
            await session.load("d1", DATASET)
            assert session.status == "READY"
            assert session.dataset_id == "d1"

    @pytest.mark.asyncio
    async def test_switch_disposes_previous_engine(self):
        TrackingEngine.instances = []
        async with QuerySession(engine_factory=TrackingEngine) as session:
            await session.load("d1", DATASET)
            await session.load("d2", DATASET)
            first, second = TrackingEngine.instances
            assert first.disposed == 1
            assert first.status == "IDLE"
            assert second.status == "READY"
        assert second.disposed == 1

    @pytest.mark.asyncio
    async def test_init_failure_is_blocking_state(self):
        session = QuerySession()
        with pytest.raises(QueryInitError):
            await session.load("bad", TaggedDataset(invalid_value="nope"))
        assert session.status == "FAILED"
        assert session.init_error
        with pytest.raises(QueryEngineStateError):
            await session.run("select 1")
        # recovery needs a fresh load
        await session.load("good", DATASET)
        assert session.status == "READY"
        assert session.init_error is None
        await session.close()

    @pytest.mark.asyncio
    async def test_close_idempotent(self):
        session = QuerySession()
        await session.close()
        await session.load("d1", DATASET)
        await session.close()
        await session.close()
        assert session.status == "IDLE"


class TestRun:
    @pytest.mark.asyncio
    async def test_run_returns_result(self):
        async with QuerySession() as session:
            await session.load("d1", DATASET)
            outcome = await session.run("select sum(x) as total from data")
            assert not outcome.superseded
            result = outcome.result
            assert result.results == [{"total": 3}]
            assert session.result == result
            assert session.result_key == ("d1", "select sum(x) as total from data")

    @pytest.mark.asyncio
    async def test_stale_result_discarded(self):
        async with QuerySession(engine_factory=SlowEngine) as session:
            await session.load("d1", DATASET)
            first = asyncio.create_task(session.run("select 1"))
            await asyncio.sleep(0)
            second = await session.run("select 2")
            stale = await first
            assert stale.superseded
            assert stale.result is None
            assert second.result is not None
            assert not second.superseded
            assert session.result_key == ("d1", "select 2")
            assert session.result.results == [{"2": 2}]

    @pytest.mark.asyncio
    async def test_failed_then_superseded_reports_superseded(self):
        async with QuerySession(engine_factory=SlowEngine) as session:
            await session.load("d1", DATASET)
            await session.run("selec broken")
            assert session.error
            first = asyncio.create_task(session.run("select 1"))
            await asyncio.sleep(0)
            await session.run("select 2")
            stale = await first
            assert stale.superseded
            assert stale.result is None
            assert session.error is None

    @pytest.mark.asyncio
    async def test_stale_failure_not_recorded(self):
        async with QuerySession(engine_factory=SlowEngine) as session:
            await session.load("d1", DATASET)
            first = asyncio.create_task(session.run("select 1 from missing"))
            await asyncio.sleep(0)
            await session.run("select 2")
            stale = await first
            assert stale.superseded
            assert session.error is None

    @pytest.mark.asyncio
    async def test_error_kept_next_to_previous_result(self):
        async with QuerySession() as session:
            await session.load("d1", DATASET)
            good = (await session.run("select x from data")).result
            failed = await session.run("selec broken")
            assert failed.result is None
            assert not failed.superseded
            assert session.error
            assert session.result == good
            assert session.status == "READY"
            await session.run("select x from data where x = 1")
            assert session.error is None

    @pytest.mark.asyncio
    async def test_run_before_load_rejected(self):
        session = QuerySession()
        with pytest.raises(QueryEngineStateError):
            await session.run("select 1")


class TestSubmit:
    @pytest.mark.asyncio
    async def test_debounce_only_runs_last_input(self):
        async with QuerySession(debounce_seconds=0.02, engine_factory=SlowEngine) as session:
            await session.load("d1", DATASET)
            session.submit("select")
            session.submit("select x")
            session.submit("select x from data")
            await session.wait_idle()
            assert session._engine.calls == ["select x from data"]
            assert session.result.num_rows == 2

    @pytest.mark.asyncio
    async def test_newer_submit_supersedes_in_flight(self):
        async with QuerySession(debounce_seconds=0, engine_factory=SlowEngine) as session:
            await session.load("d1", DATASET)
            session.submit("select 1")
            await asyncio.sleep(0.01)
            session.submit("select 2")
            await session.wait_idle()
            assert session.result_key == ("d1", "select 2")

    @pytest.mark.asyncio
    async def test_load_cancels_pending_query(self):
        async with QuerySession(debounce_seconds=0.05) as session:
            await session.load("d1", DATASET)
            task = session.submit("select x from data")
            await session.load("d2", DATASET)
            await asyncio.wait({task})
            assert task.cancelled()
            assert session.result is None

    @pytest.mark.asyncio
    async def test_submit_before_ready_rejected(self):
        session = QuerySession()
        with pytest.raises(QueryEngineStateError):
            session.submit("select 1")
