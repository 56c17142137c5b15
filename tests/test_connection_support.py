"""
Tests for timers, the log poller and the availability monitor.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from pmon_client.components.connection import AvailabilityMonitor, LogPoller, ScheduledTask
from pmon_client.schemas import LogReadResult
from pmon_client.utils.exceptions import TransportError
from tests.conftest import eventually


class TestScheduledTask:

    @pytest.mark.asyncio
    async def test_start_once_fires_once(self):
        fired = []
        task = ScheduledTask("once")
        task.start_once(0, lambda: fired.append(1))

        await eventually(lambda: not task.active)
        assert fired == [1]
        assert task.fired == 1

    @pytest.mark.asyncio
    async def test_cancel_before_firing(self):
        callback = MagicMock()
        task = ScheduledTask("once")
        task.start_once(10.0, callback)
        assert task.active

        task.cancel()
        await asyncio.sleep(0)

        assert not task.active
        callback.assert_not_called()

    @pytest.mark.asyncio
    async def test_restart_replaces_previous_task(self):
        first, second = MagicMock(), MagicMock()
        task = ScheduledTask("timer")
        task.start_once(10.0, first)
        task.start_once(0, second)

        await eventually(lambda: second.called)
        first.assert_not_called()

    @pytest.mark.asyncio
    async def test_interval_survives_callback_errors(self):
        calls = []

        async def flaky():
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("boom")

        task = ScheduledTask("interval")
        task.start_interval(0.001, flaky, immediate=True)
        await eventually(lambda: len(calls) >= 3)
        task.cancel()
        assert not task.active

    @pytest.mark.asyncio
    async def test_cancel_from_inside_callback_stops_interval(self):
        task = ScheduledTask("interval")
        calls = []

        def stop_after_two():
            calls.append(1)
            if len(calls) == 2:
                task.cancel()

        task.start_interval(0.001, stop_after_two, immediate=True)
        await eventually(lambda: len(calls) == 2)
        await asyncio.sleep(0.01)

        assert len(calls) == 2
        assert not task.active


class TestLogPoller:

    def make_poller(self, http, offsets=None, on_lines=None):
        offsets = offsets if offsets is not None else {}
        return LogPoller(
            http,
            get_offset=lambda file: offsets.get(file, 0),
            on_lines=on_lines or AsyncMock(),
            interval=30.0,
            limit=500,
        )

    @pytest.mark.asyncio
    async def test_polls_immediately_from_shared_offset(self):
        http = MagicMock()
        http.read_log = AsyncMock(return_value=LogReadResult(lines=["x"], lastId=12))
        on_lines = AsyncMock()
        poller = self.make_poller(http, {"a.log": 9}, on_lines)

        poller.start("a.log")
        await eventually(lambda: on_lines.await_count == 1)
        poller.stop()

        http.read_log.assert_awaited_once_with("a.log", 9, 500)
        on_lines.assert_awaited_once_with("a.log", ["x"], 12)
        assert poller.file is None

    @pytest.mark.asyncio
    async def test_starting_same_file_twice_is_noop(self):
        http = MagicMock()
        http.read_log = AsyncMock(return_value=LogReadResult())
        poller = self.make_poller(http)

        poller.start("a.log")
        poller.start("a.log")
        await eventually(lambda: http.read_log.await_count >= 1)
        await asyncio.sleep(0.01)
        poller.stop()

        assert http.read_log.await_count == 1

    @pytest.mark.asyncio
    async def test_failures_are_counted_not_raised(self):
        http = MagicMock()
        http.read_log = AsyncMock(
            side_effect=[
                TransportError("GET /logs/read", "timeout"),
                LogReadResult(error="File not found"),
            ]
        )
        on_lines = AsyncMock()
        poller = self.make_poller(http, on_lines=on_lines)
        poller._file = "a.log"

        await poller.poll_once()
        await poller.poll_once()

        assert poller.get_stats()["failures"] == 2
        on_lines.assert_not_awaited()


class TestAvailabilityMonitor:

    @pytest.mark.asyncio
    async def test_recovery_edge_triggers_reconnect(self):
        probe = AsyncMock(side_effect=[False, False, True, True])
        on_recovered = AsyncMock()
        changes = []
        monitor = AvailabilityMonitor(probe, on_recovered, on_change=changes.append)

        for _ in range(4):
            await monitor.check()

        assert changes == [False, True]
        on_recovered.assert_awaited_once()
        assert monitor.available is True

    @pytest.mark.asyncio
    async def test_first_probe_up_is_not_a_recovery(self):
        on_recovered = AsyncMock()
        monitor = AvailabilityMonitor(AsyncMock(return_value=True), on_recovered)

        await monitor.check()

        on_recovered.assert_not_awaited()
        assert monitor.available is True

    @pytest.mark.asyncio
    async def test_start_probes_immediately(self):
        probe = AsyncMock(return_value=True)
        monitor = AvailabilityMonitor(probe, AsyncMock(), interval=30.0)

        monitor.start()
        await eventually(lambda: probe.await_count == 1)
        assert monitor.active
        monitor.stop()
        assert not monitor.active
