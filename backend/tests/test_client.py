"""Tests for the time-tracking HTTP client and the timer widget."""

import json

import httpx
import pytest

from taskflow.client.time_tracking import TimeTrackingClient
from taskflow.client.timer import IDLE, Timer
from taskflow.client.widget import TimerWidget
from taskflow.config import Settings

from fakes import ManualScheduler, MemoryStorage

SETTINGS = Settings(api_base_url="http://taskflow.test")


class RecordingTransport(httpx.MockTransport):
    """Mock transport that keeps every request it answers."""

    def __init__(self, status_code: int = 201, body: dict | None = None):
        self.requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return httpx.Response(status_code, json=body if body is not None else {"id": "entry-1"})

        super().__init__(handler)


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def timer(scheduler):
    return Timer(MemoryStorage(), scheduler)


async def test_log_time_posts_entry_with_bearer_token():
    transport = RecordingTransport(body={"id": "entry-1", "minutes": 25})
    async with TimeTrackingClient("secret-token", SETTINGS, transport=transport) as client:
        result = await client.log_time("task-1", 25, "Focus block")

    request = transport.requests[0]
    assert result == {"id": "entry-1", "minutes": 25}
    assert request.method == "POST"
    assert str(request.url) == "http://taskflow.test/api/v1/tasks/task-1/time-entries"
    assert request.headers["Authorization"] == "Bearer secret-token"
    assert json.loads(request.content) == {
        "minutes": 25,
        "entry_type": "Timer",
        "note": "Focus block",
    }


async def test_log_time_omits_empty_note():
    transport = RecordingTransport()
    async with TimeTrackingClient("t", SETTINGS, transport=transport) as client:
        await client.log_time("task-1", 5)

    assert "note" not in json.loads(transport.requests[0].content)


async def test_log_time_raises_on_error_status():
    transport = RecordingTransport(status_code=403, body={"detail": "Forbidden"})
    async with TimeTrackingClient("t", SETTINGS, transport=transport) as client:
        with pytest.raises(httpx.HTTPStatusError):
            await client.log_time("task-1", 5)


async def test_rollup_and_entries_use_task_paths():
    transport = RecordingTransport(status_code=200, body={"total_minutes": 0})
    async with TimeTrackingClient("t", SETTINGS, transport=transport) as client:
        await client.get_rollup("task-9")
        await client.get_time_entries("task-9")

    assert [r.url.path for r in transport.requests] == [
        "/api/v1/tasks/task-9/rollup",
        "/api/v1/tasks/task-9/time-entries",
    ]


# =========================================================================
# TimerWidget
# =========================================================================


async def test_stop_and_log_submits_rounded_minutes(timer, scheduler):
    transport = RecordingTransport()
    async with TimeTrackingClient("t", SETTINGS, transport=transport) as client:
        widget = TimerWidget(timer, client)
        widget.start("task-1", "Task")
        scheduler.tick(61)
        assert widget.display == "00:01:01"

        result = await widget.stop_and_log("Done")

    assert result == {"id": "entry-1"}
    assert json.loads(transport.requests[0].content)["minutes"] == 2
    assert "/tasks/task-1/" in transport.requests[0].url.path
    assert timer.state == IDLE


async def test_stop_and_log_skips_submission_when_nothing_timed(timer):
    transport = RecordingTransport()
    async with TimeTrackingClient("t", SETTINGS, transport=transport) as client:
        widget = TimerWidget(timer, client)
        widget.start("task-1", "Task")

        result = await widget.stop_and_log()

    assert result is None
    assert transport.requests == []


async def test_stop_and_log_failure_still_resets_timer(timer, scheduler):
    transport = RecordingTransport(status_code=500, body={"detail": "boom"})
    async with TimeTrackingClient("t", SETTINGS, transport=transport) as client:
        widget = TimerWidget(timer, client)
        widget.start("task-1", "Task")
        scheduler.tick(30)
        widget.pause()
        widget.resume()

        result = await widget.stop_and_log()

    assert result is None
    assert len(transport.requests) == 1
    assert timer.state == IDLE


async def test_stop_and_log_network_error_returns_none(timer, scheduler):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("unreachable", request=request)

    async with TimeTrackingClient("t", SETTINGS, transport=httpx.MockTransport(handler)) as client:
        widget = TimerWidget(timer, client)
        widget.start("task-1", "Task")
        scheduler.tick(5)

        assert await widget.stop_and_log() is None
