"""Wires the timer to the time-tracking client."""

from typing import Any

import httpx
import structlog

from taskflow.client.time_tracking import TimeTrackingClient
from taskflow.client.timer import Timer
from taskflow.utils.time import format_elapsed

logger = structlog.get_logger()


class TimerWidget:
    """Start, pause and resume the timer, then log its time on stop."""

    def __init__(self, timer: Timer, client: TimeTrackingClient):
        self.timer = timer
        self.client = client

    @property
    def display(self) -> str:
        return format_elapsed(self.timer.state.elapsed_seconds)

    def start(self, task_id: str, task_name: str) -> None:
        self.timer.start(task_id, task_name)

    def pause(self) -> None:
        self.timer.pause()

    def resume(self) -> None:
        self.timer.resume()

    async def stop_and_log(self, note: str | None = None) -> dict[str, Any] | None:
        """Stop the timer and submit its minutes.

        Returns the created entry, or None when nothing was timed or the
        submission failed. The timer is reset either way.
        """
        task_id = self.timer.state.task_id
        minutes = self.timer.stop()
        if task_id is None or minutes <= 0:
            return None

        try:
            return await self.client.log_time(task_id, minutes, note, entry_type="Timer")
        except httpx.HTTPError as exc:
            logger.warning(
                "timer_time_entry_failed",
                task_id=task_id,
                minutes=minutes,
                error=str(exc),
            )
            return None
