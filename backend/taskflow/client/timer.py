"""Persisted stopwatch for timing work on a single task.

States are Idle, Running and Paused. Elapsed time advances by exactly one
second per tick and only while Running. Every start, pause and resume writes
the full state to storage under ``TIMER_STORAGE_KEY``; stop removes it.

On load a stored Running state resumes ticking from its stored
``elapsed_seconds``. Wall-clock time that passed while the process was down
is not added back.
"""

import asyncio
import math
import time
from dataclasses import asdict, dataclass, replace
from typing import Any, Callable, Protocol

import orjson
import structlog

from taskflow.client.storage import JsonFileStorage, KeyValueStorage
from taskflow.config import Settings, get_settings

logger = structlog.get_logger()

TIMER_STORAGE_KEY = "taskflow_timer"

_RECORD_FIELDS = {
    "is_running": "isRunning",
    "is_paused": "isPaused",
    "task_id": "taskId",
    "task_name": "taskName",
    "elapsed_seconds": "elapsedSeconds",
    "start_time": "startTime",
}


@dataclass(frozen=True)
class TimerState:
    """Snapshot of the timer. ``start_time`` is epoch milliseconds."""

    is_running: bool = False
    is_paused: bool = False
    task_id: str | None = None
    task_name: str | None = None
    elapsed_seconds: int = 0
    start_time: int | None = None

    @property
    def is_ticking(self) -> bool:
        return self.is_running and not self.is_paused

    def to_record(self) -> dict[str, Any]:
        """Storage shape with camelCase keys."""
        return {_RECORD_FIELDS[name]: value for name, value in asdict(self).items()}

    @classmethod
    def from_record(cls, record: Any) -> "TimerState":
        """Rebuild a stored state. Raises ValueError when the record is malformed."""
        if not isinstance(record, dict):
            raise ValueError("Timer record must be a JSON object")

        values = {name: record.get(key) for name, key in _RECORD_FIELDS.items()}
        task_id = values["task_id"]
        task_name = values["task_name"]
        elapsed = values["elapsed_seconds"]
        start_time = values["start_time"]

        if not isinstance(task_id, str) or not task_id:
            raise ValueError("Timer record has no task id")
        if task_name is not None and not isinstance(task_name, str):
            raise ValueError("Timer record task name must be a string")
        # bool is an int subclass
        if isinstance(elapsed, bool) or not isinstance(elapsed, int) or elapsed < 0:
            raise ValueError("Timer record elapsed seconds must be a non-negative integer")
        if start_time is not None and (isinstance(start_time, bool) or not isinstance(start_time, int)):
            raise ValueError("Timer record start time must be epoch milliseconds")
        if values["is_running"] is not True or not isinstance(values["is_paused"], bool):
            raise ValueError("Timer record is not an active timer")

        return cls(
            is_running=True,
            is_paused=values["is_paused"],
            task_id=task_id,
            task_name=task_name,
            elapsed_seconds=elapsed,
            start_time=start_time,
        )


IDLE = TimerState()


class TickHandle(Protocol):
    def cancel(self) -> None: ...


class TickScheduler(Protocol):
    """Runs ``callback`` every ``interval`` seconds until the handle is cancelled."""

    def schedule(self, interval: float, callback: Callable[[], None]) -> TickHandle: ...


class _RepeatingCall:
    """Re-arms ``loop.call_later`` after each run until cancelled."""

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop,
        interval: float,
        callback: Callable[[], None],
    ):
        self._loop = loop
        self._interval = interval
        self._callback = callback
        self._cancelled = False
        self._handle = loop.call_later(interval, self._run)

    def _run(self) -> None:
        if self._cancelled:
            return
        self._handle = self._loop.call_later(self._interval, self._run)
        self._callback()

    def cancel(self) -> None:
        self._cancelled = True
        self._handle.cancel()


class LoopTickScheduler:
    """Tick scheduler backed by the running asyncio event loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None):
        self._loop = loop

    def schedule(self, interval: float, callback: Callable[[], None]) -> TickHandle:
        loop = self._loop or asyncio.get_running_loop()
        return _RepeatingCall(loop, interval, callback)


class Timer:
    """The client's single stopwatch.

    Create one per process with ``create_timer`` and pass it to whatever
    needs it. Normal transitions never raise; an invalid transition is a
    no-op. Storage failures and observer errors are logged and the timer
    keeps running in memory.
    """

    def __init__(
        self,
        storage: KeyValueStorage,
        scheduler: TickScheduler,
        tick_seconds: float = 1.0,
        clock: Callable[[], float] = time.time,
    ):
        self._storage = storage
        self._scheduler = scheduler
        self._tick_seconds = tick_seconds
        self._clock = clock
        self._state = IDLE
        self._tick_handle: TickHandle | None = None
        self._observers: list[Callable[[TimerState], None]] = []

    @property
    def state(self) -> TimerState:
        return self._state

    def subscribe(self, observer: Callable[[TimerState], None]) -> Callable[[], None]:
        """Call ``observer`` with the current state now and on every change.

        Returns a function that unsubscribes it.
        """
        self._observers.append(observer)
        self._notify(observer, self._state)

        def unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    # =========================================================================
    # Transitions
    # =========================================================================

    def start(self, task_id: str, task_name: str) -> None:
        """Start timing ``task_id`` from zero, discarding any active timer.

        Without a running event loop nothing can tick, so the call is a
        no-op and any active timer carries on.
        """
        ticks = self._schedule_ticks()
        if ticks is None:
            return

        self._cancel_ticks()
        self._tick_handle = ticks
        if self._state.is_running:
            logger.info(
                "timer_replaced",
                previous_task_id=self._state.task_id,
                discarded_seconds=self._state.elapsed_seconds,
            )

        self._set_state(
            TimerState(
                is_running=True,
                is_paused=False,
                task_id=str(task_id),
                task_name=task_name,
                elapsed_seconds=0,
                start_time=self._now_ms(),
            )
        )
        self._save()
        logger.info("timer_started", task_id=str(task_id))

    def pause(self) -> None:
        if not self._state.is_running or self._state.is_paused:
            return

        self._cancel_ticks()
        self._set_state(replace(self._state, is_paused=True))
        self._save()
        logger.info(
            "timer_paused",
            task_id=self._state.task_id,
            elapsed_seconds=self._state.elapsed_seconds,
        )

    def resume(self) -> None:
        if not self._state.is_paused:
            return
        ticks = self._schedule_ticks()
        if ticks is None:
            return

        self._tick_handle = ticks
        self._set_state(replace(self._state, is_paused=False, start_time=self._now_ms()))
        self._save()
        logger.info("timer_resumed", task_id=self._state.task_id)

    def stop(self) -> int:
        """Stop and reset. Returns the elapsed time in whole minutes, rounded up."""
        self._cancel_ticks()
        stopped = self._state
        minutes = math.ceil(stopped.elapsed_seconds / 60)

        self._set_state(IDLE)
        self._remove()

        if stopped.is_running:
            logger.info(
                "timer_stopped",
                task_id=stopped.task_id,
                elapsed_seconds=stopped.elapsed_seconds,
                minutes=minutes,
            )
        return minutes

    def load(self) -> None:
        """Restore persisted state. Malformed records are discarded.

        A running record restored outside an event loop comes back paused,
        and that paused state is written back to storage.
        """
        try:
            raw = self._storage.get_item(TIMER_STORAGE_KEY)
        except (OSError, ValueError) as exc:
            logger.warning("timer_storage_read_failed", error=str(exc))
            return
        if raw is None:
            return

        try:
            restored = TimerState.from_record(orjson.loads(raw))
        except ValueError as exc:
            # orjson.JSONDecodeError is a ValueError
            logger.warning("timer_record_discarded", error=str(exc))
            self._remove()
            return

        self._cancel_ticks()
        demoted = False
        if restored.is_ticking:
            self._tick_handle = self._schedule_ticks()
            if self._tick_handle is None:
                restored = replace(restored, is_paused=True)
                demoted = True
        self._set_state(restored)
        if demoted:
            self._save()
        logger.info(
            "timer_restored",
            task_id=restored.task_id,
            elapsed_seconds=restored.elapsed_seconds,
            paused=restored.is_paused,
        )

    def close(self) -> None:
        """Stop ticking without touching state or storage."""
        self._cancel_ticks()

    # =========================================================================
    # Internals
    # =========================================================================

    def _tick(self) -> None:
        # A tick can race a pause or stop at the boundary
        if not self._state.is_ticking:
            return
        self._set_state(replace(self._state, elapsed_seconds=self._state.elapsed_seconds + 1))

    def _schedule_ticks(self) -> TickHandle | None:
        try:
            return self._scheduler.schedule(self._tick_seconds, self._tick)
        except RuntimeError as exc:
            # LoopTickScheduler outside a running loop
            logger.warning("timer_ticks_unavailable", error=str(exc))
            return None

    def _cancel_ticks(self) -> None:
        if self._tick_handle is not None:
            self._tick_handle.cancel()
            self._tick_handle = None

    def _set_state(self, state: TimerState) -> None:
        self._state = state
        for observer in list(self._observers):
            self._notify(observer, state)

    @staticmethod
    def _notify(observer: Callable[[TimerState], None], state: TimerState) -> None:
        try:
            observer(state)
        except Exception as exc:
            logger.warning(
                "timer_observer_failed",
                observer=getattr(observer, "__qualname__", repr(observer)),
                error=str(exc),
            )

    def _save(self) -> None:
        try:
            self._storage.set_item(TIMER_STORAGE_KEY, orjson.dumps(self._state.to_record()).decode())
        except (OSError, ValueError) as exc:
            logger.warning("timer_storage_write_failed", error=str(exc))

    def _remove(self) -> None:
        try:
            self._storage.remove_item(TIMER_STORAGE_KEY)
        except (OSError, ValueError) as exc:
            logger.warning("timer_storage_remove_failed", error=str(exc))

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)


def create_timer(
    settings: Settings | None = None,
    scheduler: TickScheduler | None = None,
    storage: KeyValueStorage | None = None,
) -> Timer:
    """Build the process-wide timer and restore any persisted state.

    Call it from inside a running event loop when using the default
    scheduler, otherwise a restored running timer comes back paused.
    """
    settings = settings or get_settings()
    timer = Timer(
        storage=storage or JsonFileStorage(settings.timer_storage_path),
        scheduler=scheduler or LoopTickScheduler(),
        tick_seconds=settings.timer_tick_seconds,
    )
    timer.load()
    return timer
