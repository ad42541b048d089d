"""Client library: persisted stopwatch timer and time-tracking API client."""

from taskflow.client.storage import JsonFileStorage, KeyValueStorage
from taskflow.client.time_tracking import TimeTrackingClient
from taskflow.client.timer import (
    TIMER_STORAGE_KEY,
    LoopTickScheduler,
    Timer,
    TimerState,
    create_timer,
)
from taskflow.client.widget import TimerWidget

__all__ = [
    "JsonFileStorage",
    "KeyValueStorage",
    "TimeTrackingClient",
    "TIMER_STORAGE_KEY",
    "LoopTickScheduler",
    "Timer",
    "TimerState",
    "TimerWidget",
    "create_timer",
]
