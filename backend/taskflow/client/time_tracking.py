"""HTTP client for the time-tracking endpoints."""

from typing import Any
from uuid import UUID

import httpx
import structlog

from taskflow.config import Settings, get_settings

logger = structlog.get_logger()


class TimeTrackingClient:
    """Logs and reads time entries over the TaskFlow API."""

    def __init__(
        self,
        token: str,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        settings = settings or get_settings()
        self.api_prefix = settings.api_prefix
        self._client = httpx.AsyncClient(
            base_url=settings.api_base_url,
            timeout=settings.client_timeout_seconds,
            headers={"Authorization": f"Bearer {token}"},
            transport=transport,
        )

    async def __aenter__(self) -> "TimeTrackingClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def log_time(
        self,
        task_id: UUID | str,
        minutes: int,
        note: str | None = None,
        entry_type: str = "Timer",
    ) -> dict[str, Any]:
        """Create a time entry. Raises httpx.HTTPStatusError on a non-2xx reply."""
        payload: dict[str, Any] = {"minutes": minutes, "entry_type": entry_type}
        if note:
            payload["note"] = note

        response = await self._client.post(
            f"{self.api_prefix}/tasks/{task_id}/time-entries", json=payload
        )
        response.raise_for_status()

        logger.info("time_entry_submitted", task_id=str(task_id), minutes=minutes)
        return response.json()

    async def get_time_entries(self, task_id: UUID | str) -> list[dict[str, Any]]:
        response = await self._client.get(f"{self.api_prefix}/tasks/{task_id}/time-entries")
        response.raise_for_status()
        return response.json()

    async def get_rollup(self, task_id: UUID | str) -> dict[str, Any]:
        response = await self._client.get(f"{self.api_prefix}/tasks/{task_id}/rollup")
        response.raise_for_status()
        return response.json()
