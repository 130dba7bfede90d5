"""Async client for the goal-tracker API (the task source)."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from .models import TaskRecord, tasks_from_goals

logger = logging.getLogger(__name__)


class GoalsAPIError(Exception):
    """Raised when the goal API returns an error."""

    def __init__(self, message: str, status_code: int = 0):
        self.status_code = status_code
        super().__init__(message)


class GoalsClient:
    """Async wrapper for the goal API.

    Usage::

        async with GoalsClient("https://goals.example.com/api", token) as api:
            tasks = await api.fetch_tasks()
    """

    def __init__(
        self,
        base_url: str,
        token: str = "",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._allowed_host = httpx.URL(self._base_url).host
        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> GoalsClient:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    async def close(self) -> None:
        await self._client.aclose()

    # ── Request helpers ─────────────────────────────────────────

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        """Make an authenticated API request and return the ``data`` payload."""
        # Never leak the token to another host
        url = self._client.build_request(method, path).url
        if url.host != self._allowed_host:
            raise GoalsAPIError(f"Refusing to send credentials to {url.host}")

        try:
            resp = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise GoalsAPIError(f"Request to {path} failed: {e}") from e

        try:
            body = resp.json() if resp.content else {}
        except ValueError:
            body = {}

        if resp.status_code >= 400:
            message = body.get("error") if isinstance(body, dict) else None
            raise GoalsAPIError(message or f"HTTP {resp.status_code}", status_code=resp.status_code)

        if isinstance(body, dict):
            if not body.get("success", True):
                raise GoalsAPIError(body.get("error", "Unknown error"), status_code=resp.status_code)
            return body.get("data", body)
        return body

    # ── Goals & tasks ───────────────────────────────────────────

    async def list_goals(self) -> list[dict]:
        data = await self._request("GET", "/goals")
        if isinstance(data, dict):
            data = data.get("goals", [])
        return [goal for goal in data if isinstance(goal, dict)] if isinstance(data, list) else []

    async def fetch_tasks(self) -> list[TaskRecord]:
        goals = await self.list_goals()
        tasks = tasks_from_goals(goals)
        logger.info("Fetched %d tasks across %d goals", len(tasks), len(goals))
        return tasks
