from __future__ import annotations

import base64
import time
from collections.abc import Callable
from datetime import datetime
from typing import Any

import httpx
from loguru import logger
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from agent_monitor.cost.pricing import TokenUsage

DEFAULT_BASE_URL = "https://api.cursor.com"
DEFAULT_PAGE_SIZE = 100
DEFAULT_CACHE_TTL_SECONDS = 3600.0
USAGE_EVENTS_PATH = "/teams/filtered-usage-events"
_TIMEOUT_SECONDS = 30
_MAX_ATTEMPTS = 4


class CursorApiError(Exception):
    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class RetryableCursorApiError(CursorApiError):
    """Rate limited or a server-side failure; worth another attempt."""


def _on_retry(retry_state) -> None:
    attempt = retry_state.attempt_number
    wait = retry_state.next_action.sleep if retry_state.next_action else 0
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    reason = type(exc).__name__ if exc else "Unknown"
    logger.warning(f"Cursor API {reason}. Retrying in {wait:.0f}s (attempt {attempt}/{_MAX_ATTEMPTS})...")


def _auth_header(api_key: str) -> str:
    token = base64.b64encode(f"{api_key}:".encode()).decode("ascii")
    return f"Basic {token}"


def _event_timestamp(value: object) -> float | None:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value) / 1000
    if isinstance(value, str) and value:
        if value.isdigit():
            return int(value) / 1000
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00")).timestamp()
        except ValueError:
            return None
    return None


def _number(data: dict[str, Any], key: str) -> float:
    value = data.get(key)
    return value if isinstance(value, (int, float)) and not isinstance(value, bool) else 0


class CursorUsageClient:
    """Admin API client for team usage events. Responses are cached per request for an hour."""

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = DEFAULT_BASE_URL,
        cache_ttl_seconds: float = DEFAULT_CACHE_TTL_SECONDS,
        client: httpx.AsyncClient | None = None,
        clock: Callable[[], float] = time.monotonic,
        retry_wait_seconds: float = 2.0,
    ):
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._cache_ttl_seconds = cache_ttl_seconds
        self._client = client or httpx.AsyncClient(timeout=_TIMEOUT_SECONDS)
        self._owns_client = client is None
        self._clock = clock
        self._cache: dict[tuple[int, int, int, int], tuple[float, dict[str, Any]]] = {}
        self._retry_kwargs = {
            "retry": retry_if_exception_type((httpx.TransportError, RetryableCursorApiError)),
            "wait": wait_exponential(multiplier=retry_wait_seconds, min=retry_wait_seconds, max=retry_wait_seconds * 16),
            "stop": stop_after_attempt(_MAX_ATTEMPTS),
            "before_sleep": _on_retry,
            "reraise": True,
        }

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def _cached(self, key: tuple[int, int, int, int]) -> dict[str, Any] | None:
        entry = self._cache.get(key)
        if entry is None:
            return None
        expires_at, data = entry
        if self._clock() > expires_at:
            del self._cache[key]
            return None
        return data

    def _store(self, key: tuple[int, int, int, int], data: dict[str, Any]) -> None:
        now = self._clock()
        for stale in [k for k, (expires_at, _) in self._cache.items() if now > expires_at]:
            del self._cache[stale]
        self._cache[key] = (now + self._cache_ttl_seconds, data)

    async def fetch_events(
        self,
        start_date: int,
        end_date: int,
        *,
        page: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> dict[str, Any]:
        """One page of usage events between two epoch-millisecond timestamps."""
        key = (start_date, end_date, page, page_size)
        cached = self._cached(key)
        if cached is not None:
            return cached

        async for attempt in AsyncRetrying(**self._retry_kwargs):
            with attempt:
                data = await self._post(
                    {"startDate": start_date, "endDate": end_date, "page": page, "pageSize": page_size}
                )

        self._store(key, data)
        return data

    async def _post(self, body: dict[str, Any]) -> dict[str, Any]:
        response = await self._client.post(
            f"{self._base_url}{USAGE_EVENTS_PATH}",
            headers={"Authorization": _auth_header(self._api_key), "Content-Type": "application/json"},
            json=body,
        )
        if response.status_code == 429 or response.status_code >= 500:
            raise RetryableCursorApiError(
                f"HTTP {response.status_code} from Cursor API",
                status_code=response.status_code,
            )
        if response.status_code >= 400:
            raise CursorApiError(
                f"HTTP {response.status_code} from Cursor API: {response.text[:200]}",
                status_code=response.status_code,
            )
        try:
            data = response.json()
        except ValueError as ex:
            raise CursorApiError("Cursor API returned invalid JSON") from ex
        if not isinstance(data, dict):
            raise CursorApiError("Cursor API returned an unexpected payload")
        return data

    async def fetch_all_events(self, start_date: int, end_date: int, *, max_pages: int = 10) -> list[dict[str, Any]]:
        events: list[dict[str, Any]] = []
        for page in range(1, max_pages + 1):
            data = await self.fetch_events(start_date, end_date, page=page)
            page_events = data.get("usageEvents")
            if isinstance(page_events, list):
                events.extend(e for e in page_events if isinstance(e, dict))
            pagination = data.get("pagination")
            if not isinstance(pagination, dict) or not pagination.get("hasNextPage"):
                break
        return events

    async def test_connection(self) -> bool:
        now_ms = int(time.time() * 1000)
        try:
            await self.fetch_events(now_ms - 86_400_000, now_ms, page=1, page_size=1)
        except (CursorApiError, httpx.HTTPError) as ex:
            logger.warning(f"Cursor API connection test failed: {ex}")
            return False
        return True

    @staticmethod
    def to_usage(events: list[dict[str, Any]]) -> list[TokenUsage]:
        usages: list[TokenUsage] = []
        for event in events:
            tokens = event.get("tokenUsage") if isinstance(event.get("tokenUsage"), dict) else {}
            model = event.get("model")
            usages.append(
                TokenUsage(
                    input_tokens=int(_number(tokens, "inputTokens")),
                    output_tokens=int(_number(tokens, "outputTokens")),
                    cache_read_tokens=int(_number(tokens, "cacheReadTokens")),
                    cache_creation_tokens=int(_number(tokens, "cacheWriteTokens")),
                    model=model if isinstance(model, str) and model else "unknown",
                    timestamp=_event_timestamp(event.get("timestamp")),
                )
            )
        return usages

    @staticmethod
    def total_cost_usd(events: list[dict[str, Any]]) -> float:
        cents = 0.0
        for event in events:
            tokens = event.get("tokenUsage") if isinstance(event.get("tokenUsage"), dict) else {}
            cents += _number(tokens, "totalCents") + _number(event, "cursorTokenFee")
        return cents / 100
