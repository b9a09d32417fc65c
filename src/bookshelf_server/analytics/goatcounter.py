"""
GoatCounter Client

Two GoatCounter surfaces are used:

- The authenticated stats API (``/api/v0/stats/...``) for dashboards. Each
  call is retried once: after 1 s on HTTP 429, after 0.5 s on a transport
  error. Anything else yields ``None``.
- The public per-path counter (``/counter/<path>.json``) for view counts,
  which degrades to ``"0"``.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional
from urllib.parse import quote

import httpx
from tenacity import AsyncRetrying, RetryCallState, retry_if_exception_type, stop_after_attempt

from ..config import settings

logger = logging.getLogger("bookshelf.goatcounter")

Sleep = Callable[[float], Awaitable[None]]

RATE_LIMIT_BACKOFF_SECONDS = 1.0
TRANSPORT_BACKOFF_SECONDS = 0.5

# Characters left alone by JavaScript's encodeURI / encodeURIComponent.
_URI_SAFE = ";,/?:@&=+$!*'()#~"
_COMPONENT_SAFE = "!*'()~"


class RateLimited(Exception):
    """HTTP 429 from the stats API."""


def _backoff(retry_state: RetryCallState) -> float:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    return RATE_LIMIT_BACKOFF_SECONDS if isinstance(exc, RateLimited) else TRANSPORT_BACKOFF_SECONDS


def counter_key(path: str) -> str:
    """
    Encode a site path the way the counter endpoint expects it: the
    browser-visible (URI-encoded) path, encoded again as one component.
    """
    return quote(quote(path, safe=_URI_SAFE), safe=_COMPONENT_SAFE)


def iso_utc(moment: datetime) -> str:
    """``2024-01-02T03:04:05.000Z`` for an aware UTC datetime."""
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


class GoatCounterClient:
    """
    Async client for the GoatCounter stats API and public counters.
    """

    def __init__(
        self,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.base_url = str(settings.goatcounter_base_url).rstrip("/")
        self._transport = transport
        self._sleep = sleep

    @property
    def enabled(self) -> bool:
        return settings.goatcounter_api_token is not None

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=settings.http_timeout_seconds,
            follow_redirects=True,
            transport=self._transport,
        )

    # ------------------------------------------------------------------
    # Stats API
    # ------------------------------------------------------------------

    async def _stats(self, path: str, params: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        if not self.enabled:
            return None

        headers = {
            "Authorization": f"Bearer {settings.goatcounter_api_token.get_secret_value()}",
            "Content-Type": "application/json",
        }

        retrying = AsyncRetrying(
            stop=stop_after_attempt(2),
            wait=_backoff,
            retry=retry_if_exception_type((httpx.TransportError, RateLimited)),
            sleep=self._sleep,
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    resp = await self._get_stats(path, params, headers)
        except (httpx.HTTPError, RateLimited) as exc:
            logger.warning("GoatCounter %s failed (%s)", path, type(exc).__name__)
            return None

        if not resp.is_success:
            logger.warning("GoatCounter %s returned HTTP %d", path, resp.status_code)
            return None
        try:
            return resp.json()
        except ValueError:
            logger.warning("GoatCounter %s returned invalid JSON", path)
            return None

    async def _get_stats(
        self,
        path: str,
        params: Dict[str, Any],
        headers: Dict[str, str],
    ) -> httpx.Response:
        async with self._client() as client:
            resp = await client.get(path, params=params, headers=headers)
        if resp.status_code == 429:
            raise RateLimited(path)
        return resp

    async def total(self, start: datetime, end: datetime) -> Optional[Dict[str, Any]]:
        """``{"total": int, "stats": [{"day": "YYYY-MM-DD", "daily": int}]}``"""
        return await self._stats(
            "/api/v0/stats/total/",
            {"start": iso_utc(start), "end": iso_utc(end)},
        )

    async def hits(
        self,
        start: datetime,
        end: datetime,
        limit: int,
        daily: bool = True,
    ) -> Optional[Dict[str, Any]]:
        """``{"hits": [{"path", "title", "count", ...}]}``"""
        return await self._stats(
            "/api/v0/stats/hits/",
            {
                "start": iso_utc(start),
                "end": iso_utc(end),
                "limit": limit,
                "daily": "true" if daily else "false",
            },
        )

    async def breakdown(
        self,
        kind: str,
        start: datetime,
        end: datetime,
        limit: int = 10,
    ) -> Optional[Dict[str, Any]]:
        """
        ``browsers``, ``systems``, ``locations`` or ``languages`` stats.
        """
        return await self._stats(
            f"/api/v0/stats/{kind}/",
            {"start": iso_utc(start), "end": iso_utc(end), "limit": limit},
        )

    # ------------------------------------------------------------------
    # Public counters
    # ------------------------------------------------------------------

    async def page_count(self, path: str) -> str:
        """
        View count of one site path as GoatCounter formats it, ``"0"`` on
        any failure.
        """
        if not path:
            return "0"
        try:
            async with self._client() as client:
                resp = await client.get(f"/counter/{counter_key(path)}.json")
            if not resp.is_success:
                return "0"
            count = resp.json().get("count")
        except (httpx.HTTPError, ValueError, AttributeError) as exc:
            logger.warning("View count for %s unavailable (%s)", path, type(exc).__name__)
            return "0"
        return "0" if count is None else str(count)

    async def page_counts(self, paths: List[str]) -> Dict[str, str]:
        """Counts for many paths, fetched concurrently."""
        counts = await asyncio.gather(*(self.page_count(p) for p in paths))
        return dict(zip(paths, counts))
