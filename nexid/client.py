"""
Client for the NexID risk API, with a behavioral snapshot collector.
"""

import asyncio
import platform
import time
import uuid
from typing import Any, Callable, Dict, List, Optional, Tuple
from urllib.parse import urlsplit, urlunsplit

import httpx

from .models import SDK_VERSION, BehaviorSnapshot, Context, Screen, Status, VerifyResponse

VERIFY_PATH = "/identity/verify"
RESULT_PATH = "/identity/result/"


class SnapshotCollector:
    """
    Accumulates interaction telemetry for one session and builds snapshots.

    The session id and counters live as long as the collector, so repeated
    verify calls from the same session report cumulative values.

    Args:
        user_agent: Reported user agent.
        languages: Accepted languages, most preferred first.
        timezone: IANA timezone name.
        screen: Screen geometry.
        clock: Wall clock in seconds, overridable in tests.
    """

    def __init__(
        self,
        user_agent: str = "nexid-python",
        languages: Optional[List[str]] = None,
        timezone: str = "UTC",
        screen: Optional[Screen] = None,
        platform_name: Optional[str] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.user_agent = user_agent
        self.languages = list(languages or ["en-US"])
        self.timezone = timezone
        self.screen = screen or Screen(w=0, h=0, dpr=1.0)
        self.platform = platform_name or platform.system() or "unknown"
        self.session_id = str(uuid.uuid4())

        self._clock = clock
        self._started = clock()
        self._last_blur: Optional[float] = None
        self.mouse_moves = 0
        self.tab_inactive_ms = 0.0

    def record_mouse_move(self, count: int = 1):
        self.mouse_moves += count

    def blur(self):
        self._last_blur = self._clock()

    def focus(self):
        if self._last_blur is not None:
            self.tab_inactive_ms += (self._clock() - self._last_blur) * 1000
            self._last_blur = None

    def snapshot(self) -> BehaviorSnapshot:
        now = self._clock()
        elapsed_ms = (now - self._started) * 1000
        return BehaviorSnapshot(
            userAgent=self.user_agent,
            languages=self.languages,
            timezone=self.timezone,
            screen=self.screen,
            platform=self.platform,
            sessionId=self.session_id,
            pageTimeMs=max(0.0, elapsed_ms - self.tab_inactive_ms),
            mouseMoves=self.mouse_moves,
            tabInactiveMs=self.tab_inactive_ms,
            lastActivityTs=now * 1000,
            sdkVersion=SDK_VERSION,
        )


def result_url_for(endpoint: str, request_id: str) -> str:
    """Derive the result URL for `request_id` from the verify endpoint.

    Examples:
        >>> result_url_for("https://api.example.com/identity/verify", "abc")
        'https://api.example.com/identity/result/abc'
    """
    parts = urlsplit(endpoint)
    path = parts.path
    if path.endswith(VERIFY_PATH):
        path = path[: -len(VERIFY_PATH)] + RESULT_PATH + request_id
    else:
        path = RESULT_PATH + request_id
    return urlunsplit((parts.scheme, parts.netloc, path, "", ""))


class RiskClient:
    """
    Client for the NexID verify and result endpoints.

    Args:
        endpoint: Full URL of the /identity/verify endpoint.
        api_key: Sent as X-API-Key when set.
        context: Default interaction context.
        collector: Snapshot source. A fresh collector is created if omitted.
        timeout_s: Per-request timeout in seconds. Default: 5.0

    Example:
        >>> client = RiskClient("http://localhost:3000/identity/verify")
        >>> pending = await client.verify(context="checkout", run_async=True)
        >>> result = await client.poll(pending.requestId)
        >>> result.status
        <Status.ALLOW: 'allow'>
    """

    def __init__(
        self,
        endpoint: str,
        api_key: Optional[str] = None,
        context: Context = Context.LOGIN,
        collector: Optional[SnapshotCollector] = None,
        timeout_s: float = 5.0,
    ):
        self.endpoint = endpoint
        self.api_key = api_key
        self.context = Context(context)
        self.collector = collector or SnapshotCollector()
        self.timeout_s = timeout_s

    def _headers(self) -> Dict[str, str]:
        return {"X-API-Key": self.api_key} if self.api_key else {}

    def _verify_args(
        self,
        context: Optional[Context],
        user_id: Optional[str],
        email_hash: Optional[str],
        run_async: bool,
    ) -> Tuple[str, Dict[str, Any]]:
        payload: Dict[str, Any] = {
            "context": Context(context or self.context).value,
            "snapshot": self.collector.snapshot().model_dump(mode="json"),
        }
        if user_id is not None:
            payload["userId"] = user_id
        if email_hash is not None:
            payload["emailHash"] = email_hash

        url = self.endpoint
        if run_async:
            url += "&async=1" if "?" in url else "?async=1"
        return url, payload

    @staticmethod
    def _parse(response: httpx.Response, request_id: Optional[str] = None) -> VerifyResponse:
        response.raise_for_status()
        data = response.json()
        if data.get("status") == Status.PROCESSING.value:
            return VerifyResponse.processing(data.get("requestId") or request_id or "")
        return VerifyResponse.model_validate(data)

    async def verify(
        self,
        context: Optional[Context] = None,
        user_id: Optional[str] = None,
        email_hash: Optional[str] = None,
        run_async: bool = False,
    ) -> VerifyResponse:
        """
        Submit the current snapshot for a decision.

        With run_async=True the reply is the placeholder
        (status review, reasons ["processing"]); pass its requestId to poll().

        Raises:
            httpx.HTTPStatusError: On 4xx/5xx replies (unauthorized,
                rate limited, invalid payload)
            httpx.HTTPError: On network errors
        """
        url, payload = self._verify_args(context, user_id, email_hash, run_async)
        async with httpx.AsyncClient(timeout=self.timeout_s) as client:
            response = await client.post(url, json=payload, headers=self._headers())
        return self._parse(response)

    def verify_sync(
        self,
        context: Optional[Context] = None,
        user_id: Optional[str] = None,
        email_hash: Optional[str] = None,
        run_async: bool = False,
    ) -> VerifyResponse:
        """Blocking variant of verify()."""
        url, payload = self._verify_args(context, user_id, email_hash, run_async)
        with httpx.Client(timeout=self.timeout_s) as client:
            response = client.post(url, json=payload, headers=self._headers())
        return self._parse(response)

    async def poll(
        self,
        request_id: str,
        interval_s: float = 0.8,
        timeout_s: float = 10.0,
    ) -> VerifyResponse:
        """
        Poll for an async result until it completes or `timeout_s` elapses.

        Never raises on timeout: the last response seen is returned, which
        may still have status "processing".
        """
        url = result_url_for(self.endpoint, request_id)
        deadline = time.monotonic() + timeout_s
        async with httpx.AsyncClient(timeout=self.timeout_s) as client:
            while True:
                result = self._parse(await client.get(url, headers=self._headers()), request_id)
                if result.status != Status.PROCESSING or time.monotonic() > deadline:
                    return result
                await asyncio.sleep(interval_s)

    def poll_sync(
        self,
        request_id: str,
        interval_s: float = 0.8,
        timeout_s: float = 10.0,
    ) -> VerifyResponse:
        """Blocking variant of poll()."""
        url = result_url_for(self.endpoint, request_id)
        deadline = time.monotonic() + timeout_s
        with httpx.Client(timeout=self.timeout_s) as client:
            while True:
                result = self._parse(client.get(url, headers=self._headers()), request_id)
                if result.status != Status.PROCESSING or time.monotonic() > deadline:
                    return result
                time.sleep(interval_s)
