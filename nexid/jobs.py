"""
Deferred (async-mode) evaluation with best-effort webhook delivery.
"""

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass
from typing import Optional, Set

import httpx

from .config import Settings
from .errors import UpstreamDeliveryFailed
from .models import VerifyRequest, VerifyResponse
from .risk import decide
from .stores import ResultStore

logger = logging.getLogger(__name__)

CALLBACK_SECRET_HEADER = "X-Callback-Secret"


@dataclass(frozen=True)
class PendingJob:
    request_id: str
    request: VerifyRequest
    ip: str
    fire_at: float


async def deliver_webhook(url: str, response: VerifyResponse, secret: Optional[str] = None):
    """POST a decision to the callback URL once.

    Raises:
        UpstreamDeliveryFailed: On network errors or a non-2xx reply.
    """
    headers = {"Content-Type": "application/json"}
    if secret:
        headers[CALLBACK_SECRET_HEADER] = secret

    try:
        async with httpx.AsyncClient() as client:
            reply = await client.post(url, json=response.to_json(), headers=headers)
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        raise UpstreamDeliveryFailed(f"callback to {url} failed: {e}") from e

    if not reply.is_success:
        raise UpstreamDeliveryFailed(f"callback to {url} returned {reply.status_code}")


class JobDispatcher:
    """Runs the decision engine after a delay and stores the outcome.

    Jobs cannot be cancelled; each one fires exactly once. `drain()` waits
    for everything still in flight, which the app calls on shutdown.
    """

    def __init__(self, settings: Settings, store: ResultStore):
        self.settings = settings
        self.store = store
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def enqueue(self, request: VerifyRequest, ip: str, delay_s: Optional[float] = None) -> str:
        """Schedule an evaluation and return its request id immediately."""
        if delay_s is None:
            delay_s = self.settings.async_delay_ms / 1000
        job = PendingJob(
            request_id=str(uuid.uuid4()),
            request=request,
            ip=ip,
            fire_at=time.time() + delay_s,
        )

        task = asyncio.get_running_loop().create_task(self._run(job, delay_s))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

        logger.debug("enqueued job %s (delay %.3fs)", job.request_id, delay_s)
        return job.request_id

    async def _run(self, job: PendingJob, delay_s: float):
        await asyncio.sleep(delay_s)

        response = decide(job.request, job.ip, job.request_id, self.settings)
        self.store.put(response)
        logger.info("job %s completed: %s (%d)", job.request_id, response.status.value, response.score)

        if self.settings.callback_url:
            try:
                await deliver_webhook(self.settings.callback_url, response, self.settings.callback_secret)
            except UpstreamDeliveryFailed as e:
                logger.warning("webhook for %s not delivered: %s", job.request_id, e)

    async def drain(self):
        if self._tasks:
            logger.info("waiting for %d pending jobs", len(self._tasks))
            results = await asyncio.gather(*list(self._tasks), return_exceptions=True)
            for outcome in results:
                if isinstance(outcome, Exception):
                    logger.error("job failed during shutdown: %r", outcome)
