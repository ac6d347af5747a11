"""Best-effort audit logging of consent decisions.

POSTs every decision and DELETEs on withdrawal to the consent audit
endpoint. The audit sink never gates client behaviour: failures are logged
and swallowed, and the ``submit_*`` variants are fire-and-forget so the
decision path never waits on the network.
"""

from __future__ import annotations

import asyncio
from collections.abc import Coroutine
from typing import Any

import httpx
import structlog

from dietitian.models.consent import ConsentCategories

logger = structlog.get_logger()

CONSENT_AUDIT_PATH = "/api/consent"


class ConsentAuditClient:
    def __init__(
        self,
        base_url: str,
        timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport
        self._pending: set[asyncio.Task] = set()

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout, transport=self._transport)

    async def record_consent(self, categories: ConsentCategories, version: str) -> bool:
        payload = {
            "functional": categories.functional,
            "analytics": categories.analytics,
            "marketing": categories.marketing,
            "version": version,
        }
        try:
            async with self._client() as client:
                resp = await client.post(CONSENT_AUDIT_PATH, json=payload)
                resp.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning("consent_audit_failed", action="consent", error=str(e))
            return False
        return True

    async def record_withdrawal(self) -> bool:
        try:
            async with self._client() as client:
                resp = await client.delete(CONSENT_AUDIT_PATH)
                resp.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning("consent_audit_failed", action="withdrawal", error=str(e))
            return False
        return True

    def submit_consent(self, categories: ConsentCategories, version: str) -> asyncio.Task | None:
        return self._schedule(self.record_consent(categories, version))

    def submit_withdrawal(self) -> asyncio.Task | None:
        return self._schedule(self.record_withdrawal())

    @property
    def pending(self) -> int:
        return len(self._pending)

    def _schedule(self, coro: Coroutine[Any, Any, bool]) -> asyncio.Task | None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            coro.close()
            logger.debug("consent_audit_skipped", reason="no_running_loop")
            return None

        task = loop.create_task(coro)
        # Keep a strong reference until done, otherwise the task may be collected.
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task
