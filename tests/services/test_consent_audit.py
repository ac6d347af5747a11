"""Tests for the best-effort consent audit client."""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from dietitian.models.consent import ConsentCategories
from dietitian.services.consent_audit import ConsentAuditClient


def _client(handler) -> ConsentAuditClient:
    return ConsentAuditClient("http://site.test/", transport=httpx.MockTransport(handler))


class TestRecordConsent:
    @pytest.mark.asyncio
    async def test_posts_preferences(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"success": True})

        ok = await _client(handler).record_consent(ConsentCategories(analytics=True), "1.0")

        assert ok is True
        assert seen[0].method == "POST"
        assert seen[0].url == "http://site.test/api/consent"
        assert json.loads(seen[0].content) == {
            "functional": False, "analytics": True, "marketing": False, "version": "1.0",
        }

    @pytest.mark.asyncio
    async def test_server_error_swallowed(self):
        client = _client(lambda request: httpx.Response(500))
        assert await client.record_consent(ConsentCategories(), "1.0") is False

    @pytest.mark.asyncio
    async def test_network_error_swallowed(self):
        def handler(request):
            raise httpx.ConnectError("offline", request=request)

        assert await _client(handler).record_consent(ConsentCategories(), "1.0") is False


class TestRecordWithdrawal:
    @pytest.mark.asyncio
    async def test_sends_delete(self):
        methods = []

        def handler(request):
            methods.append(request.method)
            return httpx.Response(200, json={"success": True})

        assert await _client(handler).record_withdrawal() is True
        assert methods == ["DELETE"]

    @pytest.mark.asyncio
    async def test_timeout_swallowed(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        assert await _client(handler).record_withdrawal() is False


class TestFireAndForget:
    @pytest.mark.asyncio
    async def test_submit_schedules_task(self):
        client = _client(lambda request: httpx.Response(200, json={}))

        task = client.submit_consent(ConsentCategories.all_granted(), "1.0")
        assert task is not None
        assert client.pending == 1

        assert await task is True
        await asyncio.sleep(0)
        assert client.pending == 0

    @pytest.mark.asyncio
    async def test_submit_withdrawal_failure_does_not_raise(self):
        def handler(request):
            raise httpx.ConnectError("offline", request=request)

        task = _client(handler).submit_withdrawal()
        assert await task is False

    def test_submit_without_loop_is_skipped(self):
        client = _client(lambda request: httpx.Response(200))
        assert client.submit_consent(ConsentCategories(), "1.0") is None
        assert client.pending == 0
