"""Tests for inboxwatch.webhook."""

from __future__ import annotations

import json

import httpx
import pytest
import respx

from tests.conftest import _make_message

from inboxwatch.config import WebhookConfig
from inboxwatch.models import Category
from inboxwatch.webhook import USER_AGENT, HttpWebhookSink, batch_timeout

WEBHOOK_URL = "https://hooks.example.test/inbound"


@pytest.fixture
def config() -> WebhookConfig:
    return WebhookConfig(url=WEBHOOK_URL)


class TestBatchTimeout:
    def test_small_batches_use_base(self):
        assert batch_timeout(1, 15.0) == 15.0
        assert batch_timeout(10, 15.0) == 15.0

    def test_grows_per_message_beyond_ten(self):
        assert batch_timeout(11, 15.0) == 15.5
        assert batch_timeout(30, 15.0) == 25.0

    def test_capped_at_sixty_seconds(self):
        assert batch_timeout(500, 15.0) == 60.0


class TestBuildPayload:
    def test_envelope(self, config: WebhookConfig):
        sink = HttpWebhookSink(config)
        message = _make_message(category=Category.INTERESTED)

        payload = sink.build_payload(message)

        assert payload["event"] == "email.interested"
        assert "timestamp" in payload
        assert payload["metadata"]["source"] == "reachinbox-email-aggregator"
        assert payload["metadata"]["version"] == "1.0.0"
        assert "processedAt" in payload["metadata"]
        data = payload["data"]
        assert data["id"] == "a@x.com_1"
        assert data["email"] == "a@x.com"
        assert data["from"] == "lead@example.com"
        assert data["category"] == "Interested"
        assert data["attachments"] == []
        assert data["flags"] == []
        assert "messageId" in data
        assert "inReplyTo" in data


class TestTrigger:
    @pytest.mark.asyncio
    async def test_success(self, config: WebhookConfig):
        sink = HttpWebhookSink(config)
        await sink.start()
        try:
            with respx.mock:
                route = respx.post(WEBHOOK_URL).mock(return_value=httpx.Response(202))
                assert await sink.trigger(_make_message(category=Category.INTERESTED)) is True
            request = route.calls.last.request
            assert request.headers["User-Agent"] == USER_AGENT
            assert request.headers["Content-Type"] == "application/json"
            assert json.loads(request.content)["event"] == "email.interested"
        finally:
            await sink.stop()

    @pytest.mark.asyncio
    async def test_server_error(self, config: WebhookConfig):
        sink = HttpWebhookSink(config)
        await sink.start()
        try:
            with respx.mock:
                respx.post(WEBHOOK_URL).mock(return_value=httpx.Response(500))
                assert await sink.trigger(_make_message()) is False
        finally:
            await sink.stop()

    @pytest.mark.asyncio
    async def test_timeout(self, config: WebhookConfig):
        sink = HttpWebhookSink(config)
        await sink.start()
        try:
            with respx.mock:
                respx.post(WEBHOOK_URL).mock(side_effect=httpx.ReadTimeout("slow"))
                assert await sink.trigger(_make_message()) is False
        finally:
            await sink.stop()

    @pytest.mark.asyncio
    async def test_unconfigured(self):
        sink = HttpWebhookSink(WebhookConfig(url=""))
        await sink.start()
        try:
            assert sink.is_configured is False
            assert await sink.trigger(_make_message()) is False
            assert await sink.trigger_batch([_make_message()]) is False
            assert await sink.send_test() is False
        finally:
            await sink.stop()


class TestTriggerBatch:
    @pytest.mark.asyncio
    async def test_batch_envelope(self, config: WebhookConfig):
        sink = HttpWebhookSink(config)
        await sink.start()
        try:
            messages = [_make_message(uid=i, category=Category.INTERESTED) for i in (1, 2)]
            with respx.mock:
                route = respx.post(WEBHOOK_URL).mock(return_value=httpx.Response(200))
                assert await sink.trigger_batch(messages) is True
            body = json.loads(route.calls.last.request.content)
            assert body["event"] == "email.batch.interested"
            assert body["count"] == 2
            assert [d["id"] for d in body["data"]] == ["a@x.com_1", "a@x.com_2"]
            assert body["metadata"]["source"] == "reachinbox-email-aggregator"
        finally:
            await sink.stop()


class TestOtherCalls:
    @pytest.mark.asyncio
    async def test_send_test(self, config: WebhookConfig):
        sink = HttpWebhookSink(config)
        await sink.start()
        try:
            with respx.mock:
                route = respx.post(WEBHOOK_URL).mock(return_value=httpx.Response(200))
                assert await sink.send_test() is True
            body = json.loads(route.calls.last.request.content)
            assert body["event"] == "test"
            assert "Reachinbox" in body["message"]
        finally:
            await sink.stop()

    @pytest.mark.asyncio
    async def test_send_error(self, config: WebhookConfig):
        sink = HttpWebhookSink(config)
        await sink.start()
        try:
            with respx.mock:
                route = respx.post(WEBHOOK_URL).mock(return_value=httpx.Response(200))
                assert await sink.send_error(ValueError("bad"), "classifier") is True
            body = json.loads(route.calls.last.request.content)
            assert body["event"] == "error"
            assert body["error"] == {"message": "bad", "type": "ValueError", "context": "classifier"}
            assert body["metadata"]["severity"] == "error"
        finally:
            await sink.stop()

    @pytest.mark.asyncio
    async def test_trigger_custom_merges_headers(self, config: WebhookConfig):
        sink = HttpWebhookSink(config)
        await sink.start()
        try:
            other = "https://crm.example.test/hook"
            with respx.mock:
                route = respx.post(other).mock(return_value=httpx.Response(201))
                sent = await sink.trigger_custom(other, {"hello": "world"}, {"X-Token": "abc"})
            assert sent is True
            request = route.calls.last.request
            assert request.headers["X-Token"] == "abc"
            assert request.headers["User-Agent"] == USER_AGENT
            assert json.loads(request.content) == {"hello": "world"}
        finally:
            await sink.stop()
