"""Tests for the aiohttp collaborator clients against a local server."""

from contextlib import asynccontextmanager
from datetime import datetime, timezone

import pytest
from aiohttp import web
from aiohttp import test_utils

from escalator.config import (
    DatadogConfig,
    RemediationConfig,
    SMSConfig,
    SummarizerConfig,
    WebhookConfig,
)
from escalator.errors import AdapterError, DeliveryError, ParseError
from escalator.integrations.datadog import DatadogLogSource
from escalator.integrations.remediation import RemediationClient
from escalator.integrations.sms import SMSNotifier
from escalator.integrations.summarizer import Summarizer
from escalator.integrations.webhook import WebhookEmitter
from escalator.models.event import Event, EventLevel


@asynccontextmanager
async def serve(*routes):
    """Run an aiohttp app with the given routes; yields its base URL."""
    app = web.Application()
    app.add_routes(list(routes))
    server = test_utils.TestServer(app)
    await server.start_server()
    try:
        yield f"http://{server.host}:{server.port}"
    finally:
        await server.close()


def respond(status=200, body=None, text=None, seen=None):
    """Handler returning a fixed response and recording each request."""

    async def handler(request):
        if seen is not None:
            content = await request.read()
            seen.append({"headers": request.headers.copy(), "body": content, "path": request.path})
        if body is not None:
            return web.json_response(body, status=status)
        return web.Response(status=status, text=text or "")

    return handler


@pytest.fixture
def event():
    return Event(
        id="log-1",
        timestamp=datetime(2024, 1, 15, 10, 30, 0, tzinfo=timezone.utc),
        message="Error: DB_TIMEOUT_01 occurred",
        level=EventLevel.ERROR,
        service="checkout",
    )


SEARCH_PATH = "/api/v2/logs/events/search"


class TestDatadogLogSource:
    """Test cases for the log-search adapter."""

    def source(self, base_url):
        return DatadogLogSource(DatadogConfig(api_key="dd-key", app_key="dd-app", api_url=base_url))

    @pytest.mark.asyncio
    async def test_query_returns_events(self):
        seen = []
        body = {"data": [{"id": "a", "attributes": {"message": "boom", "status": "error"}}]}

        async with serve(web.post(SEARCH_PATH, respond(body=body, seen=seen))) as base_url:
            events = await self.source(base_url).query(
                datetime(2024, 1, 1, tzinfo=timezone.utc),
                datetime(2024, 1, 2, tzinfo=timezone.utc),
            )

        assert [e.id for e in events] == ["a"]
        assert seen[0]["headers"]["DD-API-KEY"] == "dd-key"
        assert seen[0]["headers"]["DD-APPLICATION-KEY"] == "dd-app"
        assert b'"from": "2024-01-01T00:00:00+00:00"' in seen[0]["body"]

    @pytest.mark.asyncio
    async def test_error_status_raises(self):
        handler = respond(status=403, text="Forbidden")
        async with serve(web.post(SEARCH_PATH, handler)) as base_url:
            with pytest.raises(AdapterError, match="403"):
                await self.source(base_url).query(None, None)

    @pytest.mark.asyncio
    async def test_non_json_body_raises(self):
        async with serve(web.post(SEARCH_PATH, respond(text="<html>"))) as base_url:
            with pytest.raises(AdapterError):
                await self.source(base_url).query(None, None)


class TestSummarizer:
    """Test cases for the summarization client."""

    def summarizer(self, base_url):
        return Summarizer(SummarizerConfig(url=f"{base_url}/pipeline", api_key="s-key"))

    @pytest.mark.asyncio
    async def test_summary_returned(self):
        seen = []
        handler = respond(body={"result": "The database timed out."}, seen=seen)

        async with serve(web.post("/pipeline", handler)) as base_url:
            summary = await self.summarizer(base_url).summarize("Error: DB_TIMEOUT_01")

        assert summary == "The database timed out."
        assert seen[0]["headers"]["X-API-KEY"] == "s-key"
        assert b'"asyncOutput": false' in seen[0]["body"]

    @pytest.mark.asyncio
    async def test_non_json_body_is_parse_error(self):
        async with serve(web.post("/pipeline", respond(text="not json"))) as base_url:
            with pytest.raises(ParseError):
                await self.summarizer(base_url).summarize("boom")

    @pytest.mark.asyncio
    async def test_error_status_is_delivery_error(self):
        async with serve(web.post("/pipeline", respond(status=502, text="bad gateway"))) as base_url:
            with pytest.raises(DeliveryError) as exc_info:
                await self.summarizer(base_url).summarize("boom")

        assert exc_info.value.status == 502
        assert exc_info.value.stage == "summarize"


class TestWebhookEmitter:
    """Test cases for the outbound webhook."""

    @pytest.mark.asyncio
    async def test_emit(self, event):
        seen = []
        async with serve(web.post("/hook", respond(status=202, seen=seen))) as base_url:
            await WebhookEmitter(WebhookConfig(url=f"{base_url}/hook")).emit(event)

        assert seen[0]["headers"]["User-Agent"] == "Escalator-Cron/1.0"
        assert b'"id": "log-1"' in seen[0]["body"]

    @pytest.mark.asyncio
    async def test_error_status_raises(self, event):
        async with serve(web.post("/hook", respond(status=500))) as base_url:
            with pytest.raises(DeliveryError) as exc_info:
                await WebhookEmitter(WebhookConfig(url=f"{base_url}/hook")).emit(event)

        assert exc_info.value.status == 500


class TestSMSNotifier:
    """Test cases for the SMS notifier."""

    MESSAGES_PATH = "/Accounts/AC123/Messages.json"

    def notifier(self, base_url):
        return SMSNotifier(
            SMSConfig(
                base_url=base_url,
                account_sid="AC123",
                auth_token="token",
                from_number="+15550001",
                to_number="+15550002",
            )
        )

    @pytest.mark.asyncio
    async def test_send_success(self):
        seen = []
        handler = respond(status=201, body={"sid": "SM1"}, seen=seen)

        async with serve(web.post(self.MESSAGES_PATH, handler)) as base_url:
            sent = await self.notifier(base_url).send("3 new errors")

        assert sent is True
        assert seen[0]["headers"]["Authorization"].startswith("Basic ")
        assert b"To=%2B15550002" in seen[0]["body"]
        assert b"Body=3+new+errors" in seen[0]["body"]

    @pytest.mark.asyncio
    async def test_send_rejected(self):
        handler = respond(status=400, body={"message": "invalid number"})
        async with serve(web.post(self.MESSAGES_PATH, handler)) as base_url:
            assert await self.notifier(base_url).send("hello") is False


class TestRemediationClient:
    """Test cases for the remediation service client."""

    def client(self, base_url):
        return RemediationClient(
            RemediationConfig(base_url=base_url, api_key="r-key", repository="acme/app")
        )

    @pytest.mark.asyncio
    async def test_start(self):
        seen = []
        handler = respond(body={"conversation_id": "c1", "status": "STARTING"}, seen=seen)

        async with serve(web.post("/api/conversations", handler)) as base_url:
            started = await self.client(base_url).start("Fix it")

        assert started.job_id == "c1"
        assert started.link == f"{base_url}/conversations/c1"
        assert seen[0]["headers"]["x-session-api-key"] == "r-key"

    @pytest.mark.asyncio
    async def test_start_without_id_raises(self):
        async with serve(web.post("/api/conversations", respond(body={"status": "ok"}))) as base_url:
            with pytest.raises(DeliveryError):
                await self.client(base_url).start("Fix it")

    @pytest.mark.asyncio
    async def test_status_values_coerced_to_text(self):
        handler = respond(body={"status": 3, "runtime_status": None, "pr_number": [12]})
        async with serve(web.get("/api/conversations/c1", handler)) as base_url:
            report = await self.client(base_url).status("c1")

        assert report.status == "3"
        assert report.runtime_status is None
        assert report.result_ref == "12"

    @pytest.mark.asyncio
    async def test_status_error_raises(self):
        handler = respond(status=404, text="not found")
        async with serve(web.get("/api/conversations/c1", handler)) as base_url:
            with pytest.raises(DeliveryError) as exc_info:
                await self.client(base_url).status("c1")

        assert exc_info.value.stage == "remediation_poll"
