"""ReleaseDispatcher の配信とファンアウトを検証する。"""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from release_relay.core.notes.models import ChangeEntry, DiffSet, ReleaseEvent
from release_relay.infra.discord.client import DiscordWebhookClient, DiscordWebhookError
from release_relay.infra.discord.dispatcher import ReleaseDispatcher, redact_webhook_url

GOOD = "https://good.example.com/api/webhooks/1/good-token"
BAD = "https://bad.example.com/api/webhooks/2/bad-token"


class DummyLogger:
    def __init__(self) -> None:
        self.errors: list[tuple[str, dict[str, object]]] = []
        self.infos: list[tuple[str, dict[str, object]]] = []
        self.debugs: list[tuple[str, dict[str, object]]] = []

    def debug(self, event: str, **kwargs) -> None:
        self.debugs.append((event, kwargs))

    def info(self, event: str, **kwargs) -> None:
        self.infos.append((event, kwargs))

    def error(self, event: str, **kwargs) -> None:
        self.errors.append((event, kwargs))


class RecordingTransport:
    """URL ごとに応答を切り替え、受信したリクエストを記録する。"""

    def __init__(self, statuses: dict[str, int]) -> None:
        self.statuses = statuses
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.statuses.get(str(request.url), 204))

    def urls(self) -> list[str]:
        return [str(request.url) for request in self.requests]


def _fix_event(release: object = "1") -> ReleaseEvent:
    return ReleaseEvent(
        release=release,
        diffs=DiffSet(added=(ChangeEntry("Fixes", "Live", "<b>Fixed</b> crash"),)),
    )


def _dispatcher(endpoints, transport: RecordingTransport, logger=None) -> ReleaseDispatcher:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(transport))
    return ReleaseDispatcher(
        endpoints=endpoints,
        client=DiscordWebhookClient(http_client=http_client),
        logger=logger or DummyLogger(),
    )


@pytest.mark.asyncio
async def test_deliver_posts_formatted_payload() -> None:
    transport = RecordingTransport({})
    dispatcher = _dispatcher([GOOD], transport)

    sent = await dispatcher.deliver(GOOD, _fix_event())

    assert sent is True
    body = json.loads(transport.requests[0].content)
    assert body["embeds"][0]["title"] == "** Release 1**"
    assert body["embeds"][0]["fields"] == [
        {"name": "Fixes", "value": "```diff\n+ [Live] Fixed crash\n```"}
    ]


@pytest.mark.asyncio
async def test_deliver_skips_event_without_known_categories() -> None:
    transport = RecordingTransport({})
    logger = DummyLogger()
    dispatcher = _dispatcher([GOOD], transport, logger)
    event = ReleaseEvent(release=3, diffs=DiffSet(added=(ChangeEntry("Other", "Live", "x"),)))

    sent = await dispatcher.deliver(GOOD, event)
    tasks = dispatcher.dispatch(event)
    await asyncio.gather(*tasks)

    assert sent is False
    assert transport.requests == []
    reasons = [
        kwargs["reason"] for event, kwargs in logger.debugs if event == "release_delivery_skipped"
    ]
    assert reasons == ["no_known_categories", "no_known_categories"]


@pytest.mark.asyncio
async def test_deliver_raises_for_failing_endpoint() -> None:
    dispatcher = _dispatcher([BAD], RecordingTransport({BAD: 500}))

    with pytest.raises(DiscordWebhookError, match="Internal Server Error"):
        await dispatcher.deliver(BAD, _fix_event())


@pytest.mark.asyncio
async def test_failing_endpoint_does_not_block_others() -> None:
    transport = RecordingTransport({BAD: 400})
    logger = DummyLogger()
    dispatcher = _dispatcher([BAD, GOOD], transport, logger)

    tasks = dispatcher.dispatch(_fix_event())
    await asyncio.gather(*tasks)

    assert sorted(transport.urls()) == sorted([BAD, GOOD])
    assert all(task.exception() is None for task in tasks)
    failures = [kwargs for event, kwargs in logger.errors if event == "release_delivery_failed"]
    assert len(failures) == 1
    assert failures[0]["endpoint"] == redact_webhook_url(BAD)
    assert failures[0]["status_code"] == 400
    assert "bad-token" not in str(failures[0])


@pytest.mark.asyncio
async def test_dispatch_returns_before_deliveries_complete() -> None:
    release_gate = asyncio.Event()
    seen: list[str] = []

    async def slow_handler(request: httpx.Request) -> httpx.Response:
        await release_gate.wait()
        seen.append(str(request.url))
        return httpx.Response(204)

    http_client = httpx.AsyncClient(transport=httpx.MockTransport(slow_handler))
    dispatcher = ReleaseDispatcher(
        endpoints=[GOOD, BAD],
        client=DiscordWebhookClient(http_client=http_client),
        logger=DummyLogger(),
    )

    tasks = dispatcher.dispatch(_fix_event())

    assert len(tasks) == 2
    assert dispatcher.in_flight == 2
    assert seen == []

    release_gate.set()
    await dispatcher.drain()

    assert dispatcher.in_flight == 0
    assert sorted(seen) == sorted([GOOD, BAD])


@pytest.mark.asyncio
async def test_handle_message_skips_malformed_payload() -> None:
    transport = RecordingTransport({})
    logger = DummyLogger()
    dispatcher = _dispatcher([GOOD], transport, logger)

    tasks = dispatcher.handle_message("{not json")

    assert tasks == ()
    assert transport.requests == []
    assert [event for event, _ in logger.errors] == ["release_event_decode_failed"]


@pytest.mark.asyncio
async def test_handle_message_fans_out_decoded_event() -> None:
    transport = RecordingTransport({})
    dispatcher = _dispatcher([GOOD, BAD], transport)
    raw = json.dumps(
        {
            "release": 9,
            "diffs": {
                "added": [],
                "removed": [{"type": "Improvements", "status": "Live", "content": "old"}],
                "modified": [],
            },
        }
    )

    tasks = dispatcher.handle_message(raw)
    await asyncio.gather(*tasks)

    assert len(transport.requests) == 2
    body = json.loads(transport.requests[0].content)
    assert body["embeds"][0]["fields"] == [
        {"name": "Improvements", "value": "```diff\n- [Live] old\n```"}
    ]


@pytest.mark.asyncio
async def test_deliver_all_reports_each_endpoint() -> None:
    dispatcher = _dispatcher([GOOD, BAD], RecordingTransport({BAD: 429}))

    outcomes = await dispatcher.deliver_all(_fix_event())

    by_endpoint = {outcome.endpoint: outcome.result for outcome in outcomes}
    assert by_endpoint[GOOD].is_ok
    assert by_endpoint[GOOD].unwrap() is True
    assert not by_endpoint[BAD].is_ok
    assert by_endpoint[BAD].unwrap_err().status_code == 429


def test_redact_webhook_url_hides_token() -> None:
    assert redact_webhook_url(GOOD) == "good.example.com/api/webhooks/1/***"


@pytest.mark.asyncio
async def test_deliver_logs_empty_diff_as_skip_reason() -> None:
    transport = RecordingTransport({})
    logger = DummyLogger()
    dispatcher = _dispatcher([GOOD], transport, logger)

    sent = await dispatcher.deliver(GOOD, ReleaseEvent(release=4, diffs=DiffSet()))

    assert sent is False
    assert transport.requests == []
    assert logger.debugs == [
        (
            "release_delivery_skipped",
            {"release": 4, "endpoint": redact_webhook_url(GOOD), "reason": "empty_diff"},
        )
    ]


@pytest.mark.asyncio
async def test_failed_post_is_logged_once_with_status() -> None:
    logger = DummyLogger()
    dispatcher = _dispatcher([BAD], RecordingTransport({BAD: 500}), logger)

    outcomes = await dispatcher.deliver_all(_fix_event())

    assert not outcomes[0].result.is_ok
    assert [event for event, _ in logger.errors] == ["release_delivery_failed"]
    assert logger.errors[0][1]["status_code"] == 500
    assert logger.errors[0][1]["error_type"] == "DiscordWebhookError"


class ExplodingClient:
    async def post(self, _webhook_url: str, _payload) -> None:
        raise RuntimeError("unexpected")

    async def aclose(self) -> None:
        return None


@pytest.mark.asyncio
async def test_deliver_all_turns_unexpected_errors_into_failed_outcomes() -> None:
    logger = DummyLogger()
    dispatcher = ReleaseDispatcher(endpoints=[GOOD, BAD], client=ExplodingClient(), logger=logger)

    outcomes = await dispatcher.deliver_all(_fix_event())

    assert len(outcomes) == 2
    for outcome in outcomes:
        error = outcome.result.unwrap_err()
        assert isinstance(error, DiscordWebhookError)
        assert isinstance(error.__cause__, RuntimeError)
        assert str(error) == "Error posting to webhook: RuntimeError"
    assert [event for event, _ in logger.errors] == ["release_delivery_failed"] * 2
    assert logger.errors[0][1]["error_type"] == "RuntimeError"
