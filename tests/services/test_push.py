# tests/services/test_push.py
from __future__ import annotations

import json

import httpx
import pytest
import respx

from quire.services.background import BackgroundTaskSet
from quire.services.push import (
    PushConfig,
    PushDispatcher,
    PushNotification,
    is_valid_push_token,
)

PUSH_URL = "https://push.test/--/api/v2/push/send"
VALID_A = "ExponentPushToken[aaaaaaaaaaaaaaaaaaaaaa]"
VALID_B = "ExpoPushToken[bbbbbbbbbbbbbbbbbbbbbb]"


def _dispatcher(access_token: str | None = None) -> PushDispatcher:
    return PushDispatcher(
        BackgroundTaskSet(),
        PushConfig(api_url=PUSH_URL, access_token=access_token, timeout_seconds=2.0),
    )


@pytest.mark.parametrize(
    ("token", "expected"),
    [
        (VALID_A, True),
        (VALID_B, True),
        ("  ExponentPushToken[xyz]  ", True),
        ("ExponentPushToken[]", False),
        ("fcm:abcdef", False),
        ("", False),
        (None, False),
    ],
)
def test_is_valid_push_token(token: object, expected: bool) -> None:
    assert is_valid_push_token(token) is expected


@pytest.mark.asyncio
@respx.mock
async def test_send_push_posts_once_per_valid_token() -> None:
    route = respx.post(PUSH_URL).respond(200, json={"data": {"status": "ok"}})
    dispatcher = _dispatcher()

    await dispatcher.send_push(
        [VALID_A, "not-a-token", VALID_B],
        PushNotification(title="alice", body="hi", data={"type": "message"}),
    )
    await dispatcher.close()

    assert route.call_count == 2
    sent = [json.loads(call.request.content) for call in route.calls]
    assert {body["to"] for body in sent} == {VALID_A, VALID_B}
    assert sent[0]["title"] == "alice"
    assert sent[0]["sound"] == "default"
    assert sent[0]["channelId"] == "default"
    assert sent[0]["data"] == {"type": "message"}


@pytest.mark.asyncio
@respx.mock
async def test_send_push_defaults_title() -> None:
    route = respx.post(PUSH_URL).respond(200, json={})
    dispatcher = _dispatcher()

    await dispatcher.send_push(VALID_A, PushNotification(title=None, body="ping"))
    await dispatcher.close()

    assert json.loads(route.calls.last.request.content)["title"] == "Notification"


@pytest.mark.asyncio
@respx.mock
async def test_send_push_sends_access_token() -> None:
    route = respx.post(PUSH_URL).respond(200, json={})
    dispatcher = _dispatcher(access_token="expo-secret")

    await dispatcher.send_push(VALID_A, PushNotification(title="t", body="b"))
    await dispatcher.close()

    assert route.calls.last.request.headers["Authorization"] == "Bearer expo-secret"


@pytest.mark.asyncio
@respx.mock
async def test_send_push_never_raises_on_failures() -> None:
    respx.post(PUSH_URL).mock(
        side_effect=[
            httpx.Response(500, text="upstream error"),
            httpx.ConnectError("refused"),
        ]
    )
    dispatcher = _dispatcher()

    result = await dispatcher.send_push(
        [VALID_A, VALID_B], PushNotification(title="t", body="b")
    )
    await dispatcher.close()

    assert result is None


@pytest.mark.asyncio
@respx.mock(assert_all_called=False)
async def test_send_push_skips_request_without_valid_tokens() -> None:
    route = respx.post(PUSH_URL).respond(200, json={})
    dispatcher = _dispatcher()

    await dispatcher.send_push(["garbage", ""], PushNotification(title="t", body="b"))

    assert route.call_count == 0


@pytest.mark.asyncio
@respx.mock
async def test_dispatch_returns_before_delivery() -> None:
    route = respx.post(PUSH_URL).respond(200, json={})
    tasks = BackgroundTaskSet()
    dispatcher = PushDispatcher(
        tasks, PushConfig(api_url=PUSH_URL, access_token=None, timeout_seconds=2.0)
    )

    assert dispatcher.dispatch(VALID_A, PushNotification(title="t", body="b")) is None
    assert route.call_count == 0
    assert len(tasks) == 1

    await tasks.drain(timeout=2)
    await dispatcher.close()
    assert route.call_count == 1


def test_dispatch_without_tokens_spawns_nothing() -> None:
    tasks = BackgroundTaskSet()
    dispatcher = PushDispatcher(
        tasks, PushConfig(api_url=PUSH_URL, access_token=None, timeout_seconds=2.0)
    )

    dispatcher.dispatch("", PushNotification(title="t", body="b"))
    dispatcher.dispatch(None, PushNotification(title="t", body="b"))

    assert len(tasks) == 0
