import asyncio

import aiohttp
import pytest
from linebot.v3.messaging import (
    ApiException,
    ImageMessage,
    PushMessageRequest,
    ReplyMessageRequest,
    TextMessage,
)

from hairbot.config import LineConfig, RetryConfig
from hairbot.errors import DeliveryError, TransportError
from hairbot.services.line_client import (
    LineMessenger,
    image_message,
    is_retryable,
    quick_reply,
    text_message,
)


class FakeMessagingApi:
    """Stands in for AsyncMessagingApi; raises the scripted errors in order, then succeeds."""

    def __init__(self, *errors: Exception):
        self.errors = list(errors)
        self.calls: list[tuple[str, object, dict]] = []

    def _next(self) -> None:
        if self.errors:
            raise self.errors.pop(0)

    async def reply_message(self, reply_message_request, **kwargs):
        self.calls.append(("reply", reply_message_request, kwargs))
        self._next()

    async def push_message(self, push_message_request, x_line_retry_key=None, **kwargs):
        self.calls.append(("push", push_message_request, {"x_line_retry_key": x_line_retry_key, **kwargs}))
        self._next()


class FakeBlobApi:
    def __init__(self, content: bytes = b"", *errors: Exception):
        self.content = content
        self.errors = list(errors)
        self.calls: list[str] = []

    async def get_message_content(self, message_id, **kwargs):
        self.calls.append(message_id)
        if self.errors:
            raise self.errors.pop(0)
        return bytearray(self.content)


def _messenger(api=None, blob=None, attempts: int = 3) -> LineMessenger:
    config = LineConfig(channel_access_token="token-abc", channel_secret="secret", timeout=7)
    return LineMessenger(
        config,
        RetryConfig(attempts=attempts, backoff=0),
        messaging_api=api or FakeMessagingApi(),
        blob_api=blob or FakeBlobApi(),
    )


def _api_error(status: int) -> ApiException:
    return ApiException(status=status, reason="error")


@pytest.mark.asyncio
async def test_reply_sends_request_with_timeout():
    api = FakeMessagingApi()

    await _messenger(api).reply("rt-1", text_message("hi", ["A", "B"]))

    ((kind, request, kwargs),) = api.calls
    assert kind == "reply"
    assert isinstance(request, ReplyMessageRequest)
    assert request.reply_token == "rt-1"
    assert request.messages[0].text == "hi"
    assert [item.action.text for item in request.messages[0].quick_reply.items] == ["A", "B"]
    assert kwargs["_request_timeout"] == 7


@pytest.mark.asyncio
async def test_push_retries_server_errors_with_same_key():
    api = FakeMessagingApi(_api_error(500), _api_error(503))

    await _messenger(api).push("U1", text_message("done"))

    assert len(api.calls) == 3
    keys = {kwargs["x_line_retry_key"] for _, _, kwargs in api.calls}
    assert len(keys) == 1
    assert None not in keys
    request = api.calls[0][1]
    assert isinstance(request, PushMessageRequest)
    assert request.to == "U1"


@pytest.mark.asyncio
async def test_each_push_gets_its_own_retry_key():
    api = FakeMessagingApi()
    messenger = _messenger(api)

    await messenger.push("U1", text_message("one"))
    await messenger.push("U1", text_message("two"))

    assert api.calls[0][2]["x_line_retry_key"] != api.calls[1][2]["x_line_retry_key"]


@pytest.mark.asyncio
async def test_rate_limit_is_retried():
    api = FakeMessagingApi(_api_error(429))

    await _messenger(api).push("U1", text_message("done"))

    assert len(api.calls) == 2


@pytest.mark.asyncio
async def test_network_errors_are_retried():
    api = FakeMessagingApi(aiohttp.ClientConnectionError("refused"), asyncio.TimeoutError())

    await _messenger(api).reply("rt-1", text_message("hi"))

    assert len(api.calls) == 3


@pytest.mark.asyncio
async def test_push_gives_up_after_attempts():
    api = FakeMessagingApi(*[_api_error(500)] * 5)

    with pytest.raises(DeliveryError):
        await _messenger(api, attempts=3).push("U1", text_message("done"))

    assert len(api.calls) == 3


@pytest.mark.asyncio
async def test_network_failure_after_attempts():
    api = FakeMessagingApi(*[aiohttp.ClientConnectionError("refused")] * 2)

    with pytest.raises(DeliveryError):
        await _messenger(api, attempts=2).reply("rt-1", text_message("hi"))

    assert len(api.calls) == 2


@pytest.mark.asyncio
async def test_client_error_is_not_retried():
    api = FakeMessagingApi(_api_error(400))

    with pytest.raises(DeliveryError, match="400"):
        await _messenger(api).reply("expired-token", text_message("hi"))

    assert len(api.calls) == 1


@pytest.mark.asyncio
async def test_push_conflict_counts_as_delivered():
    api = FakeMessagingApi(_api_error(500), _api_error(409))

    await _messenger(api).push("U1", text_message("done"))

    assert len(api.calls) == 2


@pytest.mark.asyncio
async def test_get_message_content():
    blob = FakeBlobApi(b"\xff\xd8jpeg")

    data = await _messenger(blob=blob).get_message_content("12345")

    assert data == b"\xff\xd8jpeg"
    assert isinstance(data, bytes)
    assert blob.calls == ["12345"]


@pytest.mark.asyncio
async def test_get_message_content_not_found():
    blob = FakeBlobApi(b"", _api_error(404))

    with pytest.raises(TransportError):
        await _messenger(blob=blob).get_message_content("gone")

    assert blob.calls == ["gone"]


@pytest.mark.asyncio
async def test_get_message_content_retries_server_errors():
    blob = FakeBlobApi(b"jpeg", _api_error(502))

    assert await _messenger(blob=blob).get_message_content("12345") == b"jpeg"
    assert len(blob.calls) == 2


@pytest.mark.asyncio
async def test_get_message_content_gives_up():
    blob = FakeBlobApi(b"jpeg", _api_error(502), _api_error(502))

    with pytest.raises(TransportError):
        await _messenger(blob=blob, attempts=2).get_message_content("12345")


@pytest.mark.parametrize(
    "error, expected",
    [
        (_api_error(500), True),
        (_api_error(503), True),
        (_api_error(429), True),
        (_api_error(400), False),
        (_api_error(401), False),
        (_api_error(409), False),
        (aiohttp.ClientConnectionError("refused"), True),
        (asyncio.TimeoutError(), True),
        (ValueError("bad"), False),
    ],
)
def test_is_retryable(error, expected):
    assert is_retryable(error) is expected


def test_text_message_without_quick_replies():
    message = text_message("hello")

    assert isinstance(message, TextMessage)
    assert message.text == "hello"
    assert message.quick_reply is None


def test_quick_reply_items_send_their_label():
    (item,) = quick_reply(["ボブ"]).items

    assert item.action.label == "ボブ"
    assert item.action.text == "ボブ"


def test_image_message_defaults_preview_to_original():
    message = image_message("https://x/tmp/a.jpg")

    assert isinstance(message, ImageMessage)
    assert message.original_content_url == "https://x/tmp/a.jpg"
    assert message.preview_image_url == "https://x/tmp/a.jpg"
