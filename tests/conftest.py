import asyncio
import base64
import hashlib
import hmac
import os
from io import BytesIO

import pytest
from linebot.v3.messaging import TextMessage
from PIL import Image

os.environ.setdefault("LINE_CHANNEL_ACCESS_TOKEN", "test_token")
os.environ.setdefault("LINE_CHANNEL_SECRET", "test_secret")
os.environ.setdefault("GEMINI_API_KEY", "test_gemini_key")

from hairbot.bot.conversation import HairConversation  # noqa: E402
from hairbot.bot.models import WebhookEvent  # noqa: E402
from hairbot.bot.storage import create_conversation_store  # noqa: E402
from hairbot.config import AssetConfig, ImageConfig, StorageConfig  # noqa: E402
from hairbot.errors import DeliveryError, TransportError  # noqa: E402
from hairbot.services.asset_store import AssetStore  # noqa: E402


def make_jpeg(width: int = 64, height: int = 48, color: tuple[int, int, int] = (200, 120, 80)) -> bytes:
    buffer = BytesIO()
    Image.new("RGB", (width, height), color).save(buffer, format="JPEG")
    return buffer.getvalue()


def text_event(
    user_id: str, text: str, reply_token: str = "reply-token", event_id: str = "evt-text"
) -> WebhookEvent:
    return WebhookEvent.model_validate(
        {
            "type": "message",
            "webhookEventId": event_id,
            "replyToken": reply_token,
            "source": {"type": "user", "userId": user_id},
            "message": {"id": "m-text", "type": "text", "text": text},
        }
    )


def image_event(user_id: str, message_id: str, reply_token: str = "reply-token") -> WebhookEvent:
    return WebhookEvent.model_validate(
        {
            "type": "message",
            "replyToken": reply_token,
            "source": {"type": "user", "userId": user_id},
            "message": {"id": message_id, "type": "image"},
        }
    )


def sign_body(body: bytes, channel_secret: str) -> str:
    """X-Line-Signature as the LINE platform computes it."""
    digest = hmac.new(channel_secret.encode("utf-8"), body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("utf-8")


def quick_reply_labels(message) -> list[str]:
    return [item.action.label for item in message.quick_reply.items]


class FakeMessenger:
    def __init__(self):
        self.replies: list[tuple[str, list]] = []
        self.pushes: list[tuple[str, list]] = []
        self.content: dict[str, bytes] = {}
        self.fail_reply = False
        # Push calls (0-based) that raise DeliveryError
        self.failing_pushes: set[int] = set()
        self.push_count = 0
        # Replies with this token block until slow_reply_release is set
        self.slow_reply_token: str | None = None
        self.slow_reply_started = asyncio.Event()
        self.slow_reply_release = asyncio.Event()
        self.closed = False

    async def reply(self, reply_token, *messages):
        if reply_token == self.slow_reply_token:
            self.slow_reply_started.set()
            await self.slow_reply_release.wait()
        if self.fail_reply:
            raise DeliveryError("reply failed")
        self.replies.append((reply_token, list(messages)))

    async def push(self, user_id, *messages):
        index = self.push_count
        self.push_count += 1
        if index in self.failing_pushes:
            raise DeliveryError("push failed")
        self.pushes.append((user_id, list(messages)))

    async def get_message_content(self, message_id):
        if message_id not in self.content:
            raise TransportError(f"unknown message {message_id}")
        return self.content[message_id]

    async def close(self):
        self.closed = True

    def reply_texts(self) -> list[str]:
        return [m.text for _, messages in self.replies for m in messages if isinstance(m, TextMessage)]

    def push_texts(self) -> list[str]:
        return [m.text for _, messages in self.pushes for m in messages if isinstance(m, TextMessage)]


class FakeGenerator:
    def __init__(self, result: bytes = b"generated-image"):
        self.result = result
        self.error: Exception | None = None
        self.calls: list[dict] = []
        self.release: asyncio.Event | None = None
        self.started: asyncio.Event | None = None

    async def compose_hairstyle(self, face, reference=None, style=None, color=None):
        self.calls.append({"face": face, "reference": reference, "style": style, "color": color})
        if self.started is not None:
            self.started.set()
        if self.release is not None:
            await self.release.wait()
        if self.error is not None:
            raise self.error
        return self.result


@pytest.fixture
def messenger():
    return FakeMessenger()


@pytest.fixture
def generator():
    return FakeGenerator()


@pytest.fixture
def assets(tmp_path):
    return AssetStore("https://bot.example.com", AssetConfig(directory=tmp_path / "assets"))


@pytest.fixture
def store():
    return create_conversation_store(StorageConfig(backend="memory"))


@pytest.fixture
def conversation(store, messenger, generator, assets):
    return HairConversation(store, messenger, generator, assets, ImageConfig())
