"""LINE Messaging API client (reply, push and message content)."""

import asyncio
import logging
import uuid
from typing import Any, Awaitable, Callable, TypeVar

import aiohttp
from linebot.v3.messaging import (
    ApiException,
    AsyncApiClient,
    AsyncMessagingApi,
    AsyncMessagingApiBlob,
    Configuration,
    ImageMessage,
    Message,
    MessageAction,
    PushMessageRequest,
    QuickReply,
    QuickReplyItem,
    ReplyMessageRequest,
    TextMessage,
)
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_incrementing,
)

from hairbot.config import LineConfig, RetryConfig, get_config
from hairbot.errors import DeliveryError, TransportError

logger = logging.getLogger(__name__)

T = TypeVar("T")

NETWORK_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError)


def quick_reply(labels: list[str]) -> QuickReply:
    """Quick-reply block whose buttons send their own label as text."""
    return QuickReply(
        items=[QuickReplyItem(action=MessageAction(label=label, text=label)) for label in labels]
    )


def text_message(text: str, quick_replies: list[str] | None = None) -> TextMessage:
    if quick_replies:
        return TextMessage(text=text, quick_reply=quick_reply(quick_replies))
    return TextMessage(text=text)


def image_message(url: str, preview_url: str | None = None) -> ImageMessage:
    return ImageMessage(original_content_url=url, preview_image_url=preview_url or url)


def is_retryable(error: BaseException) -> bool:
    """5xx, 429 and network failures are worth another attempt, other errors are final."""
    if isinstance(error, ApiException):
        return error.status is not None and (error.status >= 500 or error.status == 429)
    return isinstance(error, NETWORK_ERRORS)


class LineMessenger:
    """Client for LINE Messaging API."""

    def __init__(
        self,
        config: LineConfig | None = None,
        retry: RetryConfig | None = None,
        messaging_api: AsyncMessagingApi | None = None,
        blob_api: AsyncMessagingApiBlob | None = None,
    ):
        """Initialize LINE client.

        Args:
            config: LINE configuration. If None, uses global config.
            retry: Retry policy for every call. If None, uses global config.
            messaging_api: Prebuilt SDK client, mostly for tests.
            blob_api: Prebuilt SDK content client, mostly for tests.
        """
        self.config = config or get_config().line
        self.retry = retry or get_config().retry
        self.api = messaging_api
        self.blob = blob_api
        self._api_client: AsyncApiClient | None = None
        logger.info(f"LINE client initialized: {self.config.api_base}")

    def _ensure_apis(self) -> None:
        # The SDK opens an aiohttp session, which needs a running loop
        if self.api is not None and self.blob is not None:
            return
        configuration = Configuration(
            host=self.config.api_base, access_token=self.config.channel_access_token
        )
        self._api_client = AsyncApiClient(configuration)
        self.api = self.api or AsyncMessagingApi(self._api_client)
        self.blob = self.blob or AsyncMessagingApiBlob(self._api_client)

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(self.retry.attempts),
            wait=wait_incrementing(start=self.retry.backoff, increment=self.retry.backoff),
            retry=retry_if_exception(is_retryable),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )

    async def _call(self, operation: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        return await self._retrying()(
            operation, *args, _request_timeout=self.config.timeout, **kwargs
        )

    async def reply(self, reply_token: str, *messages: Message) -> None:
        """Answer an inbound event. A reply token can be used only once.

        Raises:
            DeliveryError: If the message could not be delivered
        """
        self._ensure_apis()
        request = ReplyMessageRequest(reply_token=reply_token, messages=list(messages))
        try:
            await self._call(self.api.reply_message, request)
        except ApiException as e:
            logger.error(f"reply rejected: HTTP {e.status} {e.body}")
            raise DeliveryError(f"reply rejected with HTTP {e.status}") from e
        except NETWORK_ERRORS as e:
            raise DeliveryError(f"reply failed: {e}") from e

    async def push(self, user_id: str, *messages: Message) -> None:
        """Send messages to a user outside of any reply context.

        Raises:
            DeliveryError: If the message could not be delivered
        """
        self._ensure_apis()
        # Same retry key on every attempt so LINE never delivers twice
        retry_key = str(uuid.uuid4())
        request = PushMessageRequest(to=user_id, messages=list(messages))
        try:
            await self._call(self.api.push_message, request, x_line_retry_key=retry_key)
        except ApiException as e:
            # 409 means an earlier attempt with the same retry key was accepted
            if e.status == 409:
                logger.info(f"push to {user_id}: already accepted")
                return
            logger.error(f"push to {user_id} rejected: HTTP {e.status} {e.body}")
            raise DeliveryError(f"push to {user_id} rejected with HTTP {e.status}") from e
        except NETWORK_ERRORS as e:
            raise DeliveryError(f"push to {user_id} failed: {e}") from e

    async def get_message_content(self, message_id: str) -> bytes:
        """Download the binary content of an image message.

        Raises:
            TransportError: If the content could not be fetched
        """
        self._ensure_apis()
        try:
            content = await self._call(self.blob.get_message_content, message_id)
        except ApiException as e:
            raise TransportError(
                f"Failed to fetch message content {message_id}: HTTP {e.status}"
            ) from e
        except NETWORK_ERRORS as e:
            raise TransportError(f"Failed to fetch message content {message_id}: {e}") from e

        data = bytes(content)
        logger.info(f"Downloaded message content {message_id}: {len(data)} bytes")
        return data

    async def close(self) -> None:
        if self._api_client is not None:
            await self._api_client.close()
