"""Per-user conversation state on top of aiogram FSM storage."""

import base64
import logging
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from typing import Any

from aiogram.fsm.storage.base import BaseEventIsolation, BaseStorage, StorageKey
from aiogram.fsm.storage.memory import MemoryStorage, SimpleEventIsolation
from aiogram.fsm.storage.redis import RedisEventIsolation, RedisStorage
from redis.asyncio import Redis

from hairbot.bot.states import HairStates
from hairbot.config import StorageConfig, get_config

logger = logging.getLogger(__name__)

# LINE has a single bot per channel, the key only varies by user
BOT_ID = 0


@dataclass
class ConversationState:
    """What the bot knows about one user's try-on session."""

    step: str = HairStates.AWAIT_FACE.state
    face_image: bytes | None = None
    reference_image: bytes | None = None
    style: str | None = None
    color: str | None = None  # "" means keep the original color

    def to_data(self) -> dict[str, Any]:
        """Serialize into FSM data (JSON-safe for the Redis backend)."""
        return {
            "face_image": _encode(self.face_image),
            "reference_image": _encode(self.reference_image),
            "style": self.style,
            "color": self.color,
        }

    @classmethod
    def from_data(cls, step: str, data: dict[str, Any]) -> "ConversationState":
        return cls(
            step=step,
            face_image=_decode(data.get("face_image")),
            reference_image=_decode(data.get("reference_image")),
            style=data.get("style"),
            color=data.get("color"),
        )


def _encode(value: bytes | None) -> str | None:
    if value is None:
        return None
    return base64.b64encode(value).decode("ascii")


def _decode(value: str | None) -> bytes | None:
    if value is None:
        return None
    return base64.b64decode(value)


class ConversationStore:
    """Key-value store of ConversationState by LINE user id.

    All reads and writes for a user should happen inside ``lock(user_id)``.
    """

    def __init__(self, storage: BaseStorage, isolation: BaseEventIsolation):
        self.storage = storage
        self.isolation = isolation

    @staticmethod
    def _key(user_id: str) -> StorageKey:
        # StorageKey is typed for Telegram ids, LINE ids are opaque strings
        return StorageKey(bot_id=BOT_ID, chat_id=user_id, user_id=user_id)  # type: ignore[arg-type]

    async def get(self, user_id: str) -> ConversationState:
        """Get the user's state, creating a fresh one on first contact."""
        key = self._key(user_id)
        step = await self.storage.get_state(key)
        if step is None:
            logger.info(f"[USER {user_id}] New conversation")
            state = ConversationState()
            await self.save(user_id, state)
            return state
        data = await self.storage.get_data(key)
        return ConversationState.from_data(step, data)

    async def save(self, user_id: str, state: ConversationState) -> None:
        key = self._key(user_id)
        await self.storage.set_state(key, state.step)
        await self.storage.set_data(key, state.to_data())

    async def reset(self, user_id: str) -> ConversationState:
        """Replace the user's state with a fresh one."""
        state = ConversationState()
        await self.save(user_id, state)
        return state

    def lock(self, user_id: str) -> AbstractAsyncContextManager[None]:
        """Per-user mutual exclusion."""
        return self.isolation.lock(self._key(user_id))

    async def close(self) -> None:
        await self.isolation.close()
        await self.storage.close()


def create_conversation_store(config: StorageConfig | None = None) -> ConversationStore:
    """Create conversation store for the configured backend.

    Returns:
        ConversationStore backed by memory (default) or Redis
    """
    config = config or get_config().storage

    if config.backend == "redis":
        redis_client = Redis(
            host=config.redis_host,
            port=config.redis_port,
            db=config.redis_db,
            decode_responses=False,  # aiogram RedisStorage expects bytes
        )
        storage: BaseStorage = RedisStorage(redis=redis_client)
        # The lock is held for the whole generation, which can take minutes
        isolation: BaseEventIsolation = RedisEventIsolation(
            redis=redis_client, lock_kwargs={"timeout": 300}
        )
        logger.info(
            f"Redis storage initialized: {config.redis_host}:{config.redis_port}/{config.redis_db}"
        )
    else:
        storage = MemoryStorage()
        isolation = SimpleEventIsolation()
        logger.info("Memory storage initialized, conversations are lost on restart")

    return ConversationStore(storage, isolation)
