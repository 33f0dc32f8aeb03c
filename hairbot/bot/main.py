"""Main bot file."""

import logging
import sys
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator

import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI

from hairbot.bot import webhook
from hairbot.bot.conversation import HairConversation
from hairbot.bot.dispatcher import EventDispatcher
from hairbot.bot.storage import ConversationStore, create_conversation_store
from hairbot.config import AppConfig, get_config
from hairbot.services.asset_store import URL_PREFIX, AssetStore
from hairbot.services.gemini_client import GeminiClient
from hairbot.services.line_client import LineMessenger

# Load environment variables
load_dotenv()

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s · %(levelname)s · %(name)s · %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)

logger = logging.getLogger(__name__)


@dataclass
class BotServices:
    """Everything the webhook needs at runtime."""

    store: ConversationStore
    messenger: LineMessenger
    generator: GeminiClient
    assets: AssetStore
    conversation: HairConversation
    dispatcher: EventDispatcher


def build_services(config: AppConfig) -> BotServices:
    store = create_conversation_store(config.storage)
    messenger = LineMessenger(config.line, config.retry)
    generator = GeminiClient(config.gemini)
    assets = AssetStore(config.server.public_base_url, config.assets)
    conversation = HairConversation(store, messenger, generator, assets, config.image)
    dispatcher = EventDispatcher(conversation.handle_event)
    return BotServices(store, messenger, generator, assets, conversation, dispatcher)


def create_app(config: AppConfig | None = None, services: BotServices | None = None) -> FastAPI:
    """Create the FastAPI application."""
    config = config or get_config()
    services = services or build_services(config)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info(f"🌐 Public URL: {config.server.public_base_url}")
        yield
        logger.info("Shutting down, waiting for pending events...")
        await services.dispatcher.drain()
        await services.messenger.close()
        await services.store.close()

    app = FastAPI(title="hairbot", lifespan=lifespan)
    app.state.config = config
    app.state.services = services
    app.state.dispatcher = services.dispatcher

    app.include_router(webhook.router)
    app.mount(
        URL_PREFIX,
        webhook.CachedStaticFiles(
            directory=services.assets.directory, max_age=config.assets.ttl_seconds
        ),
        name="assets",
    )
    return app


def run() -> None:
    """Main entry point."""
    try:
        config = get_config()

        # Set logging level from config
        log_level = getattr(logging, config.logging.level.upper(), logging.INFO)
        logging.getLogger().setLevel(log_level)

        logger.info("Starting hairbot...")
        app = create_app(config)
        logger.info(f"✅ Server running on port {config.server.port}")
        uvicorn.run(app, host=config.server.host, port=config.server.port, log_level=log_level)
    except KeyboardInterrupt:
        logger.info("Bot stopped by user")
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)
    finally:
        logger.info("Shutting down...")


if __name__ == "__main__":
    run()
