"""Conversation state machine for the hairstyle try-on flow."""

import logging

from hairbot.bot import replies
from hairbot.bot.models import WebhookEvent
from hairbot.bot.states import HairStates
from hairbot.bot.storage import ConversationState, ConversationStore
from hairbot.config import ImageConfig
from hairbot.errors import DeliveryError, TransportError
from hairbot.services.asset_store import AssetStore
from hairbot.services.gemini_client import GeminiClient
from hairbot.services.line_client import LineMessenger, Message, image_message, text_message
from hairbot.utils.image_processing import preprocess_image_async

logger = logging.getLogger(__name__)

AWAIT_FACE = HairStates.AWAIT_FACE.state
AWAIT_STYLE = HairStates.AWAIT_STYLE.state
AWAIT_MODEL_IMAGE = HairStates.AWAIT_MODEL_IMAGE.state
AWAIT_COLOR = HairStates.AWAIT_COLOR.state


class HairConversation:
    """Interprets inbound events against each user's ConversationState.

    Every event for a user is handled under that user's lock, including the
    generation pipeline, so two events can never interleave on the same state.
    While a user's generation is running, their other events only get a
    "please wait" reply.
    """

    def __init__(
        self,
        store: ConversationStore,
        messenger: LineMessenger,
        generator: GeminiClient,
        assets: AssetStore,
        image_config: ImageConfig | None = None,
    ):
        self.store = store
        self.messenger = messenger
        self.generator = generator
        self.assets = assets
        self.image_config = image_config
        self._generating: set[str] = set()
        # Generations started per user, lets a waiting event notice one ran
        self._generations: dict[str, int] = {}

    def is_generating(self, user_id: str) -> bool:
        return user_id in self._generating

    async def handle_event(self, event: WebhookEvent) -> None:
        """Handle one webhook event.

        Raises:
            DeliveryError: If a reply could not be delivered
        """
        user_id = event.user_id
        if not user_id:
            logger.info(f"Ignoring {event.type} event without user id")
            return
        if event.type != "message" or event.message is None:
            logger.info(f"[USER {user_id}] Ignoring {event.type} event")
            return

        if self.is_generating(user_id):
            await self._ask_to_wait(event, user_id)
            return

        generations_seen = self._generations.get(user_id, 0)
        async with self.store.lock(user_id):
            # A generation ran while this event waited for the lock
            if self._generations.get(user_id, 0) != generations_seen:
                await self._ask_to_wait(event, user_id)
                return

            state = await self.store.get(user_id)
            message = event.message
            logger.info(
                f"[USER {user_id}] [STATE: {state.step}] [EVENT {event.webhook_event_id}] "
                f"Received message type: {message.type}"
            )

            if message.type == "image":
                await self._handle_image(event, user_id, state)
            elif message.type == "text":
                await self._handle_text(event, user_id, state, (message.text or "").strip())
            else:
                await self._ask_for_photo(event, user_id, state)

    async def _handle_image(self, event: WebhookEvent, user_id: str, state: ConversationState) -> None:
        try:
            raw = await self.messenger.get_message_content(event.message.id)
            image = await preprocess_image_async(raw, self.image_config)
        except TransportError as e:
            logger.error(f"[USER {user_id}] Failed to receive image: {e}")
            await self._reply(event, text_message(replies.IMAGE_FAILED))
            return

        if state.step == AWAIT_FACE or not state.face_image:
            state.face_image = image
            state.step = AWAIT_STYLE
            await self.store.save(user_id, state)
            logger.info(f"[USER {user_id}] Face stored, switching to AWAIT_STYLE")
            await self._reply(event, text_message(replies.FACE_RECEIVED, replies.STYLE_OPTIONS))
        elif state.step == AWAIT_MODEL_IMAGE:
            state.reference_image = image
            state.step = AWAIT_COLOR
            await self.store.save(user_id, state)
            logger.info(f"[USER {user_id}] Reference stored, switching to AWAIT_COLOR")
            await self._reply(event, text_message(replies.REFERENCE_RECEIVED, replies.COLOR_OPTIONS))
        else:
            state.face_image = image
            state.step = AWAIT_STYLE
            await self.store.save(user_id, state)
            logger.info(f"[USER {user_id}] Face replaced, switching to AWAIT_STYLE")
            await self._reply(event, text_message(replies.FACE_UPDATED, replies.STYLE_OPTIONS))

    async def _handle_text(
        self, event: WebhookEvent, user_id: str, state: ConversationState, text: str
    ) -> None:
        if replies.GREETING_RE.match(text):
            await self.store.reset(user_id)
            logger.info(f"[USER {user_id}] Greeting, state reset")
            await self._reply(event, text_message(replies.GREETING))
            return

        # Completion shortcuts win over free text in every step
        if text == replies.TRY_AGAIN:
            face = state.face_image
            state = ConversationState(step=AWAIT_STYLE, face_image=face)
            await self.store.save(user_id, state)
            await self._reply(event, text_message(replies.NEXT_STYLE, replies.STYLE_OPTIONS))
            return
        if text == replies.CHANGE_STYLE:
            state.style = None
            state.reference_image = None
            state.step = AWAIT_STYLE
            await self.store.save(user_id, state)
            await self._reply(event, text_message(replies.PICK_STYLE, replies.STYLE_OPTIONS))
            return
        if text == replies.CHANGE_COLOR:
            state.step = AWAIT_COLOR
            await self.store.save(user_id, state)
            await self._reply(event, text_message(replies.PICK_COLOR, replies.COLOR_OPTIONS))
            return

        if replies.REFERENCE_RE.search(text):
            state.step = AWAIT_MODEL_IMAGE
            await self.store.save(user_id, state)
            await self._reply(event, text_message(replies.ASK_REFERENCE))
            return

        if text == replies.FREE_INPUT:
            if state.step == AWAIT_STYLE or not state.style:
                state.step = AWAIT_STYLE
                prompt = replies.ASK_STYLE_TEXT
            else:
                state.step = AWAIT_COLOR
                prompt = replies.ASK_COLOR_TEXT
            await self.store.save(user_id, state)
            await self._reply(event, text_message(prompt))
            return

        if text and state.step == AWAIT_STYLE:
            state.style = text
            state.step = AWAIT_COLOR
            await self.store.save(user_id, state)
            logger.info(f"[USER {user_id}] Style set: {text[:50]}, switching to AWAIT_COLOR")
            await self._reply(event, text_message(replies.ASK_COLOR, replies.COLOR_OPTIONS))
            return

        if text and state.step == AWAIT_COLOR:
            state.color = "" if text == replies.KEEP_COLOR else text
            await self._generate(event, user_id, state)
            return

        await self._ask_for_photo(event, user_id, state)

    async def _ask_for_photo(self, event: WebhookEvent, user_id: str, state: ConversationState) -> None:
        logger.info(f"[USER {user_id}] Unrecognized input in {state.step}, asking for a photo")
        state.step = AWAIT_FACE
        await self.store.save(user_id, state)
        await self._reply(event, text_message(replies.ASK_PHOTO))

    async def _generate(self, event: WebhookEvent, user_id: str, state: ConversationState) -> None:
        if not state.face_image:
            logger.warning(f"[USER {user_id}] No face image at generation time, back to AWAIT_FACE")
            state.step = AWAIT_FACE
            await self.store.save(user_id, state)
            await self._reply(event, text_message(replies.FACE_FIRST))
            return

        await self.store.save(user_id, state)

        # Marked before the notice so events arriving during it get "please wait"
        self._generating.add(user_id)
        self._generations[user_id] = self._generations.get(user_id, 0) + 1
        try:
            try:
                await self._reply(event, text_message(replies.GENERATING))
            except DeliveryError as e:
                # The result still goes out by push
                logger.warning(f"[USER {user_id}] Could not send generating notice: {e}")
            await self._run_pipeline(user_id, state)
        finally:
            self._generating.discard(user_id)

    async def _run_pipeline(self, user_id: str, state: ConversationState) -> None:
        logger.info(
            f"[USER {user_id}] Starting generation: style={state.style!r}, color={state.color!r}, "
            f"reference={state.reference_image is not None}"
        )
        try:
            image = await self.generator.compose_hairstyle(
                face=state.face_image,
                reference=state.reference_image,
                style=state.style,
                color=state.color,
            )
            url = await self.assets.save(image, owner=user_id, purpose="hair")
            await self.messenger.push(user_id, image_message(url))
        except Exception as e:
            logger.error(f"[USER {user_id}] Error during generation: {e}", exc_info=True)
            await self.messenger.push(user_id, text_message(replies.GENERATION_FAILED))
            return

        # The user has the image from here on
        state.step = AWAIT_STYLE
        state.reference_image = None
        state.color = None
        await self.store.save(user_id, state)
        logger.info(f"[USER {user_id}] [STATE: AWAIT_STYLE] Generation delivered: {url}")

        try:
            await self.messenger.push(
                user_id, text_message(replies.DONE, replies.RESULT_OPTIONS)
            )
        except DeliveryError as e:
            logger.warning(f"[USER {user_id}] Could not send follow-up after the image: {e}")

    async def _ask_to_wait(self, event: WebhookEvent, user_id: str) -> None:
        logger.info(f"[USER {user_id}] Generation in flight, asking to wait")
        await self._reply(event, text_message(replies.PLEASE_WAIT))

    async def _reply(self, event: WebhookEvent, *messages: Message) -> None:
        if not event.reply_token:
            logger.warning(f"[USER {event.user_id}] No reply token, dropping reply")
            return
        await self.messenger.reply(event.reply_token, *messages)
