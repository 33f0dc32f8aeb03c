"""HTTP surface: LINE webhook, health check and generated image hosting."""

import logging

from fastapi import APIRouter, Header, HTTPException, Request, status
from fastapi.responses import PlainTextResponse, Response
from fastapi.staticfiles import StaticFiles
from pydantic import ValidationError

from hairbot.bot.models import WebhookBody
from hairbot.errors import SignatureError
from hairbot.utils.security import verify_signature

logger = logging.getLogger(__name__)

router = APIRouter()


class CachedStaticFiles(StaticFiles):
    """StaticFiles that adds a Cache-Control max-age to every file."""

    def __init__(self, *args, max_age: int, **kwargs):
        super().__init__(*args, **kwargs)
        self.max_age = max_age

    def file_response(self, *args, **kwargs) -> Response:
        response = super().file_response(*args, **kwargs)
        response.headers["Cache-Control"] = f"public, max-age={self.max_age}"
        return response


@router.get("/", response_class=PlainTextResponse)
async def health() -> str:
    return "OK"


@router.post("/webhook", response_class=PlainTextResponse)
async def line_webhook(
    request: Request,
    x_line_signature: str | None = Header(default=None),
) -> str:
    """Verify, parse and dispatch a batch of LINE events.

    Responds as soon as the events are scheduled; generation keeps running in
    the background.
    """
    body = await request.body()
    channel_secret = request.app.state.config.line.channel_secret

    try:
        verify_signature(body=body, signature=x_line_signature, channel_secret=channel_secret)
    except SignatureError as e:
        logger.error(f"Rejected webhook: {e}")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid signature")

    try:
        payload = WebhookBody.model_validate_json(body)
    except ValidationError as e:
        logger.error(f"Malformed webhook body: {e}")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Malformed webhook body")

    request.app.state.dispatcher.dispatch(payload.events)
    return "OK"
