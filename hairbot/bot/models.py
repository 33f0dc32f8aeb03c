"""Pydantic models for LINE webhook payloads (only the fields the bot reads)."""

from pydantic import BaseModel, ConfigDict, Field


class _LineModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class EventSource(_LineModel):
    type: str = "user"
    user_id: str | None = Field(None, alias="userId")


class EventMessage(_LineModel):
    id: str
    type: str
    text: str | None = None


class WebhookEvent(_LineModel):
    type: str
    reply_token: str | None = Field(None, alias="replyToken")
    source: EventSource | None = None
    message: EventMessage | None = None
    webhook_event_id: str | None = Field(None, alias="webhookEventId")

    @property
    def user_id(self) -> str | None:
        return self.source.user_id if self.source else None


class WebhookBody(_LineModel):
    destination: str | None = None
    events: list[WebhookEvent] = Field(default_factory=list)
