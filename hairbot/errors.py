"""Exception types shared across the bot."""


class HairbotError(Exception):
    """Base class for all bot errors."""


class SignatureError(HairbotError):
    """Webhook body does not match the X-Line-Signature header."""


class TransportError(HairbotError):
    """User-submitted content could not be fetched or decoded."""


class GenerationError(HairbotError):
    """Image generation API failed or returned no image."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class DeliveryError(HairbotError):
    """Reply or push message could not be delivered after all retries."""
