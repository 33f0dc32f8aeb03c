"""Webhook signature verification."""

from linebot.v3.webhook import SignatureValidator

from hairbot.errors import SignatureError


def verify_signature(*, body: bytes, signature: str | None, channel_secret: str) -> None:
    """Check X-Line-Signature against the raw request body.

    Raises:
        SignatureError: If the header is missing or does not match
    """
    if not signature:
        raise SignatureError("Missing X-Line-Signature header")
    try:
        text = body.decode("utf-8")
    except UnicodeDecodeError as e:
        raise SignatureError("Body is not valid UTF-8") from e
    if not SignatureValidator(channel_secret).validate(text, signature):
        raise SignatureError("Invalid signature")
