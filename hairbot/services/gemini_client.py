"""Google Gemini client for hairstyle composition."""

import asyncio
import logging

import httpx
from google import genai
from google.genai import errors, types

from hairbot.config import GeminiConfig, get_config
from hairbot.errors import GenerationError
from hairbot.utils.prompt_builder import build_hairstyle_prompt

logger = logging.getLogger(__name__)


def detect_mime_type(data: bytes) -> str:
    """Guess image MIME type from magic bytes, defaulting to JPEG."""
    if data.startswith(b"\x89PNG"):
        return "image/png"
    if data.startswith(b"GIF"):
        return "image/gif"
    if data.startswith(b"WEBP", 8):
        return "image/webp"
    return "image/jpeg"


class GeminiClient:
    """Client for Google Gemini API."""

    def __init__(self, config: GeminiConfig | None = None, client: genai.Client | None = None):
        """Initialize Gemini client.

        Args:
            config: Gemini configuration. If None, uses global config.
            client: Prebuilt SDK client, mostly for tests.
        """
        self.config = config or get_config().gemini
        self.client = client or genai.Client(
            api_key=self.config.api_key,
            http_options=types.HttpOptions(timeout=self.config.timeout * 1000),
        )
        logger.info(f"Gemini Client initialized: model={self.config.model}")

    async def compose_hairstyle(
        self,
        face: bytes,
        reference: bytes | None = None,
        style: str | None = None,
        color: str | None = None,
    ) -> bytes:
        """Generate a photo of the user with a new hairstyle.

        The API is called exactly once; retrying is up to the caller.

        Args:
            face: Preprocessed selfie
            reference: Optional hairstyle reference photo
            style: Hairstyle category
            color: Hair color, "" or None keeps the original

        Returns:
            Generated image bytes

        Raises:
            GenerationError: On API error, timeout or when no image is returned
        """
        parts: list[types.Part] = [
            types.Part.from_bytes(data=face, mime_type=detect_mime_type(face)),
        ]
        if reference:
            parts.append(
                types.Part.from_bytes(data=reference, mime_type=detect_mime_type(reference))
            )

        prompt = build_hairstyle_prompt(style=style, color=color, with_reference=bool(reference))
        parts.append(types.Part.from_text(text=prompt))

        contents = [types.Content(role="user", parts=parts)]
        generate_content_config = types.GenerateContentConfig(
            response_modalities=["IMAGE", "TEXT"],
            image_config=types.ImageConfig(aspect_ratio=self.config.aspect_ratio),
        )

        logger.info(
            f"Requesting composition: style={style!r}, color={color!r}, reference={bool(reference)}"
        )

        loop = asyncio.get_running_loop()
        try:
            response = await asyncio.wait_for(
                loop.run_in_executor(
                    None, self._generate_sync, contents, generate_content_config
                ),
                timeout=self.config.timeout,
            )
        except asyncio.TimeoutError as e:
            logger.error(f"Gemini request timed out after {self.config.timeout}s")
            raise GenerationError("Gemini request timed out") from e
        except errors.APIError as e:
            logger.error(f"[Gemini API Error] Status: {e.code}\n{e.message}")
            raise GenerationError(f"Gemini API error {e.code}", status_code=e.code) from e
        except httpx.HTTPError as e:
            logger.error(f"Gemini transport error: {e}")
            raise GenerationError("Gemini request failed") from e

        image = self._extract_image(response)
        if image is None:
            logger.error(f"[Gemini response parse error] {response!r}"[:2000])
            raise GenerationError("No image data returned from Gemini")

        logger.info(f"Gemini generated image: {len(image)} bytes")
        return image

    @staticmethod
    def _extract_image(response: types.GenerateContentResponse) -> bytes | None:
        for candidate in response.candidates or []:
            if candidate.content is None or candidate.content.parts is None:
                continue
            for part in candidate.content.parts:
                if part.inline_data and part.inline_data.data:
                    return part.inline_data.data
                if part.text:
                    logger.debug(f"Gemini text response: {part.text}")
        return None

    def _generate_sync(
        self,
        contents: list[types.Content],
        config: types.GenerateContentConfig,
    ) -> types.GenerateContentResponse:
        """Generate content (synchronous)."""
        return self.client.models.generate_content(
            model=self.config.model,
            contents=contents,
            config=config,
        )
