"""Temporary public storage for generated images."""

import asyncio
import logging
import time
from pathlib import Path

from hairbot.config import AssetConfig, get_config

logger = logging.getLogger(__name__)

URL_PREFIX = "/tmp"


class AssetStore:
    """Writes images to a local directory served under ``/tmp``.

    Files live for ``ttl_seconds`` and disappear with the container, which is
    fine for images the user only needs to open once.
    """

    def __init__(self, public_base_url: str, config: AssetConfig | None = None):
        self.config = config or get_config().assets
        self.directory = Path(self.config.directory)
        self.public_base_url = public_base_url.rstrip("/")
        self.directory.mkdir(parents=True, exist_ok=True)

    def url_for(self, filename: str) -> str:
        return f"{self.public_base_url}{URL_PREFIX}/{filename}"

    async def save(self, data: bytes, owner: str, purpose: str = "gen") -> str:
        """Store image bytes and return a public URL.

        Args:
            data: JPEG bytes
            owner: User id the image belongs to
            purpose: Short tag that prefixes the file name

        Returns:
            Public URL of the stored file
        """
        filename = f"{purpose}_{owner}_{time.time_ns() // 1_000_000}.jpg"
        path = self.directory / filename
        await asyncio.to_thread(path.write_bytes, data)
        logger.info(f"Stored asset {filename}: {len(data)} bytes")

        removed = await asyncio.to_thread(self.purge_expired)
        if removed:
            logger.info(f"Purged {removed} expired asset(s)")

        return self.url_for(filename)

    def purge_expired(self, now: float | None = None) -> int:
        """Delete files older than the TTL. Returns the number of removed files."""
        cutoff = (now if now is not None else time.time()) - self.config.ttl_seconds
        removed = 0
        for path in self.directory.glob("*.jpg"):
            try:
                if path.stat().st_mtime < cutoff:
                    path.unlink()
                    removed += 1
            except FileNotFoundError:
                # Removed concurrently
                continue
        return removed
