"""HTTP lookup of the current WhatsApp Web protocol version."""

import asyncio
import logging
from typing import Tuple

import aiohttp

logger = logging.getLogger(__name__)

Version = Tuple[int, ...]

DEFAULT_VERSION: Version = (2, 3000, 1023223821)


class VersionClient:
    """Fetch the latest protocol version, falling back to a built-in default."""

    def __init__(self, url: str, timeout_seconds: float = 10) -> None:
        """
        Args:
            url: JSON document of the form ``{"version": [2, 3000, N]}``
            timeout_seconds: Total request timeout
        """
        self.url = url
        self._timeout = aiohttp.ClientTimeout(total=timeout_seconds)

    async def fetch_latest(self) -> Tuple[Version, bool]:
        """
        Get the protocol version to connect with.

        Returns:
            ``(version, is_latest)``; ``is_latest`` is False when the default
            was used because the lookup failed
        """
        logger.debug(f"GET {self.url}")
        try:
            async with aiohttp.ClientSession(timeout=self._timeout) as session:
                async with session.get(self.url) as response:
                    response.raise_for_status()
                    data = await response.json(content_type=None)
            version = tuple(int(part) for part in data["version"])
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(f"Version lookup failed, using default: {e}")
            return DEFAULT_VERSION, False
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Unexpected version document, using default: {e}")
            return DEFAULT_VERSION, False

        return version, True
