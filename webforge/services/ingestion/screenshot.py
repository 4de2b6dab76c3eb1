"""
Rendered screenshot capture through a Firecrawl-compatible scrape endpoint.

Optional: without an API key the provider reports nothing. Every failure is
surfaced to the caller as a warning, never as a request failure.
"""

from __future__ import annotations

import base64
import re
from typing import Any

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from ...core.config import IngestionConfig
from ...core.logging import get_logger
from ...models.reference import ReferenceScreenshot
from .network import Resolver, fetch_with_limit, system_resolver

logger = get_logger(__name__)

_DATA_URL_PREFIX = re.compile(r"^data:(.+);base64$")


class ScreenshotProvider:
    """Captures a rendered screenshot of a public page."""

    def __init__(
        self,
        config: IngestionConfig,
        client: httpx.AsyncClient,
        resolver: Resolver = system_resolver,
    ) -> None:
        self.config = config
        self.client = client
        self.resolver = resolver

    @property
    def enabled(self) -> bool:
        return self.config.screenshot_api_key is not None

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(2),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=2),
        reraise=True,
    )
    async def _scrape(self, url: str, api_key: str) -> Any:
        response = await self.client.post(
            self.config.screenshot_api_url,
            headers={
                "Authorization": f"Bearer {api_key}",
            },
            json={"url": url, "formats": ["html", "screenshot"], "onlyMainContent": False},
        )
        response.raise_for_status()
        return response.json()

    async def capture(self, url: str) -> ReferenceScreenshot | None:
        """Return a screenshot for ``url``, or None when the provider has none.

        Raises:
            httpx.HTTPError: When the provider call fails after its retry.
        """
        api_key = self.config.screenshot_api_key
        if api_key is None:
            return None

        payload = await self._scrape(url, api_key.get_secret_value())
        data = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(data, dict):
            logger.debug("Screenshot provider reply has no data object", url=url)
            return None
        shot = data.get("screenshot")
        if isinstance(shot, dict):
            shot = shot.get("data") or shot.get("url") or ""
        if not isinstance(shot, str) or not shot:
            return None

        if shot.startswith("data:image/"):
            prefix, _, data = shot.partition(",")
            if not data:
                return None
            match = _DATA_URL_PREFIX.match(prefix)
            mime_type = match.group(1) if match else "image/png"
            return ReferenceScreenshot(source="url", origin=url, mime_type=mime_type, base64=data)

        if shot.startswith("https://"):
            image = await fetch_with_limit(
                self.client,
                httpx.URL(shot),
                max_bytes=self.config.max_image_bytes,
                max_redirects=self.config.max_redirects,
                accept="image/*",
                resolver=self.resolver,
            )
            return ReferenceScreenshot(
                source="url",
                origin=url,
                mime_type=image.content_type.split(";")[0].strip() or "image/png",
                base64=base64.b64encode(image.body).decode("ascii"),
            )

        logger.debug("Unsupported screenshot payload", url=url)
        return None
