"""
Reference Ingestion Service.

Normalizes prompt, uploaded screenshots and reference URLs into one
ReferenceBundle of style and interaction signals.
"""

from __future__ import annotations

import time
from contextlib import asynccontextmanager
from typing import AsyncIterator

import httpx

from ...core.config import IngestionConfig
from ...core.exceptions import WebForgeError
from ...core.logging import get_logger
from ...core.types import ServiceResult
from ...models.reference import ReferenceBundle, ReferenceScreenshot, UrlReference, unique
from ...models.request import GenerationRequest
from .extract import extract_page_signals
from .network import Resolver, fetch_with_limit, system_resolver
from .screenshot import ScreenshotProvider

logger = get_logger(__name__)

HTML_ACCEPT = "text/html,application/xhtml+xml;q=0.9,*/*;q=0.1"

NO_URL_SCREENSHOT_WARNING = (
    "No URL screenshots were captured. Upload at least one screenshot for strict visual matching."
)


def reference_confidence(
    *,
    has_prompt: bool,
    has_screenshot: bool,
    has_url_context: bool,
    style_token_count: int,
    interaction_hint_count: int,
) -> float:
    """Weighted presence of each signal source, clamped to [0.1, 0.99]."""
    score = 0.0
    if has_prompt:
        score += 0.25
    if has_screenshot:
        score += 0.3
    if has_url_context:
        score += 0.25
    if style_token_count >= 8:
        score += 0.1
    if interaction_hint_count >= 5:
        score += 0.1
    return max(0.1, min(0.99, round(score, 2)))


class ReferenceIngestionService:
    """Service for turning raw inputs into reference signals.

    This service:
    1. Guards and fetches each reference URL (https only, public hosts only)
    2. Extracts style tokens, interaction hints and a DOM summary
    3. Optionally captures a rendered screenshot per URL
    4. Aggregates everything with a confidence score

    A failing URL never fails the request; it becomes a warning.
    """

    def __init__(
        self,
        config: IngestionConfig,
        client: httpx.AsyncClient | None = None,
        resolver: Resolver = system_resolver,
    ) -> None:
        """Initialize the ingestion service.

        Args:
            config: Ingestion limits and screenshot provider settings
            client: Optional shared HTTP client; one is created per call otherwise
            resolver: Hostname resolver used by the network guard
        """
        self.config = config
        self._client = client
        self.resolver = resolver

    @asynccontextmanager
    async def _client_scope(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._client is not None:
            yield self._client
            return
        async with httpx.AsyncClient(
            timeout=httpx.Timeout(self.config.request_timeout_seconds),
            headers={"User-Agent": self.config.user_agent},
            follow_redirects=False,
        ) as client:
            yield client

    async def ingest_url(self, raw_url: str, client: httpx.AsyncClient) -> ServiceResult[UrlReference]:
        """Fetch and analyze a single reference URL."""
        start_time = time.perf_counter()
        try:
            url = httpx.URL(raw_url)
            document = await fetch_with_limit(
                client,
                url,
                max_bytes=self.config.max_html_bytes,
                max_redirects=self.config.max_redirects,
                accept=HTML_ACCEPT,
                resolver=self.resolver,
            )
        except WebForgeError as e:
            return ServiceResult.fail(e.message, url=raw_url)
        except httpx.InvalidURL as e:
            return ServiceResult.fail(f"Invalid URL ({e})", url=raw_url)
        except httpx.HTTPError as e:
            return ServiceResult.fail(str(e) or type(e).__name__, url=raw_url)

        signals = extract_page_signals(
            document.body,
            max_style_tokens=self.config.max_style_tokens,
            max_interaction_hints=self.config.max_interaction_hints,
            max_text_snippet=self.config.max_text_snippet,
        )

        warnings: list[str] = []
        if signals.js_heavy_likely:
            warnings.append(
                f'Reference "{url.host}" appears to be a JavaScript-heavy SPA '
                f"({signals.script_count} scripts, minimal server-rendered HTML). "
                "Static HTML scraping captured limited visual/content data. For better results, "
                "upload a screenshot of the page or configure a screenshot provider key."
            )

        screenshot: ReferenceScreenshot | None = None
        provider = ScreenshotProvider(self.config, client, self.resolver)
        try:
            screenshot = await provider.capture(document.final_url)
        except (httpx.HTTPError, WebForgeError, ValueError) as e:
            logger.warning("Screenshot capture failed", url=document.final_url, error=str(e))
            warnings.append("Screenshot capture failed; continuing with static DOM extraction.")

        reference = UrlReference(
            url=raw_url,
            final_url=document.final_url,
            title=signals.title,
            description=signals.description,
            dom_summary=signals.dom_summary,
            text_snippet=signals.text_snippet,
            style_tokens=signals.style_tokens,
            interaction_hints=signals.interaction_hints,
            js_heavy_likely=signals.js_heavy_likely,
            screenshot=screenshot,
            warnings=warnings,
        )
        duration_ms = (time.perf_counter() - start_time) * 1000
        logger.info(
            "Reference URL ingested",
            url=raw_url,
            style_tokens=len(reference.style_tokens),
            interaction_hints=len(reference.interaction_hints),
            screenshot=screenshot is not None,
            duration_ms=round(duration_ms, 1),
        )
        result = ServiceResult.with_warnings(reference, warnings, url=raw_url)
        result.duration_ms = duration_ms
        return result

    async def ingest(self, request: GenerationRequest) -> ReferenceBundle:
        """Build the ReferenceBundle for a request.

        Args:
            request: Validated generation request

        Returns:
            The aggregated, immutable ReferenceBundle
        """
        warnings: list[str] = []
        screenshots = [
            ReferenceScreenshot(source="upload", mime_type=image.mime_type, base64=image.base64)
            for image in request.images
        ]
        style_tokens: list[str] = []
        interaction_hints: list[str] = []
        dom_segments: list[str] = []

        if request.urls:
            async with self._client_scope() as client:
                for raw_url in request.urls:
                    result = await self.ingest_url(raw_url, client)
                    if not result.success or result.data is None:
                        logger.warning("Reference URL rejected", url=raw_url, error=result.error)
                        warnings.append(f"Failed to ingest {raw_url}: {result.error}")
                        continue
                    reference = result.data
                    style_tokens.extend(reference.style_tokens)
                    interaction_hints.extend(reference.interaction_hints)
                    dom_segments.append(reference.context_block())
                    warnings.extend(result.warnings)
                    if reference.screenshot is not None:
                        screenshots.append(reference.screenshot)

            if len(screenshots) == len(request.images):
                warnings.append(NO_URL_SCREENSHOT_WARNING)

        style_tokens = unique(style_tokens)[: self.config.max_style_tokens]
        interaction_hints = unique(interaction_hints)[: self.config.max_interaction_hints]

        bundle = ReferenceBundle(
            prompt=request.prompt,
            reference_screenshots=screenshots,
            dom_summary="\n\n".join(dom_segments),
            style_tokens=style_tokens,
            interaction_hints=interaction_hints,
            reference_confidence=reference_confidence(
                has_prompt=bool(request.prompt.strip()),
                has_screenshot=bool(screenshots),
                has_url_context=bool(dom_segments),
                style_token_count=len(style_tokens),
                interaction_hint_count=len(interaction_hints),
            ),
            warnings=warnings,
        )
        logger.info(
            "References ingested",
            urls=len(request.urls),
            screenshots=len(screenshots),
            confidence=bundle.reference_confidence,
            warnings=len(bundle.warnings),
        )
        return bundle
