"""Unit tests for reference ingestion."""

import httpx
import pytest

from webforge.core.config import IngestionConfig
from webforge.core.exceptions import ServiceError, UnsafeReferenceError
from webforge.services.ingestion import (
    ReferenceIngestionService,
    assert_safe_remote,
    is_blocked_address,
    reference_confidence,
)
from webforge.services.ingestion.extract import extract_page_signals
from webforge.services.ingestion.network import fetch_with_limit
from webforge.services.ingestion.service import NO_URL_SCREENSHOT_WARNING

PAGE = b"""<html>
<head>
  <title> Acme   Dashboard </title>
  <meta name="description" content="Ops overview">
  <style>body { color: #112233; font-family: Inter, sans-serif; padding: 16px; }</style>
</head>
<body>
  <nav class="navbar"></nav>
  <main>
    <h1>Welcome</h1>
    <button>Save</button>
    <a href="/docs">Docs</a>
    <form><input name="a"><input name="b"></form>
  </main>
</body>
</html>"""


def public_resolver(*addresses: str):
    async def resolve(hostname: str) -> list[str]:
        return list(addresses or ("93.184.216.34",))

    return resolve


async def failing_resolver(hostname: str) -> list[str]:
    raise OSError("no such host")


class TestNetworkGuard:
    """Tests for the outbound request guard."""

    @pytest.mark.parametrize(
        "address, blocked",
        [
            ("127.0.0.1", True),
            ("10.1.2.3", True),
            ("192.168.0.10", True),
            ("169.254.169.254", True),
            ("100.64.0.1", True),
            ("::1", True),
            ("fe80::1%eth0", True),
            ("::ffff:10.0.0.1", True),
            ("224.0.0.1", True),
            ("not-an-ip", True),
            ("8.8.8.8", False),
            ("2606:4700:4700::1111", False),
        ],
    )
    def test_is_blocked_address(self, address, blocked):
        assert is_blocked_address(address) is blocked

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "url, message",
        [
            ("http://example.com", "Only https:// URLs are allowed"),
            ("https://localhost/app", "Local and private hosts are not allowed"),
            ("https://printer.local", "Local and private hosts are not allowed"),
            ("https://10.0.0.5/", "Private network addresses are not allowed"),
        ],
    )
    async def test_rejects_unsafe_urls(self, url, message):
        with pytest.raises(UnsafeReferenceError) as exc_info:
            await assert_safe_remote(httpx.URL(url), public_resolver())
        assert str(exc_info.value) == message

    @pytest.mark.asyncio
    async def test_rejects_host_resolving_to_private_address(self):
        """Every resolved address must be public."""
        resolver = public_resolver("93.184.216.34", "10.0.0.7")
        with pytest.raises(UnsafeReferenceError, match="private network"):
            await assert_safe_remote(httpx.URL("https://example.com"), resolver)

    @pytest.mark.asyncio
    async def test_unresolvable_host(self):
        with pytest.raises(UnsafeReferenceError, match="Unable to resolve host safely"):
            await assert_safe_remote(httpx.URL("https://example.invalid"), failing_resolver)

    @pytest.mark.asyncio
    async def test_public_host_passes(self):
        await assert_safe_remote(httpx.URL("https://example.com/page"), public_resolver())


class TestFetchWithLimit:
    """Tests for capped, re-checked fetching."""

    @pytest.mark.asyncio
    async def test_follows_redirect_and_rechecks(self):
        """Each redirect hop goes through the guard again."""
        seen: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(str(request.url))
            if request.url.path == "/start":
                return httpx.Response(302, headers={"location": "/final"})
            return httpx.Response(200, headers={"content-type": "text/html"}, content=b"<html></html>")

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            document = await fetch_with_limit(
                client,
                httpx.URL("https://example.com/start"),
                max_bytes=10_000,
                max_redirects=2,
                accept="text/html",
                resolver=public_resolver(),
            )

        assert document.final_url == "https://example.com/final"
        assert document.body == b"<html></html>"
        assert seen == ["https://example.com/start", "https://example.com/final"]

    @pytest.mark.asyncio
    async def test_redirect_to_private_address_rejected(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(301, headers={"location": "https://127.0.0.1/admin"})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            with pytest.raises(UnsafeReferenceError):
                await fetch_with_limit(
                    client,
                    httpx.URL("https://example.com/"),
                    max_bytes=10_000,
                    max_redirects=2,
                    accept="text/html",
                    resolver=public_resolver(),
                )

    @pytest.mark.asyncio
    async def test_too_many_redirects(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(302, headers={"location": "/again"})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            with pytest.raises(ServiceError, match="Too many redirects"):
                await fetch_with_limit(
                    client,
                    httpx.URL("https://example.com/"),
                    max_bytes=10_000,
                    max_redirects=1,
                    accept="text/html",
                    resolver=public_resolver(),
                )

    @pytest.mark.asyncio
    async def test_oversize_body_rejected(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=b"x" * 2048)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            with pytest.raises(ServiceError, match="byte limit"):
                await fetch_with_limit(
                    client,
                    httpx.URL("https://example.com/"),
                    max_bytes=1024,
                    max_redirects=0,
                    accept="text/html",
                    resolver=public_resolver(),
                )


class TestExtractPageSignals:
    """Tests for DOM pattern matching."""

    def test_extracts_signals(self):
        signals = extract_page_signals(PAGE, max_style_tokens=80, max_interaction_hints=40, max_text_snippet=4000)

        assert signals.title == "Acme Dashboard"
        assert signals.description == "Ops overview"
        assert "#112233" in signals.style_tokens
        assert "font-family: inter, sans-serif" in signals.style_tokens
        assert "padding: 16px" in signals.style_tokens
        assert "navbar" in signals.style_tokens
        assert signals.interaction_hints == ["button:Save", "link:Docs", "form:2-fields"]
        assert "1 nav blocks" in signals.dom_summary
        assert "1 forms" in signals.dom_summary
        assert signals.text_snippet.startswith("Welcome")
        assert signals.js_heavy_likely is False

    def test_long_interaction_hints_dropped(self):
        """Hints over the token length cap are left out, like style tokens."""
        label = "Subscribe " * 20
        page = (
            b"<html><body><button>" + label.encode() + b"</button>"
            b"<a href='/x'>" + b"x" * 116 + b"</a><a href='/y'>" + b"y" * 115 + b"</a></body></html>"
        )
        signals = extract_page_signals(page, max_style_tokens=80, max_interaction_hints=40, max_text_snippet=4000)
        assert signals.interaction_hints == ["link:" + "y" * 115]

    def test_js_heavy_detection(self):
        """Many scripts and little text flag a likely SPA."""
        scripts = b"".join(b"<script>var a%d = 1;</script>" % i for i in range(20))
        page = b"<html><body><div id='root'></div>" + scripts + b"</body></html>"
        signals = extract_page_signals(page, max_style_tokens=80, max_interaction_hints=40, max_text_snippet=4000)
        assert signals.script_count == 20
        assert signals.js_heavy_likely is True

    def test_snippet_is_truncated(self):
        page = b"<html><body><main>" + b"word " * 200 + b"</main></body></html>"
        signals = extract_page_signals(page, max_style_tokens=80, max_interaction_hints=40, max_text_snippet=200)
        assert len(signals.text_snippet) == 203
        assert signals.text_snippet.endswith("...")


class TestReferenceConfidence:
    """Tests for the confidence formula."""

    def test_floor(self):
        assert reference_confidence(
            has_prompt=False, has_screenshot=False, has_url_context=False, style_token_count=0, interaction_hint_count=0
        ) == 0.1

    def test_prompt_only(self):
        assert reference_confidence(
            has_prompt=True, has_screenshot=False, has_url_context=False, style_token_count=0, interaction_hint_count=0
        ) == 0.25

    def test_ceiling(self):
        """All signals together clamp at 0.99."""
        assert reference_confidence(
            has_prompt=True, has_screenshot=True, has_url_context=True, style_token_count=8, interaction_hint_count=5
        ) == 0.99


class TestReferenceIngestionService:
    """Tests for bundle aggregation."""

    @pytest.mark.asyncio
    async def test_prompt_only_request(self, make_request):
        service = ReferenceIngestionService(IngestionConfig())
        bundle = await service.ingest(make_request())
        assert bundle.prompt == "Build a task board"
        assert bundle.warnings == []
        assert bundle.reference_confidence == 0.25

    @pytest.mark.asyncio
    async def test_uploaded_images_become_screenshots(self, make_request):
        request = make_request(images=[{"name": "shot.png", "mimeType": "image/png", "base64": "QUJD"}])
        bundle = await ReferenceIngestionService(IngestionConfig()).ingest(request)
        assert [s.source for s in bundle.reference_screenshots] == ["upload"]
        assert bundle.reference_confidence == 0.55

    @pytest.mark.asyncio
    async def test_http_url_becomes_warning(self, make_request):
        """A rejected URL never fails the request."""
        request = make_request(urls=["http://example.com"])
        service = ReferenceIngestionService(IngestionConfig(), resolver=public_resolver())
        bundle = await service.ingest(request)

        assert "Failed to ingest http://example.com: Only https:// URLs are allowed" in bundle.warnings
        assert NO_URL_SCREENSHOT_WARNING in bundle.warnings
        assert bundle.dom_summary == ""

    @pytest.mark.asyncio
    async def test_ingests_public_url(self, make_request):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, headers={"content-type": "text/html"}, content=PAGE)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            service = ReferenceIngestionService(IngestionConfig(), client=client, resolver=public_resolver())
            bundle = await service.ingest(make_request(urls=["https://acme.example.com"]))

        assert "#112233" in bundle.style_tokens
        assert "button:Save" in bundle.interaction_hints
        assert "Title: Acme Dashboard" in bundle.dom_summary
        assert NO_URL_SCREENSHOT_WARNING in bundle.warnings
        assert bundle.reference_confidence == 0.5

    @pytest.mark.asyncio
    async def test_captures_url_screenshot(self, make_request):
        """A configured screenshot provider adds a url-sourced screenshot."""

        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "POST":
                assert request.headers["authorization"] == "Bearer shot-key"
                return httpx.Response(200, json={"data": {"screenshot": "data:image/jpeg;base64,QUJD"}})
            return httpx.Response(200, headers={"content-type": "text/html"}, content=PAGE)

        config = IngestionConfig(screenshot_api_key="shot-key")
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            service = ReferenceIngestionService(config, client=client, resolver=public_resolver())
            bundle = await service.ingest(make_request(urls=["https://acme.example.com"]))

        [shot] = bundle.reference_screenshots
        assert shot.source == "url"
        assert shot.mime_type == "image/jpeg"
        assert shot.origin.startswith("https://acme.example.com")
        assert NO_URL_SCREENSHOT_WARNING not in bundle.warnings

    @pytest.mark.asyncio
    @pytest.mark.parametrize("reply", [[], {"data": "oops"}, {"data": None}, "plain"])
    async def test_malformed_screenshot_reply_ignored(self, make_request, reply):
        """An unexpected provider reply shape yields no screenshot, not a failure."""

        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "POST":
                return httpx.Response(200, json=reply)
            return httpx.Response(200, headers={"content-type": "text/html"}, content=PAGE)

        config = IngestionConfig(screenshot_api_key="shot-key")
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            service = ReferenceIngestionService(config, client=client, resolver=public_resolver())
            bundle = await service.ingest(make_request(urls=["https://acme.example.com"]))

        assert bundle.reference_screenshots == []
        assert "Title: Acme Dashboard" in bundle.dom_summary
        assert NO_URL_SCREENSHOT_WARNING in bundle.warnings

    @pytest.mark.asyncio
    async def test_failing_screenshot_provider_is_warning(self, make_request):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "POST":
                return httpx.Response(502, text="bad gateway")
            return httpx.Response(200, headers={"content-type": "text/html"}, content=PAGE)

        config = IngestionConfig(screenshot_api_key="shot-key")
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            service = ReferenceIngestionService(config, client=client, resolver=public_resolver())
            bundle = await service.ingest(make_request(urls=["https://acme.example.com"]))

        assert "Screenshot capture failed; continuing with static DOM extraction." in bundle.warnings
        assert "button:Save" in bundle.interaction_hints
        assert bundle.reference_screenshots == []
