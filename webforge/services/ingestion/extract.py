"""
Lightweight DOM pattern matching over fetched HTML.

No rendering or script execution: signals come from markup, inline styles and
``<style>`` blocks only.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from lxml import etree
from lxml import html as lxml_html

from ...models.reference import unique

COLOR_PATTERN = re.compile(r"#(?:[0-9a-fA-F]{3,8})\b|rgba?\([^)]+\)|hsla?\([^)]+\)")
FONT_PATTERN = re.compile(r"font-family\s*:\s*[^;}\n]+", re.IGNORECASE)
SPACING_PATTERN = re.compile(r"(?:margin|padding|gap|border-radius)\s*:\s*[^;}\n]+", re.IGNORECASE)
CSS_VAR_PATTERN = re.compile(r"--[a-z0-9-_]+\s*:\s*[^;}\n]+", re.IGNORECASE)
CLASS_HINT_PATTERN = re.compile(
    r"\b(navbar|sidebar|hero|card|grid|flex|modal|form|table|badge|button)\b", re.IGNORECASE
)
_WHITESPACE = re.compile(r"\s+")

MAX_TOKEN_CHARS = 120
JS_HEAVY_SCRIPT_COUNT = 15
JS_HEAVY_TEXT_CHARS = 400


def _collapse(value: str) -> str:
    return _WHITESPACE.sub(" ", value).strip()


@dataclass
class PageSignals:
    """Everything extracted from one HTML document."""

    title: str = ""
    description: str = ""
    dom_summary: str = ""
    text_snippet: str = ""
    style_tokens: list[str] = field(default_factory=list)
    interaction_hints: list[str] = field(default_factory=list)
    script_count: int = 0
    body_text_length: int = 0

    @property
    def js_heavy_likely(self) -> bool:
        return self.script_count > JS_HEAVY_SCRIPT_COUNT and self.body_text_length < JS_HEAVY_TEXT_CHARS


def parse_document(body: bytes) -> lxml_html.HtmlElement:
    try:
        return lxml_html.document_fromstring(body)
    except (etree.ParserError, ValueError):
        return lxml_html.document_fromstring(b"<html><body></body></html>")


def extract_style_tokens(doc: lxml_html.HtmlElement, limit: int) -> list[str]:
    style_blocks = "\n".join(doc.xpath("//style/text()"))
    inline_styles = ";".join(doc.xpath("//@style"))
    corpus = f"{style_blocks}\n{inline_styles}"
    class_corpus = " ".join(doc.xpath("//@class"))

    tokens = [
        *COLOR_PATTERN.findall(corpus),
        *FONT_PATTERN.findall(corpus),
        *SPACING_PATTERN.findall(corpus),
        *CSS_VAR_PATTERN.findall(corpus),
        *CLASS_HINT_PATTERN.findall(class_corpus),
    ]
    cleaned = [_collapse(token.lower()) for token in tokens]
    return [t for t in unique(cleaned) if len(t) <= MAX_TOKEN_CHARS][:limit]


def extract_interaction_hints(doc: lxml_html.HtmlElement, limit: int) -> list[str]:
    hints: list[str] = []
    for element in doc.xpath("//button | //*[@role='button']"):
        label = _collapse(element.text_content()) or element.get("aria-label") or element.get("title")
        if label:
            hints.append(f"button:{_collapse(label)}")
    for element in doc.xpath("//a[@href]"):
        label = _collapse(element.text_content())
        if label:
            hints.append(f"link:{label}")
    for form in doc.xpath("//form"):
        field_count = len(form.xpath(".//input | .//select | .//textarea"))
        hints.append(f"form:{field_count}-fields")
    return [h for h in unique(hints) if len(h) <= MAX_TOKEN_CHARS][:limit]


def summarize_dom(doc: lxml_html.HtmlElement) -> str:
    counts = [
        (len(doc.xpath("//section | //article | //main")), "major sections"),
        (len(doc.xpath("//nav")), "nav blocks"),
        (len(doc.xpath("//form")), "forms"),
        (len(doc.xpath("//button | //*[@role='button']")), "buttons"),
        (len(doc.xpath("//h1 | //h2 | //h3")), "headings"),
        (
            len(
                doc.xpath(
                    "//*[contains(@class, 'card') or contains(@class, 'tile') or contains(@class, 'panel')]"
                )
            ),
            "card-like components",
        ),
    ]
    return ", ".join(f"{count} {label}" for count, label in counts)


def text_snippet(doc: lxml_html.HtmlElement, max_chars: int) -> str:
    containers = doc.xpath("//main") or doc.xpath("//body")
    text = _collapse(containers[0].text_content()) if containers else ""
    return f"{text[:max_chars]}..." if len(text) > max_chars else text


def extract_page_signals(
    body: bytes,
    *,
    max_style_tokens: int,
    max_interaction_hints: int,
    max_text_snippet: int,
) -> PageSignals:
    """Run every extractor over one HTML document."""
    doc = parse_document(body)
    titles = doc.xpath("//title")
    descriptions = doc.xpath("//meta[@name='description']/@content") or doc.xpath(
        "//meta[@property='og:description']/@content"
    )
    bodies = doc.xpath("//body")
    return PageSignals(
        title=_collapse(titles[0].text_content()) if titles else "",
        description=_collapse(descriptions[0]) if descriptions else "",
        dom_summary=summarize_dom(doc),
        text_snippet=text_snippet(doc, max_text_snippet),
        style_tokens=extract_style_tokens(doc, max_style_tokens),
        interaction_hints=extract_interaction_hints(doc, max_interaction_hints),
        script_count=len(doc.xpath("//script")),
        body_text_length=len(bodies[0].text_content().strip()) if bodies else 0,
    )
