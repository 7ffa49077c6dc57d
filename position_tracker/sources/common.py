from __future__ import annotations

from typing import Any

from lxml import etree, html

from position_tracker.utils import normalize_whitespace


def parse_html(html_text: str) -> html.HtmlElement:
    """Parse a page into an lxml tree; empty documents give an empty ``<html>`` root."""
    if not html_text or not html_text.strip():
        return html.fromstring("<html></html>")
    try:
        return html.fromstring(html_text)
    except ValueError:
        # str input with an XML encoding declaration must go through bytes.
        return html.fromstring(html_text.encode("utf-8"))
    except etree.ParserError:
        return html.fromstring("<html></html>")


def extract_text(nodes: list[Any]) -> str:
    out = " ".join(" ".join(node.itertext()) for node in nodes)
    return normalize_whitespace(out)


def first_text(node: Any, xpath: str) -> str:
    for match in node.xpath(xpath):
        text = normalize_whitespace(match.text_content() if hasattr(match, "text_content") else str(match))
        if text:
            return text
    return ""
