from __future__ import annotations

import pytest

from position_tracker.errors import LinkResolutionError
from position_tracker.sources.common import parse_html
from position_tracker.sources.discovery import discover_policy_pages, resolve_link


def test_relative_issue_link_resolves_against_base(taxonomy) -> None:
    tree = parse_html(
        """
        <html><body>
          <a href="/issues/healthcare">Healthcare</a>
          <a href="https://other.gov/issues/healthcare">Elsewhere</a>
        </body></html>
        """
    )

    pages = discover_policy_pages(tree, "https://x.gov/index", taxonomy.discovery_keywords())

    assert [page.url for page in pages] == ["https://x.gov/issues/healthcare"]
    assert pages[0].topic_hint == "healthcare"
    assert pages[0].text == "Healthcare"


def test_generic_policy_paths_are_kept_without_hint(taxonomy) -> None:
    tree = parse_html(
        """
        <a href="/priorities">Our Priorities</a>
        <a href="/about">About</a>
        <a href="/contact">Contact</a>
        <a href="/news/press-releases">Press</a>
        """
    )

    pages = discover_policy_pages(tree, "https://rep.example.gov/", taxonomy.discovery_keywords())

    assert [(page.url, page.topic_hint) for page in pages] == [("https://rep.example.gov/priorities", None)]


def test_link_text_can_provide_topic_hint(taxonomy) -> None:
    tree = parse_html('<a href="/page/42">Protecting our climate</a>')

    pages = discover_policy_pages(tree, "https://rep.example.gov/", taxonomy.discovery_keywords())

    assert len(pages) == 1
    assert pages[0].topic_hint == "environment"


def test_first_topic_in_taxonomy_order_wins(taxonomy) -> None:
    tree = parse_html('<a href="/issues/health-and-education">Health and education</a>')

    pages = discover_policy_pages(tree, "https://rep.example.gov/", taxonomy.discovery_keywords())

    assert pages[0].topic_hint == "healthcare"


def test_skips_base_url_fragments_duplicates_and_bad_schemes(taxonomy) -> None:
    tree = parse_html(
        """
        <a href="https://rep.example.gov/">Home</a>
        <a href="#issues">Jump</a>
        <a href="mailto:office@rep.example.gov?subject=issues">Mail</a>
        <a href="javascript:void(0)">Issues menu</a>
        <a href="/issues/">Issues</a>
        <a href="/issues#top">Issues again</a>
        <a href="http://[::1">Broken</a>
        """
    )

    pages = discover_policy_pages(tree, "https://rep.example.gov/", taxonomy.discovery_keywords())

    assert [page.url for page in pages] == ["https://rep.example.gov/issues/"]


def test_limit_caps_result(taxonomy) -> None:
    links = "".join(f'<a href="/issues/item-{index}">Item {index}</a>' for index in range(30))
    tree = parse_html(f"<div>{links}</div>")

    pages = discover_policy_pages(tree, "https://rep.example.gov/", taxonomy.discovery_keywords(), limit=15)

    assert len(pages) == 15
    assert pages[0].url == "https://rep.example.gov/issues/item-0"


@pytest.mark.parametrize("href", ["", "#top", "mailto:a@b.gov", "ftp://files.example.gov/x", "http://[::1"])
def test_resolve_link_rejects_unusable_hrefs(href: str) -> None:
    with pytest.raises(LinkResolutionError):
        resolve_link("https://rep.example.gov/", href)
