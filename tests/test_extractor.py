from __future__ import annotations

from lxml import html

from position_tracker.sources.common import parse_html
from position_tracker.sources.extractor import extract_sections, has_structured_content, is_key_section

NEUTRAL_TEXT = (
    "The weather in the valley was pleasant throughout the afternoon and everyone enjoyed a walk "
    "along the river bank near town. It was quiet and calm."
)
HEALTHCARE_TEXT = (
    "I believe every family deserves affordable healthcare. I strongly support expanding Medicare "
    "so that seniors and working people can see a doctor without going broke."
)


def test_main_landmark_is_extracted_without_scripts() -> None:
    tree = parse_html(
        f"""
        <html><head><title>Senator Jane Doe</title><script>var support = 'expand';</script></head>
        <body><main><h2>Healthcare</h2><p>{HEALTHCARE_TEXT}</p><style>.x {{}}</style></main></body></html>
        """
    )

    sections = extract_sections(tree)

    assert sections[0].selector == "main"
    assert sections[0].title == "Healthcare"
    assert sections[0].is_key_section is True
    assert "var support" not in sections[0].text
    assert sections[0].text.startswith("Healthcare I believe every family")


def test_input_tree_is_left_untouched() -> None:
    tree = parse_html(f"<html><body><main><script>x()</script><p>{HEALTHCARE_TEXT}</p></main></body></html>")

    extract_sections(tree)

    assert len(tree.xpath("//script")) == 1


def test_length_window_filters_blocks() -> None:
    long_text = "word " * 1200
    tree = parse_html(
        f"""
        <div class="policy">Too short to matter.</div>
        <article>{long_text}</article>
        """
    )

    assert extract_sections(tree) == []


def test_text_is_truncated_to_3000_chars() -> None:
    text = ("Our agenda focuses on jobs and housing for every neighborhood in the district. " * 50)[:4500]
    tree = parse_html(f"<div class='agenda'>{text}</div>")

    sections = extract_sections(tree)

    assert len(sections[0].text) == 3000


def test_meta_description_becomes_fallback_section() -> None:
    tree = parse_html(
        """
        <html><head>
          <title>Rep. Smith | Official Site</title>
          <meta name="description" content="Rep. Smith fights for working families, affordable housing and clean energy.">
        </head><body><p>Hi</p></body></html>
        """
    )

    sections = extract_sections(tree)

    assert len(sections) == 1
    assert sections[0].selector == "meta[description]"
    assert sections[0].title == "Rep. Smith | Official Site"
    assert sections[0].is_key_section is True
    assert sections[0].has_structured_content is False


def test_nested_duplicates_are_collapsed() -> None:
    tree = parse_html(f"<main><div class='content'><p>{HEALTHCARE_TEXT}</p></div></main>")

    sections = extract_sections(tree)

    assert [section.selector for section in sections] == ["main"]


def test_key_and_structured_sections_sort_first() -> None:
    tree = parse_html(
        f"""
        <body>
          <div class="content"><p>{NEUTRAL_TEXT}</p></div>
          <div class="policy"><p>{HEALTHCARE_TEXT}</p></div>
        </body>
        """
    )

    sections = extract_sections(tree)

    assert [section.selector for section in sections] == [".policy", ".content"]
    assert sections[0].is_key_section is True
    assert sections[1].is_key_section is False


def test_limit_truncates_sections() -> None:
    blocks = "".join(
        f"<article><h3>Item {index}</h3><p>{index} {NEUTRAL_TEXT}</p></article>" for index in range(20)
    )
    tree = parse_html(f"<body>{blocks}</body>")

    assert len(extract_sections(tree)) == 15
    assert len(extract_sections(tree, limit=3)) == 3


def test_is_key_section_rules() -> None:
    by_attribute = html.fromstring("<section id='issues-list'>x</section>")
    assert is_key_section(by_attribute, "x") is True

    by_container = html.fromstring("<div class='primary-column'>x</div>")
    assert is_key_section(by_container, "x") is True

    plain = html.fromstring("<div>x</div>")
    assert is_key_section(plain, NEUTRAL_TEXT.lower()) is False
    assert is_key_section(plain, "we will vote on the budget for schools") is True
    assert is_key_section(plain, "here is how i plan to help") is True


def test_has_structured_content_needs_more_than_two_items() -> None:
    two = html.fromstring("<div><ul><li>a</li><li>b</li></ul></div>")
    three = html.fromstring("<div><ul><li>a</li><li>b</li><li>c</li></ul></div>")

    assert has_structured_content(two) is False
    assert has_structured_content(three) is True
