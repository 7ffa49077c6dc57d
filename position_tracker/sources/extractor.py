from __future__ import annotations

import copy

from lxml import html

from position_tracker.sources.common import extract_text, first_text
from position_tracker.types import ContentSection
from position_tracker.utils import contains_any, count_hits, normalize_whitespace

MIN_SECTION_CHARS = 100
MAX_SECTION_CHARS = 5000
STORED_SECTION_CHARS = 3000
META_DESCRIPTION_MIN_CHARS = 50
DEDUP_PREFIX_CHARS = 200


def _has_class(name: str, tag: str = "*") -> str:
    return f"//{tag}[contains(concat(' ', normalize-space(@class), ' '), ' {name} ')]"


def _attr_contains(attr: str, fragment: str, tag: str = "*") -> str:
    return f"//{tag}[contains(@{attr}, '{fragment}')]"


# (label, xpath) in priority order. Labels use CSS notation and are stored as the
# position's source section.
SECTION_QUERIES: tuple[tuple[str, str], ...] = (
    ("main", "//main"),
    (".content", _has_class("content")),
    ("#content", "//*[@id='content']"),
    (".page-content", _has_class("page-content")),
    (".main-content", _has_class("main-content")),
    (".entry-content", _has_class("entry-content")),
    (".post-content", _has_class("post-content")),
    (".article-content", _has_class("article-content")),
    (".issues", _has_class("issues")),
    (".policy", _has_class("policy")),
    (".positions", _has_class("positions")),
    (".priorities", _has_class("priorities")),
    (".agenda", _has_class("agenda")),
    (".platform", _has_class("platform")),
    (".legislation", _has_class("legislation")),
    ('[id*="issue"]', _attr_contains("id", "issue")),
    ('[class*="issue"]', _attr_contains("class", "issue")),
    ('[id*="policy"]', _attr_contains("id", "policy")),
    ('[class*="policy"]', _attr_contains("class", "policy")),
    ('[id*="position"]', _attr_contains("id", "position")),
    ('[class*="position"]', _attr_contains("class", "position")),
    ("article", "//article"),
    (".field--name-body", _has_class("field--name-body")),
    (".field-item", _has_class("field-item")),
    (".paragraph", _has_class("paragraph")),
    ('section[class*="content"]', _attr_contains("class", "content", tag="section")),
    ('div[class*="content"]', _attr_contains("class", "content", tag="div")),
)

STRONG_KEYWORDS = (
    "policy",
    "position",
    "stance",
    "priority",
    "agenda",
    "platform",
    "issue",
    "legislation",
    "bill",
    "vote",
    "support",
    "oppose",
    "believe",
    "commitment",
)

TOPIC_KEYWORDS = (
    "healthcare",
    "insurance",
    "medicare",
    "medicaid",
    "immigration",
    "border",
    "citizenship",
    "refugee",
    "economy",
    "jobs",
    "employment",
    "tax",
    "budget",
    "housing",
    "affordable",
    "homeless",
    "rent",
    "education",
    "school",
    "student",
    "teacher",
    "environment",
    "climate",
    "energy",
    "pollution",
    "defense",
    "military",
    "security",
    "veteran",
    "rights",
    "equality",
    "justice",
    "freedom",
    "criminal",
    "police",
    "reform",
    "prison",
    "social security",
    "retirement",
    "disability",
    "technology",
    "internet",
    "privacy",
    "data",
)

POSITION_STATEMENTS = ("i believe", "my position", "will fight for", "committed to", "plan to")

STRUCTURE_QUERIES = (
    ".//ul",
    ".//ol",
    ".//li",
    ".//h1",
    ".//h2",
    ".//h3",
    ".//h4",
    ".//p",
    ".//*[contains(@class, 'policy-item')]",
    ".//*[contains(@class, 'issue-item')]",
    ".//*[contains(@class, 'position-item')]",
)

_NOISE_XPATH = "//script | //style | //noscript | //comment()"


def is_key_section(element: html.HtmlElement, text: str) -> bool:
    """Decide whether a block reads like a statement of positions.

    Attributes are checked first: a policy-ish class or id, a ``<main>``
    landmark, or a main/primary/content container is key outright. Otherwise
    the text is scored with strong keywords counting double.
    """
    class_name = (element.get("class") or "").casefold()
    element_id = (element.get("id") or "").casefold()
    tag = element.tag.casefold() if isinstance(element.tag, str) else ""

    if contains_any(f"{class_name} {element_id}", STRONG_KEYWORDS):
        return True
    if tag == "main" or "main" in class_name or "primary" in class_name:
        return True
    if "main" in element_id or "content" in element_id:
        return True

    lower = text.casefold()
    strong = count_hits(lower, STRONG_KEYWORDS)
    topical = count_hits(lower, TOPIC_KEYWORDS)
    score = strong * 2 + topical
    if score >= 3 or (strong >= 1 and topical >= 2):
        return True
    return contains_any(lower, POSITION_STATEMENTS)


def has_structured_content(element: html.HtmlElement) -> bool:
    return any(len(element.xpath(query)) > 2 for query in STRUCTURE_QUERIES)


def _section_title(element: html.HtmlElement) -> str:
    title = first_text(element, ".//h1 | .//h2 | .//h3")
    if title:
        return title
    attribute = normalize_whitespace(element.get("title") or "")
    if attribute:
        return attribute
    return first_text(element, ".//*[contains(@class, 'title') or contains(@class, 'heading')]")


def extract_sections(tree: html.HtmlElement, *, limit: int = 15) -> list[ContentSection]:
    """Return up to ``limit`` candidate passages, key and structured blocks first.

    The input tree is not modified.
    """
    working = copy.deepcopy(tree)
    for node in working.xpath(_NOISE_XPATH):
        node.drop_tree()

    sections: list[ContentSection] = []
    for label, query in SECTION_QUERIES:
        for element in working.xpath(query):
            text = extract_text([element])
            if not MIN_SECTION_CHARS < len(text) < MAX_SECTION_CHARS:
                continue
            sections.append(
                ContentSection(
                    selector=label,
                    title=_section_title(element),
                    text=text[:STORED_SECTION_CHARS],
                    is_key_section=is_key_section(element, text),
                    has_structured_content=has_structured_content(element),
                )
            )

    description = normalize_whitespace(" ".join(working.xpath("//meta[@name='description']/@content")))
    if len(description) > META_DESCRIPTION_MIN_CHARS:
        sections.append(
            ContentSection(
                selector="meta[description]",
                title=first_text(working, "//title"),
                text=description[:STORED_SECTION_CHARS],
                is_key_section=True,
                has_structured_content=False,
            )
        )

    unique: list[ContentSection] = []
    seen_prefixes: set[str] = set()
    for section in sections:
        prefix = section.text[:DEDUP_PREFIX_CHARS]
        if prefix in seen_prefixes:
            continue
        seen_prefixes.add(prefix)
        unique.append(section)

    # sorted() is stable, so equal scores keep document and query order.
    unique = sorted(
        unique,
        key=lambda item: (2 if item.is_key_section else 0) + (1 if item.has_structured_content else 0),
        reverse=True,
    )
    return unique[:limit]
