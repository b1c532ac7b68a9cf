"""
Rule-based HTML cleaning for LLM consumption.

extract() runs a fixed sequence of passes over a parsed DOM:

1. removal of noise regions (scripts, chrome, bibliographies, ads)
2. semantic tagging of academic regions (math, figures, tables, ...)
3. attribute stripping on structural tags
4. main-content selection
5. text flattening, plus optional cleaned-HTML emission

The passes are generic: each takes its rule table as an argument, so the tables
in core.cleaning_rules can change without touching the traversal code here.
"""
from __future__ import annotations

from typing import Dict, Iterable, Optional, Sequence, Union

from bs4 import BeautifulSoup, Tag  # type: ignore
from loguru import logger

from core.cleaning_rules import (
    ACADEMIC_SELECTORS,
    CAPTION_ATTR,
    CONTENT_TYPE_ATTR,
    DESCRIPTION_ATTR,
    FORMAT_ATTR,
    MAIN_CONTENT_SELECTORS,
    MATHML_ANNOTATION_SELECTOR,
    REMOVE_SELECTORS,
    RETAINED_ATTRIBUTES,
    STRUCTURE_SELECTORS,
)
from core.data_models import ExtractionResult, PageMetadata
from utils.error_utils import ErrorKind, ParseError
from utils.text_utils import collapse_whitespace, preview

PARSER = "lxml"
PARSE_FAILURE_MESSAGE = "Failed to parse HTML content"


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

def parse_html(html: Union[str, bytes]) -> BeautifulSoup:
    """Parse markup into a soup, raising ParseError on anything unusable."""
    if not isinstance(html, (str, bytes)):
        raise ParseError(f"{PARSE_FAILURE_MESSAGE}: expected str or bytes, got {type(html).__name__}")

    try:
        return BeautifulSoup(html, PARSER)
    except Exception as exc:  # noqa: BLE001
        raise ParseError(f"{PARSE_FAILURE_MESSAGE}: {exc}") from exc


def extract_page_metadata(soup: BeautifulSoup) -> PageMetadata:
    """Read title, meta description and favicon. Must run before the removal pass."""
    title_tag = soup.find("title")
    title = collapse_whitespace(title_tag.get_text()) if title_tag else ""

    desc_tag = soup.find("meta", attrs={"name": "description"})
    description = ""
    if desc_tag and desc_tag.get("content"):
        description = collapse_whitespace(desc_tag.get("content"))

    icon_tag = soup.select_one('link[rel~="icon"]')
    favicon = icon_tag.get("href") if icon_tag else None

    return PageMetadata(
        title=title or None,
        description=description or None,
        favicon=favicon or None,
    )


# ---------------------------------------------------------------------------
# Passes
# ---------------------------------------------------------------------------

def apply_removals(soup: BeautifulSoup, selectors: Iterable[str]) -> int:
    """Decompose every node matching any selector. Returns the number removed."""
    removed = 0
    for selector in selectors:
        for node in soup.select(selector):
            # an ancestor matched by an earlier selector may already be gone
            if node.decomposed:
                continue
            node.decompose()
            removed += 1
    return removed


def _annotate_math(node: Tag) -> None:
    if node.select_one(MATHML_ANNOTATION_SELECTOR) is not None:
        node[FORMAT_ATTR] = "mathml"
    elif "\\" in node.get_text():
        node[FORMAT_ATTR] = "latex"


def _annotate_figure(node: Tag) -> None:
    caption_tag = node.find("figcaption")
    caption = collapse_whitespace(caption_tag.get_text()) if caption_tag else ""
    if caption:
        node[CAPTION_ATTR] = caption

    img = node.find("img")
    alt = img.get("alt") if img else None
    if alt:
        node[DESCRIPTION_ATTR] = alt


def _annotate_table(node: Tag) -> None:
    caption_tag = node.find("caption")
    caption = collapse_whitespace(caption_tag.get_text()) if caption_tag else ""
    if caption:
        node[CAPTION_ATTR] = caption


CATEGORY_ANNOTATORS = {
    "math": _annotate_math,
    "figures": _annotate_figure,
    "tables": _annotate_table,
}


def apply_semantic_tags(
    soup: BeautifulSoup,
    categories: Dict[str, Sequence[str]],
    annotators=CATEGORY_ANNOTATORS,
) -> Dict[str, int]:
    """
    Mark matched nodes with their content category. Never removes anything.

    Returns a per-category count of tagged nodes (for diagnostics).
    """
    counts: Dict[str, int] = {}
    for category, selectors in categories.items():
        annotate = annotators.get(category)
        seen: set[int] = set()
        for selector in selectors:
            for node in soup.select(selector):
                if id(node) in seen:
                    continue
                seen.add(id(node))
                node[CONTENT_TYPE_ATTR] = category
                if annotate is not None:
                    annotate(node)
        if seen:
            counts[category] = len(seen)
    return counts


def strip_attributes(
    soup: BeautifulSoup,
    selectors: Iterable[str],
    keep: Sequence[str],
) -> None:
    """Drop every attribute not in keep from nodes matching any selector."""
    for selector in selectors:
        for node in soup.select(selector):
            for attr in list(node.attrs):
                if attr not in keep:
                    del node[attr]


def select_main_content(soup: BeautifulSoup, selectors: Sequence[str]) -> Tag:
    """First match in selector priority order; body otherwise; the document as last resort."""
    for selector in selectors:
        node = soup.select_one(selector)
        if node is not None:
            return node

    body = soup.find("body")
    if body is not None:
        return body
    return soup


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------

def clean_document(soup: BeautifulSoup) -> Tag:
    """Run passes 1-4 in place and return the selected main-content node."""
    removed = apply_removals(soup, REMOVE_SELECTORS)
    tagged = apply_semantic_tags(soup, ACADEMIC_SELECTORS)
    # select before stripping so role="main" on a classed div still counts
    main = select_main_content(soup, MAIN_CONTENT_SELECTORS)
    strip_attributes(soup, STRUCTURE_SELECTORS, RETAINED_ATTRIBUTES)
    logger.debug("extraction: removed {} noise nodes, tagged {}", removed, tagged)
    return main


def extract(html: Union[str, bytes], include_html: bool = False) -> ExtractionResult:
    """
    Clean raw HTML and return its main content as flattened text.

    Never raises: unparseable input comes back as a parse_error failure.
    A page with no extractable text is a success with empty content.
    """
    try:
        soup = parse_html(html)
    except ParseError as exc:
        logger.error("extraction: {}", exc.message)
        return ExtractionResult.failure(ErrorKind.PARSE, PARSE_FAILURE_MESSAGE)

    meta = extract_page_metadata(soup)
    main = clean_document(soup)

    content = collapse_whitespace(main.get_text())
    cleaned_html: Optional[str] = main.decode_contents() if include_html else None

    logger.info("extraction: content length={}", len(content))
    logger.debug("extraction: content preview={!r}", preview(content))

    return ExtractionResult.ok(content=content, html=cleaned_html, meta=meta)

