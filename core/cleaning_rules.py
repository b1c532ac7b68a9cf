"""
Rule tables for the DOM-cleaning pipeline.

Everything here is plain data consumed by core.extraction. Selectors use the
CSS dialect supported by BeautifulSoup's select() (soupsieve).
"""
from typing import Dict, List, Tuple

# ---------------------------------------------------------------------------
# Pass 1: nodes that never contribute prose
# ---------------------------------------------------------------------------
REMOVE_SELECTORS: List[str] = [
    "script",
    "style",
    "noscript",
    "iframe",
    "nav",
    "footer",
    "header",
    "aside",
    ".ltx_bibliography",
    '[class*="bibliography"]',
    '[id*="bibliography"]',
    "meta",
    "link",
    "head",
    ".advertisement",
    ".social-share",
    ".related-articles",
]

# ---------------------------------------------------------------------------
# Pass 2: academic categories, tagged but never removed.
# Order matters: a node matched by several categories keeps the last one.
# ---------------------------------------------------------------------------
ACADEMIC_SELECTORS: Dict[str, List[str]] = {
    "math": ["math", ".math", '[class*="math"]', ".MathJax", '[class*="formula"]'],
    "figures": ["figure", ".figure", '[class*="figure"]', ".chart", ".diagram"],
    "tables": ["table", ".table", '[class*="table"]'],
    "equations": [".equation", '[class*="equation"]'],
    "formulas": [".formula", '[class*="formula"]'],
    "theorems": [".theorem", '[class*="theorem"]', ".lemma", ".proof"],
    "definitions": [".definition", '[class*="definition"]'],
    "algorithms": [".algorithm", '[class*="algorithm"]', ".pseudocode"],
    "citations": [
        ".citation",
        '[class*="citation"]',
        '.reference:not([class*="bibliography"])',
    ],
}

CONTENT_TYPE_ATTR = "data-content-type"
FORMAT_ATTR = "data-format"
CAPTION_ATTR = "data-caption"
DESCRIPTION_ATTR = "data-description"

MATHML_ANNOTATION_SELECTOR = 'annotation-xml[encoding="MathML"]'

# ---------------------------------------------------------------------------
# Pass 3: structural tags whose attributes are reduced to RETAINED_ATTRIBUTES
# ---------------------------------------------------------------------------
STRUCTURE_SELECTORS: List[str] = [
    "article",
    "section",
    "main",
    "div[class]",
    "div[id]",
    "h1",
    "h2",
    "h3",
    "h4",
    "h5",
    "h6",
    "p",
    "abstract",
    ".abstract",
    '[class*="abstract"]',
]

RETAINED_ATTRIBUTES: Tuple[str, ...] = (
    "class",
    "id",
    CONTENT_TYPE_ATTR,
    FORMAT_ATTR,
    CAPTION_ATTR,
    DESCRIPTION_ATTR,
)

# ---------------------------------------------------------------------------
# Pass 4: main-content candidates, in priority order
# ---------------------------------------------------------------------------
MAIN_CONTENT_SELECTORS: List[str] = [
    "article",
    "main",
    '[role="main"]',
    ".content",
    "#content",
]
