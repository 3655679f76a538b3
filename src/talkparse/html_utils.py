"""HTML parsing, text-node classification and encoding-safe file reading.

The parser never mutates the tree it is given, so everything here reads
nodes and returns plain strings. Text is taken only from plain text nodes:
HTML comments, doctypes, CDATA, script and style strings are all
``NavigableString`` subclasses and are skipped.
"""
from __future__ import annotations

import re
from collections.abc import Iterator
from pathlib import Path

from bs4 import BeautifulSoup
from bs4.element import NavigableString, PageElement, Tag

# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

_CONTENT_ROOT_CLASS = "mw-parser-output"


def parse_html(raw_html: str) -> BeautifulSoup:
    """Parse rendered page HTML with the stdlib-backed bs4 parser."""
    return BeautifulSoup(raw_html, "html.parser")


def find_content_root(soup: BeautifulSoup) -> Tag:
    """Return the element holding page content.

    Prefers the ``.mw-parser-output`` wrapper, then ``<body>``, then the
    document itself.
    """
    root = soup.find(class_=_CONTENT_ROOT_CLASS)
    if isinstance(root, Tag):
        return root
    body = soup.body
    if body is not None:
        return body
    return soup


# ---------------------------------------------------------------------------
# Node classification
# ---------------------------------------------------------------------------


def is_text_node(node: PageElement | None) -> bool:
    """True for plain text nodes only (not comments, CDATA, script/style)."""
    return type(node) is NavigableString


def is_blank_text(node: PageElement | None) -> bool:
    return is_text_node(node) and not str(node).strip()


def classes(node: PageElement | None) -> list[str]:
    """Class list of an element ([] for text nodes or classless elements)."""
    if not isinstance(node, Tag):
        return []
    value = node.get("class")
    if value is None:
        return []
    if isinstance(value, str):
        return value.split()
    return list(value)


def has_any_class(node: PageElement | None, names: frozenset[str] | tuple[str, ...]) -> bool:
    return any(c in names for c in classes(node))


# ---------------------------------------------------------------------------
# Text extraction
# ---------------------------------------------------------------------------


def iter_text_nodes(node: PageElement) -> Iterator[NavigableString]:
    """Yield plain text nodes under *node* (or *node* itself) in document order."""
    if is_text_node(node):
        yield node  # type: ignore[misc]
        return
    if isinstance(node, Tag):
        for descendant in node.descendants:
            if is_text_node(descendant):
                yield descendant  # type: ignore[misc]


def node_text(node: PageElement) -> str:
    """Concatenated plain text of *node*, without separators."""
    return "".join(str(t) for t in iter_text_nodes(node))


def has_text(node: PageElement) -> bool:
    return any(str(t).strip() for t in iter_text_nodes(node))


# ---------------------------------------------------------------------------
# Encoding-safe file reading
# ---------------------------------------------------------------------------


def read_file(fpath: Path) -> str:
    """Read a text file with encoding fallback: UTF-8 -> CP1252 -> replace.

    Saved talk pages from older browsers are occasionally CP1252.

    Args:
        fpath: Path to the file.

    Returns:
        File contents as a string. Empty string on failure.
    """
    try:
        try:
            return fpath.read_text(encoding="utf-8")
        except UnicodeDecodeError:
            try:
                return fpath.read_text(encoding="cp1252")
            except UnicodeDecodeError:
                with open(fpath, errors="replace") as f:
                    return f.read()
    except OSError:
        return ""


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------


def collapse_whitespace(text: str) -> str:
    """Collapse horizontal whitespace (preserving newlines) and limit blanks."""
    text = re.sub(r"[^\S\n]+", " ", text)
    text = re.sub(r" ?\n ?", "\n", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text


# U+200B (ZWSP), U+200C (ZWNJ), U+FEFF (BOM), plus the LRM/RLM marks that
# signatures in mixed-direction text pick up.
_ZERO_WIDTH_RE = re.compile("[\u200b\u200c\u200e\u200f\ufeff]")


def strip_zero_width(text: str) -> str:
    """Remove zero-width and direction-mark characters that break regex matching."""
    return _ZERO_WIDTH_RE.sub("", text)
