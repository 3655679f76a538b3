"""Ordered traversal primitives over a bs4 tree.

Three pieces:

- ``TreeWalker``: sibling/ancestor/preorder stepping bounded by a root and
  filtered by an ``accept`` predicate.
- ``DocumentIndex``: one preorder pass that gives every node a document-order
  position, a subtree end and a global text offset, so containment and
  ordering questions are O(1) instead of repeated tree climbs.
- Classification helpers: inline/block, headings, metadata, list depth.

bs4 compares ``Tag`` objects structurally and ``NavigableString`` by value,
so two distinct ``<li>`` elements with the same markup are ``==``. All
bookkeeping here is keyed by ``id(node)`` and compared with ``is``.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterator

from bs4.element import NavigableString, PageElement, Tag

from talkparse.html_utils import classes, is_blank_text, is_text_node

type NodeFilter = Callable[[PageElement], bool]

# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------

_INLINE_TAGS: frozenset[str] = frozenset({
    "a", "abbr", "b", "bdi", "bdo", "big", "br", "cite", "code", "data", "del",
    "dfn", "em", "font", "i", "img", "input", "ins", "kbd", "label", "mark",
    "q", "rp", "rt", "ruby", "s", "samp", "small", "span", "strike", "strong",
    "sub", "sup", "time", "tt", "u", "var", "wbr",
})

LIST_TAGS: frozenset[str] = frozenset({"ul", "ol", "dl"})
LIST_ITEM_TAGS: frozenset[str] = frozenset({"li", "dd", "dt"})

_HEADING_TAG_RE = re.compile(r"^h([1-6])$")
_HEADING_CLASS_RE = re.compile(r"^mw-heading([1-6])$")
_BLOCK_STYLE_RE = re.compile(r"display\s*:\s*(?:block|flex|table|list-item)|float\s*:\s*(?:left|right)")
_FLOAT_STYLE_RE = re.compile(r"float\s*:\s*(?:left|right)")

_METADATA_TAGS: frozenset[str] = frozenset({"style", "link", "meta"})


def is_inline(node: PageElement | None, *, text_is_inline: bool = True) -> bool:
    """Whether *node* continues the surrounding paragraph.

    Text nodes count as inline unless *text_is_inline* is False. An inline
    tag forced to block layout through its style attribute is a block.
    """
    if node is None:
        return False
    if isinstance(node, NavigableString):
        return text_is_inline
    if not isinstance(node, Tag) or node.name not in _INLINE_TAGS:
        return False
    style = node.get("style")
    if isinstance(style, str) and _BLOCK_STYLE_RE.search(style):
        return False
    return True


def is_floating(node: PageElement | None) -> bool:
    if not isinstance(node, Tag):
        return False
    style = node.get("style")
    return isinstance(style, str) and bool(_FLOAT_STYLE_RE.search(style))


def is_heading_node(node: PageElement | None) -> bool:
    """``h1``-``h6`` or a ``.mw-heading`` wrapper."""
    if not isinstance(node, Tag):
        return False
    if _HEADING_TAG_RE.match(node.name or ""):
        return True
    return "mw-heading" in classes(node)


def heading_level(node: PageElement | None) -> int | None:
    """Level 1-6 from the tag name or an ``mw-headingN`` class."""
    if not isinstance(node, Tag):
        return None
    m = _HEADING_TAG_RE.match(node.name or "")
    if m:
        return int(m.group(1))
    for cls in classes(node):
        m = _HEADING_CLASS_RE.match(cls)
        if m:
            return int(m.group(1))
    for child in node.children:
        if isinstance(child, Tag):
            m = _HEADING_TAG_RE.match(child.name or "")
            if m:
                return int(m.group(1))
    return None


def is_metadata_node(node: PageElement | None) -> bool:
    return isinstance(node, Tag) and node.name in _METADATA_TAGS


def is_list(node: PageElement | None) -> bool:
    return isinstance(node, Tag) and node.name in LIST_TAGS


def list_depth(node: PageElement, root: Tag) -> int:
    """Number of UL/OL/DL ancestors of *node* strictly below *root*."""
    depth = 0
    parent = node.parent
    while parent is not None and parent is not root:
        if parent.name in LIST_TAGS:
            depth += 1
        parent = parent.parent
    return depth


def accept_content(node: PageElement) -> bool:
    """Default walker filter: elements and non-blank plain text."""
    if isinstance(node, Tag):
        return True
    return is_text_node(node) and not is_blank_text(node)


# ---------------------------------------------------------------------------
# TreeWalker
# ---------------------------------------------------------------------------


class TreeWalker:
    """Cursor over a subtree that never leaves ``root``.

    Every move returns the new current node, or None (leaving the cursor
    where it was) when no acceptable node exists in that direction.
    """

    __slots__ = ("root", "accept", "current")

    def __init__(
        self,
        root: Tag,
        accept: NodeFilter | None = None,
        start: PageElement | None = None,
    ) -> None:
        self.root = root
        self.accept: NodeFilter = accept or accept_content
        self.current: PageElement = start if start is not None else root

    def _move(self, node: PageElement | None) -> PageElement | None:
        if node is not None:
            self.current = node
        return node

    def parent_node(self) -> PageElement | None:
        if self.current is self.root:
            return None
        node = self.current.parent
        while node is not None and node is not self.root and not self.accept(node):
            node = node.parent
        if node is None:
            return None
        return self._move(node)

    def previous_sibling(self) -> PageElement | None:
        if self.current is self.root:
            return None
        node = self.current.previous_sibling
        while node is not None and not self.accept(node):
            node = node.previous_sibling
        return self._move(node)

    def next_sibling(self) -> PageElement | None:
        if self.current is self.root:
            return None
        node = self.current.next_sibling
        while node is not None and not self.accept(node):
            node = node.next_sibling
        return self._move(node)

    def first_child(self) -> PageElement | None:
        if not isinstance(self.current, Tag):
            return None
        for child in self.current.children:
            if self.accept(child):
                return self._move(child)
        return None

    def last_child(self) -> PageElement | None:
        if not isinstance(self.current, Tag):
            return None
        for child in reversed(self.current.contents):
            if self.accept(child):
                return self._move(child)
        return None

    def next_node(self) -> PageElement | None:
        """Next acceptable node in preorder, staying inside ``root``."""
        node: PageElement | None = self.current
        while node is not None:
            if isinstance(node, Tag) and node.contents:
                node = node.contents[0]
            else:
                while node is not None and node is not self.root and node.next_sibling is None:
                    node = node.parent
                if node is None or node is self.root:
                    return None
                node = node.next_sibling
            if node is not None and self.accept(node):
                return self._move(node)
        return None

    def previous_node(self) -> PageElement | None:
        """Previous acceptable node in preorder, staying inside ``root``."""
        node: PageElement | None = self.current
        while node is not None and node is not self.root:
            prev = node.previous_sibling
            if prev is None:
                node = node.parent
            else:
                node = prev
                while isinstance(node, Tag) and node.contents:
                    node = node.contents[-1]
            if node is not None and node is not self.root and self.accept(node):
                return self._move(node)
        return None


# ---------------------------------------------------------------------------
# DocumentIndex
# ---------------------------------------------------------------------------


class DocumentIndex:
    """Preorder positions, subtree ranges and text offsets for one tree.

    Positions are stable only while the tree is unchanged; build a new index
    after any mutation.
    """

    __slots__ = ("root", "_nodes", "_order", "_end", "_text_start", "_text_end", "text", "text_length")

    def __init__(self, root: Tag) -> None:
        self.root = root
        self._nodes: list[PageElement] = []
        self._order: dict[int, int] = {}
        self._end: dict[int, int] = {}
        self._text_start: dict[int, int] = {}
        self._text_end: dict[int, int] = {}
        offset = 0
        pieces: list[str] = []
        stack: list[tuple[PageElement, bool]] = [(root, False)]
        while stack:
            node, closing = stack.pop()
            key = id(node)
            if closing:
                self._end[key] = len(self._nodes) - 1
                self._text_end[key] = offset
                continue
            self._order[key] = len(self._nodes)
            self._nodes.append(node)
            self._text_start[key] = offset
            if isinstance(node, Tag):
                stack.append((node, True))
                for child in reversed(node.contents):
                    stack.append((child, False))
            else:
                if is_text_node(node):
                    pieces.append(str(node))
                    offset += len(node)
                self._end[key] = len(self._nodes) - 1
                self._text_end[key] = offset
        self.text = "".join(pieces)
        self.text_length = offset

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, node: object) -> bool:
        return id(node) in self._order and self._nodes[self._order[id(node)]] is node

    def position(self, node: PageElement) -> int:
        return self._order[id(node)]

    def subtree_end(self, node: PageElement) -> int:
        """Position of the last descendant of *node* (itself for leaves)."""
        return self._end[id(node)]

    def node_at(self, position: int) -> PageElement:
        return self._nodes[position]

    def contains(self, ancestor: PageElement, node: PageElement) -> bool:
        """True when *node* is *ancestor* or lies inside it."""
        start = self._order[id(ancestor)]
        return start <= self._order[id(node)] <= self._end[id(ancestor)]

    def follows(self, node: PageElement, other: PageElement) -> bool:
        """True when *node* starts after *other* in document order."""
        return self._order[id(node)] > self._order[id(other)]

    def text_offset(self, node: PageElement) -> int:
        """Global offset of the first character of *node*'s text."""
        return self._text_start[id(node)]

    def text_end(self, node: PageElement) -> int:
        return self._text_end[id(node)]

    def iter_range(self, start: int, end: int) -> Iterator[PageElement]:
        """Nodes with positions in [start, end]."""
        return iter(self._nodes[start:end + 1])
