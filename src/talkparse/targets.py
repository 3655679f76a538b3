"""Target Collector: headings and signatures in document order.

The boundary resolver and the assembler consume a ``TargetCollection``
rather than the raw tree: it carries the shared ``DocumentIndex`` and a
position-sorted signature list so "which signatures live inside this
node" is a pair of bisects.
"""

from __future__ import annotations

import bisect
import logging
import re
from collections.abc import Callable
from dataclasses import dataclass

from bs4.element import PageElement, Tag

from talkparse.config import DEFAULT_CONFIG, ParserConfig
from talkparse.html_utils import classes, is_text_node
from talkparse.parsing_types import HeadingTarget, Signature, SignatureTarget, Target
from talkparse.signature_scanner import SignatureScanner
from talkparse.timestamp import TimestampParser
from talkparse.tree_walker import (
    DocumentIndex,
    heading_level as default_heading_level,
    is_heading_node,
    is_inline,
    is_metadata_node,
)

log = logging.getLogger(__name__)

type HeadingPredicate = Callable[[PageElement], bool]
type HeadingLevel = Callable[[PageElement], int | None]

_TOC_IDS = frozenset({"toc", "mw-toc-heading"})
_EDIT_SECTION_CLASS = "mw-editsection"
_HEADLINE_CLASS = "mw-headline"
_SPACES_RE = re.compile(r"\s+")


@dataclass(frozen=True, slots=True)
class TargetCollection:
    """Everything later stages need to know about one tree."""
    root: Tag
    index: DocumentIndex
    config: ParserConfig
    targets: tuple[Target, ...]
    signatures: tuple[Signature, ...]     # All signatures, extras included
    signature_positions: tuple[int, ...]  # signatures[i].position, sorted
    heading_positions: tuple[int, ...] = ()

    @property
    def signature_targets(self) -> list[SignatureTarget]:
        return [t for t in self.targets if isinstance(t, SignatureTarget)]

    @property
    def heading_targets(self) -> list[HeadingTarget]:
        return [t for t in self.targets if isinstance(t, HeadingTarget)]

    def signatures_in(self, node: PageElement) -> list[Signature]:
        """Signatures whose anchor node lies inside *node* (or is *node*)."""
        start = self.index.position(node)
        end = self.index.subtree_end(node)
        lo = bisect.bisect_left(self.signature_positions, start)
        hi = bisect.bisect_right(self.signature_positions, end)
        return list(self.signatures[lo:hi])

    def is_heading(self, node: PageElement) -> bool:
        if node not in self.index:
            return False
        pos = self.index.position(node)
        i = bisect.bisect_left(self.heading_positions, pos)
        return i < len(self.heading_positions) and self.heading_positions[i] == pos

    def contains_heading(self, node: PageElement) -> bool:
        start = self.index.position(node)
        i = bisect.bisect_left(self.heading_positions, start)
        return i < len(self.heading_positions) and (
            self.heading_positions[i] <= self.index.subtree_end(node)
        )

    def has_signature(self, node: PageElement) -> bool:
        start = self.index.position(node)
        lo = bisect.bisect_left(self.signature_positions, start)
        return lo < len(self.signature_positions) and (
            self.signature_positions[lo] <= self.index.subtree_end(node)
        )


def headline_text(heading: Tag) -> str:
    """Visible headline of a heading, without edit-section links."""
    headline = heading.find(class_=_HEADLINE_CLASS)
    source = headline if isinstance(headline, Tag) else heading
    pieces: list[str] = []
    for descendant in source.descendants:
        if not is_text_node(descendant):
            continue
        parent = descendant.parent
        inside_edit = False
        while parent is not None and parent is not source:
            if _EDIT_SECTION_CLASS in classes(parent):
                inside_edit = True
                break
            parent = parent.parent
        if not inside_edit:
            pieces.append(str(descendant))
    return _SPACES_RE.sub(" ", "".join(pieces)).strip()


def _is_toc(node: Tag) -> bool:
    return node.get("id") in _TOC_IDS or "toc" in classes(node)


def _in_same_inline_run(root: Tag, index: DocumentIndex, earlier: Signature, later: Signature) -> bool:
    """True when only inline content separates two signatures."""
    if earlier.node is later.node:
        return True
    current: PageElement = later.node
    while True:
        prev = current.previous_sibling
        if prev is None:
            parent = current.parent
            if parent is None or parent is root or not is_inline(parent):
                return False
            current = parent
            continue
        current = prev
        if prev is earlier.node:
            return True
        if isinstance(prev, Tag):
            if is_metadata_node(prev):
                continue
            if not is_inline(prev):
                return False
            if index.contains(prev, earlier.node):
                return True


def collect_targets(
    root: Tag,
    config: ParserConfig = DEFAULT_CONFIG,
    *,
    is_heading: HeadingPredicate = is_heading_node,
    heading_level: HeadingLevel = default_heading_level,
    index: DocumentIndex | None = None,
    parser: TimestampParser | None = None,
) -> TargetCollection:
    """Scan *root* for heading and signature targets.

    Pure read: the tree is not modified.
    """
    index = index or DocumentIndex(root)
    scanner = SignatureScanner(root, index, config, parser)
    signatures = scanner.scan()

    headings: list[HeadingTarget] = []
    skip_until = -1
    for pos in range(len(index)):
        if pos <= skip_until:
            continue
        node = index.node_at(pos)
        if not isinstance(node, Tag) or node is root:
            continue
        if _is_toc(node) or node.name in config.no_signature_tags:
            skip_until = index.subtree_end(node)
            continue
        if not is_heading(node):
            continue
        level = heading_level(node)
        # A wrapper and its inner h* are one heading.
        skip_until = index.subtree_end(node)
        if level is None:
            continue
        headings.append(HeadingTarget(
            node=node,
            level=level,
            headline=headline_text(node),
            position=pos,
        ))

    signature_targets: list[SignatureTarget] = []
    anchor: Signature | None = None
    extras: list[Signature] = []
    for i, sig in enumerate(signatures):
        if anchor is not None and _in_same_inline_run(root, index, signatures[i - 1], sig):
            extras.append(sig)
            continue
        if anchor is not None:
            signature_targets.append(SignatureTarget(anchor, tuple(extras)))
        anchor, extras = sig, []
    if anchor is not None:
        signature_targets.append(SignatureTarget(anchor, tuple(extras)))

    targets: list[Target] = [*headings, *signature_targets]
    targets.sort(key=lambda t: t.position)
    log.debug(
        "collected %d headings, %d signature targets (%d signatures)",
        len(headings), len(signature_targets), len(signatures),
    )
    return TargetCollection(
        root=root,
        index=index,
        config=config,
        targets=tuple(targets),
        signatures=tuple(signatures),
        signature_positions=tuple(s.position for s in signatures),
        heading_positions=tuple(h.position for h in headings),
    )
