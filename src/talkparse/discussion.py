"""Comment/Section Assembler.

``parse_discussion`` runs the whole read pass: collect targets, resolve one
boundary per signature target, and build immutable ``Comment`` and
``Section`` objects. Relations between them (``parent``, ``section_of``,
``children``, ``parent_section``) are derived on demand by ``Discussion``
and memoized in dicts keyed by id.

Usage::

    soup = parse_html(page_html)
    discussion = parse_discussion(find_content_root(soup))
    for comment in discussion:
        print(comment.author, comment.level, discussion.parent(comment))
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterator

from bs4.element import PageElement, Tag

from talkparse.boundary import Boundary, BoundaryResolver
from talkparse.config import DEFAULT_CONFIG, ParserConfig
from talkparse.html_utils import (
    classes,
    collapse_whitespace,
    is_text_node,
    iter_text_nodes,
    strip_zero_width,
)
from talkparse.parsing_types import (
    Comment,
    Err,
    HeadingTarget,
    Ok,
    ParseDiagnostic,
    Result,
    Section,
    SectionLocation,
    SectionNotFound,
    SignatureTarget,
    SourceLocation,
    SourceNotFound,
)
from talkparse.section_locator import locate_section
from talkparse.source_locator import locate_comment
from talkparse.targets import HeadingLevel, HeadingPredicate, TargetCollection, collect_targets
from talkparse.tree_walker import (
    TreeWalker,
    heading_level as default_heading_level,
    is_heading_node,
    is_metadata_node,
)

log = logging.getLogger(__name__)

# "┌──┘" drawn by hand (or by the Factotum script) to mark an outdent.
_TEXT_OUTDENT_RE = re.compile("^┌─*┘$")
_LEADING_TEXT_OUTDENT_RE = re.compile("^\\s*┌─*┘\\s*")


class Discussion:
    """Arena of comments and sections from one pass over one tree."""

    __slots__ = (
        "collection", "config", "comments", "sections", "diagnostics",
        "_parents", "_section_by_comment", "_parent_sections", "_locations",
        "_section_locations",
    )

    def __init__(
        self,
        collection: TargetCollection,
        comments: tuple[Comment, ...],
        sections: tuple[Section, ...],
        diagnostics: list[ParseDiagnostic] | None = None,
    ) -> None:
        self.collection = collection
        self.config = collection.config
        self.comments = comments
        self.sections = sections
        self.diagnostics: list[ParseDiagnostic] = diagnostics if diagnostics is not None else []
        self._parents: dict[int, Comment | None] = {}
        self._parent_sections: dict[int, Section | None] = {}
        self._locations: dict[tuple[int, str], Result[SourceLocation, SourceNotFound]] = {}
        self._section_locations: dict[tuple[int, str], Result[SectionLocation, SectionNotFound]] = {}
        # Sections are in document order, so the last section listing a
        # comment is the nearest preceding one.
        self._section_by_comment: dict[int, Section] = {}
        for section in sections:
            for comment in section.comments:
                self._section_by_comment[comment.id] = section

    def __iter__(self) -> Iterator[Comment]:
        return iter(self.comments)

    def __len__(self) -> int:
        return len(self.comments)

    # -- relations -----------------------------------------------------------

    def section_of(self, comment: Comment) -> Section | None:
        """Nearest preceding section whose comment list contains *comment*."""
        return self._section_by_comment.get(comment.id)

    def parent(self, comment: Comment) -> Comment | None:
        """Comment this one replies to.

        The nearest preceding comment with a strictly lower level in the same
        section, or, after an outdent marker, the immediately preceding
        comment whatever its level.
        """
        if comment.id in self._parents:
            return self._parents[comment.id]
        result: Comment | None = None
        if comment.is_outdented and comment.id > 0:
            result = self.comments[comment.id - 1]
        else:
            section = self.section_of(comment)
            for i in range(comment.id - 1, -1, -1):
                other = self.comments[i]
                if self.section_of(other) is not section:
                    break
                if other.level < comment.level:
                    result = other
                    break
                if (
                    other.level == comment.level
                    and not other.is_outdented
                    and other.id in self._parents
                ):
                    # Siblings share a parent.
                    result = self._parents[other.id]
                    break
        self._parents[comment.id] = result
        return result

    def children(self, comment: Comment, *, indirect: bool = False) -> list[Comment]:
        """Replies to *comment*; with *indirect*, replies to replies too."""
        found: list[Comment] = []
        ancestors = {comment.id}
        for other in self.comments[comment.id + 1:]:
            parent = self.parent(other)
            if parent is None:
                continue
            if parent.id == comment.id or (indirect and parent.id in ancestors):
                found.append(other)
                ancestors.add(other.id)
        return found

    def parent_section(self, section: Section) -> Section | None:
        """Nearest preceding section with a lower heading level."""
        if section.id in self._parent_sections:
            return self._parent_sections[section.id]
        result: Section | None = None
        for other in reversed(self.sections[:section.id]):
            if other.level < section.level:
                result = other
                break
        self._parent_sections[section.id] = result
        return result

    # -- source --------------------------------------------------------------

    def locate(self, comment: Comment, source_text: str) -> Result[SourceLocation, SourceNotFound]:
        """Find *comment* in the page wikitext; cached per comment and source."""
        key = (comment.id, source_text)
        cached = self._locations.get(key)
        if cached is None:
            cached = locate_comment(comment, source_text, self, self.config)
            self._locations[key] = cached
        return cached

    def locate_section(self, section: Section, source_text: str) -> Result[SectionLocation, SectionNotFound]:
        """Find *section*'s heading and span in the page wikitext; cached like ``locate``."""
        key = (section.id, source_text)
        cached = self._section_locations.get(key)
        if cached is None:
            cached = locate_section(section, source_text, self, self.config)
            self._section_locations[key] = cached
        return cached

    # -- export --------------------------------------------------------------

    def to_dict(self) -> dict[str, object]:
        """JSON-safe summary of the pass (nodes are not included)."""
        comments = []
        for c in self.comments:
            parent = self.parent(c)
            section = self.section_of(c)
            comments.append({
                "id": c.id,
                "author": c.author,
                "timestamp": c.timestamp.isoformat() if c.timestamp else None,
                "timestamp_text": c.timestamp_text,
                "level": c.level,
                "bottom_level": c.bottom_level,
                "parent": parent.id if parent else None,
                "section": section.id if section else None,
                "element_count": len(c.elements),
                "is_outdented": c.is_outdented,
                "opens_section": c.opens_section,
                "text": c.text,
            })
        sections = []
        for s in self.sections:
            parent_section = self.parent_section(s)
            sections.append({
                "id": s.id,
                "headline": s.headline,
                "level": s.level,
                "parent": parent_section.id if parent_section else None,
                "comments": [c.id for c in s.comments],
            })
        return {
            "comments": comments,
            "sections": sections,
            "diagnostics": [
                {
                    "kind": d.kind,
                    "reason": d.reason,
                    "signature_text": d.signature_text,
                    "position": d.position,
                }
                for d in self.diagnostics
            ],
        }


# ---------------------------------------------------------------------------
# Assembly
# ---------------------------------------------------------------------------


def _cut_ranges(text: str, offset: int, ranges: list[tuple[int, int]]) -> str:
    """Drop characters of *text* (starting at global *offset*) inside *ranges*."""
    end = offset + len(text)
    relevant = [(a, b) for a, b in ranges if a < end and b > offset]
    if not relevant:
        return text
    return "".join(
        ch for i, ch in enumerate(text)
        if not any(a <= offset + i < b for a, b in relevant)
    )


def comment_text(
    boundary: Boundary,
    target: SignatureTarget,
    collection: TargetCollection,
) -> str:
    """Plain text of a comment with its signature(s) removed."""
    index = collection.index
    ranges = [
        (s.text_start, s.text_end)
        for s in (target.signature, *target.extra_signatures)
    ]
    blocks: list[str] = []
    for part in boundary.parts:
        pieces: list[str] = []
        for node in part.nodes:
            for text_node in iter_text_nodes(node):
                pieces.append(_cut_ranges(str(text_node), index.text_offset(text_node), ranges))
        blocks.append("".join(pieces))
    text = strip_zero_width(collapse_whitespace("\n".join(blocks))).strip()
    text = _LEADING_TEXT_OUTDENT_RE.sub("", text)
    prefix = re.search(collection.config.signature_prefix_pattern + r"\Z", text)
    if prefix and prefix.start() > 0:
        text = text[:prefix.start()]
    return text.strip()


def is_preceded_by_outdent(node: PageElement, collection: TargetCollection) -> bool:
    """Whether an outdent marker sits right before *node*.

    Looks at the first non-blank node before *node*, climbing out of
    ancestors that *node* starts, and at the leading text of *node* itself.
    """
    outdent_class = collection.config.outdent_class
    first_text = next((t for t in iter_text_nodes(node) if str(t).strip()), None)
    if first_text is not None and _TEXT_OUTDENT_RE.match(str(first_text).strip()):
        return True
    walker = TreeWalker(collection.root, start=node)
    while True:
        prev = walker.previous_sibling()
        if prev is None:
            if walker.parent_node() is None or walker.current is collection.root:
                return False
            continue
        if isinstance(prev, Tag):
            if is_metadata_node(prev):
                continue
            if outdent_class in classes(prev):
                return True
            return False
        if is_text_node(prev):
            return bool(_TEXT_OUTDENT_RE.match(str(prev).strip()))
        return False


def _build_comment(
    comment_id: int,
    target: SignatureTarget,
    boundary: Boundary,
    collection: TargetCollection,
) -> Comment:
    sig = target.signature
    return Comment(
        id=comment_id,
        author=boundary.author,
        timestamp=sig.timestamp,
        timestamp_text=sig.timestamp_text,
        level=boundary.level,
        bottom_level=boundary.bottom_level,
        elements=boundary.elements,
        parts=boundary.parts,
        text=comment_text(boundary, target, collection),
        signature=sig,
        extra_signatures=target.extra_signatures,
        follows_heading=boundary.follows_heading,
        opens_section=boundary.follows_heading,
        is_outdented=is_preceded_by_outdent(boundary.elements[0], collection),
    )


def _build_sections(headings: list[HeadingTarget], comments: list[Comment]) -> list[Section]:
    sections: list[Section] = []
    for i, heading in enumerate(headings):
        end = next(
            (h.position for h in headings[i + 1:] if h.level <= heading.level),
            None,
        )
        members = tuple(
            c for c in comments
            if c.signature.position > heading.position
            and (end is None or c.signature.position < end)
        )
        sections.append(Section(
            id=i,
            headline=heading.headline,
            level=heading.level,
            heading=heading.node,
            comments=members,
        ))
    return sections


def parse_discussion(
    root: Tag,
    config: ParserConfig = DEFAULT_CONFIG,
    *,
    is_heading: HeadingPredicate = is_heading_node,
    heading_level: HeadingLevel = default_heading_level,
    collection: TargetCollection | None = None,
) -> Discussion:
    """Segment a rendered discussion page into comments and sections.

    One bad signature never aborts the pass: its failure is logged and kept
    in ``Discussion.diagnostics``, and the remaining targets are processed.
    """
    collection = collection or collect_targets(
        root, config, is_heading=is_heading, heading_level=heading_level,
    )
    resolver = BoundaryResolver(collection)
    comments: list[Comment] = []
    diagnostics: list[ParseDiagnostic] = []
    for target in collection.signature_targets:
        match resolver.resolve(target):
            case Ok(value=boundary):
                comments.append(_build_comment(len(comments), target, boundary, collection))
            case Err(error=error):
                log.warning(
                    "skipping signature %r at position %d: %s",
                    error.signature_text, error.position, error.reason,
                )
                diagnostics.append(ParseDiagnostic(
                    kind="boundary",
                    reason=error.reason,
                    signature_text=error.signature_text,
                    position=error.position,
                    details={"steps": error.steps},
                ))
    sections = _build_sections(collection.heading_targets, comments)
    log.debug("parsed %d comments in %d sections", len(comments), len(sections))
    return Discussion(collection, tuple(comments), tuple(sections), diagnostics)
