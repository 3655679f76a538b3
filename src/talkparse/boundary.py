"""Boundary Resolver: which nodes make up the comment a signature closes.

Starting from the signature, the resolver walks backwards through the tree
(previous sibling first, parent when there is none) and decides for every
node it meets whether it belongs to this comment, belongs to a neighbour,
or ends the walk.

Decision rules, in walk order:

- Start block. The closest block around our date is taken whole unless it
  also carries someone else's comment (a foreign signature before ours, a
  foreign date after ours, a trailing reply list) or an outdent marker; in
  that case only the inline run holding our date starts the boundary.
- Up steps. Inline ancestors are transparent. A block ancestor is included
  when it holds no foreign signature and no text after ours; otherwise it
  is a shared container (the list holding several replies) and is stepped
  through without being included.
- Back steps. Preceding inline content is included until it holds a
  foreign signature. A preceding block with a foreign signature belongs to
  an earlier comment: its trailing unsigned list item at our level (a
  *dive*) is taken, then the walk ends.
- Hard stops: headings, level-change horizontal rules, rejected blocks
  (boilerplate, moved content, outdent markers), the TOC, definition
  terms, table cells holding several comments, and the content root. A
  list entered by an up step ends the walk when stepped back out of, since
  what precedes it is an intro, not this comment.

The tree is never modified; grouping is expressed as ``CommentPart`` slices.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Literal

from bs4.element import PageElement, Tag

from talkparse.html_utils import has_any_class, has_text, is_blank_text, is_text_node, node_text
from talkparse.parsing_types import (
    AuthorUnknown,
    BoundaryUnresolved,
    CommentPart,
    Err,
    Node,
    Ok,
    Result,
    Signature,
    SignatureTarget,
)
from talkparse.signature_scanner import user_from_link
from talkparse.targets import TargetCollection
from talkparse.tree_walker import (
    LIST_ITEM_TAGS,
    TreeWalker,
    is_floating,
    is_inline,
    is_list,
    is_metadata_node,
    list_depth,
)

log = logging.getLogger(__name__)

type StepKind = Literal["start", "back", "up", "dive"]

_SPACES_RE = re.compile(r"\s+")
_TOC_IDS = frozenset({"toc"})


@dataclass(frozen=True, slots=True)
class Boundary:
    """Resolved node set for one signature target."""
    elements: tuple[Node, ...]
    parts: tuple[CommentPart, ...]
    level: int
    bottom_level: int
    author: str
    follows_heading: bool
    heading: Tag | None
    steps: int


@dataclass(slots=True)
class _Step:
    node: PageElement
    kind: StepKind


def _squash(text: str) -> str:
    return _SPACES_RE.sub("", text)


class BoundaryResolver:
    """Resolve boundaries for the signature targets of one collection."""

    def __init__(self, collection: TargetCollection) -> None:
        self.collection = collection
        self.root = collection.root
        self.index = collection.index
        self.config = collection.config
        self._rejected = collection.config.rejected_classes
        self._decorative = frozenset(
            (*collection.config.decorative_classes, collection.config.outdent_class)
        )

    # -- public ------------------------------------------------------------

    def resolve(self, target: SignatureTarget) -> Result[Boundary, BoundaryUnresolved]:
        sig = target.signature
        own = {sig.index, *(e.index for e in target.extra_signatures)}
        own_end = max(s.text_end for s in (sig, *target.extra_signatures))

        anchor: PageElement = sig.node
        while (
            anchor.parent is not None
            and anchor.parent is not self.root
            and is_inline(anchor.parent)
        ):
            anchor = anchor.parent
        block = anchor.parent

        steps: list[_Step]
        current: PageElement
        if block is not None and block is not self.root and self._take_whole(block, anchor, sig, own):
            steps = [_Step(block, "start")]
            current = block
        else:
            steps = [_Step(n, "start") for n in self._inline_run(anchor)]
            current = anchor
        start_level = list_depth(steps[0].node, self.root)

        follows_heading = False
        heading: Tag | None = None
        entered_via_up: PageElement | None = None
        count = 0
        while True:
            count += 1
            if count > self.config.walk_step_limit:
                log.warning(
                    "boundary walk exceeded %d steps at signature %r",
                    self.config.walk_step_limit, sig.raw_text,
                )
                return Err(BoundaryUnresolved(
                    reason="walk_limit",
                    signature_text=sig.raw_text,
                    position=sig.position,
                    steps=count - 1,
                ))

            prev = self._previous(current)
            kind: StepKind
            if prev is not None:
                kind, nxt = "back", prev
            else:
                parent = current.parent
                if parent is None or parent is self.root:
                    break
                kind, nxt = "up", parent

            if self.collection.is_heading(nxt):
                follows_heading = kind == "back"
                heading = nxt if isinstance(nxt, Tag) else None
                break
            if (
                kind == "back"
                and current is entered_via_up
                and self._is_intro_container(current)
            ):
                break
            if isinstance(nxt, Tag) and self._is_wall(nxt, kind):
                break

            if kind == "up":
                current = nxt
                if is_inline(nxt):
                    continue
                if not self._foreign(nxt, own) and not self._trails(nxt, own_end):
                    steps.append(_Step(nxt, "up"))
                entered_via_up = nxt
                continue

            if is_text_node(nxt) or is_inline(nxt):
                if self._foreign(nxt, own):
                    break
                steps.append(_Step(nxt, "back"))
                current = nxt
                continue

            if self._foreign(nxt, own):
                steps.extend(self._dive(nxt, start_level))
                break
            if self.collection.contains_heading(nxt):
                break
            steps.append(_Step(nxt, "back"))
            current = nxt

        return self._finish(target, steps, follows_heading, heading, count)

    # -- start block ---------------------------------------------------------

    def _take_whole(self, block: PageElement, anchor: PageElement, sig: Signature, own: set[int]) -> bool:
        foreign = self._foreign(block, own)
        before = [s for s in foreign if s.text_start < sig.text_start]
        after = [s for s in foreign if s.text_start > sig.text_start]
        if len(after) > 1:
            log.debug("block around %r holds %d later replies", sig.raw_text, len(after))
        if before or after:
            return False
        sibling = anchor.next_sibling
        while sibling is not None:
            if isinstance(sibling, Tag) and not is_inline(sibling) and not is_metadata_node(sibling):
                if is_list(sibling):
                    return False
            sibling = sibling.next_sibling
        if isinstance(block, Tag):
            for child in block.children:
                if has_any_class(child, self._rejected):
                    return False
        return True

    def _inline_run(self, anchor: PageElement) -> list[PageElement]:
        run = [anchor]
        sibling = anchor.next_sibling
        while sibling is not None:
            if isinstance(sibling, Tag) and not is_inline(sibling) and not is_metadata_node(sibling):
                break
            if is_text_node(sibling) or isinstance(sibling, Tag):
                run.append(sibling)
            sibling = sibling.next_sibling
        return run

    # -- walk helpers --------------------------------------------------------

    def _previous(self, node: PageElement) -> PageElement | None:
        return TreeWalker(self.root, start=node).previous_sibling()

    def _foreign(self, node: PageElement, own: set[int]) -> list[Signature]:
        return [s for s in self.collection.signatures_in(node) if s.index not in own]

    def _trails(self, node: PageElement, own_end: int) -> bool:
        """Whether *node* has text after our signature."""
        return bool(self.index.text[own_end:self.index.text_end(node)].strip())

    def _is_intro_container(self, node: PageElement) -> bool:
        if not isinstance(node, Tag):
            return False
        if node.name in ("ul", "ol"):
            return True
        return node.name == "dl" and node.parent is not self.root

    def _is_wall(self, node: Tag, kind: StepKind) -> bool:
        if kind != "up" and has_any_class(node, self._rejected):
            return True
        if node.get("id") in _TOC_IDS:
            return True
        if node.name == "dt":
            return True
        if node.name == "hr" and kind == "back":
            before = self._previous(node)
            return before is not None and self.collection.has_signature(before)
        if node.name in ("td", "th") and len(self.collection.signatures_in(node)) > 1:
            return True
        return False

    def _dive(self, node: PageElement, level: int) -> list[_Step]:
        """Trailing unsigned list item of an earlier block, if at our level."""
        walker = TreeWalker(self.root, start=node)
        for _ in range(self.config.walk_step_limit):
            last = walker.last_child()
            if not isinstance(last, Tag):
                return []
            if self.collection.has_signature(last):
                continue
            if last.name in ("li", "dd") and list_depth(last, self.root) == level and has_text(last):
                return [_Step(last, "dive")]
            return []
        return []

    # -- finishing -----------------------------------------------------------

    def _finish(
        self,
        target: SignatureTarget,
        steps: list[_Step],
        follows_heading: bool,
        heading: Tag | None,
        count: int,
    ) -> Result[Boundary, BoundaryUnresolved]:
        sig = target.signature
        ordered = sorted(steps, key=lambda s: self.index.position(s.node))

        kept: list[_Step] = []
        for step in ordered:
            if any(self.index.contains(k.node, step.node) for k in kept):
                continue
            kept.append(step)

        def holds_signature(step: _Step) -> bool:
            return self.index.contains(step.node, sig.node)

        kept = [s for s in kept if holds_signature(s) or not self._is_empty(s.node)]
        while kept and not holds_signature(kept[0]) and self._is_decorative(kept[0].node):
            kept.pop(0)
        while kept and not holds_signature(kept[-1]) and self._is_decorative(kept[-1].node):
            kept.pop()

        unwrapped: list[_Step] = []
        for step in kept:
            if step.kind == "up" and isinstance(step.node, Tag):
                unwrapped.extend(_Step(n, "up") for n in self._unwrap(step.node))
            else:
                unwrapped.append(step)

        if not unwrapped:
            return Err(BoundaryUnresolved(
                reason="no_elements",
                signature_text=sig.raw_text,
                position=sig.position,
                steps=count,
            ))

        elements = tuple(s.node for s in unwrapped)
        author = sig.author or self._author_from_links(unwrapped, sig)
        if author is None:
            error = AuthorUnknown(signature_text=sig.raw_text, position=sig.position)
            return Err(BoundaryUnresolved(
                reason="author_unknown",
                signature_text=sig.raw_text,
                position=sig.position,
                steps=count,
                author_error=error,
            ))

        return Ok(Boundary(
            elements=elements,  # type: ignore[arg-type]
            parts=self._group(unwrapped),
            level=list_depth(elements[0], self.root),
            bottom_level=list_depth(elements[-1], self.root),
            author=author,
            follows_heading=follows_heading,
            heading=heading,
            steps=count,
        ))

    def _is_empty(self, node: PageElement) -> bool:
        if is_text_node(node):
            return is_blank_text(node)
        if not isinstance(node, Tag):
            return True
        if node.name in ("br", "hr", "img"):
            return False
        return not has_text(node) and node.find("img") is None

    def _is_decorative(self, node: PageElement) -> bool:
        if not isinstance(node, Tag):
            return is_blank_text(node)
        if is_metadata_node(node) or node.name == "hr" or node.name == "br":
            return True
        if node.name == "p" and not has_text(node):
            return True
        return has_any_class(node, self._decorative) or is_floating(node)

    def _unwrap(self, node: Tag) -> list[PageElement]:
        """Replace a list wrapper with the items that carry its content.

        A list becomes its items; an item holding nothing but a nested list
        becomes that list's items, so ``dl > dd > dl > dd`` resolves to the
        inner ``dd``.
        """
        children = [
            c for c in node.children
            if (is_text_node(c) and not is_blank_text(c))
            or (isinstance(c, Tag) and not is_metadata_node(c))
        ]
        if is_list(node):
            if not children or not all(
                isinstance(c, Tag) and (c.name in LIST_ITEM_TAGS or is_list(c)) for c in children
            ):
                return [node]
        elif not (len(children) == 1 and is_list(children[0])):
            return [node]
        if _squash(node_text(node)) != _squash("".join(node_text(c) for c in children)):
            return [node]
        out: list[PageElement] = []
        for child in children:
            out.extend(self._unwrap(child))  # type: ignore[arg-type]
        return out

    def _author_from_links(self, steps: list[_Step], sig: Signature) -> str | None:
        author: str | None = None
        for step in steps:
            node = step.node
            if not isinstance(node, Tag):
                continue
            anchors = [node] if node.name == "a" else node.find_all("a")
            for a in anchors:
                if self.index.position(a) > sig.position:
                    break
                link = user_from_link(a, self.config)
                if link is not None:
                    author = link.user
        return author

    def _group(self, steps: list[_Step]) -> tuple[CommentPart, ...]:
        parts: list[CommentPart] = []
        run: list[PageElement] = []
        run_kind: StepKind = "start"

        def flush() -> None:
            if run:
                parts.append(CommentPart(nodes=tuple(run), inline=True, step=run_kind))  # type: ignore[arg-type]
                run.clear()

        for step in steps:
            node = step.node
            if is_text_node(node) or is_inline(node):
                if run and self._previous(node) is run[-1]:
                    run.append(node)
                    continue
                flush()
                run.append(node)
                run_kind = step.kind
                continue
            flush()
            parts.append(CommentPart(nodes=(node,), inline=False, step=step.kind))  # type: ignore[arg-type]
        flush()
        return tuple(parts)


def resolve_boundary(
    target: SignatureTarget,
    collection: TargetCollection,
) -> Result[Boundary, BoundaryUnresolved]:
    """Resolve a single target; see ``BoundaryResolver``."""
    return BoundaryResolver(collection).resolve(target)
