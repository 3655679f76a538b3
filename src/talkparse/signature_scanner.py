"""Signature Scanner: find author + timestamp tokens in rendered text.

Every plain text node outside no-signature blocks is tried against the
configured pattern table in priority order; the first pattern with any
match in a text node wins for that node. When the winning pattern has no
``author`` group, the author is read from user links (user page, user talk,
contributions) that precede the date in the same inline run, within
``signature_scan_limit`` characters of text.

Unsigned-template markup (``small.autosigned``) marks a signature as
unsigned; undated unsigned templates still yield a signature with no
timestamp.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from urllib.parse import parse_qs, unquote, urlsplit

from bs4.element import PageElement, Tag

from talkparse.config import DEFAULT_CONFIG, ParserConfig
from talkparse.html_utils import classes, has_any_class, is_text_node, node_text
from talkparse.parsing_types import Node, Signature
from talkparse.timestamp import TimestampParser
from talkparse.tree_walker import DocumentIndex, is_heading_node, is_inline
from talkparse.wikitext import normalize_user_name, parse_user_title

log = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class UserLink:
    """A link to a user page, user talk page or contributions page."""
    user: str
    kind: str           # "user" | "user_talk" | "contribs"
    element: Tag


@dataclass(slots=True)
class _Found:
    position: int
    text_start: int
    text_end: int
    author: str | None
    timestamp: datetime | None
    timestamp_text: str | None
    node: Node
    pattern: str
    author_link: Tag | None
    unsigned_element: Tag | None


def user_from_link(element: Tag, config: ParserConfig = DEFAULT_CONFIG) -> UserLink | None:
    """Resolve an ``<a>`` to the user it points at, if any."""
    href = element.get("href")
    if not isinstance(href, str) or not href:
        return None
    parts = urlsplit(href)
    title: str | None = None
    if parts.path.startswith(config.article_path):
        title = unquote(parts.path[len(config.article_path):])
    elif parts.path == config.script_path:
        values = parse_qs(parts.query).get("title")
        title = values[0] if values else None
    if not title:
        return None
    parsed = parse_user_title(title, config)
    if parsed is None:
        return None
    return UserLink(user=parsed[0], kind=parsed[1], element=element)


class SignatureScanner:
    """Scan one tree for signatures.

    Example::

        index = DocumentIndex(root)
        signatures = SignatureScanner(root, index).scan()
    """

    def __init__(
        self,
        root: Tag,
        index: DocumentIndex,
        config: ParserConfig = DEFAULT_CONFIG,
        parser: TimestampParser | None = None,
    ) -> None:
        self.root = root
        self.index = index
        self.config = config
        self.parser = parser or TimestampParser(config)
        self._patterns: list[tuple[str, re.Pattern[str]]] = [
            (p.name, re.compile(p.pattern.replace("{timestamp}", self.parser.pattern)))
            for p in config.sorted_patterns()
        ]
        self._no_signature_classes = frozenset(config.no_signature_classes)

    # -- public ------------------------------------------------------------

    def scan(self) -> list[Signature]:
        found: list[_Found] = []
        excluded_until = -1
        for pos in range(len(self.index)):
            if pos <= excluded_until:
                continue
            node = self.index.node_at(pos)
            if isinstance(node, Tag):
                if self.is_no_signature_block(node):
                    excluded_until = self.index.subtree_end(node)
                elif has_any_class(node, (self.config.unsigned_class,)) and not self.parser.search(node_text(node)):
                    found.append(self._undated_unsigned(node, pos))
                continue
            if is_text_node(node):
                found.extend(self._scan_text_node(node, pos))  # type: ignore[arg-type]

        found.sort(key=lambda f: (f.position, f.text_start))
        signatures = [
            Signature(
                index=i,
                raw_text=self.index.text[f.text_start:f.text_end].strip(),
                author=f.author,
                timestamp=f.timestamp,
                timestamp_text=f.timestamp_text,
                is_unsigned_template=f.unsigned_element is not None,
                node=f.node,
                pattern=f.pattern,
                position=f.position,
                text_start=f.text_start,
                text_end=f.text_end,
                author_link=f.author_link,
                unsigned_element=f.unsigned_element,
            )
            for i, f in enumerate(found)
        ]
        log.debug("found %d signatures", len(signatures))
        return signatures

    def is_no_signature_block(self, node: Tag) -> bool:
        if node.name in self.config.no_signature_tags:
            return True
        if is_heading_node(node):
            return True
        return any(c in self._no_signature_classes for c in classes(node))

    # -- internals ---------------------------------------------------------

    def _scan_text_node(self, node: PageElement, pos: int) -> list[_Found]:
        text = str(node)
        for name, regex in self._patterns:
            matches = list(regex.finditer(text))
            if not matches:
                continue
            results = []
            prev_end = 0
            for m in matches:
                results.append(self._from_match(node, pos, name, m, prev_end))
                prev_end = m.end()
            return results
        return []

    def _from_match(
        self,
        node: PageElement,
        pos: int,
        pattern: str,
        m: re.Match[str],
        prev_end: int,
    ) -> _Found:
        groups = m.re.groupindex
        date_start, date_end = (m.span("date") if "date" in groups and m.group("date") else m.span())
        base = self.index.text_offset(node)
        text_start = base + m.start()
        text_end = base + date_end

        author: str | None = None
        author_link: Tag | None = None
        if "author" in groups and m.group("author"):
            author = normalize_user_name(m.group("author"))
        unsigned = self._unsigned_ancestor(node)
        if unsigned is not None:
            link = self._last_user_link(unsigned)
            if author is None and link is not None:
                author, author_link = link.user, link.element
            text_start = min(text_start, self.index.text_offset(unsigned))
            text_end = max(text_end, self.index.text_end(unsigned))
        elif author is None and prev_end == 0:
            link_found = self._scan_author(node, m.start())
            if link_found is not None:
                author, author_link = link_found.user, link_found.element
                text_start = self.index.text_offset(author_link)

        return _Found(
            position=pos,
            text_start=text_start,
            text_end=text_end,
            author=author,
            timestamp=self.parser.parse(m),
            timestamp_text=m.string[date_start:date_end],
            node=node,  # type: ignore[arg-type]
            pattern=pattern,
            author_link=author_link,
            unsigned_element=unsigned,
        )

    def _undated_unsigned(self, element: Tag, pos: int) -> _Found:
        link = self._last_user_link(element)
        return _Found(
            position=pos,
            text_start=self.index.text_offset(element),
            text_end=self.index.text_end(element),
            author=link.user if link else None,
            timestamp=None,
            timestamp_text=None,
            node=element,
            pattern="unsigned",
            author_link=link.element if link else None,
            unsigned_element=element,
        )

    def _unsigned_ancestor(self, node: PageElement) -> Tag | None:
        parent = node.parent
        while parent is not None and parent is not self.root and is_inline(parent):
            if self.config.unsigned_class in classes(parent):
                return parent
            parent = parent.parent
        return None

    def _last_user_link(self, element: Tag) -> UserLink | None:
        # Links are read back to front; the last user link names the author.
        for a in reversed(element.find_all("a")):
            link = user_from_link(a, self.config)
            if link is not None:
                return link
        return None

    def _scan_author(self, node: PageElement, match_start: int) -> UserLink | None:
        """Walk back through the inline run before a date, collecting user links.

        The first user link met names the author; earlier links to the same
        user extend the signature backwards (``[[User:A|A]] ([[User talk:A|talk]])``).
        A link to a different user, a block boundary, another timestamp or
        more than ``signature_scan_limit`` characters of text end the scan.
        """
        scanned = match_start
        found: UserLink | None = None
        current: PageElement = node
        while scanned <= self.config.signature_scan_limit:
            prev = current.previous_sibling
            if prev is None:
                parent = current.parent
                if parent is None or parent is self.root or not is_inline(parent):
                    break
                current = parent
                continue
            current = prev
            if isinstance(prev, Tag):
                if not is_inline(prev):
                    break
                text = node_text(prev)
                if self.parser.search(text):
                    break
                anchors = [prev] if prev.name == "a" else prev.find_all("a")
                stop = False
                for a in reversed(anchors):
                    link = user_from_link(a, self.config)
                    if link is None:
                        continue
                    if found is None or link.user == found.user:
                        found = link
                    else:
                        stop = True
                        break
                if stop:
                    break
                if found is None or prev.name != "a":
                    scanned += len(text)
            elif is_text_node(prev):
                text = str(prev)
                if self.parser.search(text):
                    break
                scanned += len(text.strip())
        return found
