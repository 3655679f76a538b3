"""Wikitext helpers used on the source side.

``extract_signatures`` finds every signature in raw page source: a
timestamp with the nearest preceding user link on the same line, or an
unsigned template. Each signature also records where the message it closes
starts (the end of the previous signature's line), which is what the source
locator slices on.
"""

from __future__ import annotations

import html
import re
from dataclasses import dataclass
from functools import lru_cache

from talkparse.config import DEFAULT_CONFIG, ParserConfig
from talkparse.html_utils import strip_zero_width
from talkparse.parsing_types import SourceSignature
from talkparse.timestamp import TimestampParser

# ---------------------------------------------------------------------------
# Markup stripping
# ---------------------------------------------------------------------------

_HTML_COMMENT_RE = re.compile(r"<!--.*?(?:-->|\Z)", re.DOTALL)
_WIKILINK_RE = re.compile(r"\[\[:?(?:[^|\[\]<>\n]+\|)?(.+?)\]\]")
_TEMPLATE_RE = re.compile(r"\{\{[^{}]*\}\}")
_EXTERNAL_LINK_RE = re.compile(r"\[(?:https?:)?//[^\]\s]+(?: ([^\]]*))?\]")
_BOLD_RE = re.compile(r"'''(.+?)'''")
_ITALIC_RE = re.compile(r"''(.+?)''")
_BR_RE = re.compile(r"<br\s*/?>", re.IGNORECASE)
_TAG_RE = re.compile(r"</?[a-zA-Z][\w-]*(?:\s[^>]*)?/?>")
_SPACES_RE = re.compile(r"[ \t\xa0]{2,}")


def hide_html_comments(code: str) -> str:
    """Blank out HTML comment bodies, keeping every offset and newline."""
    return _HTML_COMMENT_RE.sub(lambda m: re.sub(r"[^\n]", "\x01", m.group(0)), code)


def remove_wiki_markup(code: str) -> str:
    """Reduce wikitext to roughly the text a reader sees."""
    code = _HTML_COMMENT_RE.sub("", code)
    code = _WIKILINK_RE.sub(r"\1", code)
    # Nested templates: strip innermost first.
    for _ in range(5):
        stripped = _TEMPLATE_RE.sub("", code)
        if stripped == code:
            break
        code = stripped
    code = _EXTERNAL_LINK_RE.sub(lambda m: m.group(1) or "", code)
    code = _BOLD_RE.sub(r"\1", code)
    code = _ITALIC_RE.sub(r"\1", code)
    code = _BR_RE.sub("\n", code)
    code = _TAG_RE.sub("", code)
    code = html.unescape(code)
    code = _SPACES_RE.sub(" ", code)
    return code.strip()


def normalize_code(code: str) -> str:
    """Canonical form for comparing two pieces of wikitext."""
    code = code.replace("\r\n", "\n")
    code = strip_zero_width(code)
    code = re.sub(r"[ \t]+$", "", code, flags=re.MULTILINE)
    code = code.replace("_", " ")
    return code.strip()


# ---------------------------------------------------------------------------
# User titles
# ---------------------------------------------------------------------------


def normalize_user_name(name: str) -> str:
    name = name.replace("_", " ").strip()
    name = re.sub(r"\s+", " ", name)
    return name[:1].upper() + name[1:]


def parse_user_title(title: str, config: ParserConfig = DEFAULT_CONFIG) -> tuple[str, str] | None:
    """``(user_name, link_type)`` for a page title, or None.

    ``link_type`` is ``"user"``, ``"user_talk"`` or ``"contribs"``. Subpages
    are dropped: ``User:Alice/Archive`` is Alice.
    """
    title = title.replace("_", " ").strip()
    namespace, sep, rest = title.partition(":")
    if not sep:
        return None
    ns = namespace.strip().lower()
    rest = rest.strip()
    if ns in (n.lower() for n in config.user_namespaces):
        kind = "user"
    elif ns in (n.lower() for n in config.user_talk_namespaces):
        kind = "user_talk"
    else:
        contribs_ns, _, contribs_page = config.contributions_page.partition(":")
        page, slash, target = rest.partition("/")
        if (
            ns == contribs_ns.lower()
            and slash
            and page.strip().lower() == contribs_page.lower()
            and target.strip()
        ):
            return normalize_user_name(target), "contribs"
        return None
    name = rest.split("/", 1)[0].split("#", 1)[0]
    if not name.strip():
        return None
    return normalize_user_name(name), kind


# ---------------------------------------------------------------------------
# Signature extraction
# ---------------------------------------------------------------------------

_LINK_TARGET_RE = re.compile(r"\[\[:?\s*([^|\[\]\n]+?)\s*(?:\|[^\[\]\n]*)?\]\]")
_SIGNATURE_TAIL_RE = re.compile(r"(?:\}\}|</small>)?")
_REST_OF_LINE_RE = re.compile(r"[^\n]*\n*")

# Distance (chars) allowed between the end of a user link and the date.
_AUTHOR_LINK_REACH = 251


@lru_cache(maxsize=8)
def unsigned_template_re(names: tuple[str, ...]) -> re.Pattern[str]:
    alternatives = "|".join(re.escape(n) for n in names)
    return re.compile(
        r"\{\{\s*(?:" + alternatives + r")\s*\|[ \u200e]*([^}|]*?)\s*"
        r"(?:\|[ \u200e]*([^}]*?)[ \u200e]*)?\}\}",
        re.IGNORECASE,
    )


def _user_links(code: str, start: int, end: int, config: ParserConfig) -> list[tuple[int, int, str]]:
    """``(link_start, link_end, user)`` for user links in ``code[start:end]``."""
    links: list[tuple[int, int, str]] = []
    for m in _LINK_TARGET_RE.finditer(code, start, end):
        parsed = parse_user_title(m.group(1), config)
        if parsed is not None:
            links.append((m.start(), m.end(), parsed[0]))
    return links


@dataclass(slots=True)
class _RawSignature:
    author: str | None
    timestamp: str | None
    start: int
    end: int
    next_comment_start: int
    unsigned: bool


def extract_signatures(
    code: str,
    config: ParserConfig = DEFAULT_CONFIG,
    parser: TimestampParser | None = None,
) -> list[SourceSignature]:
    """All signatures in *code*, ordered by position.

    Timestamps inside HTML comments are ignored. Only the last timestamp on
    a line counts. Signatures without a user link keep ``author=None``; they
    still delimit messages.
    """
    parser = parser or TimestampParser(config)
    adjusted = hide_html_comments(code)

    def next_comment_start(pos: int) -> int:
        m = _REST_OF_LINE_RE.match(adjusted, pos)
        return m.end() if m else pos

    unsigned = list(unsigned_template_re(config.unsigned_templates).finditer(adjusted))

    # Last timestamp per line.
    per_line: dict[int, re.Match[str]] = {}
    for m in parser.finditer(adjusted):
        if any(u.start() <= m.start() and m.end() <= u.end() for u in unsigned):
            continue
        line_start = adjusted.rfind("\n", 0, m.start()) + 1
        per_line[line_start] = m

    raw: list[_RawSignature] = []
    for line_start, m in per_line.items():
        links = [
            link for link in _user_links(adjusted, line_start, m.start(), config)
            if m.start() - link[1] <= _AUTHOR_LINK_REACH
        ]
        author: str | None = None
        start = m.start()
        if links:
            author = links[-1][2]
            start = next(link[0] for link in links if link[2] == author)
        tail = _SIGNATURE_TAIL_RE.match(adjusted, m.end())
        end = tail.end() if tail else m.end()
        raw.append(_RawSignature(author, m.group(0), start, end, next_comment_start(end), False))

    for m in unsigned:
        author_text, timestamp_text = (m.group(1) or "").strip(), (m.group(2) or "").strip()
        if parser.search(author_text) and not parser.search(timestamp_text):
            author_text, timestamp_text = timestamp_text, author_text
        ts_match = parser.search(timestamp_text) if timestamp_text else None
        raw.append(_RawSignature(
            author=normalize_user_name(author_text) if author_text else None,
            timestamp=ts_match.group(0) if ts_match else (timestamp_text or None),
            start=m.start(),
            end=m.end(),
            next_comment_start=next_comment_start(m.end()),
            unsigned=True,
        ))

    raw.sort(key=lambda r: r.start)
    signatures: list[SourceSignature] = []
    comment_start = 0
    for i, r in enumerate(raw):
        signatures.append(SourceSignature(
            index=i,
            author=r.author,
            timestamp=r.timestamp,
            start=r.start,
            end=r.end,
            comment_start=min(comment_start, r.start),
            next_comment_start=r.next_comment_start,
            dirty_code=code[r.start:r.end],
            is_unsigned_template=r.unsigned,
        ))
        comment_start = r.next_comment_start
    return signatures
