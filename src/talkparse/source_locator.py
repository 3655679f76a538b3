"""Source Locator: find a rendered comment in the page wikitext.

Candidates are source signatures whose author and timestamp match the
comment's. Each candidate's message code (from the end of the previous
signature line to the signature) is cleaned of a leading heading and other
non-message prefixes, then scored by word overlap with the rendered text.
When no candidate overlaps well enough, the candidate whose preceding source
signatures match the preceding comments wins instead.

The accepted code is split into ``indentation``, body and
``signature_literal``; the resulting ``SourceLocation`` is what an editor
needs to replace or reply to the comment.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import TYPE_CHECKING

from talkparse.config import DEFAULT_CONFIG, ParserConfig
from talkparse.html_utils import collapse_whitespace
from talkparse.parsing_types import (
    AmbiguousSection,
    Comment,
    Err,
    HeadingInfo,
    Ok,
    ParseDiagnostic,
    Result,
    SourceLocation,
    SourceNotFound,
    SourceSignature,
)
from talkparse.textmatch import word_overlap
from talkparse.timestamp import TimestampParser
from talkparse.wikitext import (
    extract_signatures,
    hide_html_comments,
    remove_wiki_markup,
    unsigned_template_re,
)

if TYPE_CHECKING:
    from talkparse.discussion import Discussion

log = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Patterns
# ---------------------------------------------------------------------------

_HEADING_LINE_RE = re.compile(r"^(=+)([^\n]*?)\1[ \t]*(?:\n|\Z)", re.MULTILINE)
_BAD_BEGINNING_RE = re.compile(
    r"\A(?:<!--[\s\S]*?-->[ \t]*|-{4,}[ \t]*|<hr\s*/?>[ \t]*|__[A-Z_]+__[ \t]*|\n+)",
    re.IGNORECASE,
)
_INDENTATION_RE = re.compile(r"\A\n*([:*#]+)( *)")
# Level > 0 comment whose first lines are not indented: take the last run
# of indented lines that reaches the end of the code.
_LATE_INDENTATION_RE = re.compile(r"\n\n*([:*#]+)( *)(?![\s\S]*\n[^:*#\n])")
_LAST_LINE_INDENTATION_RE = re.compile(r"\n([:*#]*[:*])(?!:*#)[^\n]*\Z")
# Marker run of the last line before a reply insertion point.
_CHANGED_INDENTATION_RE = re.compile(r"\n([:*#]+)[^\n]*\n\Z")

_QUOTES_TAIL_RE = re.compile(r"'+\Z")
_NBSP_TAIL_RE = re.compile(r"(?:&nbsp;|\xa0)+\Z")
_INLINE_OPENER_TAIL_RE = re.compile(
    r"<(?:small|span|sup|sub|b|i|em|strong|font|code|u|s)\b[^<>]*>\s*\Z",
    re.IGNORECASE,
)
_UNSIGNED_OPENER_TAIL_RE = re.compile(
    r"<(?:small|span)\b[^<>]*\bautosigned\b[^<>]*>(?:(?!<(?:small|span)\b).)*\Z",
    re.IGNORECASE | re.DOTALL,
)
_UNSIGNED_COMMENT_TAIL_RE = re.compile(
    r"<!--\s*Template:Unsigned[\s\S]*?-->\s*\Z",
    re.IGNORECASE,
)


@dataclass(slots=True)
class _Candidate:
    """Scored source signature (private decision record)."""
    signature: SourceSignature
    base: int                     # Offset of ``code`` in the source
    code: str
    heading: HeadingInfo | None
    overlap: float
    previous_matches: bool
    heading_matches: bool

    def rank(self) -> tuple[float, bool, bool]:
        return (self.overlap, self.previous_matches, self.heading_matches)


# ---------------------------------------------------------------------------
# Cached source scans
# ---------------------------------------------------------------------------


@lru_cache(maxsize=8)
def _timestamp_parser(config: ParserConfig) -> TimestampParser:
    return TimestampParser(config)


@lru_cache(maxsize=4)
def _source_signatures(source_text: str, config: ParserConfig) -> tuple[SourceSignature, ...]:
    return tuple(extract_signatures(source_text, config, _timestamp_parser(config)))


def _same_timestamp(rendered: str | None, source: str | None) -> bool:
    if rendered is None or source is None:
        return rendered is None and source is None
    a = collapse_whitespace(rendered).strip()
    b = collapse_whitespace(source).strip()
    if not a or not b:
        return a == b
    return a == b or a.startswith(b) or b.startswith(a)


def signature_matches(signature: SourceSignature, comment: Comment) -> bool:
    """Whether a source signature carries the comment's author and timestamp."""
    return (
        signature.author == comment.author
        and _same_timestamp(comment.timestamp_text, signature.timestamp)
    )


# ---------------------------------------------------------------------------
# Code adjustment
# ---------------------------------------------------------------------------


def strip_heading(code: str, base: int) -> tuple[str, int, HeadingInfo | None]:
    """Cut everything up to and including the last heading line in *code*."""
    last: re.Match[str] | None = None
    for m in _HEADING_LINE_RE.finditer(code):
        last = m
    if last is None:
        return code, base, None
    heading = HeadingInfo(
        level=min(len(last.group(1)), 6),
        headline=remove_wiki_markup(last.group(2)).strip(),
        start=base + last.start(),
        code=last.group(0),
    )
    return code[last.end():], base + last.end(), heading


def strip_bad_beginnings(code: str, base: int) -> tuple[str, int]:
    """Drop leading HTML comments, horizontal rules, magic words and newlines."""
    while True:
        m = _BAD_BEGINNING_RE.match(code)
        if m is None or not m.group(0):
            return code, base
        code = code[m.end():]
        base += m.end()


def split_signature_literal(code: str, config: ParserConfig = DEFAULT_CONFIG) -> tuple[str, str]:
    """Move trailing signature decoration from *code* into the literal.

    Returns ``(body, moved)``; ``body + moved == code``.
    """
    prefix_re = re.compile("(?:" + config.signature_prefix_pattern + r")\Z")
    passes = (
        _QUOTES_TAIL_RE,
        prefix_re,
        _NBSP_TAIL_RE,
        _INLINE_OPENER_TAIL_RE,
        _UNSIGNED_OPENER_TAIL_RE,
        _UNSIGNED_COMMENT_TAIL_RE,
    )
    moved = ""
    changed = True
    while changed:
        changed = False
        for regex in passes:
            m = regex.search(code)
            if m is None or m.start() == m.end():
                continue
            moved = code[m.start():] + moved
            code = code[:m.start()]
            changed = True
    return code, moved


# ---------------------------------------------------------------------------
# Candidate selection
# ---------------------------------------------------------------------------


def _previous_matches(
    signatures: tuple[SourceSignature, ...],
    candidate: SourceSignature,
    comments: tuple[Comment, ...],
    comment: Comment,
    depth: int,
) -> tuple[int, bool]:
    """How many predecessors match, and whether that is as many as exist.

    Walks ``depth`` comments back from *comment* alongside the source
    signatures before *candidate*. A first comment matches only the first
    source signature. A run of predecessors that all repeat the candidate's
    own author and timestamp proves nothing and never completes.
    """
    if comment.id == 0:
        return 0, candidate.index == 0
    matched = 0
    repeated = True
    complete = True
    for k in range(1, depth + 1):
        if comment.id - k < 0:
            break
        if candidate.index - k < 0:
            complete = False
            break
        previous = signatures[candidate.index - k]
        if not signature_matches(previous, comments[comment.id - k]):
            complete = False
            break
        repeated = repeated and (
            previous.author == candidate.author and previous.timestamp == candidate.timestamp
        )
        matched += 1
    if matched and repeated:
        return matched, False
    return matched, complete


def _score(
    signature: SourceSignature,
    comment: Comment,
    source_text: str,
    all_signatures: tuple[SourceSignature, ...],
    discussion: Discussion,
) -> _Candidate:
    base = signature.comment_start
    code = source_text[base:signature.start]
    code, base, heading = strip_heading(code, base)
    code, base = strip_bad_beginnings(code, base)
    overlap = word_overlap(comment.text, remove_wiki_markup(code))

    if comment.id == 0:
        previous = signature.index == 0
    else:
        previous = signature.index > 0 and signature_matches(
            all_signatures[signature.index - 1],
            discussion.comments[comment.id - 1],
        )
    section = discussion.section_of(comment)
    heading_ok = (heading is not None) == comment.opens_section
    if heading is not None and section is not None:
        heading_ok = heading_ok and heading.headline == section.headline
    return _Candidate(
        signature=signature,
        base=base,
        code=code,
        heading=heading,
        overlap=overlap,
        previous_matches=previous,
        heading_matches=heading_ok,
    )


def _pick(
    scored: list[_Candidate],
    comment: Comment,
    all_signatures: tuple[SourceSignature, ...],
    discussion: Discussion,
    config: ParserConfig,
) -> tuple[_Candidate | None, bool]:
    passing = [c for c in scored if c.overlap >= config.overlap_threshold]
    if passing:
        return max(passing, key=_Candidate.rank), False
    for candidate in scored:
        matched, complete = _previous_matches(
            all_signatures, candidate.signature, discussion.comments, comment, config.chain_depth,
        )
        if complete:
            log.debug(
                "comment %d: chained match on source signature %d (%d predecessors)",
                comment.id, candidate.signature.index, matched,
            )
            return candidate, True
    return None, False


# ---------------------------------------------------------------------------
# Indentation
# ---------------------------------------------------------------------------


def _indentation(
    code: str,
    base: int,
    comment: Comment,
) -> tuple[int, int, str]:
    """``(line_start, start, indentation)`` for the body of *code*."""
    if comment.level == 0:
        return base, base, ""
    m = _INDENTATION_RE.match(code)
    if m is None:
        m = _LATE_INDENTATION_RE.search(code)
    if m is None:
        return base, base, ""
    return base + m.start(1), base + m.end(), m.group(1)


def _reply_indentation(
    indentation: str,
    body: str,
    literal: str,
    comment: Comment,
    config: ParserConfig,
) -> tuple[str, str]:
    """``(indentation, reply_indentation)`` after looking at the last line.

    A shorter marker run on the last line means the first line's extra
    markers belong to the text; the caller moves them back into the code.
    """
    default = indentation + config.default_indentation_char
    if not indentation or comment.opens_section:
        return indentation, default
    m = _LAST_LINE_INDENTATION_RE.search(body + literal)
    if m is None:
        return indentation, default
    later = m.group(1)
    if len(later) < len(indentation):
        return indentation[:len(later)], indentation
    if len(later) == len(indentation):
        return indentation, later + config.default_indentation_char
    return indentation, default


# ---------------------------------------------------------------------------
# Reply placement
# ---------------------------------------------------------------------------


@lru_cache(maxsize=8)
def _outdent_template_re(names: tuple[str, ...]) -> re.Pattern[str]:
    alternatives = "|".join(re.escape(n) for n in names)
    return re.compile(
        r"\A\s*([:*#]*)[ \t]*\{\{ *(?:" + alternatives + r") *(?:\||\}\})",
        re.IGNORECASE,
    )


def find_reply_place(
    source_text: str,
    end: int,
    signature_end: int,
    reply_indentation: str,
    config: ParserConfig = DEFAULT_CONFIG,
) -> tuple[int, str] | None:
    """Offset and markers for a reply to the comment ending at *end*.

    The reply goes after the last line of the thread below the comment: past
    every following signature line whose indentation is at least as deep as
    *reply_indentation*. The markers follow the last reply already there, cut
    to the reply's depth. Returns None when an outdent template sits on the
    line right after the comment, since a reply there would land above it.
    """
    adjusted = hide_html_comments(source_text)
    after = adjusted[end:]
    timestamp = _timestamp_parser(config).pattern
    unsigned = unsigned_template_re(config.unsigned_templates).pattern
    any_signature = (
        r"\A([\s\S]*?(?:"
        + re.escape(adjusted[end:signature_end])
        + "|" + timestamp + r"[^\n]*"
        + "|(?i:" + unsigned + r")[^\n]*"
        + r"|(?:\A|\n)\x01[^\n]*)\n)\n*"
    )
    max_depth = len(reply_indentation) - 1
    thread_end = r"(?P<thread_end>(?![:*#\x01\n])"
    if max_depth > 0:
        thread_end += rf"|[:*#\x01]{{1,{max_depth}}}(?![:*\x01])"
    thread_end += ")"

    m = re.match(any_signature + thread_end, after)
    between = m.group(1) if m else after
    is_next_line = between.count("\n") == 1

    if config.outdent_templates:
        outdent = _outdent_template_re(config.outdent_templates).match(after[len(between):])
        if outdent is not None:
            if is_next_line:
                return None
            if len(outdent.group(1)) <= len(reply_indentation):
                # Reply right below the comment, out of chronological order.
                first = re.match(any_signature, after)
                if first is not None:
                    between = first.group(1)

    indentation = reply_indentation
    changed = _CHANGED_INDENTATION_RE.search(between)
    if changed is not None:
        indentation = changed.group(1)[:len(reply_indentation)]
        if indentation.endswith(":"):
            indentation = indentation[:-1] + config.default_indentation_char
    return max(end + len(between), signature_end), indentation


# ---------------------------------------------------------------------------
# Public entry point
# ---------------------------------------------------------------------------


def locate_comment(
    comment: Comment,
    source_text: str,
    discussion: Discussion,
    config: ParserConfig = DEFAULT_CONFIG,
) -> Result[SourceLocation, SourceNotFound]:
    """Map *comment* to a range of *source_text*.

    Args:
        comment: Comment from ``discussion``.
        source_text: Wikitext of the page (or section) the tree was rendered from.
        discussion: The pass *comment* belongs to; supplies neighbours and sections.
        config: Parser config; its timestamp format must match the source.

    Returns:
        ``Ok(SourceLocation)`` or ``Err(SourceNotFound)`` with reason
        ``"no_candidates"`` or ``"no_match"``.
    """
    all_signatures = _source_signatures(source_text, config)
    candidates = [s for s in all_signatures if s.author and signature_matches(s, comment)]
    if not candidates:
        log.debug("comment %d (%s): no source signature matches", comment.id, comment.author)
        return Err(SourceNotFound(reason="no_candidates", comment_id=comment.id))

    scored = [_score(s, comment, source_text, all_signatures, discussion) for s in candidates]
    for c in scored:
        log.debug(
            "comment %d: candidate %d overlap=%.2f previous=%s heading=%s",
            comment.id, c.signature.index, c.overlap, c.previous_matches, c.heading_matches,
        )
    best, chained = _pick(scored, comment, all_signatures, discussion, config)
    if best is None:
        return Err(SourceNotFound(reason="no_match", comment_id=comment.id, candidates=len(candidates)))

    line_start, start, first_line_indentation = _indentation(best.code, best.base, comment)
    body, moved = split_signature_literal(source_text[start:best.signature.start], config)
    end = start + len(body)
    signature_end = best.signature.end
    literal = moved + source_text[best.signature.start:signature_end]
    indentation, reply_indentation = _reply_indentation(
        first_line_indentation, body, literal, comment, config,
    )
    if len(indentation) < len(first_line_indentation):
        # Markers beyond the canonical run go back into the code.
        start = line_start + len(indentation)

    reply_place = find_reply_place(source_text, end, signature_end, reply_indentation, config)
    if reply_place is None:
        log.debug("comment %d: outdent template right below, no reply place", comment.id)
        reply_offset, reply_line_indentation = None, reply_indentation
    else:
        reply_offset, reply_line_indentation = reply_place

    heading_found = best.heading is not None
    if heading_found != comment.opens_section:
        issue = AmbiguousSection(
            comment_id=comment.id,
            opens_section=comment.opens_section,
            heading_found=heading_found,
        )
        log.warning(
            "comment %d: opens_section=%s but heading %s in source",
            issue.comment_id, issue.opens_section, "found" if heading_found else "not found",
        )
        discussion.diagnostics.append(ParseDiagnostic(
            kind="ambiguous_section",
            reason="heading_found" if heading_found else "heading_missing",
            signature_text=comment.signature.raw_text,
            position=comment.signature.position,
            details={"comment_id": comment.id},
        ))

    return Ok(SourceLocation(
        line_start=line_start,
        start=start,
        end=end,
        code=source_text[start:end],
        indentation=indentation,
        reply_indentation=reply_indentation,
        signature_literal=literal,
        signature_end=signature_end,
        heading=best.heading,
        overlap=best.overlap,
        chained=chained,
        reply_offset=reply_offset,
        reply_line_indentation=reply_line_indentation,
    ))
