"""Section Locator: find a rendered section's heading and span in wikitext.

Every heading line of the source is a candidate. A candidate scores for
a matching headline, for sitting at the section's index, for being preceded
by the same headlines, and for having the section's oldest comment as its
oldest signature (plus that comment's word overlap). The best candidate
above the acceptance threshold wins; a perfect score stops the scan.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

from talkparse.config import DEFAULT_CONFIG, ParserConfig
from talkparse.parsing_types import (
    Comment,
    Err,
    Ok,
    Result,
    Section,
    SectionLocation,
    SectionNotFound,
    SourceSignature,
)
from talkparse.source_locator import signature_matches
from talkparse.textmatch import word_overlap
from talkparse.timestamp import TimestampParser
from talkparse.wikitext import (
    extract_signatures,
    hide_html_comments,
    normalize_code,
    remove_wiki_markup,
)

if TYPE_CHECKING:
    from talkparse.discussion import Discussion

log = logging.getLogger(__name__)

_HEADING_RE = re.compile(r"^(=+)(.*)\1[ \t\x01]*(?:\n|\Z)", re.MULTILINE)

# Score weights
_OLDEST_COMMENT_WEIGHT = 1.0
_HEADLINE_WEIGHT = 1.0
_INDEX_WEIGHT = 0.5
_PREVIOUS_HEADLINES_WEIGHT = 0.25
_PREVIOUS_HEADLINES_CHECKED = 3
# Oldest comment, full overlap, headline, index, previous headlines.
_MAX_SCORE = 3.75
_ACCEPT_ABOVE = 1.0


@dataclass(frozen=True, slots=True)
class SourceHeading:
    """A heading line in wikitext."""
    index: int
    start: int
    content_start: int
    level: int
    headline: str


def source_headings(source_text: str) -> list[SourceHeading]:
    """Heading lines of *source_text*, skipping those inside HTML comments."""
    adjusted = hide_html_comments(source_text)
    headings: list[SourceHeading] = []
    for m in _HEADING_RE.finditer(adjusted):
        headline = source_text[m.start(2):m.end(2)]
        headings.append(SourceHeading(
            index=len(headings),
            start=m.start(),
            content_start=m.end(),
            level=min(len(m.group(1)), 6),
            headline=normalize_code(remove_wiki_markup(headline)),
        ))
    return headings


def _span(headings: list[SourceHeading], heading: SourceHeading, source_text: str) -> tuple[int, int]:
    """``(first_chunk_end, end)`` for *heading*."""
    later = headings[heading.index + 1:]
    end = next((h.start for h in later if h.level <= heading.level), len(source_text))
    if not later:
        return end, end
    chunk_end = later[0].start
    # Blank lines before the next heading are not part of the first chunk.
    while chunk_end - 2 >= heading.content_start and source_text[chunk_end - 2:chunk_end] == "\n\n":
        chunk_end -= 1
    return chunk_end, end


def _oldest_comment(section: Section) -> Comment | None:
    dated = [c for c in section.comments if c.timestamp is not None]
    if not dated:
        return None
    return min(dated, key=lambda c: (c.timestamp, c.id))


def _oldest_signature(code: str, config: ParserConfig, parser: TimestampParser) -> SourceSignature | None:
    oldest: SourceSignature | None = None
    oldest_time = None
    for sig in extract_signatures(code, config, parser):
        if sig.timestamp is None:
            continue
        parsed = parser.parse_text(sig.timestamp)
        if parsed is not None and (oldest_time is None or parsed < oldest_time):
            oldest, oldest_time = sig, parsed
    return oldest


def _score(
    heading: SourceHeading,
    headings: list[SourceHeading],
    section: Section,
    discussion: Discussion,
    code: str,
    config: ParserConfig,
    parser: TimestampParser,
) -> float:
    headline_matches = heading.headline == normalize_code(section.headline)
    index_matches = heading.index == section.id

    checked = _PREVIOUS_HEADLINES_CHECKED
    in_source = [h.headline for h in reversed(headings[max(0, heading.index - checked):heading.index])]
    rendered = [s.headline for s in reversed(discussion.sections[max(0, section.id - checked):section.id])]
    previous_match = all(
        i < len(in_source) and normalize_code(headline) == in_source[i]
        for i, headline in enumerate(rendered)
    )

    comment = _oldest_comment(section)
    sig = _oldest_signature(code, config, parser)
    if sig is None:
        oldest_matches = comment is None
        overlap = 0.5 if comment is None else 0.0
    elif comment is None:
        oldest_matches = False
        overlap = 0.0
    else:
        oldest_matches = signature_matches(sig, comment)
        overlap = word_overlap(comment.text, remove_wiki_markup(code[sig.comment_start:sig.start]))

    return (
        _OLDEST_COMMENT_WEIGHT * oldest_matches
        + overlap
        + _HEADLINE_WEIGHT * headline_matches
        + _INDEX_WEIGHT * index_matches
        + _PREVIOUS_HEADLINES_WEIGHT * previous_match
    )


def locate_section(
    section: Section,
    source_text: str,
    discussion: Discussion,
    config: ParserConfig = DEFAULT_CONFIG,
) -> Result[SectionLocation, SectionNotFound]:
    """Map *section* to its heading line and span in *source_text*.

    Returns:
        ``Ok(SectionLocation)`` or ``Err(SectionNotFound)`` with reason
        ``"no_headings"`` or ``"no_match"``.
    """
    headings = source_headings(source_text)
    if not headings:
        return Err(SectionNotFound(reason="no_headings", section_id=section.id))

    parser = TimestampParser(config)
    best: SectionLocation | None = None
    for heading in headings:
        first_chunk_end, end = _span(headings, heading, source_text)
        code = source_text[heading.start:end]
        score = _score(heading, headings, section, discussion, code, config, parser)
        log.debug("section %d: heading %d %r score=%.3f", section.id, heading.index, heading.headline, score)
        if score <= _ACCEPT_ABOVE or (best is not None and score <= best.score):
            continue
        best = SectionLocation(
            start=heading.start,
            content_start=heading.content_start,
            first_chunk_end=first_chunk_end,
            end=end,
            level=heading.level,
            headline=heading.headline,
            code=code,
            score=score,
        )
        if score >= _MAX_SCORE:
            break

    if best is None:
        return Err(SectionNotFound(reason="no_match", section_id=section.id, candidates=len(headings)))
    return Ok(best)
