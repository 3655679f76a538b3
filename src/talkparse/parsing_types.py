"""Core types shared by every stage of the discussion parser.

Every stage hands these types to the next one. Nodes are references into a
caller-owned bs4 tree and are compared by identity, never by bs4's
structural equality. All dataclasses use slots=True.

Type hierarchy:
  Ok[T] / Err[E]     — Strict algebraic Result type
  Signature          — Author + timestamp token found in rendered text
  HeadingTarget      — Heading found by the target collector
  SignatureTarget    — Signature that anchors one comment
  CommentPart        — Logical grouping of boundary nodes (no tree mutation)
  Comment            — One authored message
  Section            — Heading plus the comments under it
  HeadingInfo        — Heading stripped from the start of a comment's source
  SourceSignature    — Signature found in raw wikitext
  SourceLocation     — Offsets + formatting linking a comment to its source
  SectionLocation    — Heading line and span of a section in the source
  AuthorUnknown      — Typed failure: no author recoverable
  BoundaryUnresolved — Typed failure: boundary walk could not finish
  SourceNotFound     — Typed failure: locator exhausted candidates
  SectionNotFound    — Typed failure: no heading in the source matched
  AmbiguousSection   — Non-fatal: section-opening flag disagrees with source
  ParseDiagnostic    — Isolated per-target failure record
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal

from bs4.element import NavigableString, Tag

type Node = Tag | NavigableString

# ---------------------------------------------------------------------------
# Result ADT — strict Ok/Err, NOT tuple hack
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class Ok[T]:
    """Success case of Result[T, E].

    Usage::

        result: Result[SourceLocation, SourceNotFound] = Ok(location)
        match result:
            case Ok(value=v): print(v.start)
            case Err(error=e): print(e.reason)
    """
    value: T


@dataclass(frozen=True, slots=True)
class Err[E]:
    """Failure case of Result[T, E].

    Preserves the typed failure reason. A comment that cannot be located in
    the page source must still render; callers disable editing for it.
    """
    error: E


type Result[T, E] = Ok[T] | Err[E]


# ---------------------------------------------------------------------------
# Rendered-tree types
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class Signature:
    """Author + timestamp token found in the rendered tree.

    ``node`` is the text node holding the date (or the unsigned-template
    element for undated unsigned templates). ``text_start``/``text_end`` are
    global text offsets (see ``DocumentIndex.text_offset``) spanning the
    author link through the end of the date.
    """
    index: int                      # Order among all signatures in the pass
    raw_text: str                   # Author link text through date
    author: str | None
    timestamp: datetime | None      # Aware, UTC
    timestamp_text: str | None      # Date exactly as rendered
    is_unsigned_template: bool
    node: Node
    pattern: str                    # Name of the SignaturePattern that matched
    position: int                   # Document-order index of ``node``
    text_start: int
    text_end: int
    author_link: Tag | None = None
    unsigned_element: Tag | None = None

    def __post_init__(self) -> None:
        if self.text_end < self.text_start:
            raise ValueError(
                f"Signature.text_end ({self.text_end}) must be >= "
                f"text_start ({self.text_start})"
            )


@dataclass(frozen=True, slots=True)
class HeadingTarget:
    """A heading, as seen by the target collector."""
    node: Tag
    level: int
    headline: str
    position: int
    kind: Literal["heading"] = "heading"


@dataclass(frozen=True, slots=True)
class SignatureTarget:
    """A signature that anchors exactly one comment."""
    signature: Signature
    extra_signatures: tuple[Signature, ...] = ()
    kind: Literal["signature"] = "signature"

    @property
    def node(self) -> Node:
        return self.signature.node

    @property
    def position(self) -> int:
        return self.signature.position


type Target = HeadingTarget | SignatureTarget


@dataclass(frozen=True, slots=True)
class CommentPart:
    """Contiguous run of nodes belonging to one comment.

    Inline runs (text plus inline tags between blocks) are grouped into a
    single part; block nodes are one part each.
    """
    nodes: tuple[Node, ...]
    inline: bool
    step: Literal["start", "back", "up", "dive"]


@dataclass(frozen=True, slots=True)
class Comment:
    """One authored message in the discussion.

    ``parent`` and ``section`` are not stored here; ``Discussion`` derives and
    memoizes them by comment id.
    """
    id: int
    author: str
    timestamp: datetime | None
    timestamp_text: str | None
    level: int                    # List depth of the first element
    bottom_level: int             # List depth of the last element
    elements: tuple[Node, ...]
    parts: tuple[CommentPart, ...]
    text: str                     # Plain text, signature removed
    signature: Signature
    extra_signatures: tuple[Signature, ...] = ()
    follows_heading: bool = False
    opens_section: bool = False
    is_outdented: bool = False

    def __post_init__(self) -> None:
        if not self.elements:
            raise ValueError(f"Comment {self.id} must have at least one element")
        if self.level < 0 or self.bottom_level < 0:
            raise ValueError(
                f"Comment {self.id} levels must be >= 0, got "
                f"{self.level}/{self.bottom_level}"
            )

    @property
    def is_unsigned(self) -> bool:
        return self.signature.is_unsigned_template


@dataclass(frozen=True, slots=True)
class Section:
    """A heading plus every comment until the next same-or-higher heading."""
    id: int
    headline: str
    level: int
    heading: Tag
    comments: tuple[Comment, ...] = ()

    def __post_init__(self) -> None:
        if not 1 <= self.level <= 6:
            raise ValueError(f"Section.level must be 1-6, got {self.level}")


# ---------------------------------------------------------------------------
# Source-side types
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class HeadingInfo:
    """Heading line found at the start of a section-opening comment's code."""
    level: int
    headline: str
    start: int          # Offset of the heading line in the source
    code: str           # The heading line, including its newline


@dataclass(frozen=True, slots=True)
class SourceSignature:
    """A signature found in wikitext by ``wikitext.extract_signatures``."""
    index: int
    author: str | None
    timestamp: str | None
    start: int                  # Start of the signature (first author link)
    end: int                    # End of the date (or unsigned template)
    comment_start: int          # Where the message preceding it begins
    next_comment_start: int     # Past the signature line and its newlines
    dirty_code: str
    is_unsigned_template: bool = False


@dataclass(frozen=True, slots=True)
class SourceLocation:
    """Offset range + formatting metadata linking a comment to its source.

    Invariants (enforced in __post_init__):
        - 0 <= line_start <= start <= end <= signature_end
    """
    line_start: int             # Start of the first line (before indentation)
    start: int                  # Start of the comment body
    end: int                    # End of the body, before the signature literal
    code: str                   # source[start:end]
    indentation: str            # Canonical list markers, e.g. "**"
    reply_indentation: str      # Markers a reply to this comment should use
    signature_literal: str      # Trimmed markup + signature as written
    signature_end: int
    heading: HeadingInfo | None = None
    overlap: float = 0.0
    chained: bool = False       # Accepted by chained-context fallback
    reply_offset: int | None = None     # Where a reply goes; None before an outdent template
    reply_line_indentation: str = ""    # Markers for a reply written at reply_offset

    def __post_init__(self) -> None:
        if self.line_start < 0:
            raise ValueError(f"SourceLocation.line_start must be >= 0, got {self.line_start}")
        if not self.line_start <= self.start <= self.end <= self.signature_end:
            raise ValueError(
                "SourceLocation offsets must satisfy line_start <= start <= end "
                f"<= signature_end, got {self.line_start}/{self.start}/"
                f"{self.end}/{self.signature_end}"
            )
        if self.reply_offset is not None and self.reply_offset < self.signature_end:
            raise ValueError(
                f"SourceLocation.reply_offset must be >= signature_end, got {self.reply_offset}"
            )


@dataclass(frozen=True, slots=True)
class SectionLocation:
    """Span of a section in the page wikitext.

    Invariants (enforced in __post_init__):
        - 0 <= start <= content_start <= first_chunk_end <= end
    """
    start: int                  # Start of the heading line
    content_start: int          # Past the heading line
    first_chunk_end: int        # Before the first subsection heading (or end)
    end: int                    # Before the next same-or-higher heading
    level: int
    headline: str               # Headline as written, markup removed
    code: str                   # source[start:end]
    score: float = 0.0

    def __post_init__(self) -> None:
        if not 0 <= self.start <= self.content_start <= self.first_chunk_end <= self.end:
            raise ValueError(
                "SectionLocation offsets must satisfy start <= content_start <= "
                f"first_chunk_end <= end, got {self.start}/{self.content_start}/"
                f"{self.first_chunk_end}/{self.end}"
            )


# ---------------------------------------------------------------------------
# Typed failures
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class AuthorUnknown:
    """No author could be read from the signature pattern or user links."""
    signature_text: str
    position: int


@dataclass(frozen=True, slots=True)
class BoundaryUnresolved:
    """Typed failure from the boundary resolver.

    Reasons: ``"walk_limit"`` (step bound exceeded), ``"no_elements"``
    (nothing left after trimming), ``"author_unknown"`` (see
    ``author_error``).
    """
    reason: str
    signature_text: str
    position: int
    steps: int = 0
    author_error: AuthorUnknown | None = None


@dataclass(frozen=True, slots=True)
class SourceNotFound:
    """Typed failure from the source locator.

    Reasons: ``"no_candidates"`` (author+timestamp never appears),
    ``"no_match"`` (every candidate failed overlap and chained fallback).
    """
    reason: str
    comment_id: int
    candidates: int = 0


@dataclass(frozen=True, slots=True)
class SectionNotFound:
    """Typed failure from the section locator.

    Reasons: ``"no_headings"`` (the source has no heading lines),
    ``"no_match"`` (no heading scored above the acceptance threshold).
    """
    reason: str
    section_id: int
    candidates: int = 0


@dataclass(frozen=True, slots=True)
class AmbiguousSection:
    """Section-opening flag disagrees with heading presence in the source."""
    comment_id: int
    opens_section: bool
    heading_found: bool


@dataclass(frozen=True, slots=True)
class ParseDiagnostic:
    """Non-fatal problem recorded during a pass."""
    kind: str                   # "boundary" | "ambiguous_section"
    reason: str
    signature_text: str = ""
    position: int = -1
    details: dict[str, object] = field(default_factory=dict[str, object])


__version__ = "0.1.0"
