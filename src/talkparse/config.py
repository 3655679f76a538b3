"""Parser configuration: signature patterns, locale data, exclusion lists, tunables.

Defaults match English Wikipedia. A wiki with different conventions ships a
JSON file and loads it with ``ParserConfig.from_json``; keys that are absent
keep their default.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from pathlib import Path

import orjson

# Trailing decoration people put before their signature: dashes, arrows,
# entities, a stray opening parenthesis.
DEFAULT_SIGNATURE_PREFIX_PATTERN = (
    r"(?:\s[-–−—―]+\xa0?[A-Z][A-Za-z\-_]*)?"
    r"(?:\s+>+)?"
    r"(?:[\u00b7\u2022\-\u2011\u2013\u2212\u2014\u2015\u2500~\u2053/\u2192\u21d2\s\u200e\u200f]|&\w+;|&#\d+;)*"
    r"(?:\s+\()?"
)

ENGLISH_MONTHS: tuple[str, ...] = (
    "January", "February", "March", "April", "May", "June", "July",
    "August", "September", "October", "November", "December",
)

ENGLISH_MONTH_ABBREVIATIONS: tuple[str, ...] = (
    "Jan", "Feb", "Mar", "Apr", "May", "Jun",
    "Jul", "Aug", "Sep", "Oct", "Nov", "Dec",
)

ENGLISH_WEEKDAYS: tuple[str, ...] = (
    "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday",
)


@dataclass(frozen=True, slots=True)
class SignaturePattern:
    """One row of the prioritized signature pattern table.

    ``pattern`` must contain the ``{timestamp}`` placeholder, which is
    replaced by the compiled timestamp regex. Named groups ``author`` and
    ``date`` are optional; a pattern without ``author`` relies on user links
    preceding the date. Lower ``priority`` is tried first.
    """
    name: str
    pattern: str
    priority: int = 100

    def __post_init__(self) -> None:
        if "{timestamp}" not in self.pattern:
            raise ValueError(
                f"SignaturePattern {self.name!r} must contain a {{timestamp}} placeholder"
            )


DEFAULT_SIGNATURE_PATTERNS: tuple[SignaturePattern, ...] = (
    SignaturePattern(name="timestamp", pattern="(?P<date>{timestamp})", priority=100),
)


@dataclass(frozen=True, slots=True)
class ParserConfig:
    """Everything the parser needs to know about one wiki.

    Tunable constants (``walk_step_limit``, ``overlap_threshold``,
    ``chain_depth``) are heuristics, not proven optima; keep them adjustable
    per wiki.
    """
    # Timestamps
    date_format: str = "H:i, j F Y"
    month_names: tuple[str, ...] = ENGLISH_MONTHS
    month_names_genitive: tuple[str, ...] = ENGLISH_MONTHS
    month_abbreviations: tuple[str, ...] = ENGLISH_MONTH_ABBREVIATIONS
    weekday_names: tuple[str, ...] = ENGLISH_WEEKDAYS
    timezone: str | int = "UTC"        # IANA name, "UTC", or minutes east of UTC
    signature_patterns: tuple[SignaturePattern, ...] = DEFAULT_SIGNATURE_PATTERNS

    # User links
    user_namespaces: tuple[str, ...] = ("User", "U")
    user_talk_namespaces: tuple[str, ...] = ("User talk", "UT")
    contributions_page: str = "Special:Contributions"
    article_path: str = "/wiki/"
    script_path: str = "/w/index.php"

    # Exclusion lists
    unsigned_class: str = "autosigned"
    unsigned_templates: tuple[str, ...] = (
        "unsigned", "unsigned2", "unsignedIP", "unsignedIP2", "unsigned-ip",
    )
    outdent_class: str = "outdent-template"
    outdent_templates: tuple[str, ...] = ("outdent", "od")
    no_signature_tags: tuple[str, ...] = ("blockquote", "q", "cite", "figure", "th")
    no_signature_classes: tuple[str, ...] = ("mw-notalk", "quotebox", "cquote")
    reject_classes: tuple[str, ...] = (
        "mw-archivedtalk", "ombox", "tmbox", "mw-pt-languages",
        "boilerplate", "navbox",
    )
    moved_content_classes: tuple[str, ...] = ("mw-moved-discussion", "movedDiscussion")
    decorative_classes: tuple[str, ...] = ("references", "reflist-talk", "mw-references-wrap")

    # Tunables
    signature_scan_limit: int = 100
    walk_step_limit: int = 300
    overlap_threshold: float = 0.67
    chain_depth: int = 2
    default_indentation_char: str = ":"
    signature_prefix_pattern: str = DEFAULT_SIGNATURE_PREFIX_PATTERN

    def __post_init__(self) -> None:
        if len(self.month_names) != 12:
            raise ValueError(f"month_names must have 12 entries, got {len(self.month_names)}")
        if self.walk_step_limit < 1:
            raise ValueError(f"walk_step_limit must be >= 1, got {self.walk_step_limit}")
        if not 0.0 < self.overlap_threshold <= 1.0:
            raise ValueError(
                f"overlap_threshold must be in (0, 1], got {self.overlap_threshold}"
            )
        if self.chain_depth < 1:
            raise ValueError(f"chain_depth must be >= 1, got {self.chain_depth}")
        if self.default_indentation_char not in (":", "*", "#"):
            raise ValueError(
                "default_indentation_char must be one of ':', '*', '#', got "
                f"{self.default_indentation_char!r}"
            )
        if not self.signature_patterns:
            raise ValueError("signature_patterns must not be empty")

    @property
    def rejected_classes(self) -> frozenset[str]:
        """Classes that end a boundary walk when reached by a sibling step."""
        return frozenset(
            (*self.reject_classes, *self.moved_content_classes, self.outdent_class)
        )

    def sorted_patterns(self) -> list[SignaturePattern]:
        return sorted(self.signature_patterns, key=lambda p: p.priority)

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> ParserConfig:
        """Build a config from a plain mapping, defaulting missing keys."""
        kwargs: dict[str, object] = {}
        for f in fields(cls):
            if f.name not in data:
                continue
            value = data[f.name]
            if f.name == "signature_patterns":
                value = tuple(
                    SignaturePattern(
                        name=row["name"],
                        pattern=row["pattern"],
                        priority=row.get("priority", 100),
                    )
                    for row in value  # type: ignore[union-attr]
                )
            elif isinstance(value, list):
                value = tuple(value)
            kwargs[f.name] = value
        return cls(**kwargs)  # type: ignore[arg-type]

    @classmethod
    def from_json(cls, path: Path) -> ParserConfig:
        """Load from a JSON config file."""
        return cls.from_dict(orjson.loads(path.read_bytes()))


DEFAULT_CONFIG = ParserConfig()

