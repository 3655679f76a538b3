"""Signature timestamp recognition.

Wikis render signature dates with a PHP ``date()``-style format string
(English Wikipedia: ``H:i, j F Y``) followed by a parenthesized timezone
abbreviation, e.g. ``12:00, 1 January 2020 (UTC)``. ``TimestampParser``
compiles the configured format into a regex with one named group per format
token and turns matches back into aware UTC datetimes.
"""

from __future__ import annotations

import re
from collections.abc import Iterator
from datetime import datetime, timedelta, timezone, tzinfo
from zoneinfo import ZoneInfo

from talkparse.config import DEFAULT_CONFIG, ParserConfig

# Timezone suffix as rendered after the date: "(UTC)", "(CET)", "(+03)".
TIMEZONE_SUFFIX = r" +\((?:UTC|[A-Z]{1,5}|[+-]\d{0,4})\)"

# Format tokens understood by the compiler, longest first.
_TOKENS: tuple[str, ...] = ("xg", "d", "D", "j", "l", "n", "m", "F", "M", "Y", "y", "H", "G", "i", "s")

_DIGIT_PATTERNS: dict[str, str] = {
    "d": r"\d{2}",
    "j": r"\d{1,2}",
    "n": r"\d{1,2}",
    "m": r"\d{2}",
    "Y": r"\d{4}",
    "y": r"\d{2}",
    "H": r"\d{2}",
    "G": r"\d{1,2}",
    "i": r"\d{2}",
    "s": r"\d{2}",
}


def _alternation(names: tuple[str, ...]) -> str:
    ordered = sorted(set(names), key=len, reverse=True)
    return "(?:" + "|".join(re.escape(n) for n in ordered) + ")"


def _resolve_timezone(value: str | int) -> tzinfo:
    if isinstance(value, int):
        return timezone(timedelta(minutes=value))
    if value.upper() == "UTC":
        return timezone.utc
    return ZoneInfo(value)


def compile_date_format(date_format: str, config: ParserConfig) -> tuple[str, list[tuple[str, str]]]:
    """Translate a PHP-style date format into a regex body.

    Returns the pattern and the ``(group_name, token)`` pairs in order.
    Backslash escapes the next character; double-quoted runs are literal.
    """
    parts: list[str] = []
    groups: list[tuple[str, str]] = []
    i = 0
    while i < len(date_format):
        ch = date_format[i]
        if ch == "\\" and i + 1 < len(date_format):
            parts.append(re.escape(date_format[i + 1]))
            i += 2
            continue
        if ch == '"':
            end = date_format.find('"', i + 1)
            if end == -1:
                end = len(date_format)
            parts.append(re.escape(date_format[i + 1:end]))
            i = end + 1
            continue
        token = next((t for t in _TOKENS if date_format.startswith(t, i)), None)
        if token is None:
            parts.append(re.escape(ch))
            i += 1
            continue
        name = f"ts{len(groups)}{token}"
        if token in _DIGIT_PATTERNS:
            body = _DIGIT_PATTERNS[token]
        elif token == "F":
            body = _alternation(config.month_names)
        elif token == "xg":
            body = _alternation(config.month_names_genitive)
        elif token == "M":
            body = _alternation(config.month_abbreviations)
        elif token == "l":
            body = _alternation(config.weekday_names)
        else:  # "D"
            body = _alternation(tuple(n[:3] for n in config.weekday_names))
        parts.append(f"(?P<{name}>{body})")
        groups.append((name, token))
        i += len(token)
    return "".join(parts), groups


class TimestampParser:
    """Find and parse rendered signature timestamps for one wiki config."""

    __slots__ = ("config", "pattern", "regex", "_groups", "_tz", "_months")

    def __init__(self, config: ParserConfig = DEFAULT_CONFIG) -> None:
        self.config = config
        body, self._groups = compile_date_format(config.date_format, config)
        self.pattern = body + TIMEZONE_SUFFIX
        self.regex = re.compile(self.pattern)
        self._tz = _resolve_timezone(config.timezone)
        months: dict[str, int] = {}
        for names in (config.month_abbreviations, config.month_names_genitive, config.month_names):
            for number, name in enumerate(names, start=1):
                months[name] = number
        self._months = months

    def search(self, text: str, pos: int = 0) -> re.Match[str] | None:
        return self.regex.search(text, pos)

    def finditer(self, text: str) -> Iterator[re.Match[str]]:
        return self.regex.finditer(text)

    def parse(self, match: re.Match[str]) -> datetime | None:
        """Datetime for a match of ``self.regex`` (or a pattern embedding it).

        Returns None for impossible dates such as 30 February.
        """
        year, month, day, hour, minute, second = 1970, 1, 1, 0, 0, 0
        for name, token in self._groups:
            value = match.group(name)
            if value is None:
                continue
            if token in ("d", "j"):
                day = int(value)
            elif token in ("n", "m"):
                month = int(value)
            elif token in ("F", "M", "xg"):
                month = self._months[value]
            elif token == "Y":
                year = int(value)
            elif token == "y":
                year = 2000 + int(value)
            elif token in ("H", "G"):
                hour = int(value)
            elif token == "i":
                minute = int(value)
            elif token == "s":
                second = int(value)
        try:
            local = datetime(year, month, day, hour, minute, second, tzinfo=self._tz)
        except ValueError:
            return None
        return local.astimezone(timezone.utc)

    def parse_text(self, text: str) -> datetime | None:
        """Parse the first timestamp found in *text*."""
        match = self.search(text)
        if match is None:
            return None
        return self.parse(match)
