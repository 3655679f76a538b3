"""Tests for talkparse.timestamp module."""
from datetime import UTC, datetime

from talkparse.config import ParserConfig
from talkparse.timestamp import TimestampParser, compile_date_format

GERMAN_MONTHS = (
    "Januar", "Februar", "März", "April", "Mai", "Juni", "Juli",
    "August", "September", "Oktober", "November", "Dezember",
)


class TestCompileDateFormat:
    def test_groups_in_order(self) -> None:
        _, groups = compile_date_format("H:i, j F Y", ParserConfig())
        assert [token for _, token in groups] == ["H", "i", "j", "F", "Y"]

    def test_escaped_and_quoted_literals(self) -> None:
        pattern, groups = compile_date_format('j "de" F \\Y', ParserConfig())
        assert [token for _, token in groups] == ["j", "F"]
        assert "de" in pattern
        assert pattern.endswith("Y")


class TestTimestampParser:
    def test_english_default(self) -> None:
        parser = TimestampParser()
        assert parser.parse_text("Alice 12:00, 1 January 2020 (UTC)") == datetime(
            2020, 1, 1, 12, 0, tzinfo=UTC
        )

    def test_match_spans_timezone_suffix(self) -> None:
        parser = TimestampParser()
        m = parser.search("signed 09:05, 23 March 2021 (UTC) later")
        assert m is not None
        assert m.group(0) == "09:05, 23 March 2021 (UTC)"

    def test_requires_timezone_suffix(self) -> None:
        assert TimestampParser().search("12:00, 1 January 2020") is None

    def test_finditer(self) -> None:
        parser = TimestampParser()
        text = "12:00, 1 January 2020 (UTC) and 13:30, 2 February 2020 (UTC)"
        assert len(list(parser.finditer(text))) == 2

    def test_impossible_date(self) -> None:
        assert TimestampParser().parse_text("12:00, 30 February 2020 (UTC)") is None

    def test_minute_offset_timezone(self) -> None:
        parser = TimestampParser(ParserConfig(timezone=60))
        assert parser.parse_text("12:00, 1 January 2020 (CET)") == datetime(
            2020, 1, 1, 11, 0, tzinfo=UTC
        )

    def test_localized_format(self) -> None:
        config = ParserConfig(
            date_format="H:i, j. F Y",
            month_names=GERMAN_MONTHS,
            month_names_genitive=GERMAN_MONTHS,
            month_abbreviations=tuple(m[:3] for m in GERMAN_MONTHS),
            timezone=60,
        )
        parser = TimestampParser(config)
        assert parser.parse_text("Bob 18:30, 4. März 2021 (CET)") == datetime(
            2021, 3, 4, 17, 30, tzinfo=UTC
        )

    def test_no_timestamp(self) -> None:
        assert TimestampParser().parse_text("no date here") is None
