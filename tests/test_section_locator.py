"""Tests for talkparse.section_locator module."""
from bs4 import BeautifulSoup
from bs4.element import Tag

from talkparse.discussion import Discussion, parse_discussion
from talkparse.parsing_types import Err, Ok, SectionLocation
from talkparse.section_locator import locate_section, source_headings

ALICE = '<a href="/wiki/User:Alice">Alice</a>'
BOB = '<a href="/wiki/User:Bob">Bob</a>'
CAROL = '<a href="/wiki/User:Carol">Carol</a>'
DATE1 = "12:00, 1 January 2020 (UTC)"
DATE2 = "13:00, 1 January 2020 (UTC)"
DATE3 = "14:00, 1 January 2020 (UTC)"

HTML = (
    f"<h2>One</h2><p>Alpha text. {ALICE} {DATE1}</p>"
    f"<h3>Sub</h3><p>Beta text. {BOB} {DATE2}</p>"
    f"<h2>Two</h2><p>Gamma text. {CAROL} {DATE3}</p>"
)
SOURCE = (
    "== One ==\n"
    f"Alpha text. [[User:Alice|Alice]] {DATE1}\n\n"
    "=== Sub ===\n"
    f"Beta text. [[User:Bob|Bob]] {DATE2}\n\n"
    "== Two ==\n"
    f"Gamma text. [[User:Carol|Carol]] {DATE3}\n"
)


def _parse(html: str) -> Discussion:
    soup = BeautifulSoup(f'<div class="mw-parser-output">{html}</div>', "html.parser")
    root = soup.div
    assert isinstance(root, Tag)
    return parse_discussion(root)


def _located(discussion: Discussion, index: int, source: str) -> SectionLocation:
    result = discussion.locate_section(discussion.sections[index], source)
    assert isinstance(result, Ok), result
    return result.value


class TestSourceHeadings:
    def test_levels_and_headlines(self) -> None:
        headings = source_headings(SOURCE)
        assert [(h.level, h.headline) for h in headings] == [(2, "One"), (3, "Sub"), (2, "Two")]
        assert headings[0].content_start == len("== One ==\n")

    def test_markup_removed_from_headline(self) -> None:
        (heading,) = source_headings("== Talk about [[Main Page|the main page]] ==\n")
        assert heading.headline == "Talk about the main page"

    def test_commented_heading_skipped(self) -> None:
        headings = source_headings("<!--\n== Old ==\n-->\n== New ==\n")
        assert [h.headline for h in headings] == ["New"]


class TestLocateSection:
    def test_top_level_section(self) -> None:
        one = _located(_parse(HTML), 0, SOURCE)
        assert (one.start, one.level, one.headline) == (0, 2, "One")
        assert one.content_start == len("== One ==\n")
        assert one.end == SOURCE.index("== Two ==")
        assert one.first_chunk_end == SOURCE.index("=== Sub") - 1
        assert one.code == SOURCE[:one.end]

    def test_subsection(self) -> None:
        sub = _located(_parse(HTML), 1, SOURCE)
        assert sub.start == SOURCE.index("=== Sub")
        assert sub.level == 3
        assert sub.end == SOURCE.index("== Two ==")
        assert sub.first_chunk_end == sub.end - 1

    def test_last_section_runs_to_end(self) -> None:
        two = _located(_parse(HTML), 2, SOURCE)
        assert two.start == SOURCE.index("== Two ==")
        assert two.end == len(SOURCE)
        assert two.first_chunk_end == len(SOURCE)

    def test_renamed_headline_found_by_comments(self) -> None:
        source = SOURCE.replace("== One ==", "== One (renamed) ==")
        one = _located(_parse(HTML), 0, source)
        assert one.start == 0
        assert one.headline == "One (renamed)"
        assert 1.0 < one.score < 3.0

    def test_commented_heading_does_not_shift_match(self) -> None:
        prefix = "<!--\n== One ==\n-->\n"
        one = _located(_parse(HTML), 0, prefix + SOURCE)
        assert one.start == len(prefix)

    def test_cached(self) -> None:
        discussion = _parse(HTML)
        section = discussion.sections[0]
        assert discussion.locate_section(section, SOURCE) is discussion.locate_section(section, SOURCE)


class TestFailures:
    def test_no_headings(self) -> None:
        discussion = _parse(HTML)
        result = locate_section(discussion.sections[0], "Just text.\n", discussion)
        assert isinstance(result, Err)
        assert result.error.reason == "no_headings"
        assert result.error.section_id == 0

    def test_no_match(self) -> None:
        discussion = _parse(HTML)
        result = locate_section(discussion.sections[2], "== Other ==\nNothing here.\n", discussion)
        assert isinstance(result, Err)
        assert result.error.reason == "no_match"
        assert result.error.candidates == 1
