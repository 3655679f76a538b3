"""Tests for talkparse.source_locator module."""
from bs4 import BeautifulSoup
from bs4.element import Tag

from talkparse.config import ParserConfig
from talkparse.discussion import Discussion, parse_discussion
from talkparse.parsing_types import Err, Ok, SourceLocation
from talkparse.source_locator import (
    find_reply_place,
    locate_comment,
    split_signature_literal,
    strip_bad_beginnings,
    strip_heading,
)
from talkparse.textmatch import word_overlap
from talkparse.wikitext import remove_wiki_markup

ALICE = '<a href="/wiki/User:Alice">Alice</a>'
BOB = '<a href="/wiki/User:Bob">Bob</a>'
DATE1 = "12:00, 1 January 2020 (UTC)"
DATE2 = "13:00, 1 January 2020 (UTC)"

ALICE_BOB_HTML = (
    f"<ul><li>Hello. --{ALICE} {DATE1}"
    f"<ul><li>Reply. --{BOB} {DATE2}</li></ul></li></ul>"
)
ALICE_BOB_SOURCE = (
    f"* Hello. --[[User:Alice|Alice]] {DATE1}\n"
    f"** Reply. --[[User:Bob|Bob]] {DATE2}\n"
)

TOPIC_HTML = (
    '<h2><span class="mw-headline">Topic</span></h2>'
    f"<p>Opening post. {ALICE} {DATE1}</p>"
    f"<dl><dd>Answer here. {BOB} {DATE2}</dd></dl>"
)
TOPIC_SOURCE = (
    "== Topic ==\n"
    f"Opening post. [[User:Alice|Alice]] {DATE1}\n"
    f":Answer here. [[User:Bob|Bob]] {DATE2}\n"
)


def _parse(html: str) -> Discussion:
    soup = BeautifulSoup(f'<div class="mw-parser-output">{html}</div>', "html.parser")
    root = soup.div
    assert isinstance(root, Tag)
    return parse_discussion(root)


def _located(discussion: Discussion, index: int, source: str) -> SourceLocation:
    result = discussion.locate(discussion.comments[index], source)
    assert isinstance(result, Ok), result
    return result.value


class TestAliceBobScenario:
    def test_indentation(self) -> None:
        discussion = _parse(ALICE_BOB_HTML)
        alice = _located(discussion, 0, ALICE_BOB_SOURCE)
        bob = _located(discussion, 1, ALICE_BOB_SOURCE)
        assert alice.indentation == "*"
        assert bob.indentation == "**"
        assert alice.reply_indentation == "*:"
        assert bob.reply_indentation == "**:"

    def test_offsets(self) -> None:
        discussion = _parse(ALICE_BOB_HTML)
        alice = _located(discussion, 0, ALICE_BOB_SOURCE)
        assert alice.line_start == 0
        assert alice.code == "Hello."
        assert ALICE_BOB_SOURCE[alice.start:alice.end] == alice.code
        assert alice.signature_literal == f" --[[User:Alice|Alice]] {DATE1}"
        assert ALICE_BOB_SOURCE[alice.end:alice.signature_end] == alice.signature_literal
        bob = _located(discussion, 1, ALICE_BOB_SOURCE)
        assert bob.line_start == ALICE_BOB_SOURCE.index("**")
        assert bob.code == "Reply."
        assert not bob.chained

    def test_round_trip(self) -> None:
        discussion = _parse(ALICE_BOB_HTML)
        for comment in discussion.comments:
            match discussion.locate(comment, ALICE_BOB_SOURCE):
                case Ok(value=loc):
                    assert 0 <= loc.start <= loc.end <= len(ALICE_BOB_SOURCE)
                    overlap = word_overlap(comment.text, remove_wiki_markup(loc.code))
                    assert overlap >= 0.67
                case Err(error=error):
                    raise AssertionError(error)

    def test_cached(self) -> None:
        discussion = _parse(ALICE_BOB_HTML)
        comment = discussion.comments[0]
        assert discussion.locate(comment, ALICE_BOB_SOURCE) is discussion.locate(comment, ALICE_BOB_SOURCE)


class TestHeadings:
    def test_section_opening_comment(self) -> None:
        discussion = _parse(TOPIC_HTML)
        alice = _located(discussion, 0, TOPIC_SOURCE)
        assert alice.heading is not None
        assert alice.heading.level == 2
        assert alice.heading.headline == "Topic"
        assert alice.heading.start == 0
        assert alice.code == "Opening post."
        assert alice.indentation == ""
        assert alice.line_start == TOPIC_SOURCE.index("Opening")
        assert discussion.diagnostics == []

    def test_reply_in_section(self) -> None:
        discussion = _parse(TOPIC_HTML)
        bob = _located(discussion, 1, TOPIC_SOURCE)
        assert bob.heading is None
        assert bob.indentation == ":"
        assert bob.reply_indentation == "::"
        assert bob.code == "Answer here."

    def test_ambiguous_section_is_recorded(self) -> None:
        discussion = _parse(f"<p>Opening post. {ALICE} {DATE1}</p>")
        result = locate_comment(discussion.comments[0], TOPIC_SOURCE, discussion, discussion.config)
        assert isinstance(result, Ok)
        (diagnostic,) = discussion.diagnostics
        assert diagnostic.kind == "ambiguous_section"
        assert diagnostic.reason == "heading_found"


class TestFailures:
    def test_no_candidates(self) -> None:
        discussion = _parse(f"<p>Hello. {ALICE} {DATE1}</p>")
        result = discussion.locate(discussion.comments[0], f"Hello. [[User:Bob|Bob]] {DATE1}\n")
        assert isinstance(result, Err)
        assert result.error.reason == "no_candidates"
        assert result.error.comment_id == 0

    def test_no_match(self) -> None:
        discussion = _parse(f"<p>Hello. {ALICE} {DATE1}</p>")
        source = (
            "Unrelated words here. [[User:Zed|Zed]] 11:00, 1 January 2020 (UTC)\n"
            f"Completely different stuff. [[User:Alice|Alice]] {DATE1}\n"
        )
        result = discussion.locate(discussion.comments[0], source)
        assert isinstance(result, Err)
        assert result.error.reason == "no_match"
        assert result.error.candidates == 1

    def test_chained_fallback(self) -> None:
        discussion = _parse(ALICE_BOB_HTML)
        source = (
            f"* Hello. --[[User:Alice|Alice]] {DATE1}\n"
            f"** Totally rewritten since rendering. --[[User:Bob|Bob]] {DATE2}\n"
        )
        bob = _located(discussion, 1, source)
        assert bob.chained
        assert bob.overlap == 0.0
        assert bob.indentation == "**"

    def test_duplicate_signature_picks_matching_text(self) -> None:
        discussion = _parse(f"<p>Second copy. {ALICE} {DATE1}</p>")
        source = (
            f"First copy of something else. [[User:Alice|Alice]] {DATE1}\n"
            f"Second copy. [[User:Alice|Alice]] {DATE1}\n"
        )
        loc = _located(discussion, 0, source)
        assert loc.code == "Second copy."
        assert loc.start == source.index("Second")


class TestCodeAdjustment:
    def test_strip_heading(self) -> None:
        code, base, heading = strip_heading("intro\n=== Sub ===\nBody", 100)
        assert code == "Body"
        assert base == 100 + len("intro\n=== Sub ===\n")
        assert heading is not None
        assert (heading.level, heading.headline, heading.start) == (3, "Sub", 106)

    def test_strip_bad_beginnings(self) -> None:
        code, base = strip_bad_beginnings("<!-- x -->\n----\nText", 10)
        assert code == "Text"
        assert base == 26

    def test_split_signature_literal(self) -> None:
        body, moved = split_signature_literal("Comment <small>")
        assert body == "Comment"
        assert moved == " <small>"

    def test_split_entities_and_dashes(self) -> None:
        body, moved = split_signature_literal("I agree.&nbsp;--")
        assert body == "I agree."
        assert body + moved == "I agree.&nbsp;--"

    def test_split_keeps_plain_text(self) -> None:
        assert split_signature_literal("Plain text.") == ("Plain text.", "")

    def test_custom_indentation_char(self) -> None:
        config = ParserConfig(default_indentation_char="*")
        discussion = parse_discussion(
            BeautifulSoup(
                f'<div class="mw-parser-output">{ALICE_BOB_HTML}</div>', "html.parser"
            ).div,  # type: ignore[arg-type]
            config,
        )
        loc = discussion.locate(discussion.comments[0], ALICE_BOB_SOURCE)
        assert isinstance(loc, Ok)
        assert loc.value.reply_indentation == "**"


class TestLastLineIndentation:
    HTML = (
        f"<dl><dd>Start here. {ALICE} {DATE1}</dd></dl>"
        f"<dl><dd>Side note inside my reply. My actual reply text here. {BOB} {DATE2}</dd></dl>"
    )
    SOURCE = (
        f":Start here. [[User:Alice|Alice]] {DATE1}\n"
        "::Side note inside my reply.\n"
        f":My actual reply text here. [[User:Bob|Bob]] {DATE2}\n"
    )

    def test_shorter_last_line_run_becomes_indentation(self) -> None:
        discussion = _parse(self.HTML)
        bob = _located(discussion, 1, self.SOURCE)
        assert bob.indentation == ":"
        assert bob.reply_indentation == "::"
        assert bob.line_start == self.SOURCE.index("::Side")

    def test_extra_markers_stay_in_code(self) -> None:
        discussion = _parse(self.HTML)
        bob = _located(discussion, 1, self.SOURCE)
        assert self.SOURCE[bob.line_start:bob.start] == bob.indentation
        assert bob.code == ":Side note inside my reply.\n:My actual reply text here."
        assert bob.indentation + bob.code == self.SOURCE[bob.line_start:bob.end]


class TestChainedGuard:
    def test_repeated_author_and_timestamp_do_not_chain(self) -> None:
        discussion = _parse(
            f"<p>One thing. {ALICE} {DATE1}</p>"
            f"<p>Two things. {ALICE} {DATE1}</p>"
            f"<p>Three things. {ALICE} {DATE1}</p>"
        )
        source = (
            f"One thing. [[User:Alice|Alice]] {DATE1}\n"
            f"Two things. [[User:Alice|Alice]] {DATE1}\n"
            f"Rewritten completely. [[User:Alice|Alice]] {DATE1}\n"
        )
        result = discussion.locate(discussion.comments[2], source)
        assert isinstance(result, Err)
        assert result.error.reason == "no_match"
        assert result.error.candidates == 3


class TestReplyPlace:
    def test_reply_goes_after_thread(self) -> None:
        discussion = _parse(ALICE_BOB_HTML)
        alice = _located(discussion, 0, ALICE_BOB_SOURCE)
        bob = _located(discussion, 1, ALICE_BOB_SOURCE)
        assert alice.reply_offset == len(ALICE_BOB_SOURCE)
        assert alice.reply_line_indentation == "**"
        assert bob.reply_offset == len(ALICE_BOB_SOURCE)
        assert bob.reply_line_indentation == "**:"

    def test_reply_stops_at_shallower_comment(self) -> None:
        discussion = _parse(ALICE_BOB_HTML)
        source = ALICE_BOB_SOURCE + "* Other. [[User:Carol|Carol]] 14:00, 1 January 2020 (UTC)\n"
        alice = _located(discussion, 0, source)
        assert alice.reply_offset == source.index("* Other")
        assert alice.reply_line_indentation == "**"

    def test_section_opener_reply(self) -> None:
        discussion = _parse(TOPIC_HTML)
        alice = _located(discussion, 0, TOPIC_SOURCE)
        assert alice.reply_offset == len(TOPIC_SOURCE)
        assert alice.reply_line_indentation == ":"

    def test_outdent_template_on_next_line(self) -> None:
        discussion = _parse(f"<ul><li>First point. {ALICE} {DATE1}</li></ul>")
        source = (
            f"* First point. [[User:Alice|Alice]] {DATE1}\n"
            f"{{{{od}}}}Second point. [[User:Bob|Bob]] {DATE2}\n"
        )
        alice = _located(discussion, 0, source)
        assert alice.reply_offset is None
        assert alice.reply_line_indentation == "*:"

    def test_outdent_template_later_puts_reply_below_comment(self) -> None:
        discussion = _parse(f"<ul><li>First point. {ALICE} {DATE1}</li></ul>")
        source = (
            f"* First point. [[User:Alice|Alice]] {DATE1}\n"
            f"** Reply one. [[User:Bob|Bob]] {DATE2}\n"
            "{{od}}Later. [[User:Carol|Carol]] 14:00, 1 January 2020 (UTC)\n"
        )
        alice = _located(discussion, 0, source)
        assert alice.reply_offset == source.index("** Reply one")
        assert alice.reply_line_indentation == "*:"

    def test_find_reply_place_directly(self) -> None:
        source = f"* Hi. [[User:Alice|Alice]] {DATE1}\n"
        end = source.index(" [[User")
        place = find_reply_place(source, end, len(source) - 1, "*:")
        assert place == (len(source), "*:")
