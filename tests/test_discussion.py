"""Tests for talkparse.discussion module."""
import orjson
from bs4 import BeautifulSoup
from bs4.element import Tag

from talkparse.config import ParserConfig
from talkparse.discussion import Discussion, parse_discussion
from talkparse.html_utils import find_content_root, parse_html

ALICE = '<a href="/wiki/User:Alice">Alice</a>'
BOB = '<a href="/wiki/User:Bob">Bob</a>'
CAROL = '<a href="/wiki/User:Carol">Carol</a>'
DAVE = '<a href="/wiki/User:Dave">Dave</a>'
DATE1 = "12:00, 1 January 2020 (UTC)"
DATE2 = "13:00, 1 January 2020 (UTC)"
DATE3 = "14:00, 1 January 2020 (UTC)"
DATE4 = "15:00, 1 January 2020 (UTC)"

ALICE_BOB_HTML = (
    '<div class="mw-parser-output"><ul><li>Hello. --'
    f"{ALICE} {DATE1}<ul><li>Reply. --{BOB} {DATE2}"
    "</li></ul></li></ul></div>"
)


def _root(html: str) -> Tag:
    soup = BeautifulSoup(f'<div class="mw-parser-output">{html}</div>', "html.parser")
    root = soup.div
    assert isinstance(root, Tag)
    return root


def _parse(html: str, config: ParserConfig | None = None) -> Discussion:
    return parse_discussion(_root(html), config or ParserConfig())


def _summary(discussion: Discussion) -> list[tuple]:
    return [
        (c.author, c.timestamp, c.level, len(c.elements), c.text)
        for c in discussion.comments
    ]


class TestAliceBob:
    def test_comments(self) -> None:
        discussion = parse_discussion(find_content_root(parse_html(ALICE_BOB_HTML)))
        alice, bob = discussion.comments
        assert (alice.author, alice.level, alice.text) == ("Alice", 1, "Hello.")
        assert (bob.author, bob.level, bob.text) == ("Bob", 2, "Reply.")
        assert alice.timestamp_text == DATE1
        assert not alice.follows_heading
        assert discussion.diagnostics == []

    def test_parent_and_children(self) -> None:
        discussion = parse_discussion(find_content_root(parse_html(ALICE_BOB_HTML)))
        alice, bob = discussion.comments
        assert discussion.parent(bob) is alice
        assert discussion.parent(alice) is None
        assert discussion.children(alice) == [bob]
        assert discussion.children(bob) == []

    def test_iteration(self) -> None:
        discussion = parse_discussion(find_content_root(parse_html(ALICE_BOB_HTML)))
        assert len(discussion) == 2
        assert [c.id for c in discussion] == [0, 1]


class TestProperties:
    NESTED = (
        f"<ul><li>A. {ALICE} {DATE1}"
        f"<ul><li>B. {BOB} {DATE2}"
        f"<ul><li>C. {CAROL} {DATE3}</li></ul></li></ul></li>"
        f"<li>D. {DAVE} {DATE4}</li></ul>"
    )

    def test_count_and_level(self) -> None:
        discussion = _parse(self.NESTED)
        assert len(discussion.comments) == 4
        assert [c.level for c in discussion.comments] == [1, 2, 3, 1]
        assert [c.author for c in discussion.comments] == ["Alice", "Bob", "Carol", "Dave"]

    def test_idempotent(self) -> None:
        root = _root(self.NESTED)
        first = parse_discussion(root)
        second = parse_discussion(root)
        assert _summary(first) == _summary(second)

    def test_parent_levels(self) -> None:
        discussion = _parse(self.NESTED)
        for comment in discussion.comments:
            parent = discussion.parent(comment)
            if parent is None:
                continue
            assert parent.level < comment.level
            assert discussion.section_of(parent) is discussion.section_of(comment)
        alice, bob, carol, dave = discussion.comments
        assert discussion.parent(carol) is bob
        assert discussion.parent(dave) is None
        assert discussion.children(alice, indirect=True) == [bob, carol]

    def test_sibling_shares_parent(self) -> None:
        discussion = _parse(
            f"<p>Topic start. {ALICE} {DATE1}</p>"
            f"<dl><dd>One. {BOB} {DATE2}</dd><dd>Two. {CAROL} {DATE3}</dd></dl>"
        )
        alice, bob, carol = discussion.comments
        assert discussion.parent(bob) is alice
        assert discussion.parent(carol) is alice
        assert discussion.children(alice) == [bob, carol]


class TestOutdent:
    def test_outdent_template(self) -> None:
        discussion = _parse(
            f"<ul><li>A. {ALICE} {DATE1}<ul><li>B. {BOB} {DATE2}</li></ul></li></ul>"
            '<div class="outdent-template">┌──────┘</div>'
            f"<p>C. {CAROL} {DATE3}</p>"
        )
        alice, bob, carol = discussion.comments
        assert carol.is_outdented
        assert carol.level == 0
        assert discussion.parent(carol) is bob
        assert not bob.is_outdented

    def test_text_outdent(self) -> None:
        discussion = _parse(
            f"<dl><dd>A. {ALICE} {DATE1}</dd></dl>"
            f"<p>┌──┘</p><p>B. {BOB} {DATE2}</p>"
        )
        alice, bob = discussion.comments
        assert bob.is_outdented
        assert discussion.parent(bob) is alice


class TestSections:
    HTML = (
        f"<h2>One</h2><p>A. {ALICE} {DATE1}</p>"
        f"<h3>Sub</h3><p>B. {BOB} {DATE2}</p>"
        f"<h2>Two</h2><p>C. {CAROL} {DATE3}</p>"
    )

    def test_sections(self) -> None:
        discussion = _parse(self.HTML)
        one, sub, two = discussion.sections
        a, b, c = discussion.comments
        assert [s.headline for s in discussion.sections] == ["One", "Sub", "Two"]
        assert one.comments == (a, b)
        assert sub.comments == (b,)
        assert two.comments == (c,)
        assert discussion.section_of(a) is one
        assert discussion.section_of(b) is sub
        assert discussion.section_of(c) is two

    def test_parent_section(self) -> None:
        discussion = _parse(self.HTML)
        one, sub, two = discussion.sections
        assert discussion.parent_section(sub) is one
        assert discussion.parent_section(one) is None
        assert discussion.parent_section(two) is None

    def test_opens_section(self) -> None:
        discussion = _parse(self.HTML)
        assert all(c.follows_heading and c.opens_section for c in discussion.comments)

    def test_parent_does_not_cross_sections(self) -> None:
        discussion = _parse(
            f"<h2>One</h2><dl><dd>A. {ALICE} {DATE1}</dd></dl>"
            f"<h2>Two</h2><dl><dd><dl><dd>B. {BOB} {DATE2}</dd></dl></dd></dl>"
        )
        _, bob = discussion.comments
        assert discussion.parent(bob) is None


class TestDiagnostics:
    def test_failures_are_isolated(self) -> None:
        filler = "".join(f"<div>Paragraph {i}.</div>" for i in range(10))
        discussion = _parse(
            f"<p>No author here {DATE1}</p>"
            f"{filler}<div><p>Deep. {BOB} {DATE2}</p></div>"
            f"<p>Fine. {CAROL} {DATE3}</p>",
            ParserConfig(walk_step_limit=5),
        )
        assert [c.author for c in discussion.comments] == ["Carol"]
        reasons = [d.reason for d in discussion.diagnostics]
        assert reasons == ["author_unknown", "walk_limit"]
        assert all(d.kind == "boundary" for d in discussion.diagnostics)

    def test_to_dict_is_json_safe(self) -> None:
        discussion = parse_discussion(find_content_root(parse_html(ALICE_BOB_HTML)))
        data = discussion.to_dict()
        decoded = orjson.loads(orjson.dumps(data))
        assert [c["author"] for c in decoded["comments"]] == ["Alice", "Bob"]
        assert decoded["comments"][1]["parent"] == 0
        assert decoded["comments"][0]["timestamp"] == "2020-01-01T12:00:00+00:00"
        assert decoded["sections"] == []
