"""Tests for the HTML-to-text rule pipeline used by the fpdf2 renderer."""

from __future__ import annotations

import pytest

from html_text import (
    BOLD_CLOSE,
    BOLD_OPEN,
    BULLET,
    ITALIC_CLOSE,
    ITALIC_OPEN,
    RULES_BY_NAME,
    TextRun,
    apply_rules,
    html_to_lines,
    lines_to_text,
    plain_text_lines,
)


@pytest.mark.parametrize(
    "rule, source, expected",
    [
        ("strip_scripts", "a<script type='x'>alert(1)</script>b", "ab"),
        ("strip_styles", "a<STYLE>p { color: red; }</STYLE>b", "ab"),
        ("line_breaks", "a<br>b<BR/>c<br />d", "a\nb\nc\nd"),
        ("paragraph_close", "one</p>two", "one\n\ntwo"),
        ("div_close", "one</div>two", "one\ntwo"),
        ("headings", "<h2 class='t'>Title</h2>", "\nTitle\n"),
        ("list_item_open", "<li class='x'>item", "\n" + BULLET + "item"),
        ("list_item_close", "item</li>", "item"),
        ("bold_open", "<strong style='x'>", BOLD_OPEN),
        ("bold_close", "</b>", BOLD_CLOSE),
        ("italic_open", "<em>", ITALIC_OPEN),
        ("italic_close", "</i>", ITALIC_CLOSE),
        ("strip_tags", "<span>text</span>", "text"),
        ("entity_nbsp", "a&nbsp;b", "a b"),
        ("entity_lt", "&lt;", "<"),
        ("entity_gt", "&gt;", ">"),
        ("entity_quot", "&quot;q&quot;", '"q"'),
        ("entity_amp", "&amp;", "&"),
    ],
)
def test_each_rule_in_isolation(rule: str, source: str, expected: str) -> None:
    assert RULES_BY_NAME[rule].apply(source) == expected


def test_bold_rule_does_not_match_br_or_body() -> None:
    assert RULES_BY_NAME["bold_open"].apply("<br><body>") == "<br><body>"


def test_amp_is_decoded_last() -> None:
    assert apply_rules("&amp;lt;tag&amp;gt;") == "&lt;tag&gt;"


def test_paragraphs_and_bold_runs() -> None:
    lines = html_to_lines("<p>Hello <b>World</b></p><p>Second</p>")

    assert lines == [
        [TextRun("Hello "), TextRun("World", bold=True)],
        [],
        [TextRun("Second")],
    ]


def test_unterminated_bold_renders_literal_tag() -> None:
    assert lines_to_text(html_to_lines("<b>Hello")) == "<b>Hello"


def test_many_bold_tags_pair_correctly() -> None:
    html = "<b>x</b> " * 20000 + "<b>tail" + " <b>y" * 20000
    text = lines_to_text(html_to_lines(html))

    assert text.count("<b>") == 20001
    assert text.startswith("x x ")
    assert text.endswith("<b>y")


def test_late_close_keeps_earlier_open_bold() -> None:
    lines = html_to_lines("<b>one" + " two" * 5000 + "</b> three <b>four")

    assert lines[0][0].bold
    assert lines_to_text(lines).endswith(" three <b>four")


def test_bold_spanning_line_break_stays_bold() -> None:
    lines = html_to_lines("<b>one<br>two</b> three")

    assert lines == [
        [TextRun("one", bold=True)],
        [TextRun("two", bold=True), TextRun(" three")],
    ]


def test_nested_bold_italic() -> None:
    lines = html_to_lines("<b>a <i>b</i></b>")
    assert lines == [[TextRun("a ", bold=True), TextRun("b", bold=True, italic=True)]]


def test_list_items_become_bullets() -> None:
    text = lines_to_text(html_to_lines("<ul><li>One</li><li>Two</li></ul>"))
    assert text == f"{BULLET}One\n{BULLET}Two"


def test_scripts_and_styles_are_removed() -> None:
    html = "<style>.x{}</style><p>Visible</p><script>var s = '<b>';</script>"
    assert lines_to_text(html_to_lines(html)) == "Visible"


def test_blank_lines_collapse() -> None:
    assert lines_to_text(html_to_lines("a<br><br><br><br>b")) == "a\n\nb"


def test_plain_text_keeps_line_structure() -> None:
    assert plain_text_lines("first\n\n<b>second</b>\n") == [
        [TextRun("first")],
        [],
        [TextRun("<b>second</b>")],
    ]
