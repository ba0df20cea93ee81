"""Convert email HTML into lines of bold/italic text runs for direct drawing.

The conversion is an ordered list of :class:`TextRule` substitutions applied
one after another; order matters (scripts are removed before tags are
stripped, ``&amp;`` is decoded last). Formatting tags become private-use
marker characters so the generic tag-stripping rule leaves them alone.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Callable, List, Sequence, Union


logger = logging.getLogger(__name__)

BULLET = "• "

BOLD_OPEN = "\ue000"
BOLD_CLOSE = "\ue001"
ITALIC_OPEN = "\ue002"
ITALIC_CLOSE = "\ue003"

_MARKERS = {
    BOLD_OPEN: ("bold", True),
    BOLD_CLOSE: ("bold", False),
    ITALIC_OPEN: ("italic", True),
    ITALIC_CLOSE: ("italic", False),
}
_LITERAL_OPEN = {"bold": "<b>", "italic": "<i>"}
_CLOSE_FOR = {"bold": BOLD_CLOSE, "italic": ITALIC_CLOSE}


@dataclass(frozen=True)
class TextRule:
    name: str
    pattern: re.Pattern
    replacement: Union[str, Callable[[re.Match], str]]

    def apply(self, text: str) -> str:
        return self.pattern.sub(self.replacement, text)


def _rule(name: str, pattern: str, replacement, flags: int = re.IGNORECASE) -> TextRule:
    return TextRule(name, re.compile(pattern, flags), replacement)


HTML_TEXT_RULES: Sequence[TextRule] = (
    _rule("strip_scripts", r"<script\b[^>]*>.*?</script\s*>", "", re.IGNORECASE | re.DOTALL),
    _rule("strip_styles", r"<style\b[^>]*>.*?</style\s*>", "", re.IGNORECASE | re.DOTALL),
    _rule("line_breaks", r"<br\s*/?\s*>", "\n"),
    _rule("paragraph_close", r"</p\s*>", "\n\n"),
    _rule("div_close", r"</div\s*>", "\n"),
    _rule("headings", r"</?h[1-6]\b[^>]*>", "\n"),
    _rule("list_item_open", r"<li\b[^>]*>", "\n" + BULLET),
    _rule("list_item_close", r"</li\s*>", ""),
    _rule("bold_open", r"<(?:b|strong)(?:\s[^>]*)?>", BOLD_OPEN),
    _rule("bold_close", r"</(?:b|strong)\s*>", BOLD_CLOSE),
    _rule("italic_open", r"<(?:i|em)(?:\s[^>]*)?>", ITALIC_OPEN),
    _rule("italic_close", r"</(?:i|em)\s*>", ITALIC_CLOSE),
    _rule("strip_tags", r"<[^>]*>", ""),
    _rule("entity_nbsp", r"&nbsp;", " "),
    _rule("entity_lt", r"&lt;", "<"),
    _rule("entity_gt", r"&gt;", ">"),
    _rule("entity_quot", r"&quot;", '"'),
    _rule("entity_amp", r"&amp;", "&"),
)

RULES_BY_NAME = {rule.name: rule for rule in HTML_TEXT_RULES}


@dataclass(frozen=True)
class TextRun:
    text: str
    bold: bool = False
    italic: bool = False


FormattedLine = List[TextRun]


def apply_rules(html: str, rules: Sequence[TextRule] = HTML_TEXT_RULES) -> str:
    text = html or ""
    for rule in rules:
        text = rule.apply(text)
    return text


def _strip_markers(text: str) -> str:
    return "".join(ch for ch in text if ch not in _MARKERS)


def resolve_markers(text: str) -> str:
    """Pair formatting markers across the whole text.

    An opening marker with no later close becomes the literal tag text, a
    repeated open is dropped, and a close with nothing open is dropped.
    """
    out: List[str] = []
    state = {"bold": False, "italic": False}
    last_close = {kind: text.rfind(close) for kind, close in _CLOSE_FOR.items()}
    for index, ch in enumerate(text):
        marker = _MARKERS.get(ch)
        if marker is None:
            out.append(ch)
            continue
        kind, opening = marker
        if opening:
            if state[kind]:
                continue
            if index > last_close[kind]:
                out.append(_LITERAL_OPEN[kind])
                continue
            state[kind] = True
            out.append(ch)
        elif state[kind]:
            state[kind] = False
            out.append(ch)
    return "".join(out)


def split_runs(line: str, state: dict | None = None) -> FormattedLine:
    """Split a line of resolved markers into runs.

    *state* carries bold/italic across lines and is updated in place.
    """
    if state is None:
        state = {"bold": False, "italic": False}
    runs: FormattedLine = []
    buffer: List[str] = []

    def flush() -> None:
        if buffer:
            runs.append(TextRun("".join(buffer), state["bold"], state["italic"]))
            buffer.clear()

    for ch in line:
        marker = _MARKERS.get(ch)
        if marker is None:
            buffer.append(ch)
            continue
        flush()
        kind, opening = marker
        state[kind] = opening

    flush()
    return [run for run in runs if run.text]


def html_to_lines(html: str) -> List[FormattedLine]:
    """Render HTML to trimmed lines of runs; blank lines are empty lists.

    Consecutive blank lines collapse into one and leading/trailing blank lines
    are dropped.
    """
    try:
        text = resolve_markers(apply_rules(html))
    except Exception:
        logger.warning("HTML rule pass failed; falling back to tag stripping", exc_info=True)
        text = _strip_markers(re.sub(r"<[^>]*>", "", html or ""))

    lines: List[FormattedLine] = []
    state = {"bold": False, "italic": False}
    for raw_line in re.split(r"\r?\n", text):
        stripped = raw_line.strip()
        if not _strip_markers(stripped).strip():
            split_runs(stripped, state)
            if lines and lines[-1]:
                lines.append([])
            continue
        lines.append(split_runs(stripped, state))

    while lines and not lines[-1]:
        lines.pop()
    return lines


def plain_text_lines(text: str) -> List[FormattedLine]:
    """Plain text keeps its own line structure; no markup is interpreted."""
    lines: List[FormattedLine] = []
    for raw_line in re.split(r"\r?\n", (text or "").rstrip()):
        line = raw_line.rstrip()
        lines.append([TextRun(line)] if line else [])
    return lines


def lines_to_text(lines: Sequence[FormattedLine]) -> str:
    return "\n".join("".join(run.text for run in line) for line in lines)


__all__ = [
    "BULLET",
    "FormattedLine",
    "HTML_TEXT_RULES",
    "RULES_BY_NAME",
    "TextRule",
    "TextRun",
    "apply_rules",
    "html_to_lines",
    "lines_to_text",
    "plain_text_lines",
    "resolve_markers",
    "split_runs",
]
