"""Styled text - a growable sequence of attributed spans"""

import html
from typing import Iterable, Iterator, List, NamedTuple, Optional, Tuple


class Span(NamedTuple):
    text: str
    role: str = "text"              # semantic role, e.g. "digital", "title", "link"
    level: Optional[str] = None     # log level for level-dependent text
    size: float = 12.0
    link: Optional[str] = None

    def same_attributes(self, other: "Span") -> bool:
        return (self.role, self.level, self.size, self.link) == \
            (other.role, other.level, other.size, other.link)


class StyledText:
    """Attributed string built from spans.

    Adjacent spans with identical attributes are merged when appended, so
    building a text in several pieces gives the same spans as building it
    in one go.
    """

    __slots__ = ("_spans",)

    def __init__(self, spans: Iterable[Span] = ()):
        self._spans: List[Span] = []
        for span in spans:
            self.append_span(span)

    # --- building ---

    def append(self, text: str, role: str = "text", level: str = None,
               size: float = 12.0, link: str = None) -> "StyledText":
        return self.append_span(Span(text, role, level, size, link))

    def append_span(self, span: Span) -> "StyledText":
        if not span.text:
            return self
        if self._spans and self._spans[-1].same_attributes(span):
            last = self._spans[-1]
            self._spans[-1] = last._replace(text=last.text + span.text)
        else:
            self._spans.append(span)
        return self

    def extend(self, other: "StyledText") -> "StyledText":
        for span in other._spans:
            self.append_span(span)
        return self

    def copy(self) -> "StyledText":
        return StyledText(self._spans)

    def __add__(self, other: "StyledText") -> "StyledText":
        if not isinstance(other, StyledText):
            return NotImplemented
        return self.copy().extend(other)

    # --- reading ---

    @property
    def spans(self) -> Tuple[Span, ...]:
        return tuple(self._spans)

    @property
    def plain(self) -> str:
        return "".join(s.text for s in self._spans)

    def links(self) -> List[Tuple[str, str]]:
        """(text, url) pairs in order of appearance."""
        return [(s.text, s.link) for s in self._spans if s.link]

    def __len__(self) -> int:
        return sum(len(s.text) for s in self._spans)

    def __bool__(self) -> bool:
        return bool(self._spans)

    def __iter__(self) -> Iterator[Span]:
        return iter(self._spans)

    def __eq__(self, other) -> bool:
        if not isinstance(other, StyledText):
            return NotImplemented
        return self._spans == other._spans

    def __repr__(self) -> str:
        preview = self.plain[:40]
        return f"StyledText({preview!r}, spans={len(self._spans)})"

    # --- output formats ---

    def to_markdown(self) -> str:
        parts = []
        for span in self._spans:
            if span.link:
                parts.append(f"[{span.text}]({span.link})")
            else:
                parts.append(span.text)
        return "".join(parts)

    def to_html(self) -> str:
        parts = []
        for span in self._spans:
            classes = [span.role]
            if span.level:
                classes.append(f"level-{span.level}")
            body = html.escape(span.text)
            if span.link:
                body = f'<a href="{html.escape(span.link)}">{body}</a>'
            parts.append(f'<span class="{" ".join(classes)}">{body}</span>')
        return "".join(parts)

    def to_ansi(self) -> str:
        parts = []
        for span in self._spans:
            code = _ANSI_LEVEL.get(span.level) if span.role == "text" else _ANSI_ROLE.get(span.role)
            if span.link:
                code = _ANSI_ROLE["link"]
            if code:
                parts.append(f"\x1b[{code}m{span.text}\x1b[0m")
            else:
                parts.append(span.text)
        return "".join(parts)


_ANSI_ROLE = {
    "digital": "2",
    "title": "2",
    "link": "4;34",
    "status_pending": "33",
    "status_success": "32",
    "status_failure": "31",
    "json_key": "1",
    "json_string": "31",
    "json_other": "34",
    "json_null": "35",
    "json_punctuation": "2",
}

_ANSI_LEVEL = {
    "trace": "2",
    "notice": "33",
    "warning": "33",
    "error": "31",
    "critical": "1;31",
}
