"""JSON pretty printer with pluggable output

``JSONPrinter`` walks a parsed JSON value (sorted keys, two-space indent)
and reports each token with its element kind to a renderer.
"""

import html
import json
from enum import Enum
from typing import Any, List

from .styled_text import StyledText


class JSONElement(Enum):
    PUNCTUATION = "json_punctuation"
    KEY = "json_key"
    VALUE_STRING = "json_string"
    VALUE_OTHER = "json_other"
    NULL = "json_null"


_HTML_CLASSES = {
    JSONElement.PUNCTUATION: "p",
    JSONElement.KEY: "k",
    JSONElement.VALUE_STRING: "s",
    JSONElement.VALUE_OTHER: "o",
    JSONElement.NULL: "n",
}


class PlainJSONRenderer:
    def __init__(self):
        self._parts: List[str] = []

    def append(self, string: str, element: JSONElement):
        self._parts.append(string)

    def indent(self, count: int):
        self._parts.append(" " * count)

    def newline(self):
        self._parts.append("\n")

    def make(self) -> str:
        return "".join(self._parts)


class HTMLJSONRenderer(PlainJSONRenderer):
    def append(self, string: str, element: JSONElement):
        self._parts.append(f'<span class="{_HTML_CLASSES[element]}">{html.escape(string)}</span>')


class StyledJSONRenderer:
    def __init__(self, size: float = 12.0):
        self.size = size
        self.output = StyledText()

    def append(self, string: str, element: JSONElement):
        self.output.append(string, role=element.value, size=self.size)

    def indent(self, count: int):
        self.append(" " * count, JSONElement.PUNCTUATION)

    def newline(self):
        self.append("\n", JSONElement.PUNCTUATION)

    def make(self) -> StyledText:
        return self.output


class JSONPrinter:
    def __init__(self, renderer):
        self.renderer = renderer
        self.indentation = 0

    def render(self, value: Any):
        self._print(value, is_free=True)
        return self.renderer.make()

    def _print(self, value: Any, is_free: bool):
        r = self.renderer
        if isinstance(value, dict):
            if is_free:
                r.indent(self.indentation)
            r.append("{", JSONElement.PUNCTUATION)
            r.newline()
            keys = sorted(value.keys())
            for i, key in enumerate(keys):
                r.indent(self.indentation)
                r.append("  " + _quote(key), JSONElement.KEY)
                r.append(": ", JSONElement.PUNCTUATION)
                self.indentation += 2
                self._print(value[key], is_free=False)
                self.indentation -= 2
                if i < len(keys) - 1:
                    r.append(",", JSONElement.PUNCTUATION)
                r.newline()
            r.indent(self.indentation)
            r.append("}", JSONElement.PUNCTUATION)
        elif isinstance(value, str):
            r.append(_quote(value), JSONElement.VALUE_STRING)
        elif isinstance(value, list):
            if any(isinstance(item, dict) for item in value):
                r.append("[\n", JSONElement.PUNCTUATION)
                self.indentation += 2
                for i, item in enumerate(value):
                    self._print(item, is_free=True)
                    if i < len(value) - 1:
                        r.append(",", JSONElement.PUNCTUATION)
                    r.newline()
                self.indentation -= 2
                r.indent(self.indentation)
                r.append("]", JSONElement.PUNCTUATION)
            else:
                r.append("[", JSONElement.PUNCTUATION)
                for i, item in enumerate(value):
                    self._print(item, is_free=True)
                    if i < len(value) - 1:
                        r.append(", ", JSONElement.PUNCTUATION)
                r.append("]", JSONElement.PUNCTUATION)
        elif value is True:
            r.append("true", JSONElement.VALUE_OTHER)
        elif value is False:
            r.append("false", JSONElement.VALUE_OTHER)
        elif value is None:
            r.append("null", JSONElement.NULL)
        else:
            r.append(str(value), JSONElement.VALUE_OTHER)


def format_json(value: Any) -> str:
    return JSONPrinter(PlainJSONRenderer()).render(value)


def _quote(string) -> str:
    """JSON string literal; non-ASCII text is kept readable."""
    return json.dumps(str(string), ensure_ascii=False)
