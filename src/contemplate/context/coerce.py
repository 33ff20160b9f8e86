"""
Coercion of flat string values into typed values.

Environment variables carry only strings. A value is interpreted, in order,
as a boolean literal, a number, a bracketed list, a braced dictionary or a
double-quoted string, falling back to the literal text:

    true            -> True
    -1.5            -> -1.5
    [1, true, "x"]  -> [1, True, "x"]
    {a=1, b=[2]}    -> {"a": 1, "b": [2]}
    "007"           -> "007"
    hello world     -> "hello world"

List elements and dictionary values are coerced recursively. Malformed
nesting never raises; the whole input is then taken literally.
"""

from __future__ import annotations

import re as _re

import contemplate.context.values as values

_NUMBER = _re.compile(r"-?(\d+\.?\d*|\.\d+)")

_ESCAPES = {
    '"': '"',
    "\\": "\\",
    "/": "/",
    "n": "\n",
    "t": "\t",
    "r": "\r",
    "0": "\0",
}


class _Malformed(Exception):
    pass


def coerce(text: str) -> values.Value:
    """Coerce a raw string into the most specific value it spells."""
    try:
        parser = _Parser(text)
        result = parser.parse_value(top_level=True)
        parser.expect_end()
        return result
    except _Malformed:
        return text


def _parse_number(text: str) -> int | float | None:
    if not _NUMBER.fullmatch(text):
        return None
    if "." in text:
        return float(text)
    return int(text)


class _Parser:
    """Recursive-descent parser over a single coerced string."""

    def __init__(self, text: str) -> None:
        self._text = text
        self._pos = 0

    def expect_end(self) -> None:
        self._skip_space()
        if self._pos != len(self._text):
            raise _Malformed

    def parse_value(self, *, top_level: bool = False, stops: str = "") -> values.Value:
        self._skip_space()
        char = self._peek()
        if char == "[":
            return self._parse_list()
        if char == "{":
            return self._parse_dict()
        if char == '"':
            return self._parse_quoted()
        if top_level:
            # Whole-string scalars keep their surrounding whitespace.
            literal = self._text
            self._pos = len(self._text)
            return _coerce_scalar(literal)
        return _coerce_scalar(self._read_until(stops).strip())

    def _parse_list(self) -> list[values.Value]:
        self._pos += 1
        items: list[values.Value] = []
        self._skip_space()
        if self._peek() == "]":
            self._pos += 1
            return items
        while True:
            items.append(self.parse_value(stops=",]"))
            self._skip_space()
            char = self._peek()
            self._pos += 1
            if char == "]":
                return items
            if char != ",":
                raise _Malformed

    def _parse_dict(self) -> dict[str, values.Value]:
        self._pos += 1
        result: dict[str, values.Value] = {}
        self._skip_space()
        if self._peek() == "}":
            self._pos += 1
            return result
        while True:
            key = self._read_until("=,}").strip()
            if not key or self._peek() != "=":
                raise _Malformed
            self._pos += 1
            result[key] = self.parse_value(stops=",}")
            self._skip_space()
            char = self._peek()
            self._pos += 1
            if char == "}":
                return result
            if char != ",":
                raise _Malformed

    def _parse_quoted(self) -> str:
        self._pos += 1
        chars: list[str] = []
        while self._pos < len(self._text):
            char = self._text[self._pos]
            self._pos += 1
            if char == '"':
                return "".join(chars)
            if char != "\\":
                chars.append(char)
                continue
            escape = self._peek()
            self._pos += 1
            if escape == "u":
                digits = self._text[self._pos : self._pos + 4]
                if len(digits) != 4:
                    raise _Malformed
                try:
                    chars.append(chr(int(digits, 16)))
                except ValueError:
                    raise _Malformed from None
                self._pos += 4
            elif escape in _ESCAPES:
                chars.append(_ESCAPES[escape])
            else:
                raise _Malformed
        raise _Malformed

    def _read_until(self, stops: str) -> str:
        start = self._pos
        while self._pos < len(self._text) and self._text[self._pos] not in stops:
            if self._text[self._pos] in '[{"':
                raise _Malformed
            self._pos += 1
        if stops and self._pos == len(self._text):
            raise _Malformed
        return self._text[start : self._pos]

    def _peek(self) -> str:
        if self._pos < len(self._text):
            return self._text[self._pos]
        return ""

    def _skip_space(self) -> None:
        while self._pos < len(self._text) and self._text[self._pos].isspace():
            self._pos += 1


def _coerce_scalar(text: str) -> values.Value:
    if text == "true":
        return True
    if text == "false":
        return False
    number = _parse_number(text)
    if number is not None:
        return number
    return text
