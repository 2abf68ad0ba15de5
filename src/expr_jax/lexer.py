"""Lazy tokenization of expression source text."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

from .errors import LexicalError, coordinates

if TYPE_CHECKING:
    from .parser import Parser


@dataclass(frozen=True)
class Token:
    kind: str
    value: object
    pos: int

    def __str__(self) -> str:
        return f"{self.kind}: {self.value}"


EOF = "EOF"
OP = "OP"
NUMBER = "NUMBER"
STRING = "STRING"
PAREN = "PAREN"
BRACKET = "BRACKET"
COMMA = "COMMA"
NAME = "NAME"
SEMICOLON = "SEMICOLON"

_WHITESPACE = {" ", "\t", "\n", "\r"}
_SINGLE_OPERATORS = {"+", "-", "*", "/", "%", "^", "?", ":", "."}
_MULTIPLY_ALIASES = {"∙", "•"}
_HEX_DIGIT_RE = re.compile(r"^[0-9a-fA-F]$")
_BIN_DIGIT_RE = re.compile(r"^[01]$")
_CODE_POINT_RE = re.compile(r"^[0-9a-fA-F]{4}$")
_SIMPLE_ESCAPES = {
    "'": "'",
    '"': '"',
    "\\": "\\",
    "/": "/",
    "b": "\b",
    "f": "\f",
    "n": "\n",
    "r": "\r",
    "t": "\t",
}


def _is_letter(ch: str) -> bool:
    # Cased characters only, matching identifiers written in any script with case.
    return ch.upper() != ch.lower()


def _is_digit(ch: str) -> bool:
    return "0" <= ch <= "9"


class TokenStream:
    """Produces tokens one at a time for the parser.

    Operator recognition depends on the owning parser's tables and options,
    so the stream keeps a reference to it. ``save``/``restore`` provide the
    single checkpoint the parser needs to rewind ambiguous prefix operators.
    """

    def __init__(self, parser: "Parser", expression: str) -> None:
        self.parser = parser
        self.expression = expression
        self.pos = 0
        self.current: Token | None = None
        self._saved_pos = 0
        self._saved_current: Token | None = None

    def _new_token(self, kind: str, value: object, pos: int | None = None) -> Token:
        return Token(kind, value, self.pos if pos is None else pos)

    def save(self) -> None:
        self._saved_pos = self.pos
        self._saved_current = self.current

    def restore(self) -> None:
        self.pos = self._saved_pos
        self.current = self._saved_current

    def next(self) -> Token:
        while True:
            if self.pos >= len(self.expression):
                return self._new_token(EOF, "EOF")
            if not (self._skip_whitespace() or self._skip_comment()):
                break

        if (
            self._is_radix_integer()
            or self._is_number()
            or self._is_operator()
            or self._is_string()
            or self._is_paren()
            or self._is_bracket()
            or self._is_comma()
            or self._is_semicolon()
            or self._is_named_op()
            or self._is_const()
            or self._is_name()
        ):
            assert self.current is not None
            return self.current

        raise self.parse_error(f'Unknown character "{self.expression[self.pos]}"')

    def _char(self, pos: int) -> str:
        return self.expression[pos] if 0 <= pos < len(self.expression) else ""

    def _skip_whitespace(self) -> bool:
        start = self.pos
        while self.pos < len(self.expression) and self.expression[self.pos] in _WHITESPACE:
            self.pos += 1
        return self.pos > start

    def _skip_comment(self) -> bool:
        if self._char(self.pos) == "/" and self._char(self.pos + 1) == "*":
            end = self.expression.find("*/", self.pos + 2)
            self.pos = len(self.expression) if end < 0 else end + 2
            return True
        return False

    def _is_radix_integer(self) -> bool:
        pos = self.pos
        if pos >= len(self.expression) - 2 or self._char(pos) != "0":
            return False
        pos += 1

        marker = self._char(pos)
        if marker == "x":
            radix, digit_re = 16, _HEX_DIGIT_RE
        elif marker == "b":
            radix, digit_re = 2, _BIN_DIGIT_RE
        else:
            return False
        pos += 1

        start = pos
        while pos < len(self.expression) and digit_re.match(self.expression[pos]):
            pos += 1
        if pos == start:
            return False

        self.current = self._new_token(NUMBER, int(self.expression[start:pos], radix))
        self.pos = pos
        return True

    def _is_number(self) -> bool:
        pos = self.pos
        start = pos
        found_dot = False
        found_digits = False

        while pos < len(self.expression):
            ch = self.expression[pos]
            if _is_digit(ch):
                found_digits = True
            elif ch == "." and not found_dot:
                found_dot = True
            else:
                break
            pos += 1

        if not found_digits:
            return False

        mantissa_end = pos
        has_exponent = False
        if self._char(pos) in {"e", "E"}:
            pos += 1
            if self._char(pos) in {"+", "-"}:
                pos += 1
            exp_start = pos
            while pos < len(self.expression) and _is_digit(self.expression[pos]):
                pos += 1
            if pos > exp_start:
                has_exponent = True
            else:
                pos = mantissa_end

        text = self.expression[start:pos]
        value: int | float = float(text) if (found_dot or has_exponent) else int(text)
        self.current = self._new_token(NUMBER, value)
        self.pos = pos
        return True

    def _is_operator(self) -> bool:
        start = self.pos
        ch = self._char(self.pos)
        following = self._char(self.pos + 1)

        if ch in _SINGLE_OPERATORS:
            op = ch
        elif ch in _MULTIPLY_ALIASES:
            op = "*"
        elif ch in {">", "<", "=", "!"}:
            op = ch + "=" if following == "=" else ch
        elif ch == "|" and following == "|":
            op = "||"
        else:
            return False

        if not self.is_operator_enabled(op):
            return False

        self.current = self._new_token(OP, op, start)
        self.pos = start + (2 if len(op) == 2 else 1)
        return True

    def _is_string(self) -> bool:
        start = self.pos
        quote = self._char(start)
        if quote not in {"'", '"'}:
            return False

        index = self.expression.find(quote, start + 1)
        while index >= 0:
            if self.expression[index - 1] != "\\":
                raw = self.expression[start + 1 : index]
                self.current = self._new_token(STRING, self._unescape(raw, start), start)
                self.pos = index + 1
                return True
            index = self.expression.find(quote, index + 1)
        return False

    def _is_paren(self) -> bool:
        ch = self._char(self.pos)
        if ch in {"(", ")"}:
            self.current = self._new_token(PAREN, ch)
            self.pos += 1
            return True
        return False

    def _is_bracket(self) -> bool:
        ch = self._char(self.pos)
        if ch in {"[", "]"} and self.is_operator_enabled("["):
            self.current = self._new_token(BRACKET, ch)
            self.pos += 1
            return True
        return False

    def _is_comma(self) -> bool:
        if self._char(self.pos) == ",":
            self.current = self._new_token(COMMA, ",")
            self.pos += 1
            return True
        return False

    def _is_semicolon(self) -> bool:
        if self._char(self.pos) == ";":
            self.current = self._new_token(SEMICOLON, ";")
            self.pos += 1
            return True
        return False

    def _scan_word(self, *, allow_dot: bool) -> str:
        i = self.pos
        while i < len(self.expression):
            ch = self.expression[i]
            if not _is_letter(ch):
                if i == self.pos:
                    break
                if not (ch == "_" or _is_digit(ch) or (allow_dot and ch == ".")):
                    break
            i += 1
        return self.expression[self.pos : i]

    def _is_named_op(self) -> bool:
        word = self._scan_word(allow_dot=False)
        if not word:
            return False
        parser = self.parser
        known = word in parser.binary_ops or word in parser.unary_ops or word in parser.ternary_ops
        if known and self.is_operator_enabled(word):
            self.current = self._new_token(OP, word)
            self.pos += len(word)
            return True
        return False

    def _is_const(self) -> bool:
        word = self._scan_word(allow_dot=True)
        if word and word in self.parser.consts:
            self.current = self._new_token(NUMBER, self.parser.consts[word])
            self.pos += len(word)
            return True
        return False

    def _is_name(self) -> bool:
        start = self.pos
        i = start
        has_letter = False
        while i < len(self.expression):
            ch = self.expression[i]
            if _is_letter(ch):
                has_letter = True
            elif i == start and ch in {"$", "_"}:
                has_letter = has_letter or ch == "_"
            elif i == start or not has_letter or not (ch == "_" or _is_digit(ch)):
                break
            i += 1

        if not has_letter:
            return False
        self.current = self._new_token(NAME, self.expression[start:i])
        self.pos = i
        return True

    def _unescape(self, raw: str, start: int) -> str:
        if "\\" not in raw:
            return raw

        out: list[str] = []
        i = 0
        while i < len(raw):
            ch = raw[i]
            if ch != "\\":
                out.append(ch)
                i += 1
                continue

            esc = raw[i + 1] if i + 1 < len(raw) else ""
            if esc in _SIMPLE_ESCAPES:
                out.append(_SIMPLE_ESCAPES[esc])
                i += 2
            elif esc == "u":
                code_point = raw[i + 2 : i + 6]
                if not _CODE_POINT_RE.match(code_point):
                    raise self.parse_error(f"Illegal escape sequence: \\u{code_point}", pos=start + 1 + i)
                out.append(chr(int(code_point, 16)))
                i += 6
            else:
                raise self.parse_error(f'Illegal escape sequence: "\\{esc}"', pos=start + 1 + i)
        return "".join(out)

    def parse_error(self, message: str, *, pos: int | None = None) -> LexicalError:
        at = self.pos if pos is None else pos
        line, column = coordinates(self.expression, at)
        return LexicalError(message, line=line, column=column, pos=at)

    def is_operator_enabled(self, op: str) -> bool:
        return self.parser.is_operator_enabled(op)


def tokenize(parser: "Parser", expression: str) -> list[Token]:
    """Eagerly scan ``expression``; the final token is always ``EOF``."""
    stream = TokenStream(parser, expression)
    tokens: list[Token] = []
    while True:
        tok = stream.next()
        tokens.append(tok)
        if tok.kind == EOF:
            return tokens
