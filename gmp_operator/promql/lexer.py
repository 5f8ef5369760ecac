"""Tokenizer for PromQL expressions."""
import re
from typing import List, NamedTuple, Tuple

from ..exceptions import ExpressionError

NUMBER = "NUMBER"
DURATION = "DURATION"
STRING = "STRING"
IDENT = "IDENT"
EOF = "EOF"

# Operators and punctuation, longest first.
_SYMBOLS = (
    "==", "!=", "<=", ">=", "=~", "!~",
    "+", "-", "*", "/", "%", "^", "<", ">", "=",
    "(", ")", "{", "}", "[", "]", ",", ":", "@",
)

_DURATION_RE = re.compile(r"(?:\d+(?:ms|[smhdwy]))+")
_NUMBER_RE = re.compile(r"0[xX][0-9a-fA-F]+|(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?")
_IDENT_RE = re.compile(r"[a-zA-Z_:][a-zA-Z0-9_:]*")
_WORD_CHAR_RE = re.compile(r"[a-zA-Z0-9_]")

_SIMPLE_ESCAPES = {
    "a": "\a", "b": "\b", "f": "\f", "n": "\n", "r": "\r", "t": "\t", "v": "\v",
    "\\": "\\", '"': '"', "'": "'",
}


class Token(NamedTuple):
    type: str
    text: str
    pos: int


def _unescape(body: str, start: int) -> str:
    out = []
    i = 0
    while i < len(body):
        ch = body[i]
        if ch != "\\":
            out.append(ch)
            i += 1
            continue
        if i + 1 >= len(body):
            raise ExpressionError("unterminated escape sequence", start + i)
        esc = body[i + 1]
        if esc in _SIMPLE_ESCAPES:
            out.append(_SIMPLE_ESCAPES[esc])
            i += 2
        elif esc in "xuU":
            width = {"x": 2, "u": 4, "U": 8}[esc]
            digits = body[i + 2:i + 2 + width]
            if len(digits) != width or not re.fullmatch(r"[0-9a-fA-F]+", digits):
                raise ExpressionError(f"invalid escape sequence \\{esc}{digits}", start + i)
            out.append(chr(int(digits, 16)))
            i += 2 + width
        elif esc in "01234567":
            digits = body[i + 1:i + 4]
            if not re.fullmatch(r"[0-7]{3}", digits):
                raise ExpressionError(f"invalid octal escape \\{digits}", start + i)
            out.append(chr(int(digits, 8)))
            i += 4
        else:
            raise ExpressionError(f"unknown escape sequence \\{esc}", start + i)
    return "".join(out)


def _lex_string(text: str, pos: int) -> Tuple[Token, int]:
    """Lex a quoted string starting at pos, returning the token and the end offset."""
    quote = text[pos]
    i = pos + 1
    while i < len(text):
        ch = text[i]
        if ch == "\\" and quote != "`":
            i += 2
            continue
        if ch == quote:
            body = text[pos + 1:i]
            value = body if quote == "`" else _unescape(body, pos + 1)
            return Token(STRING, value, pos), i + 1
        if ch == "\n" and quote != "`":
            break
        i += 1
    raise ExpressionError("unterminated quoted string", pos)


def tokenize(text: str) -> List[Token]:
    """Split an expression into tokens, ending with an EOF token."""
    tokens: List[Token] = []
    pos = 0
    length = len(text)
    bracket_depth = 0

    while pos < length:
        ch = text[pos]

        if ch.isspace():
            pos += 1
            continue

        if ch == "#":
            newline = text.find("\n", pos)
            pos = length if newline < 0 else newline
            continue

        if ch in "\"'`":
            token, pos = _lex_string(text, pos)
            tokens.append(token)
            continue

        if ch.isdigit() or (ch == "." and pos + 1 < length and text[pos + 1].isdigit()):
            match = _DURATION_RE.match(text, pos)
            if match and not (match.end() < length and _WORD_CHAR_RE.match(text[match.end()])):
                tokens.append(Token(DURATION, match.group(), pos))
                pos = match.end()
                continue
            match = _NUMBER_RE.match(text, pos)
            end = match.end()
            if end < length and _WORD_CHAR_RE.match(text[end]):
                raise ExpressionError(f"bad number or duration syntax {text[pos:end + 1]!r}", pos)
            tokens.append(Token(NUMBER, match.group(), pos))
            pos = end
            continue

        # Inside range brackets a colon separates range and resolution.
        match = None if ch == ":" and bracket_depth else _IDENT_RE.match(text, pos)
        if match:
            tokens.append(Token(IDENT, match.group(), pos))
            pos = match.end()
            continue

        for symbol in _SYMBOLS:
            if text.startswith(symbol, pos):
                tokens.append(Token(symbol, symbol, pos))
                pos += len(symbol)
                if symbol == "[":
                    bracket_depth += 1
                elif symbol == "]":
                    bracket_depth = max(bracket_depth - 1, 0)
                break
        else:
            raise ExpressionError(f"unexpected character {ch!r}", pos)

    tokens.append(Token(EOF, "", length))
    return tokens
