"""Tokenizer for term filter expressions."""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import List, Tuple

from ...errors import LexError


class TokenKind(Enum):
    LITERAL = "literal"
    WHITESPACE = "whitespace"
    ASTERISK = "asterisk"


@dataclass(frozen=True)
class Token:
    kind: TokenKind
    value: str
    span: Tuple[int, int]

    def __str__(self) -> str:
        if self.kind is TokenKind.LITERAL:
            return f"Literal({self.value!r})"
        return self.kind.name.capitalize()


# Quoted literals come first: on a tie in match length they win.
_QUOTED = [re.compile(r'"[^"]+"'), re.compile(r"'[^']+'")]
_BARE = re.compile(r'[^*" \t\n\f]+')
_WHITESPACE = re.compile(r"[ \t\n\f]+")


def tokenize(text: str) -> List[Token]:
    """Split *text* into literal, whitespace and asterisk tokens.

    Raises:
        LexError: A character that starts no token, e.g. an unmatched ``"``.
    """
    tokens: List[Token] = []
    pos = 0
    while pos < len(text):
        if text[pos] == "*":
            tokens.append(Token(TokenKind.ASTERISK, "*", (pos, pos + 1)))
            pos += 1
            continue

        ws = _WHITESPACE.match(text, pos)
        if ws:
            tokens.append(Token(TokenKind.WHITESPACE, ws.group(), ws.span()))
            pos = ws.end()
            continue

        best = None
        quoted = False
        for pattern in _QUOTED:
            m = pattern.match(text, pos)
            if m and (best is None or m.end() > best.end()):
                best, quoted = m, True
        bare = _BARE.match(text, pos)
        if bare and (best is None or bare.end() > best.end()):
            best, quoted = bare, False
        if best is None:
            raise LexError(
                f"lexing failed on {text[pos]!r} at {pos}..{pos + 1}", (pos, pos + 1)
            )

        value = best.group()[1:-1] if quoted else best.group()
        tokens.append(Token(TokenKind.LITERAL, value, best.span()))
        pos = best.end()
    return tokens
