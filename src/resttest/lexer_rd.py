"""
Lexer for the rest-test DSL

Reads a character stream and produces one token at a time.

Features:
- Single character pushback over any text stream (files, StringIO, stdin)
- Line tracking that survives pushback of newlines
- Quoted literals with pass-through escapes, adjacent "..." and `...`
  literals are joined into one token
- Decimal, octal and hex integer literals
"""

from __future__ import annotations

import io
import logging
import string
from typing import Iterator, List, TextIO

from .token_types import RestTestError, TT, Tok

logger = logging.getLogger(__name__)

MAX_INPUT_LINE_LENGTH = 1024 * 1024  # 1MB should be enough

_DIGITS = frozenset(string.digits)
_ODIGITS = frozenset("01234567")
_XDIGITS = frozenset(string.hexdigits)
_SYMBOL_START = frozenset(string.ascii_letters + "_")
_SYMBOL_CHARS = _SYMBOL_START | _DIGITS
_DIRECTIVE_CHARS = _SYMBOL_CHARS | frozenset(".-")


class LexError(RestTestError):
    """Lexical analysis error"""
    pass


class UnterminatedLiteral(LexError):
    """Stream ended inside a quoted literal"""
    pass


# ============================================================================
# Lexer Implementation
# ============================================================================

class Lexer:
    """
    rest-test lexer.

    The lexer never looks more than one character ahead; anything read past
    the end of a token is pushed back. Pushing back a newline rewinds the line
    counter so the next token reports the line it actually starts on.
    """

    def __init__(self, stream: TextIO, source: str = "<stream>", line: int = 1):
        self.stream = stream
        self.source = source
        self.line = line
        self.line_length = 0
        self.pushback: List[str] = []

    # ========================================================================
    # Main Tokenization
    # ========================================================================

    def __iter__(self) -> Iterator[Tok]:
        """Yield tokens up to, not including, the end-of-stream token"""
        while True:
            tok = self.next_token()
            if tok.type == TT.NONE:
                return
            yield tok
            if tok.type == TT.UNKNOWN:
                return

    def next_token(self) -> Tok:
        """Scan the next token; NONE at end of stream, UNKNOWN on read errors"""
        try:
            tok = self.scan_token()
        except (OSError, UnicodeDecodeError) as exc:
            logger.debug("[%s:%d] read error: %s", self.source, self.line, exc)
            return Tok(TT.UNKNOWN, str(exc), self.source, self.line)

        logger.debug("[%s:%d] %s %r", tok.source, tok.line, tok.type.name, tok.value)
        return tok

    def scan_token(self) -> Tok:
        while True:
            ch = self.readchar()
            if ch == "":
                return self.make(TT.NONE, "", self.line)

            if ch.isspace():
                continue

            # Comments
            if ch == "#":
                self.skip_comment()
                continue

            start = self.line

            if ch == ";":
                return self.make(TT.ASSERT_END, ch, start)

            if ch == ".":
                return self.make(TT.DIRECTIVE, ch + self.scan_directive(), start)

            if ch == "'":
                return self.make(TT.STRING, self.scan_quoted(ch), start)

            # Double quoted and backtick literals join with adjacent ones
            if ch in ('"', "`"):
                token_type = TT.STRING if ch == '"' else TT.SHELLCMD
                return self.make(token_type, self.scan_joined(ch), start)

            if ch == "0":
                return self.make(TT.INTEGER, self.scan_octhex(), start)

            if ch in _DIGITS:
                return self.make(TT.INTEGER, self.scan_integer(ch), start)

            if ch in _SYMBOL_START:
                return self.make(TT.SYMBOL, self.scan_symbol(ch), start)

            raise LexError(f"Unexpected character {ch!r}", self.source, start)

    # ========================================================================
    # Token Scanners
    # ========================================================================

    def scan_directive(self) -> str:
        value = ""
        while True:
            ch = self.readchar()
            if ch in _DIRECTIVE_CHARS:
                value += ch
                continue
            self.unreadchar(ch)
            return value

    def scan_quoted(self, delim: str) -> str:
        """Scan the body of a literal whose opening delimiter was consumed"""
        start = self.line
        value = ""

        while True:
            ch = self.readchar()
            if ch == "":
                raise UnterminatedLiteral("Unterminated string", self.source, start)
            if ch == delim:
                return value
            if ch == "\\":
                # Keep the escaped character as-is, drop the backslash
                ch = self.readchar()
                if ch == "":
                    raise UnterminatedLiteral(
                        "Unexpected EOF after escape character '\\'", self.source, self.line
                    )
            value += ch

    def scan_joined(self, delim: str) -> str:
        value = self.scan_quoted(delim)

        while True:
            ch = self.readchar()
            while ch != "" and ch.isspace():
                ch = self.readchar()

            if ch != delim:
                self.unreadchar(ch)
                return value
            value += self.scan_quoted(delim)

    def scan_octhex(self) -> str:
        """Scan 0, 0NNN (octal) or 0xNNN (hex); the leading 0 is consumed"""
        value = "0"
        ch = self.readchar()

        if ch == "" or ch.isspace():
            self.unreadchar(ch)
            return value

        is_hex = ch in ("x", "X")
        if not is_hex and ch not in _ODIGITS:
            raise LexError(f"Unexpected odigit {ch!r}", self.source, self.line)
        value += ch

        while True:
            ch = self.readchar()
            if ch == "" or ch.isspace():
                self.unreadchar(ch)
                break
            if is_hex and ch not in _XDIGITS:
                raise LexError(f"Unexpected xdigit {ch!r}", self.source, self.line)
            if not is_hex and ch not in _ODIGITS:
                raise LexError(f"Unexpected odigit {ch!r}", self.source, self.line)
            value += ch

        if is_hex and len(value) == 2:
            raise LexError(f"Incomplete hex literal {value!r}", self.source, self.line)

        return value

    def scan_integer(self, first: str) -> str:
        value = first
        while True:
            ch = self.readchar()
            if ch == "" or ch.isspace():
                self.unreadchar(ch)
                return value
            if ch not in _DIGITS:
                raise LexError(f"Unexpected digit {ch!r}", self.source, self.line)
            value += ch

    def scan_symbol(self, first: str) -> str:
        value = first
        while True:
            ch = self.readchar()
            if ch == "" or ch.isspace():
                self.unreadchar(ch)
                return value
            if ch not in _SYMBOL_CHARS:
                raise LexError(
                    f"Unexpected character in symbol {ch!r}", self.source, self.line
                )
            value += ch

    # ========================================================================
    # Utilities
    # ========================================================================

    def readchar(self) -> str:
        """Consume one character; empty string at end of stream"""
        if self.pushback:
            ch = self.pushback.pop()
        else:
            ch = self.stream.read(1)
            if ch == "\n":
                self.line_length = 0
            elif ch != "":
                self.line_length += 1
                if self.line_length > MAX_INPUT_LINE_LENGTH:
                    raise LexError(
                        f"Maximum line length ({MAX_INPUT_LINE_LENGTH // 1024}KB) exceeded",
                        self.source,
                        self.line,
                    )

        if ch == "\n":
            self.line += 1
        return ch

    def unreadchar(self, ch: str) -> None:
        if ch == "":
            return
        if ch == "\n":
            self.line -= 1
        self.pushback.append(ch)

    def skip_comment(self) -> None:
        """Skip comment through the end of the line"""
        while True:
            ch = self.readchar()
            if ch in ("", "\n"):
                return

    def make(self, token_type: TT, value: str, line: int) -> Tok:
        return Tok(token_type, value, self.source, line)


def tokenize(source: str, source_name: str = "<string>") -> List[Tok]:
    """Convenience function: every token of `source`, ending with the NONE token"""
    lexer = Lexer(io.StringIO(source), source_name)
    tokens: List[Tok] = []

    while True:
        tok = lexer.next_token()
        tokens.append(tok)
        if tok.type in (TT.NONE, TT.UNKNOWN):
            return tokens
