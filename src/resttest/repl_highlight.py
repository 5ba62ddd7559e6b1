"""prompt_toolkit lexer for live rest-test syntax highlighting in the REPL."""

from __future__ import annotations

import io
from typing import Callable, Optional, Tuple

from prompt_toolkit.document import Document
from prompt_toolkit.formatted_text import StyleAndTextTuples
from prompt_toolkit.lexers import Lexer

from .assertions import lookup_op
from .lexer_rd import Lexer as RtLexer, LexError, UnterminatedLiteral
from .parser_rd import DIRECTIVES
from .token_types import TT, Tok

# Map highlight groups → prompt_toolkit style strings.
GROUP_STYLE = {
    "directive": "bold ansicyan",
    "operator": "bold ansiblue",
    "number": "ansimagenta",
    "string": "ansigreen",
    "shell": "ansiyellow",
    "identifier": "",
    "punctuation": "bold",
    "comment": "italic ansigray",
    "error": "bold ansired",
}

_TT_GROUP = {
    TT.DIRECTIVE: "directive",
    TT.STRING: "string",
    TT.SHELLCMD: "shell",
    TT.INTEGER: "number",
    TT.SYMBOL: "identifier",
    TT.ASSERT_END: "punctuation",
}


def _group(tok: Tok) -> str:
    if tok.type == TT.DIRECTIVE and tok.value not in DIRECTIVES:
        return "error"
    if tok.type == TT.SYMBOL and lookup_op(tok) is not None:
        return "operator"
    return _TT_GROUP.get(tok.type, "")


def _literal_end(text: str, delim: str) -> int:
    """Index just past the closing `delim` in `text`, or -1 if it stays open."""
    idx = 0
    while idx < len(text):
        ch = text[idx]
        if ch == "\\":
            idx += 2
            continue
        if ch == delim:
            return idx + 1
        idx += 1
    return -1


def _highlight(text: str, open_delim: Optional[str] = None) -> Tuple[StyleAndTextTuples, Optional[str]]:
    """Highlight one line that may start inside a literal opened earlier.

    Returns the styled fragments and the delimiter of a literal still open at
    the end of the line.
    """
    if open_delim is None:
        return _highlight_code(text)

    style = GROUP_STYLE["shell" if open_delim == "`" else "string"]
    end = _literal_end(text, open_delim)
    if end < 0:
        return [(style, text)], open_delim

    head: StyleAndTextTuples = [(style, text[:end])]
    if end == len(text):
        return head, None

    tail, still_open = _highlight_code(text[end:])
    return head + tail, still_open


def _highlight_line(text: str) -> StyleAndTextTuples:
    return _highlight(text)[0]


def _highlight_code(text: str) -> Tuple[StyleAndTextTuples, Optional[str]]:
    stream = io.StringIO(text)
    lexer = RtLexer(stream, "<repl>")
    result: StyleAndTextTuples = []
    pos = 0

    while True:
        try:
            tok = lexer.next_token()
        except UnterminatedLiteral:
            # Literal continues on a following line
            rest = text[pos:]
            result.append((GROUP_STYLE["string"], rest))
            return result, rest.lstrip()[:1] or None
        except LexError:
            result.append((GROUP_STYLE["error"], text[pos:]))
            return result, None

        if tok.type in (TT.NONE, TT.UNKNOWN):
            break

        end = stream.tell() - len(lexer.pushback)
        start = pos
        while start < end and text[start].isspace():
            start += 1

        # Unstyled gap before token.
        if start > pos:
            result.append(("", text[pos:start]))
        result.append((GROUP_STYLE.get(_group(tok), ""), text[start:end]))
        pos = end

    # Trailing text is whitespace and possibly a comment.
    rest = text[pos:]
    hash_at = rest.find("#")
    if hash_at < 0:
        if rest:
            result.append(("", rest))
    else:
        if hash_at:
            result.append(("", rest[:hash_at]))
        result.append((GROUP_STYLE["comment"], rest[hash_at:]))

    return (result if result else [("", text)]), None


class RestTestLexer(Lexer):
    """prompt_toolkit Lexer that highlights rest-test source using the RD lexer."""

    def lex_document(self, document: Document) -> Callable[[int], StyleAndTextTuples]:
        lines = document.lines

        # Pre-compute highlights for all lines; a literal may span several.
        cache: dict[int, StyleAndTextTuples] = {}
        open_delim: Optional[str] = None
        for lineno, line in enumerate(lines):
            cache[lineno], open_delim = _highlight(line, open_delim)

        def get_line(lineno: int) -> StyleAndTextTuples:
            return cache.get(lineno, [("", "")])

        return get_line
