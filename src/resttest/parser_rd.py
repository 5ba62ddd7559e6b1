"""
Directive Parser for the rest-test DSL

Phase one of the two-phase pipeline: turn a token stream into an ordered list
of TestRecords and populate the symbol tables. Phase two (resttest.evaluator)
resolves symbols inside each record before it is handed to an executor.

Every statement is a directive followed by a fixed number of parameters:

    .test "Create user"
    .global BASE "localhost:8081"
    .uri "http://{{BASE}}/users"
    .header 'Content-Type' "application/json"
    .body "{"
    .body "}"
    .assert STATUS 201 eq ;

Any error aborts the whole parse; partially built records are dropped.
"""

from __future__ import annotations

import io
import logging
from enum import Enum
from typing import List, Optional, Set, TextIO, Tuple

from typing_extensions import assert_never

from .assertions import AssertionShapeError, build_assertion
from .lexer_rd import Lexer
from .symtable import SymbolTable
from .token_types import RestTestError, TT, Tok
from .types import RecordError, TestRecord

logger = logging.getLogger(__name__)

IMPLICIT_TEST_NAME = "UNSET"

NAME_TYPES = (TT.SYMBOL, TT.STRING)
VALUE_TYPES = (TT.STRING, TT.SYMBOL, TT.INTEGER, TT.SHELLCMD)

# ============================================================================
# Parser
# ============================================================================

class ParseError(RestTestError):
    """Syntax error with provenance of the offending token"""

    def __init__(self, message: str, token: Optional[Tok] = None, source: Optional[str] = None, line: Optional[int] = None):
        super().__init__(message, source=source, line=line, token=token)


class Directive(Enum):
    """Closed set of directives; value is (keyword, parameter signature).

    ASSERT has an empty signature: it reads operands up to the next `;`.
    """

    TEST = (".test", (NAME_TYPES,))
    GLOBAL = (".global", (NAME_TYPES, VALUE_TYPES))
    PARENT = (".parent", (NAME_TYPES, VALUE_TYPES))
    LOCAL = (".local", (NAME_TYPES, VALUE_TYPES))
    METHOD = (".method", (VALUE_TYPES,))
    URI = (".uri", (VALUE_TYPES,))
    HTTP_VERSION = (".http_version", (VALUE_TYPES,))
    HEADER = (".header", (NAME_TYPES, VALUE_TYPES))
    BODY = (".body", (VALUE_TYPES,))
    ASSERT = (".assert", ())

    def __init__(self, keyword: str, signature: Tuple[Tuple[TT, ...], ...]):
        self.keyword = keyword
        self.signature = signature

    @property
    def arity(self) -> int:
        return len(self.signature)


DIRECTIVES = {d.keyword: d for d in Directive}


class Parser:
    """
    Directive parser over a lazily scanned token stream.

    `scope` is the starting symbol table: `.parent` writes into it, `.global`
    writes into its root, and every TestRecord's own table is its child.
    Those two kinds of write are held back until the stream parses cleanly, so
    a failed parse leaves the caller's tables as they were.
    """

    def __init__(self, lexer: Lexer, scope: Optional[SymbolTable] = None):
        self.lexer = lexer
        self.source = lexer.source
        self.scope = scope if scope is not None else SymbolTable("global")
        self.records: List[TestRecord] = []
        self.names: Set[str] = set()
        self.pending: List[Tuple[SymbolTable, str, Tok]] = []
        self.current = TestRecord(IMPLICIT_TEST_NAME, self.source, lexer.line, self.scope)

    # ========================================================================
    # Token Navigation
    # ========================================================================

    def advance(self) -> Tok:
        """Scan and return the next token"""
        return self.lexer.next_token()

    def expect(self, allowed: Tuple[TT, ...], directive: Tok, index: int) -> Tok:
        """Consume one parameter of an allowed type or raise"""
        tok = self.advance()

        if tok.type == TT.NONE:
            raise ParseError(f"Missing parameter {index} for {directive.value}", directive)

        if tok.type not in allowed:
            wanted = "/".join(t.name for t in allowed)
            raise ParseError(
                f"Parameter {index} for {directive.value} must be {wanted}, got {tok.type.name} {tok.value!r}",
                tok,
            )

        return tok

    # ========================================================================
    # Top-Level Parsing
    # ========================================================================

    def parse(self) -> List[TestRecord]:
        """Parse the entire stream"""
        while True:
            tok = self.advance()

            if tok.type == TT.NONE:
                self.records.append(self.current)
                self.commit()
                return self.records

            if tok.type == TT.UNKNOWN:
                raise ParseError(f"Read error: {tok.value}", tok)

            if tok.type != TT.DIRECTIVE:
                raise ParseError(f"Expected directive, got {tok.type.name} {tok.value!r}", tok)

            directive = DIRECTIVES.get(tok.value)
            if directive is None:
                raise ParseError(f"Unknown directive {tok.value}", tok)

            params = [
                self.expect(allowed, tok, idx + 1)
                for idx, allowed in enumerate(directive.signature)
            ]
            logger.debug("[%s:%d] %s %s", tok.source, tok.line, directive.keyword, [p.value for p in params])

            try:
                self.dispatch(directive, tok, params)
            except RecordError as exc:
                raise ParseError(exc.message, exc.token or tok, exc.source, exc.line) from exc

    def dispatch(self, directive: Directive, tok: Tok, params: List[Tok]) -> None:
        current = self.current

        match directive:
            case Directive.TEST:
                self.start_test(tok, params[0])
            case Directive.GLOBAL:
                self.pending.append((self.scope.root(), params[0].value, params[1]))
            case Directive.PARENT:
                self.pending.append((self.scope, params[0].value, params[1]))
            case Directive.LOCAL:
                current.symt.add(params[0].value, params[1])
            case Directive.METHOD:
                current.set_method(params[0])
            case Directive.URI:
                current.set_uri(params[0])
            case Directive.HTTP_VERSION:
                current.set_http_version(params[0])
            case Directive.HEADER:
                current.set_header(tok.source, tok.line, params[0].value, params[1])
            case Directive.BODY:
                current.append_body(params[0])
            case Directive.ASSERT:
                self.parse_assertion(tok)
            case _:
                assert_never(directive)

    def commit(self) -> None:
        """Apply the held-back `.global` and `.parent` writes in source order"""
        for table, name, value in self.pending:
            table.add(name, value)
        self.pending.clear()

    def start_test(self, tok: Tok, name: Tok) -> None:
        if name.value in self.names:
            raise ParseError(f"Duplicate test name {name.value!r}", name)
        self.names.add(name.value)

        self.records.append(self.current)
        self.current = TestRecord(name.value, tok.source, tok.line, self.scope)

    def parse_assertion(self, directive: Tok) -> None:
        tokens: List[Tok] = []

        while True:
            tok = self.advance()
            if tok.type == TT.ASSERT_END:
                break
            if tok.type in (TT.NONE, TT.DIRECTIVE, TT.UNKNOWN):
                raise ParseError(f"Unterminated {directive.value}, expected ';'", tok)
            tokens.append(tok)

        try:
            assertion = build_assertion(tokens, directive.source, directive.line)
        except AssertionShapeError as exc:
            raise ParseError(exc.message, exc.token or directive) from exc

        self.current.add_assertion(assertion)


# ============================================================================
# Entry points
# ============================================================================

def parse_stream(stream: TextIO, source: str = "<stream>", scope: Optional[SymbolTable] = None) -> List[TestRecord]:
    """Parse a whole stream; the returned records belong to the caller"""
    parser = Parser(Lexer(stream, source), scope)
    return parser.parse()


def parse_file(path: str, scope: Optional[SymbolTable] = None) -> List[TestRecord]:
    try:
        with open(path, encoding="utf-8") as inf:
            return parse_stream(inf, str(path), scope)
    except OSError as exc:
        raise ParseError(f"Cannot read test file: {exc.strerror or exc}", source=str(path)) from exc


def parse_source(text: str, source: str = "<string>", scope: Optional[SymbolTable] = None) -> List[TestRecord]:
    return parse_stream(io.StringIO(text), source, scope)
