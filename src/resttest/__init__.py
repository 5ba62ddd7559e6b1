"""Parser and evaluator for the rest-test HTTP test description language."""

from .evaluator import eval_records, eval_request
from .lexer_rd import LexError, Lexer, tokenize
from .parser_rd import Directive, ParseError, parse_file, parse_source, parse_stream
from .symtable import SymbolTable
from .token_types import RestTestError, TT, Tok
from .types import RecordError, TestRecord, UndefinedSymbolError

__all__ = [
    "Directive",
    "LexError",
    "Lexer",
    "ParseError",
    "RecordError",
    "RestTestError",
    "SymbolTable",
    "TT",
    "TestRecord",
    "Tok",
    "UndefinedSymbolError",
    "eval_records",
    "eval_request",
    "parse_file",
    "parse_source",
    "parse_stream",
    "tokenize",
]
