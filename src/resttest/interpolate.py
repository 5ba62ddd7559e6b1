"""Interpolation of {{...}} references inside string literals.

`{{name}}` is replaced by the value bound to `name` in the visible scope
chain. `{{fn(arg, ...)}}` calls a function from resttest.functions; arguments
are bare names (resolved like `{{name}}`), quoted strings or integers.

References are replaced left to right and substituted text is never scanned
again.
"""

from __future__ import annotations

import functools
import re
from dataclasses import dataclass
from typing import List, Optional, Tuple

from lark import Lark, Transformer, UnexpectedInput

from . import functions
from .functions import FunctionError
from .symtable import SymbolTable
from .token_types import RestTestError, Tok
from .types import UndefinedSymbolError

REF_RE = re.compile(r"\{\{(.*?)\}\}", re.S)

REF_GRAMMAR = r"""
start: NAME                      -> name
     | NAME "(" [args] ")"       -> call

args: arg ("," arg)*

arg: NAME                        -> arg_name
   | STRING                      -> arg_string
   | INT                         -> arg_int

NAME: /[A-Za-z_][A-Za-z0-9_]*/
STRING: /"[^"]*"/ | /'[^']*'/
INT: /[0-9]+/

%ignore /[ \t\r\n]+/
"""


class InterpolationError(RestTestError):
    pass


@dataclass(frozen=True)
class Arg:
    kind: str  # name | string | int
    value: str


@dataclass(frozen=True)
class Ref:
    name: str
    args: Optional[Tuple[Arg, ...]] = None  # None for a plain reference

    @property
    def is_call(self) -> bool:
        return self.args is not None


class _RefBuilder(Transformer):
    def name(self, children):
        return Ref(str(children[0]))

    def call(self, children):
        name, *rest = children
        args = tuple(rest[0]) if rest else ()
        return Ref(str(name), args)

    def args(self, children):
        return list(children)

    def arg_name(self, children):
        return Arg("name", str(children[0]))

    def arg_string(self, children):
        return Arg("string", str(children[0])[1:-1])

    def arg_int(self, children):
        return Arg("int", str(children[0]))


@functools.lru_cache(maxsize=1)
def ref_parser() -> Lark:
    return Lark(REF_GRAMMAR, parser="lalr", maybe_placeholders=False)


def parse_ref(text: str, tok: Tok) -> Ref:
    try:
        tree = ref_parser().parse(text)
    except UnexpectedInput as exc:
        raise InterpolationError(f"Malformed reference {{{{{text}}}}}", token=tok) from exc

    return _RefBuilder().transform(tree)


def references(text: str) -> List[str]:
    """Raw text of each {{...}} reference, in order"""
    return [m.group(1) for m in REF_RE.finditer(text)]


def resolve_ref(ref: Ref, scope: SymbolTable, tok: Tok) -> str:
    if not ref.is_call:
        return _lookup(ref.name, scope, tok)

    fn = functions.lookup(ref.name)
    if fn is None:
        raise UndefinedSymbolError(f"{ref.name}()", tok)

    args: List[str] = []

    for arg in ref.args or ():
        if arg.kind == "name":
            args.append(_lookup(arg.value, scope, tok))
        else:
            args.append(arg.value)

    try:
        return fn(ref.name, args)
    except FunctionError as exc:
        raise InterpolationError(exc.message, token=tok) from exc


def _lookup(name: str, scope: SymbolTable, tok: Tok) -> str:
    bound = scope.value(name)

    if bound is None:
        raise UndefinedSymbolError(name, tok)

    return bound.value


def interpolate(tok: Tok, scope: SymbolTable, blame: Optional[Tok] = None) -> str:
    """Return tok.value with every {{...}} reference substituted.

    Errors name `blame` when given, else `tok`.
    """
    blame = blame if blame is not None else tok
    text = tok.value
    out: List[str] = []
    pos = 0

    for match in REF_RE.finditer(text):
        out.append(text[pos:match.start()])
        ref = parse_ref(match.group(1), blame)
        out.append(resolve_ref(ref, scope, blame))
        pos = match.end()

    out.append(text[pos:])
    return "".join(out)
