"""Postfix assertion storage.

An `.assert` directive is written in reverse-Polish order and terminated by
`;`, for example::

    .assert BODY "Requested resource is" starts_with ;
    .assert STATUS 200 eq HEADER_CT "application/json" eq and ;

Symbols that name an operator become operator entries; every other token is an
operand. Only the shape of the stack is checked here; deciding whether an
assertion holds is left to the execution stage.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, List, Optional

from .token_types import RestTestError, TT, Tok


class AssertOp(Enum):
    EQ = ("eq", 2)
    NE = ("ne", 2)
    CONTAINS = ("contains", 2)
    STARTS_WITH = ("starts_with", 2)
    ENDS_WITH = ("ends_with", 2)
    AND = ("and", 2)
    OR = ("or", 2)
    NOT = ("not", 1)

    def __init__(self, keyword: str, arity: int):
        self.keyword = keyword
        self.arity = arity


_OPS_BY_KEYWORD = {op.keyword: op for op in AssertOp}

OPERAND_TYPES = (TT.STRING, TT.SYMBOL, TT.INTEGER, TT.SHELLCMD)


def lookup_op(tok: Tok) -> Optional[AssertOp]:
    if tok.type != TT.SYMBOL:
        return None
    return _OPS_BY_KEYWORD.get(tok.value)


class AssertionShapeError(RestTestError):
    pass


@dataclass
class AssertEntry:
    """One stack entry: either an operator or an operand token."""

    token: Tok
    op: Optional[AssertOp] = None

    @property
    def is_operator(self) -> bool:
        return self.op is not None

    def __repr__(self) -> str:
        if self.op is not None:
            return f"<op {self.op.keyword}>"
        return repr(self.token.value)


@dataclass
class Assertion:
    source: str
    line: int
    entries: List[AssertEntry] = field(default_factory=list)

    def operands(self) -> List[Tok]:
        return [entry.token for entry in self.entries if entry.op is None]

    def render(self) -> str:
        parts = []

        for entry in self.entries:
            if entry.op is not None:
                parts.append(entry.op.keyword)
            elif entry.token.type == TT.STRING:
                parts.append(f'"{entry.token.value}"')
            elif entry.token.type == TT.SHELLCMD:
                parts.append(f"`{entry.token.value}`")
            else:
                parts.append(entry.token.value)

        return " ".join(parts) + " ;"


def build_assertion(tokens: Iterable[Tok], source: str, line: int) -> Assertion:
    """Build an assertion from its tokens (terminating `;` excluded).

    Simulates the stack depth: every operator must find enough operands, and
    exactly one value must be left at the end.
    """
    assertion = Assertion(source, line)
    depth = 0

    for tok in tokens:
        if tok.type not in OPERAND_TYPES:
            raise AssertionShapeError(
                f"Unexpected {tok.type.name} in assertion: {tok.value!r}", token=tok
            )

        op = lookup_op(tok)
        if op is None:
            depth += 1
        else:
            if depth < op.arity:
                raise AssertionShapeError(
                    f"Operator '{op.keyword}' needs {op.arity} operand(s), found {depth}",
                    token=tok,
                )
            depth -= op.arity - 1

        assertion.entries.append(AssertEntry(tok.dup(), op))

    if not assertion.entries:
        raise AssertionShapeError("Empty assertion", source, line)

    if depth != 1:
        raise AssertionShapeError(
            f"Assertion leaves {depth} values on the stack, expected 1", source, line
        )

    return assertion
