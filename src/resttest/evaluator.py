"""
Request evaluation: phase two of the pipeline.

Resolves bareword symbols and {{...}} references in a TestRecord's request
against the record's scope chain. Fields are evaluated in a fixed order
(method, uri, http_version, body, then headers in definition order) and the
first failure stops evaluation; the error carries the record's own token.
"""

from __future__ import annotations

import logging
from typing import Iterable, List

from .interpolate import interpolate
from .symtable import SymbolTable
from .token_types import TT, Tok
from .types import TestRecord, UndefinedSymbolError

logger = logging.getLogger(__name__)

# Single-token fields; the body is a list of parts handled after them.
REQUEST_FIELDS = ("method", "uri", "http_version")

INTERPOLATED = (TT.STRING, TT.SHELLCMD)


def eval_token(tok: Tok, scope: SymbolTable) -> Tok:
    """Return the effective token for `tok`; `tok` itself is never modified."""
    match tok.type:
        case TT.SYMBOL:
            bound = scope.value(tok.value)
            if bound is None:
                raise UndefinedSymbolError(tok.value, tok)

            effective = tok.with_value(bound.value, bound.type)
            if effective.type in INTERPOLATED:
                effective.set_value(interpolate(effective, scope, blame=tok))
            return effective

        case TT.STRING | TT.SHELLCMD:
            value = interpolate(tok, scope)
            if value == tok.value:
                return tok
            return tok.with_value(value)

        case _:
            # Directives, integers, `;` and end markers are already final
            return tok


def eval_request(record: TestRecord) -> TestRecord:
    """Evaluate every request field of `record` in place.

    Body parts are evaluated one by one and kept in order, so the body is the
    concatenation of their effective values. A record is evaluated once;
    later calls return it unchanged.
    """
    record.check()
    if record.evaluated:
        return record

    scope = record.symt
    req = record.request

    for field in REQUEST_FIELDS:
        tok = getattr(req, field)
        if tok is None:
            continue
        setattr(req, field, eval_token(tok, scope))

    if req.body_parts:
        req.body_parts = [eval_token(part, scope) for part in req.body_parts]

    for header in req.headers.values():
        if header.token is None:
            continue
        effective = eval_token(header.token, scope)
        header.token = effective
        header.value = effective.value

    record.evaluated = True
    logger.debug("[%s:%d] evaluated %r", record.source, record.line, record.name)
    return record


def eval_records(records: Iterable[TestRecord]) -> List[TestRecord]:
    """Evaluate records in order, stopping at the first failure"""
    return [eval_request(record) for record in records]
