"""Interfaces to the collaborators that sit outside the parser.

Nothing in this package opens sockets or spawns processes. Shell capture and
request execution are supplied by the caller through these protocols.
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Tuple

from typing_extensions import Protocol

from .evaluator import REQUEST_FIELDS, eval_request
from .parser_rd import IMPLICIT_TEST_NAME
from .token_types import RestTestError, TT, Tok
from .types import TestRecord

logger = logging.getLogger(__name__)


class ShellExecutor(Protocol):
    def execute(self, command: str) -> str:
        """Run `command` and return its captured output; raise on failure."""
        ...


class RequestExecutor(Protocol):
    def run(self, record: TestRecord) -> bool:
        """Send the request of a fully evaluated record and check its assertions."""
        ...


class ShellCaptureError(RestTestError):
    pass


def _capture(tok: Tok, shell: ShellExecutor) -> str:
    try:
        return shell.execute(tok.value)
    except Exception as exc:
        raise ShellCaptureError(f"Shell command failed: {exc}", token=tok) from exc


def capture_shell_fields(record: TestRecord, shell: ShellExecutor) -> TestRecord:
    """Replace every back-tick request field with the executor's output.

    Runs after evaluation, so commands already have their {{...}} references
    substituted.
    """
    req = record.request

    for field in REQUEST_FIELDS:
        tok = getattr(req, field)
        if tok is None or tok.type != TT.SHELLCMD:
            continue

        output = _capture(tok, shell)
        setattr(req, field, tok.with_value(output, TT.STRING))

    for idx, tok in enumerate(req.body_parts):
        if tok.type == TT.SHELLCMD:
            req.body_parts[idx] = tok.with_value(_capture(tok, shell), TT.STRING)

    for header in req.headers.values():
        tok = header.token
        if tok is None or tok.type != TT.SHELLCMD:
            continue

        output = _capture(tok, shell)
        header.token = tok.with_value(output, TT.STRING)
        header.value = output

    return record


def run_records(records: Iterable[TestRecord], executor: RequestExecutor) -> List[Tuple[TestRecord, bool]]:
    """Evaluate each record and hand it to `executor`, in order.

    The implicit leading test is skipped when nothing was put in it.
    """
    results: List[Tuple[TestRecord, bool]] = []

    for record in records:
        if record.name == IMPLICIT_TEST_NAME and record.is_empty():
            continue

        eval_request(record)
        passed = executor.run(record)
        logger.info("%s %s (%s:%d)", "PASS" if passed else "FAIL", record.name, record.source, record.line)
        results.append((record, passed))

    return results
