from __future__ import annotations

import sys
import traceback
from pathlib import Path
from typing import List, Optional, Sequence, TextIO, Tuple

from .evaluator import eval_records
from .logging_setup import configure_logging
from .parser_rd import parse_file, parse_stream
from .symtable import SymbolTable
from .token_types import RestTestError
from .types import TestRecord
from .utils import debug_py_trace_enabled

USAGE = (
    "usage: resttest [--symbols] [--no-eval] [--verbose] "
    "[--load-symbols PATH] [--save-symbols PATH] FILE...\n"
    "       resttest --repl"
)

def load_records(paths: Sequence[str], scope: Optional[SymbolTable] = None, evaluate: bool = True) -> Tuple[SymbolTable, List[TestRecord]]:
    """Parse every file into one shared global scope, then evaluate.

    All files are parsed before any record is evaluated so a `.global` in a
    later file is visible to tests in an earlier one.
    """
    scope = scope if scope is not None else SymbolTable("global")
    records: List[TestRecord] = []

    for path in paths:
        if path == "-":
            records.extend(parse_stream(sys.stdin, "<stdin>", scope))
        else:
            records.extend(parse_file(path, scope))

    if evaluate:
        eval_records(records)

    return scope, records

def _report(exc: BaseException, out: TextIO) -> None:
    print(f"Error: {exc}", file=out)

    if debug_py_trace_enabled():
        print("\nPython traceback:", file=out)
        print("".join(traceback.format_tb(exc.__traceback__)), file=out, end="")

def main(argv: Optional[Sequence[str]] = None) -> int:
    show_symbols = False
    evaluate = True
    verbose = False
    load_path: Optional[str] = None
    save_path: Optional[str] = None
    paths: List[str] = []
    it = iter(sys.argv[1:] if argv is None else argv)

    for token in it:
        if token == "--repl":
            from .repl import repl  # prompt_toolkit only needed here
            repl()
            return 0

        if token == "--symbols":
            show_symbols = True
            continue

        if token == "--no-eval":
            evaluate = False
            continue

        if token in ("-v", "--verbose"):
            verbose = True
            continue

        if token in ("-h", "--help"):
            print(USAGE)
            return 0

        if token in ("--load-symbols", "--save-symbols"):
            try:
                value = next(it)
            except StopIteration:
                raise SystemExit(f"{token} flag requires a path") from None

            if token == "--load-symbols":
                load_path = value
            else:
                save_path = value
            continue

        if token.startswith("-") and token != "-":
            raise SystemExit(f"Unexpected argument: {token}\n{USAGE}")

        paths.append(token)

    if not paths:
        raise SystemExit(USAGE)

    configure_logging("DEBUG" if verbose else None)

    try:
        scope: Optional[SymbolTable] = None
        if load_path is not None:
            with open(load_path, encoding="utf-8") as fp:
                scope = SymbolTable.load(fp, "global")

        scope, records = load_records(paths, scope, evaluate=evaluate)

        for record in records:
            record.dump(sys.stdout)

        if show_symbols:
            scope.dump(sys.stdout)

        if save_path is not None:
            with Path(save_path).open("w", encoding="utf-8") as fp:
                scope.save(fp)
    except (RestTestError, OSError, ValueError) as exc:
        _report(exc, sys.stderr)
        return 1

    return 0

if __name__ == "__main__":
    sys.exit(main())
