"""Interactive REPL for rest-test directives, powered by prompt_toolkit."""

from __future__ import annotations

import re
import sys
import traceback
from typing import List

from prompt_toolkit import PromptSession
from prompt_toolkit.completion import Completer, Completion
from prompt_toolkit.history import InMemoryHistory
from prompt_toolkit.key_binding import KeyBindings
from prompt_toolkit.shortcuts import clear

from .evaluator import eval_request
from .lexer_rd import UnterminatedLiteral, tokenize
from .logging_setup import configure_logging
from .parser_rd import IMPLICIT_TEST_NAME, parse_source
from .symtable import SymbolTable
from .token_types import RestTestError
from .types import TestRecord
from .utils import debug_py_trace_enabled, set_debug_py_trace
from .repl_highlight import RestTestLexer

# Zero-width and invisible characters to strip from input.
_INVISIBLE_RE = re.compile("[\u200b\u200c\u200d\ufeff\u00a0\r]")

# Slash commands: name => (description, argument_hint).
_SLASH_CMDS = {
    "/clear": ("Clear the terminal screen", ""),
    "/py-traceback": ("Toggle Python traceback on errors", "[on|off]"),
    "/records": ("Dump every test parsed so far", ""),
    "/reset": ("Drop all tests and symbols", ""),
    "/symbols": ("Dump the global symbol table", ""),
}


class ReplSession:
    """Tests and global scope accumulated across REPL submissions."""

    def __init__(self) -> None:
        self.scope = SymbolTable("global")
        self.records: List[TestRecord] = []
        self.submissions = 0

    def submit(self, text: str) -> List[TestRecord]:
        """Parse and evaluate one submission; return the tests it defined."""
        self.submissions += 1
        source = f"<repl:{self.submissions}>"
        parsed = parse_source(text, source, self.scope)

        # The implicit leading test only matters if something was put in it
        fresh = [r for r in parsed if r.name != IMPLICIT_TEST_NAME or not r.is_empty()]

        for record in fresh:
            eval_request(record)

        self.records.extend(fresh)
        return fresh


def _is_incomplete(text: str) -> bool:
    """Return True while *text* ends inside a quoted literal."""
    try:
        tokenize(text, "<repl>")
    except UnterminatedLiteral:
        return True
    except RestTestError:
        return False
    return False


class _SlashCompleter(Completer):
    """Autocomplete slash commands on the primary prompt."""

    def get_completions(self, document, complete_event):
        text = document.text_before_cursor
        if not text.startswith("/"):
            return

        for cmd, (desc, hint) in _SLASH_CMDS.items():
            if cmd.startswith(text):
                yield Completion(
                    cmd,
                    start_position=-len(text),
                    display_meta=desc,
                )


def _handle_slash(line: str, session_box: list[ReplSession]) -> bool:
    """Handle slash commands. Returns True if the line was a command."""
    stripped = line.strip()
    if not stripped.startswith("/"):
        return False

    parts = stripped.split(None, 1)
    cmd = parts[0]
    arg = parts[1] if len(parts) > 1 else ""

    if cmd == "/clear":
        clear()
        return True

    if cmd == "/py-traceback":
        if arg.lower() in ("on", "1", "true", "yes"):
            set_debug_py_trace(True)
        elif arg.lower() in ("off", "0", "false", "no"):
            set_debug_py_trace(False)
        elif arg == "":
            # Toggle.
            set_debug_py_trace(not debug_py_trace_enabled())
        else:
            print("Usage: /py-traceback [on|off]", file=sys.stderr)
            return True

        state = "on" if debug_py_trace_enabled() else "off"
        print(f"Python traceback: {state}")
        return True

    if cmd == "/records":
        for record in session_box[0].records:
            record.dump(sys.stdout)
        return True

    if cmd == "/symbols":
        session_box[0].scope.dump(sys.stdout)
        return True

    if cmd == "/reset":
        session_box[0] = ReplSession()
        print("Session reset.")
        return True

    print(f"Unknown command: {cmd}", file=sys.stderr)
    return True


def _normalize(text: str) -> str:
    """Strip invisible characters from input."""
    return _INVISIBLE_RE.sub("", text)


def repl() -> None:
    """Interactive read-eval-print loop with prompt_toolkit."""
    configure_logging()
    # Use a mutable box so /reset can swap the session.
    session_box: list[ReplSession] = [ReplSession()]

    history = InMemoryHistory()
    lexer = RestTestLexer()

    bindings = KeyBindings()

    @bindings.add("backspace")
    def _backspace(event):
        buf = event.app.current_buffer
        buf.delete_before_cursor(1)
        if buf.text.startswith("/"):
            buf.start_completion()

    @bindings.add("enter")
    def _enter(event):
        buf = event.app.current_buffer

        # Keep reading while a quoted literal is open.
        if _is_incomplete(buf.text):
            buf.insert_text("\n")
            return

        buf.validate_and_handle()

    prompt: PromptSession[str] = PromptSession(
        history=history,
        lexer=lexer,
        completer=_SlashCompleter(),
        complete_while_typing=True,
        key_bindings=bindings,
        multiline=True,
        prompt_continuation="... ",
    )

    print("resttest repl - Ctrl-D to exit, / for commands")

    while True:
        try:
            text = prompt.prompt(">>> ")
        except EOFError:
            print()
            break
        except KeyboardInterrupt:
            print("KeyboardInterrupt")
            continue

        text = _normalize(text)
        if not text.strip():
            continue

        # Slash command?
        if _handle_slash(text, session_box):
            continue

        try:
            records = session_box[0].submit(text)
        except RestTestError as exc:
            print(f"Error: {exc}", file=sys.stderr)
            if debug_py_trace_enabled():
                print("\nPython traceback:", file=sys.stderr)
                print(
                    "".join(traceback.format_tb(exc.__traceback__)),
                    file=sys.stderr,
                    end="",
                )
            continue

        for record in records:
            record.dump(sys.stdout)
