"""Scoped symbol tables.

A symbol table is a mapping with an optional parent table. Lookups that miss
locally are retried on the parent, recursively, until a match is found or the
root is reached; writes only ever touch the table they are made on. Nesting
tables this way gives dynamically scoped variables: a test's own table shadows
the file's table, which shadows the global one.

Tables store their own copies of tokens so the definition site of every value
is available for diagnostics.
"""

from __future__ import annotations

import json
import sys
from typing import Dict, IO, Iterator, List, Optional, TextIO

from .token_types import Tok, type_from_name, type_name


class SymbolTable:
    def __init__(self, name: str, parent: Optional[SymbolTable] = None, capacity: int = 0):
        # capacity is only a sizing hint; dicts grow on their own
        del capacity
        self.name = name
        self._parent = parent
        self.bindings: Dict[str, Tok] = {}

    @property
    def parent(self) -> Optional[SymbolTable]:
        return self._parent

    def set_name(self, name: str) -> str:
        self.name = name
        return self.name

    def root(self) -> SymbolTable:
        """Walk parents to the outermost table."""
        cur = self

        while cur._parent is not None:
            cur = cur._parent

        return cur

    def add(self, symbol: str, token: Tok) -> bool:
        """Bind `symbol` locally to a copy of `token`, replacing any existing binding."""
        self.bindings[symbol] = token.dup()
        return True

    def clear(self, symbol: str) -> None:
        """Remove the local binding; ancestors are untouched."""
        self.bindings.pop(symbol, None)

    def value(self, symbol: str) -> Optional[Tok]:
        """Return the nearest binding for `symbol`, or None.

        The returned token still belongs to the table that holds it.
        """
        if symbol in self.bindings:
            return self.bindings[symbol]

        if self._parent is not None:
            return self._parent.value(symbol)

        return None

    def chain(self) -> Iterator[SymbolTable]:
        cur: Optional[SymbolTable] = self

        while cur is not None:
            yield cur
            cur = cur._parent

    def local_names(self) -> List[str]:
        return sorted(self.bindings)

    def __contains__(self, symbol: object) -> bool:
        return symbol in self.bindings

    def __len__(self) -> int:
        return len(self.bindings)

    def __repr__(self) -> str:
        parent = self._parent.name if self._parent is not None else None
        return f"<SymbolTable {self.name!r} parent={parent!r} size={len(self.bindings)}>"

    def dump(self, sink: Optional[TextIO] = None) -> None:
        """Write the local bindings only, tagged with the table name."""
        out = sink if sink is not None else sys.stdout
        out.write(f"[{self.name}]\n")

        for symbol in self.local_names():
            tok = self.bindings[symbol]
            out.write(f"  {symbol} = {type_name(tok.type)} {tok.value!r} ({tok.where})\n")

    # ---------- Persistence ----------

    def save(self, fp: IO[str]) -> None:
        payload = {
            "name": self.name,
            "bindings": {
                symbol: {
                    "type": type_name(tok.type),
                    "value": tok.value,
                    "source": tok.source,
                    "line": tok.line,
                }
                for symbol, tok in sorted(self.bindings.items())
            },
        }
        json.dump(payload, fp, indent=2)
        fp.write("\n")

    @classmethod
    def load(cls, fp: IO[str], name: Optional[str] = None, parent: Optional[SymbolTable] = None) -> SymbolTable:
        payload = json.load(fp)
        bindings = payload.get("bindings", {}) if isinstance(payload, dict) else None
        if not isinstance(bindings, dict):
            raise ValueError("Malformed symbol table: expected an object with 'bindings'")

        table = cls(name if name is not None else payload.get("name", "loaded"), parent)

        for symbol, entry in bindings.items():
            try:
                tok = Tok(
                    type_from_name(entry["type"]),
                    entry["value"],
                    entry.get("source", "<saved>"),
                    int(entry.get("line", 0)),
                )
            except (KeyError, TypeError, AttributeError, ValueError) as exc:
                raise ValueError(f"Malformed symbol table entry for {symbol!r}") from exc
            table.bindings[symbol] = tok

        return table
