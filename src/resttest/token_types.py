"""
Token Types for the rest-test DSL

Shared between lexer, parser and evaluator to avoid circular dependencies.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from enum import Enum, auto
from typing import Optional


class TT(Enum):
    """Token Types"""

    # Structural
    DIRECTIVE = auto()
    ASSERT_END = auto()  # ;

    # Literals
    STRING = auto()
    SHELLCMD = auto()  # `...`
    INTEGER = auto()
    SYMBOL = auto()

    # Special
    NONE = auto()  # end of stream
    UNKNOWN = auto()  # stream read error


_TYPE_NAMES = {tt: f"token_{tt.name}" for tt in TT}
_NAME_TYPES = {name: tt for tt, name in _TYPE_NAMES.items()}


def type_name(tt: TT) -> str:
    return _TYPE_NAMES.get(tt, "token_type_???")


def type_from_name(name: str) -> TT:
    return _NAME_TYPES.get(name, TT.UNKNOWN)


@dataclass
class Tok:
    """Token with provenance (source file + line)"""

    type: TT
    value: str
    source: str = "<string>"
    line: int = 0

    def dup(self) -> Tok:
        return dataclasses.replace(self)

    def with_value(self, value: str, type: Optional[TT] = None) -> Tok:
        """Return a new token carrying this token's provenance."""
        return Tok(type if type is not None else self.type, value, self.source, self.line)

    def set_value(self, value: str) -> None:
        self.value = value

    def append(self, other: Tok) -> None:
        self.value += other.value

    @property
    def where(self) -> str:
        return f"{self.source}:{self.line}"

    def __repr__(self):
        return f"Tok({self.type.name}, {self.value!r}, {self.source}:{self.line})"


class RestTestError(Exception):
    """Base for every error raised while lexing, parsing or evaluating tests."""

    def __init__(
        self,
        message: str,
        source: Optional[str] = None,
        line: Optional[int] = None,
        token: Optional[Tok] = None,
    ):
        if token is not None:
            source = source if source is not None else token.source
            line = line if line is not None else token.line
        self.message = message
        self.source = source
        self.line = line
        self.token = token

        if source is None:
            super().__init__(message)
        elif line is None:
            super().__init__(f"{message} ({source})")
        else:
            super().__init__(f"{message} ({source}:{line})")
