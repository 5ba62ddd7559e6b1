from __future__ import annotations

import functools
import sys
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterator, List, Optional, TextIO, Union

from .assertions import Assertion
from .symtable import SymbolTable
from .token_types import RestTestError, TT, Tok

# ---------- Exceptions ----------

class RecordError(RestTestError):
    pass

class UndefinedSymbolError(RestTestError):
    def __init__(self, name: str, token: Tok):
        super().__init__(f"Undefined symbol '{name}'", token=token)
        self.name = name

# ---------- Request / Response model ----------

VALUE_TYPES = (TT.STRING, TT.SYMBOL, TT.INTEGER, TT.SHELLCMD)

@dataclass
class Header:
    source: str
    line: int
    name: str
    value: str
    token: Optional[Tok] = None

    @property
    def raw(self) -> str:
        return f"{self.name}: {self.value}"

@dataclass
class Request:
    method: Optional[Tok] = None
    uri: Optional[Tok] = None
    http_version: Optional[Tok] = None
    body_parts: List[Tok] = field(default_factory=list)
    headers: Dict[str, Header] = field(default_factory=dict)

    @property
    def body(self) -> Optional[Tok]:
        """The body parts joined into one token.

        A single part is returned as is. Several parts join into a new token
        carrying the first part's provenance; its type is the parts' common
        type, or STRING when they differ.
        """
        if not self.body_parts:
            return None

        first = self.body_parts[0]
        if len(self.body_parts) == 1:
            return first

        types = {part.type for part in self.body_parts}
        joined = first.with_value(
            "".join(part.value for part in self.body_parts),
            first.type if len(types) == 1 else TT.STRING,
        )
        return joined

@dataclass
class Response:
    http_version: Optional[str] = None
    status_code: Optional[str] = None
    reason: Optional[str] = None
    body: Optional[str] = None
    headers: Dict[str, Header] = field(default_factory=dict)

def _mutator(fn: Callable[..., None]) -> Callable[..., bool]:
    """Wrap a setter with sticky-error semantics.

    Returns True on success. On failure the error is stored in `lasterr` and
    raised, unless the record is inside `batch()`. Once `lasterr` is set every
    further mutation is a no-op returning False.
    """

    @functools.wraps(fn)
    def wrapper(self: TestRecord, *args, **kwargs) -> bool:
        if self.lasterr is not None:
            return False

        try:
            fn(self, *args, **kwargs)
        except RecordError as exc:
            self.lasterr = exc
            if self._batching:
                return False
            raise

        return True

    return wrapper

def _text(value: Optional[Tok]) -> Optional[str]:
    return value.value if value is not None else None

class TestRecord:
    """One `.test` block: request, expected response, assertions and a private scope."""

    __test__ = False  # not a pytest class

    def __init__(self, name: str, source: str, line: int, parent: Optional[SymbolTable] = None):
        self.name = name
        self.source = source
        self.line = line
        self.symt = SymbolTable(name, parent)
        self.lasterr: Optional[RecordError] = None
        self.request = Request()
        self.response = Response()
        self.assertions: List[Assertion] = []
        self._batching = 0
        self._body_appended = False
        self._rsp_body_appended = False
        self.evaluated = False

    def __repr__(self) -> str:
        return f"<TestRecord {self.name!r} {self.source}:{self.line}>"

    def is_empty(self) -> bool:
        """True when nothing was set on the record, not even a local binding."""
        req = self.request
        return (
            req.method is None
            and req.uri is None
            and req.http_version is None
            and not req.body_parts
            and not req.headers
            and not self.assertions
            and len(self.symt) == 0
        )

    # ---------- Error handling ----------

    @contextmanager
    def batch(self) -> Iterator[TestRecord]:
        """Run several setters and check once on exit."""
        self._batching += 1
        try:
            yield self
        finally:
            self._batching -= 1
        self.check()

    def check(self) -> None:
        if self.lasterr is not None:
            raise self.lasterr

    # ---------- Identity ----------

    def set_name(self, name: str) -> str:
        self.name = name
        self.symt.set_name(name)
        return self.name

    def set_source(self, source: str) -> str:
        self.source = source
        return self.source

    def set_line(self, line: int) -> int:
        self.line = line
        return self.line

    # ---------- Request ----------

    def _coerce(self, value: Union[Tok, str], what: str) -> Tok:
        if isinstance(value, str):
            return Tok(TT.STRING, value, self.source, self.line)

        if value.type not in VALUE_TYPES:
            raise RecordError(f"Cannot use {value.type.name} as {what}", token=value)

        return value.dup()

    @_mutator
    def set_method(self, method: Union[Tok, str]) -> None:
        self.request.method = self._coerce(method, "method")

    @_mutator
    def set_uri(self, uri: Union[Tok, str]) -> None:
        self.request.uri = self._coerce(uri, "uri")

    @_mutator
    def set_http_version(self, http_version: Union[Tok, str]) -> None:
        self.request.http_version = self._coerce(http_version, "http_version")

    @_mutator
    def set_body(self, body: Union[Tok, str]) -> None:
        if self._body_appended:
            raise RecordError(f"Body of test '{self.name}' is already being appended to", self.source, self.line)
        self.request.body_parts = [self._coerce(body, "body")]

    @_mutator
    def append_body(self, body: Union[Tok, str]) -> None:
        self.request.body_parts.append(self._coerce(body, "body"))
        self._body_appended = True

    @_mutator
    def set_header(self, source: str, line: int, name: str, value: Union[Tok, str]) -> None:
        if not name:
            raise RecordError("Empty header name", source, line)

        tok = self._coerce(value, "header value")
        self.request.headers[name.lower()] = Header(source, line, name, tok.value, tok)

    # ---------- Response ----------

    @_mutator
    def set_rsp_http_version(self, http_version: str) -> None:
        self.response.http_version = http_version

    @_mutator
    def set_rsp_status_code(self, status_code: str) -> None:
        if not status_code.isdigit():
            raise RecordError(f"Invalid status code {status_code!r}", self.source, self.line)
        self.response.status_code = status_code

    @_mutator
    def set_rsp_reason(self, reason: str) -> None:
        self.response.reason = reason

    @_mutator
    def set_rsp_body(self, body: str) -> None:
        if self._rsp_body_appended:
            raise RecordError(f"Response body of test '{self.name}' is already being appended to", self.source, self.line)
        self.response.body = body

    @_mutator
    def append_rsp_body(self, body: str) -> None:
        self._rsp_body_appended = True
        self.response.body = (self.response.body or "") + body

    @_mutator
    def set_rsp_header(self, source: str, line: int, name: str, value: str) -> None:
        if not name:
            raise RecordError("Empty header name", source, line)
        self.response.headers[name.lower()] = Header(source, line, name, value)

    # ---------- Assertions ----------

    @_mutator
    def add_assertion(self, assertion: Assertion) -> None:
        self.assertions.append(assertion)

    # ---------- Accessors ----------

    @property
    def method(self) -> Optional[str]:
        return _text(self.request.method)

    @property
    def uri(self) -> Optional[str]:
        return _text(self.request.uri)

    @property
    def http_version(self) -> Optional[str]:
        return _text(self.request.http_version)

    @property
    def body(self) -> Optional[str]:
        return _text(self.request.body)

    def req_header(self, name: str) -> Optional[Header]:
        return self.request.headers.get(name.lower())

    def req_headers(self) -> Dict[str, str]:
        return {key: header.raw for key, header in self.request.headers.items()}

    def rsp_header(self, name: str) -> Optional[Header]:
        return self.response.headers.get(name.lower())

    # ---------- Diagnostics ----------

    def dump(self, sink: Optional[TextIO] = None) -> None:
        out = sink if sink is not None else sys.stdout
        req = self.request
        rsp = self.response

        out.write(f"test: {self.name} ({self.source}:{self.line})\n")
        out.write(f"  lasterr: {self.lasterr}\n")

        for label, tok in (
            ("method", req.method),
            ("uri", req.uri),
            ("http_version", req.http_version),
            ("body", req.body),
        ):
            if tok is None:
                out.write(f"  req.{label}: <unset>\n")
            else:
                out.write(f"  req.{label}: {tok.type.name} {tok.value!r} ({tok.where})\n")

        for key, header in req.headers.items():
            out.write(f"  req.header[{key}]: {header.raw!r} ({header.source}:{header.line})\n")

        out.write(f"  rsp.http_version: {rsp.http_version!r}\n")
        out.write(f"  rsp.status_code: {rsp.status_code!r}\n")
        out.write(f"  rsp.reason: {rsp.reason!r}\n")
        out.write(f"  rsp.body: {rsp.body!r}\n")

        for key, header in rsp.headers.items():
            out.write(f"  rsp.header[{key}]: {header.raw!r}\n")

        for idx, assertion in enumerate(self.assertions):
            out.write(f"  assert[{idx}]: {assertion.render()} ({assertion.source}:{assertion.line})\n")

        self.symt.dump(out)
