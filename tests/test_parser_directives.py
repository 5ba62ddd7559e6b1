from __future__ import annotations

import io
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

import pytest

from resttest.parser_rd import DIRECTIVES, Directive, parse_file, parse_stream
from tests.support.harness import (
    SAMPLE_SOURCE,
    TT,
    LexError,
    ParseError,
    SymbolTable,
    eval_request,
    parse_named,
    parse_text,
    string_tok,
)


@dataclass(frozen=True)
class ErrorCase:
    name: str
    source: str
    msg: str
    line: Optional[int] = None
    exc: type[Exception] = ParseError


PARSE_ERROR_CASES: List[ErrorCase] = [
    ErrorCase("missing-method", ".test a\n.method", "Missing parameter 1 for .method", 2),
    ErrorCase("missing-uri", ".uri", "Missing parameter 1 for .uri", 1),
    ErrorCase("missing-header-value", '.header "Accept"', "Missing parameter 2 for .header", 1),
    ErrorCase("missing-global-value", ".global A", "Missing parameter 2 for .global", 1),
    ErrorCase("missing-test-name", ".test", "Missing parameter 1 for .test", 1),
    ErrorCase("test-name-integer", ".test 42", "Parameter 1 for .test must be SYMBOL/STRING", 1),
    ErrorCase("local-name-shell", ".local `x` 1", "Parameter 1 for .local must be SYMBOL/STRING", 1),
    ErrorCase("uri-semicolon", ".uri ;", "Parameter 1 for .uri must be STRING/SYMBOL/INTEGER/SHELLCMD", 1),
    ErrorCase("directive-as-value", ".global A\n.uri", "Parameter 2 for .global must be", 2),
    ErrorCase("unknown-directive", ".test a\n\n.frobnicate x", "Unknown directive .frobnicate", 3),
    ErrorCase("leading-string", '"x"', "Expected directive, got STRING", 1),
    ErrorCase("stray-symbol", '.uri "x" extra', "Expected directive, got SYMBOL", 1),
    ErrorCase("stray-semicolon", ";", "Expected directive, got ASSERT_END", 1),
    ErrorCase("duplicate-test", ".test a\n.test b\n.test a", "Duplicate test name 'a'", 3),
    ErrorCase("duplicate-quoted-test", '.test "a"\n.test a', "Duplicate test name 'a'", 2),
    ErrorCase("empty-header-name", ".header '' \"v\"", "Empty header name", 1),
    ErrorCase("joined-header-literals", '.header "A" "b"', "Missing parameter 2 for .header", 1),
    ErrorCase("unterminated-assert", ".assert A 1 eq", "Unterminated .assert, expected ';'", 1),
    ErrorCase("assert-runs-into-directive", '.assert A\n.uri "x"', "Unterminated .assert", 2),
    ErrorCase("assert-empty", ".assert ;", "Empty assertion", 1),
    ErrorCase("assert-missing-operand", ".assert A eq ;", "needs 2 operand(s), found 1", 1),
    ErrorCase("assert-extra-values", ".assert A 1 ;", "leaves 2 values", 1),
    ErrorCase("lexical-error", '.uri "x"\n.method {', "Unexpected character", 2, LexError),
]


@pytest.mark.parametrize("case", PARSE_ERROR_CASES, ids=lambda case: case.name)
def test_parse_errors(case: ErrorCase) -> None:
    with pytest.raises(case.exc) as exc_info:
        parse_text(case.source, source="case.rt")

    err = exc_info.value
    assert case.msg in str(err)
    if case.line is not None:
        assert err.line == case.line, f"expected line {case.line}, got {err.line}"


def test_directive_table_is_closed() -> None:
    assert set(DIRECTIVES) == {
        ".test",
        ".global",
        ".parent",
        ".local",
        ".method",
        ".uri",
        ".http_version",
        ".header",
        ".body",
        ".assert",
    }
    assert Directive.HEADER.arity == 2
    assert Directive.ASSERT.arity == 0


def test_implicit_record_comes_first() -> None:
    records = parse_text(".test a\n.test b\n")
    assert [r.name for r in records] == ["UNSET", "a", "b"]


def test_empty_source_yields_implicit_record() -> None:
    records = parse_text("")
    assert len(records) == 1
    assert records[0].name == "UNSET"
    assert records[0].method is None


def test_directives_before_first_test_fill_implicit_record() -> None:
    records = parse_named('.uri "http://x"\n.test a\n.uri "http://a"')
    assert records["UNSET"].uri == "http://x"
    assert records["a"].uri == "http://a"


def test_record_provenance() -> None:
    records = parse_named('\n\n.test "Create user"\n.header \'Accept\' "*/*"')
    record = records["Create user"]

    assert record.line == 3
    assert record.source == "<string>"
    assert record.req_header("accept").line == 4


def test_request_fields() -> None:
    source = (
        ".test a\n"
        '.method "POST"\n'
        ".uri URI\n"
        '.http_version "HTTP/1.1"\n'
        ".body 42\n"
    )
    record = parse_named(source)["a"]
    req = record.request

    assert (req.method.type, req.method.value, req.method.line) == (TT.STRING, "POST", 2)
    assert (req.uri.type, req.uri.value) == (TT.SYMBOL, "URI")
    assert record.http_version == "HTTP/1.1"
    assert (req.body.type, req.body.value) == (TT.INTEGER, "42")


def test_body_directives_append() -> None:
    source = '.test a\n.body "\n line one\n"\n.body "\n line two\n"\n'
    record = parse_named(source)["a"]

    assert record.body == "\n line one\n\n line two\n"
    assert record.request.body.line == 2


def test_body_parts_keep_their_own_types() -> None:
    record = parse_named('.test a\n.body "prefix:"\n.body P\n.body `date`\n')["a"]
    parts = record.request.body_parts

    assert [(p.type, p.value, p.line) for p in parts] == [
        (TT.STRING, "prefix:", 2),
        (TT.SYMBOL, "P", 3),
        (TT.SHELLCMD, "date", 4),
    ]
    assert record.body == "prefix:Pdate"
    assert record.request.body.type == TT.STRING


def test_failed_parse_leaves_scope_untouched() -> None:
    top = SymbolTable("global")
    file_scope = SymbolTable("file", top)
    top.add("KEEP", string_tok("old"))

    with pytest.raises(ParseError):
        parse_text('.global KEEP "new"\n.global FRESH 1\n.parent P 2\n.frob', file_scope)

    assert top.local_names() == ["KEEP"]
    assert top.value("KEEP").value == "old"
    assert file_scope.local_names() == []


def test_headers_keyed_case_insensitively() -> None:
    source = ".test a\n.header 'X-App' \"1\"\n.header Accept \"*/*\"\n.header 'x-app' \"2\"\n"
    record = parse_named(source)["a"]

    assert list(record.request.headers) == ["x-app", "accept"]
    assert record.req_header("X-APP").raw == "x-app: 2"
    assert record.req_headers() == {"x-app": "x-app: 2", "accept": "Accept: */*"}


def test_scope_directive_targets() -> None:
    top = SymbolTable("global")
    file_scope = SymbolTable("file", top)
    source = '.test t\n.global A "g"\n.parent B "p"\n.local C "l"\n'

    record = parse_named(source, file_scope)["t"]

    assert top.local_names() == ["A"]
    assert file_scope.local_names() == ["B"]
    assert record.symt.local_names() == ["C"]
    assert record.symt.parent is file_scope


def test_local_bindings_are_private_to_their_test() -> None:
    records = parse_named('.test a\n.local X "a"\n.test b\n.local X "b"\n')

    assert records["a"].symt.value("X").value == "a"
    assert records["b"].symt.value("X").value == "b"
    assert records["UNSET"].symt.value("X") is None


def test_global_binding_after_test_is_visible_to_it() -> None:
    record = parse_named('.test a\n.uri BASE\n.global BASE "late"\n')["a"]
    assert record.symt.value("BASE").value == "late"


def test_assertions_attach_to_current_test() -> None:
    source = '.test a\n.assert STATUS 200 eq BODY "ok" contains and ;\n.assert HEALTHY not ;\n'
    record = parse_named(source)["a"]

    assert [a.render() for a in record.assertions] == [
        'STATUS 200 eq BODY "ok" contains and ;',
        "HEALTHY not ;",
    ]
    assert record.assertions[0].line == 2
    assert [tok.value for tok in record.assertions[0].operands()] == [
        "STATUS",
        "200",
        "BODY",
        "ok",
    ]


def test_sample_file(tmp_path: Path) -> None:
    path = tmp_path / "sample.rt"
    path.write_text(SAMPLE_SOURCE, encoding="utf-8")
    scope = SymbolTable("global")

    records = parse_file(str(path), scope)

    assert [r.name for r in records] == ["UNSET", "First\n  test"]
    record = records[1]
    assert record.source == str(path)
    assert record.line == 3
    assert record.method == "POST"
    assert record.http_version == "HTTP/1.1"
    assert record.body == "\n   First line \n  Second Line \n Third line \n"

    # .global and .parent both land in the same top-level table
    assert scope.value("BASE_URI").value == "localhost:8082"
    assert record.symt.value("BASE_URI").value == "localhost:8083"

    eval_request(record)
    assert record.uri == "localhost:8083"
    assert record.request.uri.line == 6


def test_parse_file_missing(tmp_path: Path) -> None:
    missing = tmp_path / "nope.rt"
    with pytest.raises(ParseError) as exc_info:
        parse_file(str(missing))
    assert "Cannot read test file" in str(exc_info.value)
    assert exc_info.value.source == str(missing)


class _BrokenStream:
    def read(self, size: int = -1) -> str:
        raise OSError("device went away")


def test_read_error_aborts_parse() -> None:
    with pytest.raises(ParseError) as exc_info:
        parse_stream(_BrokenStream(), "broken.rt")  # type: ignore[arg-type]
    assert "Read error" in str(exc_info.value)


def test_parse_stream_uses_source_name() -> None:
    records = parse_stream(io.StringIO(".test a"), "stdin.rt")
    assert {r.source for r in records} == {"stdin.rt"}
