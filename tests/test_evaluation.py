from __future__ import annotations

import pytest

from resttest.evaluator import eval_records, eval_token
from resttest.types import RecordError
from tests.support.harness import (
    TT,
    SymbolTable,
    Tok,
    UndefinedSymbolError,
    eval_request,
    evaluate_text,
    parse_named,
    parse_text,
)


def test_symbol_field_takes_bound_value() -> None:
    record = evaluate_text('.global HOST "localhost:8081"\n.test a\n.uri HOST\n')["a"]
    uri = record.request.uri

    assert (uri.type, uri.value) == (TT.STRING, "localhost:8081")
    assert (uri.source, uri.line) == ("<string>", 3)


def test_symbol_bound_to_integer() -> None:
    record = evaluate_text(".global PORT 8081\n.test a\n.body PORT\n")["a"]
    assert (record.request.body.type, record.body) == (TT.INTEGER, "8081")


def test_symbol_bound_to_symbol_resolves_one_level() -> None:
    record = evaluate_text('.global A B\n.global B "x"\n.test a\n.uri A\n')["a"]
    assert (record.request.uri.type, record.uri) == (TT.SYMBOL, "B")


def test_string_references() -> None:
    source = (
        '.global HOST "localhost"\n'
        ".test a\n"
        ".local PORT 8081\n"
        '.uri "http://{{HOST}}:{{PORT}}/users"\n'
    )
    record = evaluate_text(source)["a"]
    assert record.uri == "http://localhost:8081/users"
    assert record.request.uri.line == 4


def test_symbol_bound_to_template_is_interpolated() -> None:
    source = '.global HOST "h"\n.global URL "http://{{HOST}}/"\n.test a\n.uri URL\n'
    assert evaluate_text(source)["a"].uri == "http://h/"


def test_substituted_text_is_not_rescanned() -> None:
    source = '.global A "{{B}}"\n.global B "x"\n.test a\n.uri "[{{A}}]"\n'
    assert evaluate_text(source)["a"].uri == "[{{B}}]"


def test_local_shadows_global() -> None:
    source = (
        '.global BASE "global"\n'
        ".test a\n"
        '.local BASE "local"\n'
        ".uri BASE\n"
        ".test b\n"
        ".uri BASE\n"
    )
    records = evaluate_text(source)
    assert records["a"].uri == "local"
    assert records["b"].uri == "global"


def test_file_scope_between_global_and_test() -> None:
    top = SymbolTable("global")
    top.add("HOST", Tok(TT.STRING, "global-host"))
    file_scope = SymbolTable("file", top)

    source = '.parent HOST "file-host"\n.test a\n.uri "{{HOST}}"\n'
    assert evaluate_text(source, file_scope)["a"].uri == "file-host"


def test_body_symbol_parts_join_after_evaluation() -> None:
    record = evaluate_text('.global A "x"\n.global B "y"\n.test t\n.body A\n.body B\n')["t"]

    assert record.body == "xy"
    assert [(p.type, p.value, p.line) for p in record.request.body_parts] == [
        (TT.STRING, "x", 4),
        (TT.STRING, "y", 5),
    ]


def test_body_string_then_symbol() -> None:
    source = '.global P 8081\n.test t\n.body "prefix:"\n.body P\n'
    record = evaluate_text(source)["t"]

    assert record.body == "prefix:8081"
    assert record.request.body.type == TT.STRING
    assert record.request.body.line == 3


def test_undefined_body_part_is_blamed() -> None:
    record = parse_named('.global A "x"\n.test t\n.body A\n.body "{{NOPE}}"\n')["t"]
    parts = list(record.request.body_parts)

    with pytest.raises(UndefinedSymbolError) as exc_info:
        eval_request(record)

    assert exc_info.value.token is parts[1]
    assert exc_info.value.line == 4
    assert record.request.body_parts == parts
    assert record.request.body_parts[0].type == TT.SYMBOL


def test_shell_command_is_interpolated_not_run() -> None:
    record = evaluate_text('.global F "x.json"\n.test a\n.body `cat {{F}}`\n')["a"]
    assert (record.request.body.type, record.body) == (TT.SHELLCMD, "cat x.json")


def test_headers_are_evaluated() -> None:
    source = (
        '.global TOKEN "abc"\n'
        ".test a\n"
        ".header 'Authorization' \"Bearer {{TOKEN}}\"\n"
        ".header 'X-Token' TOKEN\n"
    )
    record = evaluate_text(source)["a"]

    assert record.req_header("authorization").raw == "Authorization: Bearer abc"
    assert record.req_header("x-token").value == "abc"
    assert record.req_header("x-token").token.line == 4


@pytest.mark.parametrize(
    "uri",
    ["MISSING", '"http://{{MISSING}}/"'],
    ids=["symbol", "reference"],
)
def test_undefined_symbol_stops_evaluation(uri: str) -> None:
    source = (
        '.global M "GET"\n'
        ".test a\n"
        ".method M\n"
        f".uri {uri}\n"
        ".http_version V\n"
        '.body "{{ALSO_MISSING}}"\n'
    )
    record = parse_named(source)["a"]
    uri_tok = record.request.uri
    version_tok = record.request.http_version
    body_tok = record.request.body

    with pytest.raises(UndefinedSymbolError) as exc_info:
        eval_request(record)

    err = exc_info.value
    assert err.name == "MISSING"
    assert err.token is uri_tok
    assert err.line == 4
    assert "Undefined symbol 'MISSING'" in str(err)

    # Fields before the failure are evaluated, fields after are untouched
    assert record.method == "GET"
    assert record.request.uri is uri_tok
    assert record.request.http_version is version_tok
    assert record.request.body is body_tok


def test_undefined_header_symbol() -> None:
    record = parse_named(".test a\n.header 'Accept' NOPE\n")["a"]

    with pytest.raises(UndefinedSymbolError) as exc_info:
        eval_request(record)
    assert exc_info.value.token is record.req_header("accept").token


def test_eval_token_returns_unchanged_token() -> None:
    scope = SymbolTable("global")
    plain = Tok(TT.STRING, "no references")
    number = Tok(TT.INTEGER, "42")

    assert eval_token(plain, scope) is plain
    assert eval_token(number, scope) is number


def test_eval_token_never_mutates_input() -> None:
    scope = SymbolTable("global")
    scope.add("X", Tok(TT.STRING, "1"))
    tok = Tok(TT.STRING, "{{X}}")

    assert eval_token(tok, scope).value == "1"
    assert tok.value == "{{X}}"


def test_eval_records_stops_at_first_failure() -> None:
    records = parse_text('.global OK "y"\n.test a\n.uri OK\n.test b\n.uri NOPE\n.test c\n.uri OK\n')

    with pytest.raises(UndefinedSymbolError):
        eval_records(records)

    by_name = {r.name: r for r in records}
    assert by_name["a"].request.uri.type == TT.STRING
    assert by_name["c"].request.uri.type == TT.SYMBOL


def test_eval_request_raises_stored_record_error() -> None:
    record = parse_named('.test a\n.uri "x"\n')["a"]

    with pytest.raises(RecordError):
        record.set_rsp_status_code("bad")

    with pytest.raises(RecordError) as exc_info:
        eval_request(record)
    assert exc_info.value is record.lasterr


def test_second_evaluation_is_a_no_op() -> None:
    record = parse_named('.global A "{{B}}"\n.global B "x"\n.test t\n.uri "[{{A}}]"\n.body A\n')["t"]

    eval_request(record)
    uri, body = record.request.uri, record.request.body
    eval_request(record)

    assert record.evaluated is True
    assert record.uri == "[{{B}}]"
    assert record.request.uri is uri
    assert record.request.body is body
