from __future__ import annotations

import pytest
from uplc import ast as uplc_ast

from zkuplc.errors import ResultError
from zkuplc.evaluator.canonical import render_constant, render_result, render_type


def test_scalar_renderings() -> None:
    assert render_constant(uplc_ast.BuiltinInteger(42)) == "Integer(42)"
    assert render_constant(uplc_ast.BuiltinInteger(-7)) == "Integer(-7)"
    assert render_constant(uplc_ast.BuiltinByteString(b"\x01\x02\xff")) == "ByteString([1, 2, 255])"
    assert render_constant(uplc_ast.BuiltinByteString(b"")) == "ByteString([])"
    assert render_constant(uplc_ast.BuiltinBool(True)) == "Boolean(true)"
    assert render_constant(uplc_ast.BuiltinBool(False)) == "Boolean(false)"
    assert render_constant(uplc_ast.BuiltinUnit()) == "Unit"


def test_string_uses_debug_escapes() -> None:
    rendered = render_constant(uplc_ast.BuiltinString('a"b\\c\n\t\x1b'))
    assert rendered == 'String("a\\"b\\\\c\\n\\t\\u{1b}")'


def test_string_escapes_unprintable_unicode() -> None:
    rendered = render_constant(uplc_ast.BuiltinString("a\u0085b\u200bc\u00a0d"))
    assert rendered == 'String("a\\u{85}b\\u{200b}c\\u{a0}d")'
    assert render_constant(uplc_ast.BuiltinString("e\u0301")) == 'String("e\\u{301}")'
    assert render_constant(uplc_ast.BuiltinString("caf\u00e9 \u03bb")) == 'String("caf\u00e9 \u03bb")'


def test_list_and_pair() -> None:
    lst = uplc_ast.BuiltinList([uplc_ast.BuiltinInteger(1), uplc_ast.BuiltinInteger(2)])
    assert render_constant(lst) == "ProtoList(Integer, [Integer(1), Integer(2)])"
    pair = uplc_ast.BuiltinPair(uplc_ast.BuiltinInteger(1), uplc_ast.BuiltinBool(False))
    assert render_constant(pair) == "ProtoPair(Integer, Bool, Integer(1), Boolean(false))"
    assert render_type(uplc_ast.BuiltinList([pair])) == "List(Pair(Integer, Bool))"


def test_empty_list_uses_sample_type() -> None:
    lst = uplc_ast.BuiltinList([], uplc_ast.BuiltinByteString(b""))
    assert render_constant(lst) == "ProtoList(ByteString, [])"


def test_data_renderings() -> None:
    datum = uplc_ast.PlutusConstr(
        0,
        [
            uplc_ast.PlutusInteger(1),
            uplc_ast.PlutusByteString(b"\x0a"),
            uplc_ast.PlutusList([uplc_ast.PlutusInteger(2)]),
        ],
    )
    assert render_constant(datum) == (
        "Data(Constr { tag: 0, fields: [Integer(1), ByteString([10]), "
        "List([Integer(2)])] })"
    )
    assert render_type(datum) == "Data"


def test_non_constant_result_is_rejected() -> None:
    with pytest.raises(ResultError):
        render_result(uplc_ast.Error())
