"""Canonical, engine-independent rendering of UPLC constants.

Every component that computes or checks a commitment renders the final value
with :func:`render_constant`; two engines that agree on the value therefore
agree on the committed string. The scalar forms match the in-guest engine:

    Integer(42)   ByteString([1, 2])   String("hi")   Boolean(true)   Unit

Compound values:

    ProtoList(Integer, [Integer(1), Integer(2)])
    ProtoPair(Integer, Bool, Integer(1), Boolean(false))
    Data(Constr { tag: 0, fields: [Integer(1)] })

Strings follow Rust's ``str`` Debug escaping: quotes, backslashes and the
usual control escapes, and ``\\u{..}`` for characters that are not printable
or that extend a grapheme (combining marks).

Known limit: a Data ``Map`` may carry duplicate keys on chain, but ``uplc``
decodes maps into Python dicts, so duplicates collapse before rendering. The
host commitment for such a value differs from the guest's and proving it
fails the public-values check with a 500.
"""
from __future__ import annotations

import unicodedata
from typing import Any

from uplc import ast as uplc_ast

from zkuplc.errors import ResultError

_ESCAPES = {
    "\\": "\\\\",
    '"': '\\"',
    "\n": "\\n",
    "\r": "\\r",
    "\t": "\\t",
    "\0": "\\0",
}

# Unicode categories Rust's char::is_printable treats as unprintable; the ASCII
# space is the one Zs character that prints.
_UNPRINTABLE_CATEGORIES = frozenset({"Cc", "Cf", "Cs", "Co", "Cn", "Zl", "Zp", "Zs"})
_GRAPHEME_EXTEND_CATEGORIES = frozenset({"Mn", "Me"})


def _escape_as_codepoint(ch: str) -> bool:
    if ch == " ":
        return False
    category = unicodedata.category(ch)
    return category in _UNPRINTABLE_CATEGORIES or category in _GRAPHEME_EXTEND_CATEGORIES


def _debug_str(value: str) -> str:
    out = []
    for ch in value:
        if ch in _ESCAPES:
            out.append(_ESCAPES[ch])
        elif _escape_as_codepoint(ch):
            out.append(f"\\u{{{ord(ch):x}}}")
        else:
            out.append(ch)
    return '"' + "".join(out) + '"'


def _bytes(value: bytes) -> str:
    return "[" + ", ".join(str(b) for b in value) + "]"


def is_constant(term: Any) -> bool:
    return isinstance(term, uplc_ast.Constant)


def render_data(datum: Any) -> str:
    """Render a PlutusData value without the outer ``Data(...)`` wrapper."""
    if isinstance(datum, uplc_ast.PlutusConstr):
        fields = ", ".join(render_data(f) for f in datum.fields)
        return f"Constr {{ tag: {datum.constructor}, fields: [{fields}] }}"
    if isinstance(datum, uplc_ast.PlutusMap):
        pairs = ", ".join(f"({render_data(k)}, {render_data(v)})" for k, v in datum.value.items())
        return f"Map([{pairs}])"
    if isinstance(datum, uplc_ast.PlutusList):
        return "List([" + ", ".join(render_data(v) for v in datum.value) + "])"
    if isinstance(datum, uplc_ast.PlutusInteger):
        return f"Integer({datum.value})"
    if isinstance(datum, uplc_ast.PlutusByteString):
        return f"ByteString({_bytes(datum.value)})"
    raise ResultError(f"Unsupported data value: {type(datum).__name__}")


def render_type(constant: Any) -> str:
    """Render the UPLC type of ``constant``."""
    if isinstance(constant, uplc_ast.PlutusData):
        return "Data"
    if isinstance(constant, uplc_ast.BuiltinBool):
        return "Bool"
    if isinstance(constant, uplc_ast.BuiltinInteger):
        return "Integer"
    if isinstance(constant, uplc_ast.BuiltinByteString):
        return "ByteString"
    if isinstance(constant, uplc_ast.BuiltinString):
        return "String"
    if isinstance(constant, uplc_ast.BuiltinUnit):
        return "Unit"
    if isinstance(constant, uplc_ast.BuiltinList):
        return f"List({render_type(_list_sample(constant))})"
    if isinstance(constant, uplc_ast.BuiltinPair):
        return f"Pair({render_type(constant.l_value)}, {render_type(constant.r_value)})"
    raise ResultError(f"Unsupported constant type: {type(constant).__name__}")


def _list_sample(constant: Any) -> Any:
    sample = getattr(constant, "sample_value", None)
    if sample is not None:
        return sample
    if constant.values:
        return constant.values[0]
    raise ResultError("Cannot determine element type of empty list")


def render_constant(constant: Any) -> str:
    """Render a constant term in the canonical textual form."""
    if isinstance(constant, uplc_ast.PlutusData):
        return f"Data({render_data(constant)})"
    if isinstance(constant, uplc_ast.BuiltinBool):
        return "Boolean(true)" if constant.value else "Boolean(false)"
    if isinstance(constant, uplc_ast.BuiltinInteger):
        return f"Integer({constant.value})"
    if isinstance(constant, uplc_ast.BuiltinByteString):
        return f"ByteString({_bytes(constant.value)})"
    if isinstance(constant, uplc_ast.BuiltinString):
        return f"String({_debug_str(constant.value)})"
    if isinstance(constant, uplc_ast.BuiltinUnit):
        return "Unit"
    if isinstance(constant, uplc_ast.BuiltinList):
        items = ", ".join(render_constant(v) for v in constant.values)
        return f"ProtoList({render_type(_list_sample(constant))}, [{items}])"
    if isinstance(constant, uplc_ast.BuiltinPair):
        return (
            f"ProtoPair({render_type(constant.l_value)}, {render_type(constant.r_value)}, "
            f"{render_constant(constant.l_value)}, {render_constant(constant.r_value)})"
        )
    raise ResultError(f"Unsupported constant type: {type(constant).__name__}")


def render_result(term: Any) -> str:
    """Render the final term of an evaluation, rejecting non-constants."""
    if not is_constant(term):
        raise ResultError("Evaluation result is not a constant")
    return render_constant(term)


__all__ = ["is_constant", "render_constant", "render_data", "render_result", "render_type"]
