from __future__ import annotations

import hashlib

import pytest

from zkuplc.commitment import COMMITMENT_SIZE, commit, commit_hex
from zkuplc.errors import DecodeError
from zkuplc.verify import check_commitment


def test_commit_is_sha256_of_program_then_result() -> None:
    program = bytes.fromhex("010000481501")
    expected = hashlib.sha256(program + b"Integer(42)").digest()
    assert commit(program, "Integer(42)") == expected
    assert len(expected) == COMMITMENT_SIZE
    assert commit_hex(program, "Integer(42)") == expected.hex()


def test_commit_has_no_separator() -> None:
    # moving a byte across the boundary yields the same digest
    assert commit(b"ab", "c") == commit(b"a", "bc")


def test_commit_encodes_result_as_utf8() -> None:
    assert commit(b"\x01", 'String("é")') == hashlib.sha256(b"\x01" + 'String("é")'.encode()).digest()


def test_check_commitment_accepts_hex_and_bytes() -> None:
    program = b"\x01\x02"
    digest = commit(program, "Unit")
    assert check_commitment(program, "Unit", digest).matches
    assert check_commitment(program, "Unit", "0x" + digest.hex().upper()).matches
    check = check_commitment(program, "Unit", digest.hex())
    assert check.to_dict() == {"match": True, "expected": digest.hex()}


def test_check_commitment_detects_any_change() -> None:
    program = b"\x01\x02"
    digest = commit(program, "Integer(1)")
    assert not check_commitment(program, "Integer(2)", digest).matches
    assert not check_commitment(b"\x01\x03", "Integer(1)", digest).matches
    assert not check_commitment(program, "Integer(1)", digest[:31]).matches


def test_check_commitment_rejects_bad_hex() -> None:
    with pytest.raises(DecodeError):
        check_commitment(b"\x01", "Unit", "not-hex")
