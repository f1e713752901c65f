"""Shared fixtures for the assembler test suite.

The sample program uses only well-formed lines whose encodings match the
reference RV32I encodings (checked against a standard RISC-V toolchain).
"""

from typing import List

import pytest


SAMPLE_PROGRAM: List[str] = [
    "# sample program",
    "",
    "add x1, x2, x3",
    "sub x5, x6, x7      # x5 = x6 - x7",
    "lh x5, 4(x6)",
    "sh x2, 4(x1)",
    "beq x1, x2, 8",
    "li x5, 10",
    "nop",
]

SAMPLE_WORDS: List[int] = [
    0x003100B3,
    0x407302B3,
    0x00431283,
    0x00209223,
    0x00208463,
    0x00A00293,
    0x00000013,
]


@pytest.fixture
def sample_program() -> List[str]:
    return list(SAMPLE_PROGRAM)


@pytest.fixture
def sample_words() -> List[int]:
    return list(SAMPLE_WORDS)


@pytest.fixture
def sample_file(tmp_path):
    path = tmp_path / "sample.asm"
    path.write_text("\n".join(SAMPLE_PROGRAM) + "\n", encoding="utf-8")
    return path
