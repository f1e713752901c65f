from enum import Enum, auto
from dataclasses import dataclass
from typing import Dict, Optional, Tuple


class InstructionFormat(Enum):
    """Bit-layout family of an instruction."""
    REG_REG = auto()
    IMMEDIATE = auto()
    STORE = auto()
    BRANCH = auto()


@dataclass(frozen=True)
class InstructionSpec:
    """Static encoding data for one mnemonic."""
    mnemonic: str
    opcode: int
    funct3: int
    funct7: int = 0x00
    format: InstructionFormat = InstructionFormat.REG_REG
    load: bool = False  # also accepts rd, offset(base)


# Base opcodes
OP_LOAD = 0x03
OP_IMM = 0x13
OP_STORE = 0x23
OP_REG = 0x33
OP_BRANCH = 0x63

# Field widths in bits
REGISTER_BITS = 5
IMMEDIATE_BITS = 12
BRANCH_IMMEDIATE_BITS = 13

REGISTER_COUNT = 1 << REGISTER_BITS
WORD_BITS = 32
WORD_MASK = (1 << WORD_BITS) - 1

INSTRUCTION_SET: Tuple[InstructionSpec, ...] = (
    # Required group
    InstructionSpec('lh', OP_LOAD, 0x1, format=InstructionFormat.IMMEDIATE, load=True),
    InstructionSpec('sh', OP_STORE, 0x1, format=InstructionFormat.STORE),
    InstructionSpec('sub', OP_REG, 0x0, 0x20),
    InstructionSpec('or', OP_REG, 0x6, 0x00),
    InstructionSpec('andi', OP_IMM, 0x7, format=InstructionFormat.IMMEDIATE),
    InstructionSpec('srl', OP_REG, 0x5, 0x00),
    InstructionSpec('beq', OP_BRANCH, 0x0, format=InstructionFormat.BRANCH),
    # Auxiliary
    InstructionSpec('add', OP_REG, 0x0, 0x00),
    InstructionSpec('addi', OP_IMM, 0x0, format=InstructionFormat.IMMEDIATE),
    InstructionSpec('sll', OP_REG, 0x1, 0x00),
    InstructionSpec('xor', OP_REG, 0x4, 0x00),
)

INSTRUCTIONS: Dict[str, InstructionSpec] = {spec.mnemonic: spec for spec in INSTRUCTION_SET}

# Pseudo-instructions: mnemonic -> (operand count, canonical template)
PSEUDO_INSTRUCTIONS: Dict[str, Tuple[int, str]] = {
    'mv': (2, 'addi {0}, {1}, 0'),
    'li': (2, 'addi {0}, x0, {1}'),
    'nop': (0, 'addi x0, x0, 0'),
}

# ABI register names
registers: Dict[str, int] = {
    'zero': 0, 'ra': 1, 'sp': 2, 'gp': 3, 'tp': 4,
    't0': 5, 't1': 6, 't2': 7,
    's0': 8, 'fp': 8, 's1': 9,
    'a0': 10, 'a1': 11, 'a2': 12, 'a3': 13,
    'a4': 14, 'a5': 15, 'a6': 16, 'a7': 17,
    's2': 18, 's3': 19, 's4': 20, 's5': 21, 's6': 22,
    's7': 23, 's8': 24, 's9': 25, 's10': 26, 's11': 27,
    't3': 28, 't4': 29, 't5': 30, 't6': 31,
}


def lookup_instruction(mnemonic: str) -> Optional[InstructionSpec]:
    """Return the table entry for an exact mnemonic, or None."""
    return INSTRUCTIONS.get(mnemonic.lower())
