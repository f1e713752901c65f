import re
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

from isa import (
    BRANCH_IMMEDIATE_BITS,
    IMMEDIATE_BITS,
    PSEUDO_INSTRUCTIONS,
    REGISTER_BITS,
    REGISTER_COUNT,
    WORD_MASK,
    InstructionFormat,
    InstructionSpec,
    lookup_instruction,
    registers,
)

# Longest accepted operand tokens
MAX_REGISTER_LENGTH = 4
MAX_IMMEDIATE_LENGTH = 19
MAX_NUMBER_DIGITS = MAX_IMMEDIATE_LENGTH + 1

# mnemonic, then everything after the first run of whitespace
LINE_RE = re.compile(r'(\S+)\s*(.*)')
# offset(base)
MEMORY_RE = re.compile(r'([^(),\s]+)\s*\(\s*([^(),\s]+)\s*\)')
DECIMAL_RE = re.compile(r'[0-9]+')
HEX_RE = re.compile(r'[0-9a-fA-F]+')
BIN_RE = re.compile(r'[01]+')


class AssemblyError(Exception):
    """Base class for problems found while encoding a line."""

    def __init__(self, message: str, line_text: str = '', line: int = 0):
        super().__init__(message)
        self.message = message
        self.line_text = line_text
        self.line = line

    def __str__(self):
        if self.line:
            return f"Line {self.line}: {self.message}"
        return self.message


class UnknownMnemonicError(AssemblyError):
    """The mnemonic is not in the instruction table."""


class MalformedOperandsError(AssemblyError):
    """Wrong operand count, or an operand that does not parse cleanly."""


class OperandOutOfRangeError(AssemblyError):
    """A register or immediate does not fit its field."""


@dataclass
class EncodeResult:
    """Encoded word plus the first problem found, if any.

    The word is always usable: unknown mnemonics give 0, other problems give
    a best-effort encoding with bad values read as 0 or truncated to the field.
    """
    word: int
    error: Optional[AssemblyError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def split_line(line: str) -> Tuple[str, List[str]]:
    """Split a line into its mnemonic and comma separated operands."""
    match = LINE_RE.match(line.strip())
    if not match:
        return '', []
    mnemonic, operand_text = match.groups()
    operand_text = operand_text.strip()
    if not operand_text:
        return mnemonic, []
    return mnemonic, [operand.strip() for operand in operand_text.split(',')]


def expand_pseudo_instruction(line: str) -> str:
    """Rewrite mv/li/nop into their addi form. Other lines come back unchanged."""
    mnemonic, operands = split_line(line)
    pseudo = PSEUDO_INSTRUCTIONS.get(mnemonic.lower())
    if pseudo is None:
        return line
    count, template = pseudo
    if len(operands) != count:
        return line
    return template.format(*operands)


def _leading_number(text: str, pattern, base: int) -> Tuple[int, bool]:
    match = pattern.match(text)
    if not match:
        return 0, False
    # digits past the token bound are never converted
    digits = match.group()[:MAX_NUMBER_DIGITS]
    return int(digits, base), match.end() == len(text)


def parse_immediate(token: str) -> Tuple[int, bool]:
    """Parse a decimal, 0x hex or 0b binary literal.

    Returns (value, clean). Like strtoul, trailing garbage is ignored and a
    token with no leading digits reads as 0; clean is False in both cases.
    """
    text = token.strip()
    sign = 1
    if text[:1] in ('+', '-'):
        if text[0] == '-':
            sign = -1
        text = text[1:]
    prefix = text[:2].lower()
    if prefix == '0x':
        value, clean = _leading_number(text[2:], HEX_RE, 16)
    elif prefix == '0b':
        value, clean = _leading_number(text[2:], BIN_RE, 2)
    else:
        value, clean = _leading_number(text, DECIMAL_RE, 10)
    return sign * value, clean


def parse_register(token: str) -> Tuple[int, bool]:
    """Parse x<N> or an ABI register name. Returns (index, clean)."""
    name = token.strip().lower()
    if name in registers:
        return registers[name], True
    value, clean = _leading_number(name[1:], DECIMAL_RE, 10)
    return value, clean and name.startswith('x')


# Field assembly. Every field is masked to its width.

def encode_r_type(spec: InstructionSpec, rd: int, rs1: int, rs2: int) -> int:
    return ((spec.funct7 & 0x7F) << 25 | (rs2 & 0x1F) << 20 | (rs1 & 0x1F) << 15
            | (spec.funct3 & 0x7) << 12 | (rd & 0x1F) << 7 | (spec.opcode & 0x7F))


def encode_i_type(spec: InstructionSpec, rd: int, rs1: int, imm: int) -> int:
    return ((imm & 0xFFF) << 20 | (rs1 & 0x1F) << 15 | (spec.funct3 & 0x7) << 12
            | (rd & 0x1F) << 7 | (spec.opcode & 0x7F))


def encode_s_type(spec: InstructionSpec, rs1: int, rs2: int, imm: int) -> int:
    imm_11_5 = (imm >> 5) & 0x7F
    imm_4_0 = imm & 0x1F
    return (imm_11_5 << 25 | (rs2 & 0x1F) << 20 | (rs1 & 0x1F) << 15
            | (spec.funct3 & 0x7) << 12 | imm_4_0 << 7 | (spec.opcode & 0x7F))


def encode_b_type(spec: InstructionSpec, rs1: int, rs2: int, imm: int) -> int:
    """Scatter imm[12|10:5|4:1|11]; bit 0 of the offset is not stored."""
    imm_12 = (imm >> 12) & 0x1
    imm_11 = (imm >> 11) & 0x1
    imm_10_5 = (imm >> 5) & 0x3F
    imm_4_1 = (imm >> 1) & 0xF
    return (imm_12 << 31 | imm_10_5 << 25 | (rs2 & 0x1F) << 20 | (rs1 & 0x1F) << 15
            | (spec.funct3 & 0x7) << 12 | imm_4_1 << 8 | imm_11 << 7 | (spec.opcode & 0x7F))


class OperandReader:
    """Permissive operand conversions for one line.

    Nothing here raises: every problem is appended to ``errors`` and the
    conversion carries on with its best-effort value.
    """

    def __init__(self, line: str, operands: List[str]):
        self.line = line
        self.operands = operands
        self.errors: List[AssemblyError] = []

    def malformed(self, message: str):
        self.errors.append(MalformedOperandsError(message, self.line))

    def out_of_range(self, message: str):
        self.errors.append(OperandOutOfRangeError(message, self.line))

    def expect(self, count: int) -> List[str]:
        """Return exactly ``count`` operand texts, padding missing ones with ''."""
        if len(self.operands) != count:
            self.malformed(f"Expected {count} operands, got {len(self.operands)}")
        return (self.operands + [''] * count)[:count]

    def memory_operand(self) -> Optional[Tuple[str, str, str]]:
        """Match ``reg, offset(base)``; returns (reg, offset, base) or None."""
        if len(self.operands) != 2:
            return None
        match = MEMORY_RE.fullmatch(self.operands[1])
        if not match:
            return None
        return self.operands[0], match.group(1), match.group(2)

    def register(self, token: str) -> int:
        value, clean = parse_register(token)
        if len(token) > MAX_REGISTER_LENGTH:
            self.malformed(f"Register token '{token}' is longer than {MAX_REGISTER_LENGTH} characters")
        elif not clean:
            self.malformed(f"Invalid register '{token}'")
        elif value >= REGISTER_COUNT:
            self.out_of_range(f"Register '{token}' is above x{REGISTER_COUNT - 1}")
        return value & ((1 << REGISTER_BITS) - 1)

    def immediate(self, token: str, bits: int) -> int:
        value, clean = parse_immediate(token)
        if len(token) > MAX_IMMEDIATE_LENGTH:
            self.malformed(f"Immediate '{token}' is longer than {MAX_IMMEDIATE_LENGTH} characters")
        elif not clean:
            self.malformed(f"Invalid immediate '{token}'")
        elif not -(1 << (bits - 1)) <= value < (1 << bits):
            self.out_of_range(f"Immediate {value} does not fit in {bits} bits")
        return value & ((1 << bits) - 1)


class InstructionEncoder:
    """Turns one source line into a 32-bit word using the static table."""

    def __init__(self):
        self.encoders: Dict[InstructionFormat, Callable[[InstructionSpec, OperandReader], int]] = {
            InstructionFormat.REG_REG: self._encode_r_type,
            InstructionFormat.IMMEDIATE: self._encode_i_type,
            InstructionFormat.STORE: self._encode_s_type,
            InstructionFormat.BRANCH: self._encode_b_type,
        }

    def encode(self, line: str) -> EncodeResult:
        text = line.strip()
        mnemonic, operands = split_line(expand_pseudo_instruction(text))
        spec = lookup_instruction(mnemonic)
        if spec is None:
            pseudo = PSEUDO_INSTRUCTIONS.get(mnemonic.lower())
            if pseudo is not None:
                count, template = pseudo
                error = MalformedOperandsError(
                    f"'{mnemonic}' takes {count} operands, got {len(operands)}", text)
                # operand-less forms still expand; the extra operands are dropped
                word = self.encode(template).word if count == 0 else 0
                return EncodeResult(word, error)
            return EncodeResult(0, UnknownMnemonicError(f"Unknown instruction '{mnemonic}'", text))

        reader = OperandReader(text, operands)
        word = self.encoders[spec.format](spec, reader) & WORD_MASK
        return EncodeResult(word, reader.errors[0] if reader.errors else None)

    def _encode_r_type(self, spec: InstructionSpec, reader: OperandReader) -> int:
        # op rd, rs1, rs2
        rd, rs1, rs2 = reader.expect(3)
        return encode_r_type(spec, reader.register(rd), reader.register(rs1), reader.register(rs2))

    def _encode_i_type(self, spec: InstructionSpec, reader: OperandReader) -> int:
        # op rd, rs1, imm  (loads also: op rd, imm(rs1))
        address = reader.memory_operand() if spec.load else None
        if address:
            rd, imm, rs1 = address
        else:
            rd, rs1, imm = reader.expect(3)
        return encode_i_type(spec, reader.register(rd), reader.register(rs1),
                             reader.immediate(imm, IMMEDIATE_BITS))

    def _encode_s_type(self, spec: InstructionSpec, reader: OperandReader) -> int:
        # op rs2, offset(rs1), falling back to op rs2, imm, rs1
        address = reader.memory_operand()
        if address:
            rs2, imm, rs1 = address
        else:
            rs2, imm, rs1 = reader.expect(3)
        rs2_value = reader.register(rs2)
        imm_value = reader.immediate(imm, IMMEDIATE_BITS)
        return encode_s_type(spec, reader.register(rs1), rs2_value, imm_value)

    def _encode_b_type(self, spec: InstructionSpec, reader: OperandReader) -> int:
        # op rs1, rs2, imm
        rs1, rs2, imm = reader.expect(3)
        rs1_value = reader.register(rs1)
        rs2_value = reader.register(rs2)
        offset = reader.immediate(imm, BRANCH_IMMEDIATE_BITS)
        if offset & 1:
            reader.out_of_range(f"Branch offset '{imm}' is not a multiple of 2")
        return encode_b_type(spec, rs1_value, rs2_value, offset)


_encoder = InstructionEncoder()


def assemble_line(line: str) -> EncodeResult:
    """Encode a single trimmed, non-comment source line."""
    return _encoder.encode(line)
