import sys
import struct
from dataclasses import dataclass
from typing import Iterable, List, Optional, TextIO, Tuple

from encoder import AssemblyError, InstructionEncoder
from isa import WORD_BITS, WORD_MASK

COMMENT_CHAR = '#'
WORD_BYTES = WORD_BITS // 8
OUTPUT_FORMATS = ('text', 'hex', 'bin')


def render_word(word: int) -> str:
    """32 '0'/'1' characters, most significant bit first."""
    return format(word & WORD_MASK, f'0{WORD_BITS}b')


@dataclass
class EncodedLine:
    """One assembled source line."""
    original_text: str
    word: int = 0
    line: int = 0  # source line number
    address: int = 0
    error: Optional[AssemblyError] = None


class RV32Lexer:
    def remove_whitespace(self, source_code: Iterable[str]) -> List[Tuple[int, str]]:
        """Trim every line and drop the blank ones, keeping line numbers"""
        cleaned_code = []
        for line_num, line in enumerate(source_code, 1):
            cleaned_line = line.strip()
            if cleaned_line:
                cleaned_code.append((line_num, cleaned_line))
        return cleaned_code

    def remove_comments(self, source_code: List[Tuple[int, str]]) -> List[Tuple[int, str]]:
        """Drop comment lines and strip trailing comments"""
        cleaned_code = []
        for line_num, line in source_code:
            if line.startswith(COMMENT_CHAR):
                continue
            if COMMENT_CHAR in line:
                line = line.split(COMMENT_CHAR, 1)[0].strip()
            cleaned_code.append((line_num, line))
        return cleaned_code

    def clean(self, source_code: Iterable[str]) -> List[Tuple[int, str]]:
        return self.remove_comments(self.remove_whitespace(source_code))


class RV32Assembler:
    def __init__(self, strict: bool = False, verbose: bool = False):
        self.strict = strict
        self.verbose = verbose
        self.encoder = InstructionEncoder()
        self.lines: List[EncodedLine] = []
        self.current_address = 0x0000
        self.error_count = 0

    def assemble(self, source_code: Iterable[str]) -> List[EncodedLine]:
        """Encode every instruction line, in input order.

        In strict mode the first problem is raised as an AssemblyError;
        otherwise it is reported on stderr and the best-effort word is kept.
        """
        lexer = RV32Lexer()
        self.lines = []
        self.current_address = 0x0000
        self.error_count = 0

        for line_num, text in lexer.clean(source_code):
            if self.verbose:
                print(f"Encoding instruction: {text} at 0x{self.current_address:04X}", file=sys.stderr)
            result = self.encoder.encode(text)
            if result.error is not None:
                result.error.line = line_num
                self.error_count += 1
                if self.strict:
                    raise result.error
                print(f"Error: {result.error}", file=sys.stderr)
            self.lines.append(EncodedLine(text, result.word, line_num, self.current_address, result.error))
            self.current_address += WORD_BYTES
        return self.lines

    @property
    def words(self) -> List[int]:
        return [encoded.word for encoded in self.lines]

    def to_text(self) -> str:
        return ''.join(render_word(word) + '\n' for word in self.words)

    def to_hex(self) -> str:
        return ''.join(f"{word:08X}\n" for word in self.words)

    def to_binary(self) -> bytes:
        """Little-endian 32-bit words"""
        return b''.join(struct.pack('<I', word) for word in self.words)

    def save_text(self, filename: str):
        with open(filename, 'w', encoding='utf-8') as f:
            f.write(self.to_text())

    def save_hex(self, filename: str):
        with open(filename, 'w', encoding='utf-8') as f:
            f.write(self.to_hex())

    def save_binary(self, filename: str):
        with open(filename, 'wb') as f:
            f.write(self.to_binary())

    def print_listing(self, out: Optional[TextIO] = None):
        out = out or sys.stdout
        print("\n=== Assembly Listing ===", file=out)
        print("Address  Machine Code  Assembly", file=out)
        print("-------  ------------  --------", file=out)
        for encoded in self.lines:
            marker = '  ; error' if encoded.error else ''
            print(f"{encoded.address:04X}     {encoded.word:08X}      {encoded.original_text}{marker}", file=out)


def print_usage():
    print("Usage: rv32asm <input_file> [options]", file=sys.stderr)
    print("Options:", file=sys.stderr)
    print("  -o <output>     Output file (default: stdout)", file=sys.stderr)
    print("  -f <format>     Output format: text, hex, bin (default: text)", file=sys.stderr)
    print("  -l              Print listing", file=sys.stderr)
    print("  -v              Trace every encoded line", file=sys.stderr)
    print("  --strict        Stop at the first bad line", file=sys.stderr)


def main(argv: Optional[List[str]] = None) -> int:
    """Main function"""
    args = sys.argv[1:] if argv is None else argv
    if not args:
        print_usage()
        return 1

    input_file = args[0]
    output_file = None
    output_format = 'text'
    generate_listing = False
    strict = False
    verbose = False

    # Parse command line arguments
    i = 1
    while i < len(args):
        if args[i] == '-o' and i + 1 < len(args):
            output_file = args[i + 1]
            i += 2
        elif args[i] == '-f' and i + 1 < len(args):
            output_format = args[i + 1]
            i += 2
        elif args[i] == '-l':
            generate_listing = True
            i += 1
        elif args[i] == '-v':
            verbose = True
            i += 1
        elif args[i] == '--strict':
            strict = True
            i += 1
        else:
            print(f"Unknown option: {args[i]}", file=sys.stderr)
            i += 1

    if output_format not in OUTPUT_FORMATS:
        print(f"Error: Unknown output format '{output_format}'", file=sys.stderr)
        return 1

    # Read input file
    try:
        with open(input_file, 'r', encoding='utf-8') as f:
            source_code = f.read().splitlines()
    except OSError as e:
        print(f"Error: Unable to open file '{input_file}'. {e}", file=sys.stderr)
        return 1

    assembler = RV32Assembler(strict=strict, verbose=verbose)
    try:
        assembler.assemble(source_code)
    except AssemblyError as e:
        print(f"Assembly failed: {e}", file=sys.stderr)
        return 1

    # Generate output
    try:
        if output_file is None:
            if output_format == 'bin':
                sys.stdout.buffer.write(assembler.to_binary())
                sys.stdout.buffer.flush()
            elif output_format == 'hex':
                sys.stdout.write(assembler.to_hex())
            else:
                sys.stdout.write(assembler.to_text())
        elif output_format == 'bin':
            assembler.save_binary(output_file)
        elif output_format == 'hex':
            assembler.save_hex(output_file)
        else:
            assembler.save_text(output_file)
    except OSError as e:
        print(f"Error: Unable to write output. {e}", file=sys.stderr)
        return 1

    if generate_listing:
        # keep stdout clean when it carries the words
        assembler.print_listing(sys.stdout if output_file else sys.stderr)

    if output_file is not None:
        print(f"Assembly completed: {len(assembler.lines)} words, {assembler.error_count} errors.")
        print(f"Output written to: {output_file}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
