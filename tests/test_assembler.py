"""Tests for the line driver, output writers and command line."""

import contextlib
import io
import struct

import pytest

from assembler import RV32Assembler, RV32Lexer, main, render_word
from encoder import UnknownMnemonicError


class TestLexer:
    def test_drops_blank_and_comment_lines(self):
        cleaned = RV32Lexer().clean(["# header", "", "   ", "  add x1, x2, x3  "])
        assert cleaned == [(4, "add x1, x2, x3")]

    def test_strips_trailing_comment(self):
        assert RV32Lexer().clean(["nop # idle"]) == [(1, "nop")]


class TestRenderWord:
    def test_msb_first(self):
        assert render_word(0x003100B3) == "00000000001100010000000010110011"

    def test_always_32_chars(self):
        assert render_word(0) == "0" * 32
        assert render_word(0xFFFFFFFF) == "1" * 32


class TestAssemble:
    def test_words_in_input_order(self, sample_program, sample_words):
        assembler = RV32Assembler()
        assembler.assemble(sample_program)
        assert assembler.words == sample_words

    def test_encoded_line_fields(self, sample_program):
        lines = RV32Assembler().assemble(sample_program)
        first, second = lines[0], lines[1]
        assert first.original_text == "add x1, x2, x3"
        assert first.line == 3
        assert first.address == 0
        assert second.original_text == "sub x5, x6, x7"
        assert second.address == 4
        assert all(encoded.error is None for encoded in lines)

    def test_original_text_is_pre_expansion(self):
        lines = RV32Assembler().assemble(["li x5, 10"])
        assert lines[0].original_text == "li x5, 10"

    def test_bad_line_reported_and_kept(self, capsys):
        assembler = RV32Assembler()
        lines = assembler.assemble(["add x1, x2, x3", "foo x1, x2, x3"])
        assert [encoded.word for encoded in lines] == [0x003100B3, 0]
        assert isinstance(lines[1].error, UnknownMnemonicError)
        assert lines[1].error.line == 2
        assert assembler.error_count == 1
        assert "Line 2" in capsys.readouterr().err

    def test_strict_raises(self):
        with pytest.raises(UnknownMnemonicError) as excinfo:
            RV32Assembler(strict=True).assemble(["nop", "foo x1, x2, x3"])
        assert excinfo.value.line == 2

    def test_verbose_trace(self, capsys):
        RV32Assembler(verbose=True).assemble(["nop"])
        assert "Encoding instruction: nop at 0x0000" in capsys.readouterr().err

    def test_reassembling_resets_state(self, sample_program):
        assembler = RV32Assembler()
        assembler.assemble(sample_program)
        assembler.assemble(["nop"])
        assert assembler.words == [0x13]


class TestOutput:
    def test_text(self):
        assembler = RV32Assembler()
        assembler.assemble(["add x1, x2, x3", "nop"])
        assert assembler.to_text() == (
            "00000000001100010000000010110011\n"
            "00000000000000000000000000010011\n"
        )

    def test_hex(self):
        assembler = RV32Assembler()
        assembler.assemble(["add x1, x2, x3"])
        assert assembler.to_hex() == "003100B3\n"

    def test_binary_is_little_endian(self):
        assembler = RV32Assembler()
        assembler.assemble(["add x1, x2, x3", "nop"])
        assert assembler.to_binary() == b"\xb3\x00\x31\x00\x13\x00\x00\x00"
        assert struct.unpack("<2I", assembler.to_binary()) == (0x003100B3, 0x13)

    def test_listing(self, capsys):
        assembler = RV32Assembler()
        assembler.assemble(["add x1, x2, x3", "foo"])
        assembler.print_listing()
        out = capsys.readouterr().out
        assert "0000     003100B3      add x1, x2, x3" in out
        assert "0004     00000000      foo  ; error" in out

    def test_listing_follows_redirected_stdout(self):
        assembler = RV32Assembler()
        assembler.assemble(["nop"])
        buffer = io.StringIO()
        with contextlib.redirect_stdout(buffer):
            assembler.print_listing()
        assert "0000     00000013      nop" in buffer.getvalue()

    def test_listing_to_explicit_stream(self):
        assembler = RV32Assembler()
        assembler.assemble(["nop"])
        buffer = io.StringIO()
        assembler.print_listing(buffer)
        assert "00000013" in buffer.getvalue()


class TestMain:
    def test_prints_text_to_stdout(self, sample_file, sample_words, capsys):
        assert main([str(sample_file)]) == 0
        out = capsys.readouterr().out
        assert out.splitlines() == [render_word(word) for word in sample_words]

    def test_writes_output_file(self, sample_file, sample_words, tmp_path):
        output = tmp_path / "out.txt"
        assert main([str(sample_file), "-o", str(output)]) == 0
        assert output.read_text(encoding="utf-8").splitlines() == [render_word(word) for word in sample_words]

    def test_hex_output_file(self, sample_file, tmp_path):
        output = tmp_path / "out.hex"
        assert main([str(sample_file), "-o", str(output), "-f", "hex"]) == 0
        assert output.read_text(encoding="utf-8").splitlines()[0] == "003100B3"

    def test_binary_output_file(self, sample_file, sample_words, tmp_path):
        output = tmp_path / "out.bin"
        assert main([str(sample_file), "-f", "bin", "-o", str(output)]) == 0
        data = output.read_bytes()
        assert list(struct.unpack(f"<{len(sample_words)}I", data)) == sample_words

    def test_no_arguments(self, capsys):
        assert main([]) == 1
        assert "Usage" in capsys.readouterr().err

    def test_missing_input(self, tmp_path, capsys):
        assert main([str(tmp_path / "missing.asm")]) == 1
        assert "Unable to open file" in capsys.readouterr().err

    def test_unknown_format(self, sample_file):
        assert main([str(sample_file), "-f", "elf"]) == 1

    def test_strict_stops_on_bad_line(self, tmp_path, capsys):
        source = tmp_path / "bad.asm"
        source.write_text("nop\nfoo x1, x2, x3\n", encoding="utf-8")
        assert main([str(source), "--strict"]) == 1
        captured = capsys.readouterr()
        assert "Assembly failed" in captured.err
        assert captured.out == ""

    def test_permissive_keeps_zero_word(self, tmp_path, capsys):
        source = tmp_path / "bad.asm"
        source.write_text("foo x1, x2, x3\n", encoding="utf-8")
        assert main([str(source)]) == 0
        assert capsys.readouterr().out == "0" * 32 + "\n"
