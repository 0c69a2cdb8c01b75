"""
test_speculative.py - Testes do buffer substituto para autocomplete

Propósito:
    Validar a troca da linha do cursor pelo placeholder (com indentação e
    CRLF preservados) e a reescrita da linha JS com o texto real.
"""

from __future__ import annotations

import pytest
from lsprotocol.types import Position

from coffee_lsp.speculative import (
    PLACEHOLDER,
    emulate,
    synthesize,
)


def test_synthesize_replaces_only_cursor_line():
    text = "x = {a: 1}\ny = x.\nz = 2"
    buffer = synthesize(text, Position(line=1, character=6))

    assert buffer.candidate == f"x = {{a: 1}}\n{PLACEHOLDER}\nz = 2"
    assert buffer.probe == Position(line=1, character=0)
    assert buffer.current_line == "y = x."


def test_synthesize_keeps_indentation():
    text = "f = ->\n  \tobj.fo\n  1"
    buffer = synthesize(text, Position(line=1, character=8))

    assert buffer.candidate.split("\n")[1] == f"  \t{PLACEHOLDER}"
    assert buffer.probe == Position(line=1, character=3)


def test_synthesize_preserves_crlf():
    text = "x = 1\r\n  y.\r\nz = 3"
    buffer = synthesize(text, Position(line=1, character=4))

    assert buffer.candidate == f"x = 1\r\n  {PLACEHOLDER}\r\nz = 3"
    assert buffer.current_line == "  y."


def test_synthesize_cursor_past_end():
    buffer = synthesize("x = 1", Position(line=2, character=0))

    assert buffer.candidate == f"x = 1\n\n{PLACEHOLDER}"
    assert buffer.current_line == ""


def test_emulate_rewrites_single_line():
    js = "var x;\nx = 1;\ntrue;"
    text, cursor = emulate(js, 2, "x.")

    assert text == "var x;\nx = 1;\nx."
    assert cursor == Position(line=2, character=2)


def test_emulated_line_round_trip():
    """A linha reescrita é exatamente a linha real; o resto é intacto."""
    js = "a;\nb;\nc;"
    text, cursor = emulate(js, 1, "  foo.bar")
    lines = text.split("\n")

    assert lines[cursor.line] == "  foo.bar"
    assert lines[0] == "a;" and lines[2] == "c;"


def test_scenario_member_access_with_compiler():
    """y = x.<cursor> compila via placeholder e a linha JS vira o texto real."""
    pytest.importorskip("py_mini_racer")
    pytest.importorskip("coffeescript")
    from coffee_lsp.compiler import CoffeeCompiler, CompilationSuccess
    from coffee_lsp.positions import dialect_to_host_line

    source = "x = 1\ny = x."
    cursor = Position(line=1, character=6)
    buffer = synthesize(source, cursor)
    assert buffer.candidate == "x = 1\ntrue"

    result = CoffeeCompiler().compile(buffer.candidate)
    assert isinstance(result, CompilationSuccess)
    host_line = dialect_to_host_line(result.source_map, buffer.probe.line, buffer.probe.character)
    assert host_line is not None
    assert result.js.split("\n")[host_line] == "true;"

    text, emulated = emulate(result.js, host_line, buffer.current_line)
    assert text.split("\n")[host_line] == "y = x."
    assert emulated == Position(line=host_line, character=6)
