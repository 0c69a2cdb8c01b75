"""
test_compiler.py - Testes do adaptador do compilador CoffeeScript

Propósito:
    Validar compilação real (mini-racer + bundle coffee-script.js):
    sucesso com source map, falha de sintaxe com um único diagnóstico,
    cache e propagação de falhas que não são de sintaxe.
"""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

pytest.importorskip("py_mini_racer")
pytest.importorskip("coffeescript")

from coffee_lsp.cache import FingerprintCache
from coffee_lsp.compiler import (
    CoffeeCompiler,
    ColumnMapping,
    CompilationFailure,
    CompilationSuccess,
    build_source_map,
)


@pytest.fixture(scope="module")
def compiler():
    return CoffeeCompiler()


def test_compile_success(compiler):
    result = compiler.compile("x = 1\ny = x + 1\n")

    assert isinstance(result, CompilationSuccess)
    assert "x = 1;" in result.js
    assert "y = x + 1;" in result.js


def test_source_map_length_matches_host_lines(compiler):
    """Uma entrada de source map por linha JS."""
    source = "square = (n) ->\n  n * n\n\nif square(2) > 3\n  console.log 'big'\n"
    result = compiler.compile(source)

    assert isinstance(result, CompilationSuccess)
    assert len(result.source_map) == len(result.js.split("\n"))


def test_host_output_trailing_whitespace_trimmed(compiler):
    result = compiler.compile("x = 1\n\n\n")

    assert isinstance(result, CompilationSuccess)
    assert result.js == result.js.rstrip()


def test_source_map_points_back_to_dialect(compiler):
    """A linha JS da atribuição a y mapeia para a linha 1 do CoffeeScript."""
    result = compiler.compile("x = 1\ny = true")
    host_lines = result.js.split("\n")
    host_line = host_lines.index("y = true;")

    mappings = result.source_map[host_line]
    assert mappings
    assert mappings[0].dialect_line == 1
    assert mappings[0].dialect_column == 0


def test_unterminated_string(compiler):
    """Cenário B: string não terminada → um diagnóstico na aspa."""
    source = 'x = 1\ny = "abc\n'
    result = compiler.compile(source)

    assert isinstance(result, CompilationFailure)
    assert len(result.diagnostics) == 1
    diagnostic = result.diagnostics[0]
    assert diagnostic.range.start.line == 1
    assert diagnostic.range.start.character == 4
    assert diagnostic.source == "coffee"


def test_single_syntax_error_within_bounds(compiler):
    source = "a = 1\nb = (2 +\nc = 3\n"
    result = compiler.compile(source)

    assert isinstance(result, CompilationFailure)
    assert len(result.diagnostics) == 1
    lines = source.split("\n")
    start = result.diagnostics[0].range.start
    end = result.diagnostics[0].range.end
    assert 0 <= start.line < len(lines)
    assert 0 <= end.line < len(lines)
    assert start.character <= len(lines[start.line])
    assert end.character <= len(lines[end.line])


def test_compile_is_deterministic_with_cache():
    """compile(x) == compile(x); hit de cache igual à compilação a frio."""
    cold = CoffeeCompiler().compile("z = [1, 2, 3]\n")
    cached_compiler = CoffeeCompiler(cache=FingerprintCache("coffee"))
    first = cached_compiler.compile("z = [1, 2, 3]\n")
    second = cached_compiler.compile("z = [1, 2, 3]\n")

    assert first == second == cold
    assert cached_compiler.compile_count == 1


def test_non_syntax_failure_propagates():
    """Falhas que não são SyntaxError propagam sem modificação."""
    compiler = CoffeeCompiler()
    runtime = MagicMock()
    boom = RuntimeError("internal compiler error")
    runtime.call.side_effect = boom
    compiler._context = runtime

    with pytest.raises(RuntimeError) as excinfo:
        compiler.compile("x = 1")
    assert excinfo.value is boom


def test_build_source_map_pads_and_sorts():
    raw = [[[4, 0, 2], [0, 0, 0]], None]
    source_map = build_source_map(raw, 4)

    assert len(source_map) == 4
    assert source_map[0] == (ColumnMapping(0, 0, 0), ColumnMapping(4, 0, 2))
    assert source_map[1] == ()
    assert source_map[3] == ()


def test_build_source_map_truncates():
    raw = [[[0, 0, 0]], [[0, 1, 0]], [[0, 2, 0]]]
    assert len(build_source_map(raw, 2)) == 2
