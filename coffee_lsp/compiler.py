"""
compiler.py - Adaptador do compilador CoffeeScript

Propósito:
    Compila CoffeeScript em JavaScript com source map linha/coluna, ou
    devolve um diagnóstico estruturado quando há erro de sintaxe.

Componentes principais:
    - ColumnMapping / SourceMap: Correspondências coluna JS → posição CoffeeScript
    - CompilationSuccess / CompilationFailure: União etiquetada do resultado
    - CoffeeCompiler: Contexto V8 (mini-racer) com o compilador carregado

Dependências críticas:
    - mini-racer: V8 embutido, chamadas síncronas sem processo externo
    - CoffeeScript: Fornece o bundle coffee-script.js

Notas de implementação:
    - compile(text, {sourceMap: true, bare: true})
    - Só SyntaxError com location vira CompilationFailure; qualquer outra
      exceção do runtime JS propaga sem modificação
    - O compilador para no primeiro erro: a falha tem exatamente um diagnóstico
    - O source map é normalizado para ter uma entrada por linha JS
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from lsprotocol.types import Diagnostic

from coffee_lsp.cache import FingerprintCache
from coffee_lsp.converters import syntax_error_diagnostic

logger = logging.getLogger(__name__)

# Devolve só dados serializáveis; o mini-racer converte via JSON.
_COMPILE_JS = r"""
function __coffeeLspCompile(source) {
  var compiled;
  try {
    compiled = CoffeeScript.compile(source, {sourceMap: true, bare: true});
  } catch (e) {
    if (!e || e.name !== "SyntaxError" || !e.location) throw e;
    return {error: {message: String(e.message), location: e.location}};
  }
  var lines = [];
  var map = compiled.sourceMap.lines || [];
  for (var i = 0; i < map.length; i++) {
    var columns = [];
    var line = map[i];
    if (line && line.columns) {
      for (var j = 0; j < line.columns.length; j++) {
        var c = line.columns[j];
        if (c) columns.push([c.column, c.sourceLine, c.sourceColumn]);
      }
    }
    lines.push(columns);
  }
  return {js: compiled.js, lines: lines};
}
"""


@dataclass(frozen=True)
class ColumnMapping:
    """Coluna JS e a posição CoffeeScript correspondente."""

    host_column: int
    dialect_line: int
    dialect_column: int


# Indexado por linha JS; linhas estruturais podem ter tupla vazia.
SourceMap = tuple[tuple[ColumnMapping, ...], ...]


@dataclass(frozen=True)
class CompilationSuccess:
    js: str
    source_map: SourceMap


@dataclass(frozen=True)
class CompilationFailure:
    diagnostics: tuple[Diagnostic, ...]


CompilationResult = Union[CompilationSuccess, CompilationFailure]


def build_source_map(raw_lines: list, host_line_count: int) -> SourceMap:
    """
    Normaliza as linhas do source map do compilador.

    Cada linha vira uma tupla de ColumnMapping ordenada pela coluna JS;
    o resultado tem exatamente host_line_count entradas.
    """
    entries = []
    for index in range(host_line_count):
        columns = raw_lines[index] if index < len(raw_lines) else None
        mappings = sorted(
            (
                ColumnMapping(
                    host_column=int(column),
                    dialect_line=int(source_line),
                    dialect_column=int(source_column),
                )
                for column, source_line, source_column in (columns or [])
            ),
            key=lambda mapping: mapping.host_column,
        )
        entries.append(tuple(mappings))
    return tuple(entries)


def load_compiler_script(script_path: Optional[str] = None) -> str:
    """Lê o bundle do compilador CoffeeScript (configurado ou o do pacote)."""
    if script_path:
        logger.info(f"Carregando compilador CoffeeScript de {script_path}")
        return Path(script_path).read_text(encoding="utf-8")

    import coffeescript

    return coffeescript.get_compiler_script()


class CoffeeCompiler:
    """
    Compilador CoffeeScript → JavaScript em um contexto V8 de longa duração.

    Attributes:
        cache: FingerprintCache opcional (namespace "coffee")
        script_path: Caminho alternativo para o bundle coffee-script.js
    """

    def __init__(
        self,
        cache: Optional[FingerprintCache] = None,
        script_path: Optional[str] = None,
    ):
        self.cache = cache
        self.script_path = script_path
        self._context = None
        self.compile_count = 0

    def _runtime(self):
        if self._context is None:
            from py_mini_racer import MiniRacer

            context = MiniRacer()
            context.eval(load_compiler_script(self.script_path))
            context.eval(_COMPILE_JS)
            self._context = context
            logger.info("Compilador CoffeeScript carregado")
        return self._context

    def compile(self, source: str) -> CompilationResult:
        """
        Compila CoffeeScript, consultando o cache primeiro.

        Returns:
            CompilationSuccess com JS (sem espaços finais) e source map, ou
            CompilationFailure com exatamente um diagnóstico

        Raises:
            Qualquer exceção do runtime JS que não seja SyntaxError
        """
        if self.cache is not None:
            cached = self.cache.get(source)
            if cached is not None:
                return cached

        result = self._compile_uncached(source)

        if self.cache is not None:
            self.cache.put(source, result)
        return result

    def _compile_uncached(self, source: str) -> CompilationResult:
        self.compile_count += 1
        response = self._runtime().call("__coffeeLspCompile", source)

        error = response.get("error")
        if error is not None:
            diagnostic = syntax_error_diagnostic(
                error.get("message", ""), error.get("location") or {}, source
            )
            logger.debug(
                f"Erro de sintaxe CoffeeScript em {diagnostic.range.start.line}:"
                f"{diagnostic.range.start.character}: {diagnostic.message}"
            )
            return CompilationFailure(diagnostics=(diagnostic,))

        js = response["js"].rstrip()
        host_line_count = len(js.split("\n"))
        return CompilationSuccess(
            js=js,
            source_map=build_source_map(response.get("lines") or [], host_line_count),
        )

    def close(self) -> None:
        self._context = None
