"""
positions.py - Tradução de posições entre CoffeeScript e JavaScript

Propósito:
    Usa o source map do compilador nos dois sentidos:
    - JS → CoffeeScript: ranges de diagnósticos do tsserver
    - CoffeeScript → JS: posição do cursor para o autocomplete

Notas de implementação:
    - O sentido JS → CoffeeScript só é confiável quanto à linha: o range
      resultante vai da coluna 0 até o fim da(s) linha(s) CoffeeScript
    - Linhas JS estruturais ('}', linhas em branco) não têm mapeamento;
      procura-se nas linhas vizinhas (anterior, depois seguinte)
    - CoffeeScript → JS (autocomplete) exige igualdade exata de linha e
      coluna, sem fallback; a definição aceita um cursor no meio do token
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence

from lsprotocol.types import Position, Range

from coffee_lsp.compiler import ColumnMapping, SourceMap
from coffee_lsp.converters import whole_line_range
from coffee_lsp.errors import MappingMiss

logger = logging.getLogger(__name__)

NEIGHBOR_OFFSETS = (0, -1, 1)


def first_mapping(source_map: SourceMap, host_line: int) -> Optional[ColumnMapping]:
    """Primeiro mapeamento preenchido na linha JS ou em uma linha adjacente."""
    for offset in NEIGHBOR_OFFSETS:
        line = host_line + offset
        if 0 <= line < len(source_map) and source_map[line]:
            return source_map[line][0]
    return None


def host_line_to_dialect(source_map: SourceMap, host_line: int) -> int:
    """
    Linha CoffeeScript correspondente a uma linha JS.

    Raises:
        MappingMiss: Nenhum mapeamento na linha nem nas vizinhas
    """
    mapping = first_mapping(source_map, host_line)
    if mapping is None:
        raise MappingMiss(host_line)
    return mapping.dialect_line


def host_range_to_dialect(
    source_map: SourceMap, host_range: Range, dialect_lines: Sequence[str]
) -> Range:
    """
    Converte um range JS em range CoffeeScript de linhas inteiras.

    Args:
        source_map: Source map da compilação que gerou o JS
        host_range: Range em coordenadas JS
        dialect_lines: Linhas do CoffeeScript (para o fim de linha)

    Raises:
        MappingMiss: Início ou fim sem mapeamento na vizinhança
    """
    start_line = host_line_to_dialect(source_map, host_range.start.line)
    end_line = host_line_to_dialect(source_map, host_range.end.line)
    if end_line < start_line:
        start_line, end_line = end_line, start_line
    return whole_line_range(start_line, end_line, dialect_lines)


def dialect_to_host_line(
    source_map: SourceMap, dialect_line: int, dialect_column: int
) -> Optional[int]:
    """Primeira linha JS com mapeamento exato para (linha, coluna) CoffeeScript."""
    for host_line, mappings in enumerate(source_map):
        for mapping in mappings:
            if (
                mapping.dialect_line == dialect_line
                and mapping.dialect_column == dialect_column
            ):
                return host_line
    logger.debug(f"Sem linha JS para CoffeeScript {dialect_line}:{dialect_column}")
    return None


def dialect_to_host_position(
    source_map: SourceMap, dialect_line: int, dialect_column: int
) -> Optional[Position]:
    """
    Posição JS para um cursor CoffeeScript no meio de um token.

    Usa o mapeamento da mesma linha com a maior coluna CoffeeScript que não
    passa do cursor e desloca a coluna JS pela mesma distância.
    """
    best: Optional[tuple[int, ColumnMapping]] = None
    for host_line, mappings in enumerate(source_map):
        for mapping in mappings:
            if mapping.dialect_line != dialect_line or mapping.dialect_column > dialect_column:
                continue
            if best is None or mapping.dialect_column > best[1].dialect_column:
                best = (host_line, mapping)
    if best is None:
        return None
    host_line, mapping = best
    return Position(
        line=host_line,
        character=mapping.host_column + dialect_column - mapping.dialect_column,
    )
