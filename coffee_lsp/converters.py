"""
converters.py - Conversão de erros do compilador e do tsserver para LSP

Propósito:
    Converter os objetos devolvidos pelo compilador CoffeeScript e pelo
    tsserver para tipos do protocolo LSP.

Componentes principais:
    - syntax_error_diagnostic: SyntaxError do CoffeeScript → Diagnostic
    - convert_category: categoria do tsserver → DiagnosticSeverity
    - verifier_diagnostic: diagnóstico do tsserver → Diagnostic (linha inteira)
    - whole_line_range: Range da coluna 0 até o fim da linha

Notas de implementação:
    - Localizações do CoffeeScript já são 0-based, com last_column inclusivo
    - Linhas do tsserver são 1-based; a coluna é descartada
    - Ranges de erro de sintaxe são limitados aos limites do texto-fonte
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence

from lsprotocol.types import (
    Diagnostic,
    DiagnosticSeverity,
    Position,
    Range,
)

logger = logging.getLogger(__name__)

COFFEE_SOURCE = "coffee"
VERIFIER_SOURCE = "ts"


def convert_category(category: Optional[str]) -> DiagnosticSeverity:
    """
    Mapeia a categoria de diagnóstico do tsserver para DiagnosticSeverity.

    Mapeamento:
        error      → DiagnosticSeverity.Error (1)
        warning    → DiagnosticSeverity.Warning (2)
        suggestion → DiagnosticSeverity.Hint (4)
        message    → DiagnosticSeverity.Information (3)
    """
    mapping = {
        "error": DiagnosticSeverity.Error,
        "warning": DiagnosticSeverity.Warning,
        "suggestion": DiagnosticSeverity.Hint,
        "message": DiagnosticSeverity.Information,
    }
    return mapping.get((category or "").lower(), DiagnosticSeverity.Error)


def line_length(lines: Sequence[str], line: int) -> int:
    if 0 <= line < len(lines):
        return len(lines[line])
    return 0


def whole_line_range(
    start_line: int, end_line: int, lines: Sequence[str]
) -> Range:
    """Range da coluna 0 de start_line até o fim de end_line."""
    return Range(
        start=Position(line=start_line, character=0),
        end=Position(line=end_line, character=line_length(lines, end_line)),
    )


def _clamp(source_lines: Sequence[str], line: int, column: int) -> Position:
    last_line = max(len(source_lines) - 1, 0)
    line = min(max(line, 0), last_line)
    column = min(max(column, 0), line_length(source_lines, line))
    return Position(line=line, character=column)


def syntax_error_diagnostic(message: str, location: dict, source: str) -> Diagnostic:
    """
    Converte o SyntaxError do CoffeeScript em Diagnostic preciso.

    Args:
        message: Mensagem do compilador (ex: 'missing "')
        location: {first_line, first_column, last_line?, last_column?}
        source: Texto CoffeeScript compilado

    Returns:
        Diagnostic de erro em coordenadas CoffeeScript

    Notas:
        - last_column é inclusivo no compilador; o Range LSP é exclusivo
        - Sem last_line/last_column, o range cobre um caractere
    """
    first_line = int(location.get("first_line") or 0)
    first_column = int(location.get("first_column") or 0)
    last_line = location.get("last_line")
    last_column = location.get("last_column")
    if last_line is None:
        last_line = first_line
    if last_column is None:
        last_column = first_column

    source_lines = source.split("\n")
    start = _clamp(source_lines, first_line, first_column)
    end = _clamp(source_lines, int(last_line), int(last_column) + 1)
    if (end.line, end.character) < (start.line, start.character):
        end = start

    return Diagnostic(
        range=Range(start=start, end=end),
        severity=DiagnosticSeverity.Error,
        source=COFFEE_SOURCE,
        message=message,
    )


def verifier_diagnostic(payload: dict, host_lines: Sequence[str]) -> Diagnostic:
    """
    Converte um diagnóstico do tsserver para Diagnostic em coordenadas JS.

    O tsserver só é confiável quanto à linha, então o range destaca
    a linha inteira. Sem linha informada, usa a linha 0.
    """
    start = payload.get("start") or {}
    end = payload.get("end") or start
    start_line = max(int(start.get("line") or 1) - 1, 0)
    end_line = max(int(end.get("line") or start_line + 1) - 1, start_line)

    return Diagnostic(
        range=whole_line_range(start_line, end_line, host_lines),
        severity=convert_category(payload.get("category")),
        source=VERIFIER_SOURCE,
        code=payload.get("code"),
        message=str(payload.get("text", "")),
    )
