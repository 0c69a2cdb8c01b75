"""
speculative.py - Buffer substituto sempre compilável para autocomplete

Propósito:
    Durante a digitação a linha corrente quase nunca compila. A linha
    inteira é trocada por um placeholder trivial ('true') mantendo a
    indentação exata, o buffer é compilado, e a linha JS correspondente
    recebe de volta o texto real (possivelmente inválido) do usuário.

Componentes principais:
    - SpeculativeBuffer: Texto candidato + coordenada da sonda
    - synthesize: Substitui a linha corrente pelo placeholder
    - emulate: Reescreve a linha JS resolvida com o texto real

Notas de implementação:
    - A indentação é significativa em CoffeeScript: sem ela a estrutura
      de blocos das linhas seguintes mudaria
    - A sonda fica logo após a indentação: (linha do cursor, len(indentação))
    - O terminador de linha ('\\r' em CRLF) é preservado
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from lsprotocol.types import Position

PLACEHOLDER = "true"

_INDENTATION = re.compile(r"^[ \t]*")


@dataclass(frozen=True)
class SpeculativeBuffer:
    candidate: str
    probe: Position
    current_line: str


def _split_line(line: str) -> tuple[str, str]:
    if line.endswith("\r"):
        return line[:-1], "\r"
    return line, ""


def synthesize(text: str, cursor: Position) -> SpeculativeBuffer:
    """
    Substitui a linha do cursor pelo placeholder indentado.

    Args:
        text: Conteúdo completo do documento CoffeeScript
        cursor: Posição real do cursor

    Returns:
        SpeculativeBuffer com o texto candidato e a posição da sonda
    """
    lines = text.split("\n")
    while len(lines) <= cursor.line:
        lines.append("")

    content, terminator = _split_line(lines[cursor.line])
    indentation = _INDENTATION.match(content).group(0)
    lines[cursor.line] = f"{indentation}{PLACEHOLDER}{terminator}"

    return SpeculativeBuffer(
        candidate="\n".join(lines),
        probe=Position(line=cursor.line, character=len(indentation)),
        current_line=content,
    )


def emulate(js: str, host_line: int, current_line: str) -> tuple[str, Position]:
    """
    Reescreve só a linha JS resolvida com a linha CoffeeScript real.

    Returns:
        (texto JS resultante, cursor emulado no fim da linha reescrita)
    """
    host_lines = js.split("\n")
    host_lines[host_line] = current_line
    return "\n".join(host_lines), Position(line=host_line, character=len(current_line))
