"""
errors.py - Exceções recuperáveis do bridge CoffeeScript → JavaScript

Erros de sintaxe do CoffeeScript não são exceções: viram CompilationFailure.
Falhas inesperadas do compilador propagam a exceção original do runtime JS.
"""

from __future__ import annotations


class MappingMiss(LookupError):
    """Nenhuma coordenada correspondente foi encontrada no source map."""

    def __init__(self, line: int, message: str = ""):
        self.line = line
        super().__init__(message or f"Linha {line} sem mapeamento no source map")


class HostServiceFault(RuntimeError):
    """Falha, timeout ou processo morto em um serviço JavaScript externo."""

    def __init__(self, service: str, message: str):
        self.service = service
        super().__init__(f"{service}: {message}")
