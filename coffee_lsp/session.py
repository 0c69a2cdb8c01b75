"""
session.py - Contexto por documento aberto

Propósito:
    Substitui os singletons globais (timers, último resultado) por um
    contexto explícito por documento, injetado em cada chamada dos pipelines.

Componentes principais:
    - PipelineState: Estados do pipeline de diagnósticos
    - DocumentSession: Gerações, debouncers e estado de um documento
    - SessionRegistry: URI → DocumentSession

Notas de implementação:
    - Cada execução recebe a geração corrente; só aplica resultado se ela
      ainda for a mais recente ("último resultado vence")
    - Diagnósticos e autocomplete têm contadores de geração independentes
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from coffee_lsp.debounce import Debouncer

logger = logging.getLogger(__name__)

DEFAULT_COMPILE_DELAY = 0.5
DEFAULT_VERIFY_DELAY = 0.25


class PipelineState(Enum):
    IDLE = "idle"
    DEBOUNCING = "debouncing"
    COMPILING_DIALECT = "compiling_dialect"
    FAILED_DIALECT = "failed_dialect"
    COMPILING_HOST_VERIFY = "compiling_host_verify"
    MAPPING = "mapping"
    PUBLISHED = "published"


@dataclass
class DocumentSession:
    """Estado de um documento CoffeeScript aberto."""

    uri: str
    compile_debouncer: Debouncer = field(
        default_factory=lambda: Debouncer(DEFAULT_COMPILE_DELAY, "compilação")
    )
    verify_debouncer: Debouncer = field(
        default_factory=lambda: Debouncer(DEFAULT_VERIFY_DELAY, "verificação")
    )
    state: PipelineState = PipelineState.IDLE
    generation: int = 0
    completion_generation: int = 0
    published_generation: Optional[int] = None

    def next_generation(self) -> int:
        self.generation += 1
        return self.generation

    def is_current(self, generation: int) -> bool:
        return generation == self.generation

    def next_completion(self) -> int:
        self.completion_generation += 1
        return self.completion_generation

    def is_current_completion(self, generation: int) -> bool:
        return generation == self.completion_generation

    def cancel_timers(self) -> None:
        self.compile_debouncer.cancel()
        self.verify_debouncer.cancel()


class SessionRegistry:
    """Sessões por URI, com atrasos de debounce configuráveis."""

    def __init__(
        self,
        compile_delay: float = DEFAULT_COMPILE_DELAY,
        verify_delay: float = DEFAULT_VERIFY_DELAY,
    ):
        self.compile_delay = compile_delay
        self.verify_delay = verify_delay
        self._sessions: dict[str, DocumentSession] = {}

    def get(self, uri: str) -> DocumentSession:
        session = self._sessions.get(uri)
        if session is None:
            session = DocumentSession(
                uri=uri,
                compile_debouncer=Debouncer(self.compile_delay, f"compilação {uri}"),
                verify_debouncer=Debouncer(self.verify_delay, f"verificação {uri}"),
            )
            self._sessions[uri] = session
        return session

    def close(self, uri: str) -> None:
        session = self._sessions.pop(uri, None)
        if session:
            session.cancel_timers()
            # Invalida qualquer execução em andamento.
            session.next_generation()
            session.next_completion()

    def configure(self, compile_delay: float, verify_delay: float) -> None:
        self.compile_delay = compile_delay
        self.verify_delay = verify_delay
        for session in self._sessions.values():
            session.compile_debouncer.delay = compile_delay
            session.verify_debouncer.delay = verify_delay

    def uris(self) -> list[str]:
        return list(self._sessions)

    def __contains__(self, uri: str) -> bool:
        return uri in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)
