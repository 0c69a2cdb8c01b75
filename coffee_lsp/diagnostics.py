"""
diagnostics.py - Pipeline de diagnósticos com debounce

Propósito:
    Orquestra, em segundo plano, compilação → verificação de tipos →
    mapeamento → publicação para cada documento CoffeeScript editado.

Componentes principais:
    - DiagnosticSink: Publica/limpa diagnósticos de uma URI
    - map_verifier_diagnostics: Diagnósticos JS → coordenadas CoffeeScript
    - DiagnosticPipeline: Máquina de estados por documento

Estados:
    IDLE → DEBOUNCING → COMPILING_DIALECT → FAILED_DIALECT
                                          → COMPILING_HOST_VERIFY → MAPPING → PUBLISHED

Notas de implementação:
    - Toda edição incrementa a geração, cancela os timers pendentes e
      reinicia o debounce de compilação (500ms por padrão)
    - O texto é lido quando o timer dispara, não quando a edição chega
    - Erro de sintaxe: publica o diagnóstico do compilador e para
    - Sucesso: agenda a verificação (250ms por padrão), mapeia e publica
    - Último resultado vence: execução com geração antiga é descartada
    - Diagnóstico do tsserver sem mapeamento cai na linha 0
"""

from __future__ import annotations

import logging
from typing import Callable, Optional, Sequence

from lsprotocol.types import Diagnostic

from coffee_lsp.compiler import CoffeeCompiler, CompilationFailure, CompilationSuccess, SourceMap
from coffee_lsp.converters import whole_line_range
from coffee_lsp.errors import HostServiceFault, MappingMiss
from coffee_lsp.positions import host_range_to_dialect
from coffee_lsp.session import DocumentSession, PipelineState
from coffee_lsp.verifier import TypeVerifier

logger = logging.getLogger(__name__)


class DiagnosticSink:
    """Destino dos diagnósticos: publish substitui tudo que havia na URI."""

    def __init__(self, publish: Callable[[str, list[Diagnostic]], None]):
        self._publish = publish

    def publish(self, uri: str, diagnostics: list[Diagnostic]) -> None:
        self._publish(uri, diagnostics)

    def clear(self, uri: str) -> None:
        self._publish(uri, [])


def map_verifier_diagnostics(
    source_map: SourceMap,
    diagnostics: Sequence[Diagnostic],
    dialect_lines: Sequence[str],
) -> list[Diagnostic]:
    """
    Converte diagnósticos do tsserver para ranges de linha CoffeeScript.

    Linhas sem mapeamento na vizinhança caem na linha 0.
    """
    mapped: list[Diagnostic] = []
    for diagnostic in diagnostics:
        try:
            range_ = host_range_to_dialect(source_map, diagnostic.range, dialect_lines)
        except MappingMiss as e:
            logger.debug(f"{e}; usando linha 0 para: {diagnostic.message}")
            range_ = whole_line_range(0, 0, dialect_lines)
        mapped.append(
            Diagnostic(
                range=range_,
                message=diagnostic.message,
                severity=diagnostic.severity,
                code=diagnostic.code,
                source=diagnostic.source,
            )
        )
    return mapped


class DiagnosticPipeline:
    """
    Pipeline de diagnósticos de todos os documentos abertos.

    Attributes:
        compiler: CoffeeCompiler (com cache)
        verifier: TypeVerifier, ou None para só checar sintaxe
        sink: DiagnosticSink do servidor
        validation_enabled: Se False, edições apenas limpam diagnósticos
    """

    def __init__(
        self,
        compiler: CoffeeCompiler,
        verifier: Optional[TypeVerifier],
        sink: DiagnosticSink,
        validation_enabled: bool = True,
    ):
        self.compiler = compiler
        self.verifier = verifier
        self.sink = sink
        self.validation_enabled = validation_enabled

    def on_edit(
        self, session: DocumentSession, read_text: Callable[[], Optional[str]]
    ) -> int:
        """
        Registra uma edição e (re)inicia o debounce de compilação.

        Args:
            session: Sessão do documento editado
            read_text: Lê o texto atual do documento no momento do disparo

        Returns:
            Geração atribuída a esta edição
        """
        generation = session.next_generation()
        session.cancel_timers()

        if not self.validation_enabled:
            session.state = PipelineState.IDLE
            self.sink.clear(session.uri)
            return generation

        session.state = PipelineState.DEBOUNCING

        async def fire() -> None:
            await self.compile_stage(session, generation, read_text)

        session.compile_debouncer.schedule(fire)
        return generation

    async def compile_stage(
        self,
        session: DocumentSession,
        generation: int,
        read_text: Callable[[], Optional[str]],
    ) -> Optional[CompilationSuccess]:
        """Compila o texto atual; publica o erro de sintaxe ou agenda a verificação."""
        if not session.is_current(generation):
            return None
        text = read_text()
        if text is None:
            logger.debug(f"Documento não está mais disponível: {session.uri}")
            return None

        session.state = PipelineState.COMPILING_DIALECT
        result = self.compiler.compile(text)

        if isinstance(result, CompilationFailure):
            session.state = PipelineState.FAILED_DIALECT
            self._publish(session, generation, list(result.diagnostics))
            logger.info(f"Erro de sintaxe em {session.uri}")
            return None

        if self.verifier is None:
            self._publish(session, generation, [])
            return result

        async def fire() -> None:
            await self.verify_stage(session, generation, text, result)

        session.verify_debouncer.schedule(fire)
        return result

    async def verify_stage(
        self,
        session: DocumentSession,
        generation: int,
        text: str,
        result: CompilationSuccess,
    ) -> None:
        """Verifica o JS, mapeia os diagnósticos e publica se ainda for atual."""
        if not session.is_current(generation):
            return

        verifier = self.verifier
        if verifier is None:
            # Verificação desligada depois do agendamento.
            self._publish(session, generation, [])
            return

        session.state = PipelineState.COMPILING_HOST_VERIFY
        try:
            host_diagnostics = await verifier.verify(result.js)
        except HostServiceFault as e:
            logger.warning(f"Verificação de tipos indisponível para {session.uri}: {e}")
            host_diagnostics = []

        if not session.is_current(generation):
            logger.debug(
                f"Resultado obsoleto descartado: {session.uri} (geração {generation})"
            )
            return

        session.state = PipelineState.MAPPING
        diagnostics = map_verifier_diagnostics(
            result.source_map, host_diagnostics, text.split("\n")
        )
        self._publish(session, generation, diagnostics)
        logger.info(f"Verificação completa: {session.uri} - {len(diagnostics)} diagnósticos")

    def _publish(
        self, session: DocumentSession, generation: int, diagnostics: list[Diagnostic]
    ) -> None:
        if not session.is_current(generation):
            return
        self.sink.publish(session.uri, diagnostics)
        session.published_generation = generation
        if session.state is not PipelineState.FAILED_DIALECT:
            session.state = PipelineState.PUBLISHED
