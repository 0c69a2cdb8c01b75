"""
server.py - Servidor LSP principal para CoffeeScript usando pygls

Propósito:
    Servidor Language Server Protocol que empresta diagnósticos,
    autocomplete e go-to-definition do ferramental JavaScript a arquivos
    CoffeeScript.

Componentes principais:
    - CoffeeLanguageServer: Servidor principal com pygls e serviços
      (compilador, verificador, servidor JS, caches)
    - Event handlers: did_open, did_change, did_close, configuração,
      completion, definition
    - Comandos: coffeescript/virtualDocument, coffeescript/showCompiled,
      coffeescript/debug/diagnostics

Dependências críticas:
    - pygls: Framework LSP
    - coffee_lsp.diagnostics / coffee_lsp.completion /
      coffee_lsp.definition: Pipelines

Exemplo de uso:
    python -m coffee_lsp

Notas de implementação:
    - Comunica via STDIO (entrada/saída padrão)
    - Diagnósticos com debounce por documento (compilação e verificação)
    - Autocomplete sob demanda, sem debounce
    - Caches e documentos virtuais vivem enquanto o processo viver
    - Configuração na seção 'coffeescript' (initializationOptions e
      workspace/didChangeConfiguration)
"""

from __future__ import annotations

import logging
import sys
from importlib import metadata
from typing import Optional

from lsprotocol.types import (
    INITIALIZE,
    INITIALIZED,
    SHUTDOWN,
    TEXT_DOCUMENT_COMPLETION,
    TEXT_DOCUMENT_DEFINITION,
    TEXT_DOCUMENT_DID_CHANGE,
    TEXT_DOCUMENT_DID_CLOSE,
    TEXT_DOCUMENT_DID_OPEN,
    WORKSPACE_DID_CHANGE_CONFIGURATION,
    CompletionList,
    CompletionOptions,
    CompletionParams,
    DefinitionParams,
    DidChangeConfigurationParams,
    DidChangeTextDocumentParams,
    DidCloseTextDocumentParams,
    DidOpenTextDocumentParams,
    InitializedParams,
    InitializeParams,
    Location,
)
from pygls.server import LanguageServer

from coffee_lsp import __version__
from coffee_lsp.cache import CachedCompilation, FingerprintCache
from coffee_lsp.compiler import CoffeeCompiler, CompilationFailure
from coffee_lsp.completion import TRIGGER_CHARACTERS, compute_completions
from coffee_lsp.definition import compute_definition
from coffee_lsp.diagnostics import DiagnosticPipeline, DiagnosticSink
from coffee_lsp.errors import HostServiceFault
from coffee_lsp.host_client import HostCompletionService
from coffee_lsp.session import SessionRegistry
from coffee_lsp.settings import ServerSettings, parse_settings
from coffee_lsp.verifier import TsServerSession, TypeVerifier
from coffee_lsp.virtual_documents import VirtualDocumentRegistry

# Configuração de logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)
_startup_logged = False


class CoffeeLanguageServer(LanguageServer):
    """
    Servidor LSP especializado para CoffeeScript.

    Attributes:
        settings: ServerSettings correntes
        compile_cache / verify_cache: Caches com namespaces distintos
            ("coffee" e "ts") sobre o mesmo armazenamento
        compiler: CoffeeCompiler (V8 embutido)
        verifier: TypeVerifier (tsserver), ou None se desabilitado
        host: HostCompletionService (typescript-language-server)
        virtual_documents: Registro de documentos JS virtuais
        sessions: Sessões por documento aberto
        diagnostic_pipeline: Pipeline de diagnósticos com debounce
    """

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.settings = ServerSettings()
        self._cache_storage: dict[str, CachedCompilation] = {}
        self.compile_cache = FingerprintCache(
            "coffee", ttl=self.settings.cache_ttl, storage=self._cache_storage
        )
        self.verify_cache = FingerprintCache(
            "ts", ttl=self.settings.cache_ttl, storage=self._cache_storage
        )
        self.compiler = CoffeeCompiler(cache=self.compile_cache)
        self.verifier: Optional[TypeVerifier] = self._build_verifier(self.settings)
        self.host = HostCompletionService(
            self.settings.completion_command, self.settings.completion_timeout
        )
        self.virtual_documents = VirtualDocumentRegistry()
        self.sessions = SessionRegistry(
            self.settings.compile_delay, self.settings.verify_delay
        )
        self.diagnostic_pipeline = DiagnosticPipeline(
            self.compiler,
            self.verifier,
            DiagnosticSink(self.publish_diagnostics),
            validation_enabled=self.settings.validation_enabled,
        )

    def _build_verifier(self, settings: ServerSettings) -> Optional[TypeVerifier]:
        if not settings.verifier_enabled:
            return None
        return TypeVerifier(
            TsServerSession(settings.verifier_command, settings.verifier_timeout),
            cache=self.verify_cache,
        )

    async def apply_settings(self, settings: ServerSettings) -> None:
        """Aplica novas configurações, substituindo serviços que mudaram."""
        old, self.settings = self.settings, settings

        self.compile_cache.ttl = settings.cache_ttl
        self.verify_cache.ttl = settings.cache_ttl
        self.sessions.configure(settings.compile_delay, settings.verify_delay)
        self.diagnostic_pipeline.validation_enabled = settings.validation_enabled

        if settings.compiler_script != old.compiler_script:
            self.compiler.close()
            self.compiler = CoffeeCompiler(
                cache=self.compile_cache, script_path=settings.compiler_script
            )
            self.compile_cache.clear()
            self.diagnostic_pipeline.compiler = self.compiler

        if (
            settings.verifier_enabled != old.verifier_enabled
            or settings.verifier_command != old.verifier_command
            or settings.verifier_timeout != old.verifier_timeout
        ):
            retired, self.verifier = self.verifier, self._build_verifier(settings)
            self.diagnostic_pipeline.verifier = self.verifier
            if retired is not None:
                await retired.close()
            # Ciclos agendados com o verificador antigo recomeçam com o novo.
            if settings.validation_enabled:
                for doc_uri in self.sessions.uris():
                    validate_document(self, doc_uri)

        if (
            settings.completion_command != old.completion_command
            or settings.completion_timeout != old.completion_timeout
            or not settings.host_enabled
        ):
            retired_host = self.host
            self.host = HostCompletionService(
                settings.completion_command, settings.completion_timeout
            )
            await retired_host.stop()

    async def close_services(self) -> None:
        for session_uri in self.sessions.uris():
            self.sessions.close(session_uri)
        if self.verifier is not None:
            await self.verifier.close()
        await self.host.stop()
        self.compiler.close()
        self.compile_cache.clear()
        self.verify_cache.clear()


# Instância global do servidor
server = CoffeeLanguageServer("coffee-lsp", f"v{__version__}")


def _read_document(ls: CoffeeLanguageServer, uri: str) -> Optional[str]:
    """Texto atual do documento, ou None se ele foi fechado."""
    if uri not in ls.sessions:
        return None
    return ls.workspace.get_document(uri).source


def _command_argument(params, key: str) -> Optional[str]:
    """Extrai um argumento de comando (dict, ou lista com str/dict)."""
    if isinstance(params, dict):
        value = params.get(key)
        return value if isinstance(value, str) else None
    if isinstance(params, (list, tuple)) and params:
        first = params[0]
        if isinstance(first, str):
            return first
        if isinstance(first, dict):
            value = first.get(key)
            return value if isinstance(value, str) else None
    return None


def _diagnostic_to_dict(diagnostic) -> dict:
    return {
        "message": diagnostic.message,
        "severity": int(diagnostic.severity) if diagnostic.severity else None,
        "range": {
            "start": {
                "line": diagnostic.range.start.line,
                "character": diagnostic.range.start.character,
            },
            "end": {
                "line": diagnostic.range.end.line,
                "character": diagnostic.range.end.character,
            },
        },
    }


def validate_document(ls: CoffeeLanguageServer, uri: str) -> None:
    """
    Agenda a validação de um documento CoffeeScript.

    Fluxo (em segundo plano, com debounce):
        1. Compila o CoffeeScript (cache por hash do texto)
        2. Erro de sintaxe → publica o diagnóstico do compilador
        3. Sucesso → verifica o JS no tsserver, mapeia e publica
    """
    session = ls.sessions.get(uri)
    ls.diagnostic_pipeline.on_edit(session, lambda: _read_document(ls, uri))


@server.feature(INITIALIZE)
async def initialize(ls: CoffeeLanguageServer, params: InitializeParams) -> None:
    """Lê a configuração inicial de initializationOptions."""
    if params.initialization_options:
        await ls.apply_settings(parse_settings(params.initialization_options))
        logger.info(f"Configuração inicial: {ls.settings.to_dict()}")


@server.feature(INITIALIZED)
async def initialized(ls: CoffeeLanguageServer, params: InitializedParams) -> None:
    """Inicia o servidor JS (o tsserver é iniciado sob demanda)."""
    if not ls.settings.host_enabled:
        return
    try:
        await ls.host.start(ls.workspace.root_uri)
    except HostServiceFault as e:
        logger.warning(f"Autocomplete JavaScript indisponível: {e}")


@server.feature(SHUTDOWN)
async def shutdown(ls: CoffeeLanguageServer, params) -> None:
    logger.info("Encerrando serviços JavaScript")
    await ls.close_services()


@server.command("coffeescript/virtualDocument")
def cmd_virtual_document(ls: CoffeeLanguageServer, params) -> dict:
    """
    Lê um documento virtual (coffee-lsp://compiled/<uri>.js).

    Retorna o JS sintetizado mais recente, ou success=False se nada foi
    registrado para a URI.
    """
    uri = _command_argument(params, "uri")
    if not uri:
        return {"success": False, "error": "URI não informada"}
    content = ls.virtual_documents.resolve(uri)
    if content is None:
        return {"success": False, "error": f"Documento virtual não encontrado: {uri}"}
    return {"success": True, "content": content}


@server.command("coffeescript/showCompiled")
def cmd_show_compiled(ls: CoffeeLanguageServer, params) -> dict:
    """Compila o documento e devolve o JavaScript ou o erro de sintaxe."""
    uri = _command_argument(params, "uri")
    if not uri:
        return {"success": False, "error": "URI não informada"}
    try:
        source = ls.workspace.get_document(uri).source
        result = ls.compiler.compile(source)
    except Exception as e:
        logger.error(f"showCompiled falhou para {uri}: {e}", exc_info=True)
        return {"success": False, "error": str(e)}

    if isinstance(result, CompilationFailure):
        return {
            "success": False,
            "error": result.diagnostics[0].message,
            "diagnostics": [_diagnostic_to_dict(d) for d in result.diagnostics],
        }
    return {"success": True, "js": result.js}


@server.command("coffeescript/debug/diagnostics")
def debug_diagnostics(ls: CoffeeLanguageServer, params) -> dict:
    """Estado do sistema de diagnósticos para depuração."""
    expired = ls.compile_cache.purge_expired() + ls.verify_cache.purge_expired()
    status = {
        "settings": ls.settings.to_dict(),
        "expired_cache_entries_purged": expired,
        "open_documents": ls.sessions.uris(),
        "compile_cache_entries": len(ls.compile_cache),
        "verify_cache_entries": len(ls.verify_cache),
        "virtual_documents": len(ls.virtual_documents),
        "verifier_running": bool(ls.verifier and ls.verifier.session.running),
        "completion_host_started": ls.host.started,
    }
    uri = _command_argument(params, "uri")
    if uri and uri in ls.sessions:
        session = ls.sessions.get(uri)
        status["document"] = {
            "uri": uri,
            "state": session.state.value,
            "generation": session.generation,
            "published_generation": session.published_generation,
        }
    return {"success": True, "status": status}


@server.feature(TEXT_DOCUMENT_DID_OPEN)
def did_open(ls: CoffeeLanguageServer, params: DidOpenTextDocumentParams) -> None:
    """Handler para abertura de documento: agenda a validação."""
    logger.info(f"Documento aberto: {params.text_document.uri}")
    validate_document(ls, params.text_document.uri)


@server.feature(TEXT_DOCUMENT_DID_CHANGE)
def did_change(ls: CoffeeLanguageServer, params: DidChangeTextDocumentParams) -> None:
    """Handler para mudanças no documento: reinicia o debounce."""
    logger.debug(f"Documento modificado: {params.text_document.uri}")
    validate_document(ls, params.text_document.uri)


@server.feature(TEXT_DOCUMENT_DID_CLOSE)
def did_close(ls: CoffeeLanguageServer, params: DidCloseTextDocumentParams) -> None:
    """Handler para fechamento: cancela timers e limpa diagnósticos."""
    uri = params.text_document.uri
    logger.info(f"Documento fechado: {uri}")
    ls.sessions.close(uri)
    ls.publish_diagnostics(uri, [])


@server.feature(WORKSPACE_DID_CHANGE_CONFIGURATION)
async def did_change_configuration(
    ls: CoffeeLanguageServer, params: DidChangeConfigurationParams
) -> None:
    """
    Handler para mudanças na configuração do workspace.

    Revalida os documentos abertos quando a validação é reativada e limpa
    os diagnósticos quando ela é desativada.
    """
    try:
        was_enabled = ls.settings.validation_enabled
        await ls.apply_settings(parse_settings(params.settings))
        logger.info(
            f"Configuração atualizada: validation.enabled = {ls.settings.validation_enabled}"
        )

        if not was_enabled and ls.settings.validation_enabled:
            logger.info("Validação reativada, revalidando documentos abertos")
            for doc_uri in ls.sessions.uris():
                validate_document(ls, doc_uri)
        elif was_enabled and not ls.settings.validation_enabled:
            logger.info("Validação desativada, limpando diagnósticos")
            for doc_uri in ls.sessions.uris():
                ls.sessions.get(doc_uri).cancel_timers()
                ls.publish_diagnostics(doc_uri, [])
    except Exception as e:
        logger.error(f"Erro ao processar mudança de configuração: {e}", exc_info=True)


async def _ensure_host(ls: CoffeeLanguageServer) -> bool:
    """Inicia (ou reinicia, se o processo morreu) o servidor JS."""
    if ls.host.started:
        return True
    try:
        await ls.host.start(ls.workspace.root_uri)
    except HostServiceFault as e:
        logger.warning(f"Servidor JavaScript indisponível: {e}")
        return False
    return True


@server.feature(
    TEXT_DOCUMENT_COMPLETION,
    CompletionOptions(trigger_characters=TRIGGER_CHARACTERS),
)
async def completion(ls: CoffeeLanguageServer, params: CompletionParams) -> CompletionList:
    """
    Autocomplete: sugestões do servidor JavaScript sobre o buffer sintetizado.

    Retorna lista vazia se o autocomplete estiver desabilitado ou o
    servidor JS não puder ser iniciado.
    """
    if not ls.settings.completion_enabled:
        return CompletionList(is_incomplete=False, items=[])

    uri = params.text_document.uri
    doc = ls.workspace.get_document(uri)

    if not await _ensure_host(ls):
        return CompletionList(is_incomplete=False, items=[])

    trigger_char = None
    if params.context:
        trigger_char = getattr(params.context, "trigger_character", None)

    return await compute_completions(
        doc.source,
        params.position,
        uri,
        compiler=ls.compiler,
        host=ls.host,
        virtual_documents=ls.virtual_documents,
        session=ls.sessions.get(uri) if uri in ls.sessions else None,
        trigger_char=trigger_char,
    )


@server.feature(TEXT_DOCUMENT_DEFINITION)
async def definition(ls: CoffeeLanguageServer, params: DefinitionParams) -> list[Location]:
    """
    Go-to-definition: pergunta ao servidor JavaScript sobre o JS compilado.

    Retorna lista vazia se a definição estiver desabilitada, o documento
    não compilar ou o destino não puder ser mapeado.
    """
    if not ls.settings.definition_enabled:
        return []

    uri = params.text_document.uri
    doc = ls.workspace.get_document(uri)

    if not await _ensure_host(ls):
        return []

    return await compute_definition(
        doc.source,
        params.position,
        uri,
        compiler=ls.compiler,
        host=ls.host,
        virtual_documents=ls.virtual_documents,
    )


def main() -> None:
    """
    Ponto de entrada principal do servidor.

    Inicia servidor LSP em modo STDIO.
    """
    global _startup_logged
    logger.info("Iniciando CoffeeScript Language Server...")
    if not _startup_logged:
        _startup_logged = True
        logger.info("Python executable: %s", sys.executable)
        try:
            logger.info("coffee-lsp package: %s", metadata.version("coffee-lsp"))
        except metadata.PackageNotFoundError:
            logger.info("coffee-lsp package: %s (não instalado)", __version__)
    server.start_io()


if __name__ == "__main__":
    main()
