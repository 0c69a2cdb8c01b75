"""
host_client.py - Cliente do servidor LSP JavaScript

Propósito:
    Encaminha pedidos de autocomplete e de definição sobre o documento JS
    virtual para um servidor LSP JavaScript (typescript-language-server)
    iniciado como processo filho.

Componentes principais:
    - HostCompletionService: Processo filho, sincronização do documento
      virtual e encaminhamento de textDocument/completion e
      textDocument/definition

Dependências críticas:
    - pygls.lsp.client.BaseLanguageClient: Cliente LSP sobre STDIO

Notas de implementação:
    - O documento virtual é sincronizado (didOpen, depois didChange com
      texto completo) antes de cada pedido
    - Diagnósticos publicados pelo servidor JS são ignorados: os
      diagnósticos vêm do pipeline próprio
    - Qualquer falha ou timeout vira HostServiceFault; não há nova tentativa
"""

from __future__ import annotations

import asyncio
import logging
import os
from typing import Optional, Sequence, Union

from lsprotocol.types import (
    TEXT_DOCUMENT_PUBLISH_DIAGNOSTICS,
    WINDOW_LOG_MESSAGE,
    ClientCapabilities,
    CompletionClientCapabilities,
    CompletionClientCapabilitiesCompletionItemType,
    CompletionContext,
    CompletionItem,
    CompletionList,
    CompletionParams,
    CompletionTriggerKind,
    DefinitionParams,
    DidChangeTextDocumentParams,
    DidOpenTextDocumentParams,
    InitializeParams,
    InitializedParams,
    Location,
    LocationLink,
    LogMessageParams,
    Position,
    PublishDiagnosticsParams,
    TextDocumentClientCapabilities,
    TextDocumentContentChangeEvent_Type2,
    TextDocumentIdentifier,
    TextDocumentItem,
    VersionedTextDocumentIdentifier,
)
from pygls.lsp.client import BaseLanguageClient

from coffee_lsp import __version__
from coffee_lsp.errors import HostServiceFault

logger = logging.getLogger(__name__)

SERVICE_NAME = "typescript-language-server"
DEFAULT_COMMAND = ("typescript-language-server", "--stdio")
DEFAULT_TIMEOUT = 5.0

CompletionResponse = Union[list[CompletionItem], CompletionList, None]
DefinitionResponse = Union[Location, list[Location], list[LocationLink], None]


class HostCompletionService:
    """
    Servidor LSP JavaScript usado só para autocomplete.

    Attributes:
        command: Comando do servidor JS (STDIO)
        timeout: Tempo máximo de um pedido de autocomplete (segundos)
    """

    def __init__(
        self, command: Sequence[str] = DEFAULT_COMMAND, timeout: float = DEFAULT_TIMEOUT
    ):
        self.command = list(command)
        self.timeout = timeout
        self._client: Optional[BaseLanguageClient] = None
        self._versions: dict[str, int] = {}
        self._started = False

    @property
    def started(self) -> bool:
        # O pygls marca o cliente como parado quando o processo filho morre.
        return self._started and self._client is not None and not self._client.stopped

    async def start(self, root_uri: Optional[str] = None) -> None:
        """Inicia o servidor JS e faz o handshake initialize/initialized."""
        if self.started:
            return
        if self._client is not None:
            logger.warning(f"{SERVICE_NAME} parou; reiniciando")
            dead, self._client = self._client, None
            self._started = False
            await self._stop_client(dead)
        client = BaseLanguageClient("coffee-lsp-host", __version__)

        @client.feature(TEXT_DOCUMENT_PUBLISH_DIAGNOSTICS)
        def on_publish_diagnostics(params: PublishDiagnosticsParams) -> None:
            logger.debug(f"Diagnósticos do servidor JS ignorados: {params.uri}")

        @client.feature(WINDOW_LOG_MESSAGE)
        def on_log_message(params: LogMessageParams) -> None:
            logger.debug(f"[{SERVICE_NAME}] {params.message}")

        try:
            await client.start_io(*self.command)
            await asyncio.wait_for(
                client.initialize_async(
                    InitializeParams(
                        process_id=os.getpid(),
                        root_uri=root_uri,
                        capabilities=ClientCapabilities(
                            text_document=TextDocumentClientCapabilities(
                                completion=CompletionClientCapabilities(
                                    completion_item=CompletionClientCapabilitiesCompletionItemType(
                                        snippet_support=False,
                                        insert_replace_support=True,
                                    ),
                                ),
                            ),
                        ),
                    )
                ),
                timeout=self.timeout * 4,
            )
        except Exception as e:
            logger.error(f"Falha ao iniciar {SERVICE_NAME}: {e}")
            await self._stop_client(client)
            raise HostServiceFault(SERVICE_NAME, str(e)) from e

        client.initialized(InitializedParams())
        self._client = client
        self._versions.clear()
        self._started = True
        logger.info(f"Servidor JS pronto: {' '.join(self.command)}")

    async def stop(self) -> None:
        client, self._client = self._client, None
        self._started = False
        if client is not None:
            try:
                await asyncio.wait_for(client.shutdown_async(None), timeout=2.0)
                client.exit(None)
            except Exception as e:
                logger.debug(f"Erro ao encerrar {SERVICE_NAME}: {e}")
            await self._stop_client(client)

    @staticmethod
    async def _stop_client(client: BaseLanguageClient) -> None:
        try:
            await client.stop()
        except Exception as e:
            logger.debug(f"Erro ao parar cliente {SERVICE_NAME}: {e}")

    def sync(self, uri: str, text: str) -> None:
        """Envia o texto completo do documento virtual ao servidor JS."""
        client = self._require_client()
        version = self._versions.get(uri)
        if version is None:
            self._versions[uri] = 0
            client.text_document_did_open(
                DidOpenTextDocumentParams(
                    text_document=TextDocumentItem(
                        uri=uri, language_id="javascript", version=0, text=text
                    )
                )
            )
            return
        self._versions[uri] = version + 1
        client.text_document_did_change(
            DidChangeTextDocumentParams(
                text_document=VersionedTextDocumentIdentifier(uri=uri, version=version + 1),
                content_changes=[TextDocumentContentChangeEvent_Type2(text=text)],
            )
        )

    async def complete(
        self,
        uri: str,
        text: str,
        position: Position,
        trigger_character: Optional[str] = None,
    ) -> CompletionResponse:
        """
        Pede autocomplete no documento virtual.

        Raises:
            HostServiceFault: Servidor ausente, erro ou timeout
        """
        try:
            self.sync(uri, text)
            context = CompletionContext(trigger_kind=CompletionTriggerKind.Invoked)
            if trigger_character:
                context = CompletionContext(
                    trigger_kind=CompletionTriggerKind.TriggerCharacter,
                    trigger_character=trigger_character,
                )
            return await asyncio.wait_for(
                self._require_client().text_document_completion_async(
                    CompletionParams(
                        text_document=TextDocumentIdentifier(uri=uri),
                        position=position,
                        context=context,
                    )
                ),
                timeout=self.timeout,
            )
        except HostServiceFault:
            raise
        except asyncio.TimeoutError as e:
            raise HostServiceFault(SERVICE_NAME, f"autocomplete excedeu {self.timeout}s") from e
        except Exception as e:
            raise HostServiceFault(SERVICE_NAME, str(e)) from e

    async def definition(self, uri: str, text: str, position: Position) -> DefinitionResponse:
        """
        Pede a definição do símbolo na posição do documento virtual.

        Raises:
            HostServiceFault: Servidor ausente, erro ou timeout
        """
        try:
            self.sync(uri, text)
            return await asyncio.wait_for(
                self._require_client().text_document_definition_async(
                    DefinitionParams(
                        text_document=TextDocumentIdentifier(uri=uri),
                        position=position,
                    )
                ),
                timeout=self.timeout,
            )
        except HostServiceFault:
            raise
        except asyncio.TimeoutError as e:
            raise HostServiceFault(SERVICE_NAME, f"definição excedeu {self.timeout}s") from e
        except Exception as e:
            raise HostServiceFault(SERVICE_NAME, str(e)) from e

    def _require_client(self) -> BaseLanguageClient:
        if not self.started:
            raise HostServiceFault(SERVICE_NAME, "servidor não iniciado")
        return self._client
