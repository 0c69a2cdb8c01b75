"""
completion.py - Autocomplete CoffeeScript via serviço JavaScript

Propósito:
    Fornece sugestões de autocomplete para código CoffeeScript incompleto:
    1. Sintetiza um buffer com placeholder na linha do cursor
    2. Compila (com cache) e localiza a linha JS da sonda
    3. Reescreve essa linha JS com o texto real e publica o documento virtual
    4. Encaminha o pedido ao servidor JS no cursor emulado
    5. Ancora o range de cada item no cursor CoffeeScript real

Notas de implementação:
    - Sem debounce: roda uma vez por pedido
    - Ranges devolvidos pelo servidor JS referem-se ao buffer sintetizado;
      basta cercar o token real: TextEdit → (cursor - 1, cursor),
      InsertReplaceEdit → range vazio no cursor
    - Qualquer falha interna (erro de sintaxe, sem mapeamento, serviço JS
      fora do ar, pedido obsoleto) resulta em lista vazia
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Optional

from lsprotocol.types import (
    CompletionItem,
    CompletionList,
    InsertReplaceEdit,
    Position,
    Range,
    TextEdit,
)

from coffee_lsp.compiler import CoffeeCompiler, CompilationFailure
from coffee_lsp.errors import HostServiceFault
from coffee_lsp.host_client import CompletionResponse, HostCompletionService
from coffee_lsp.positions import dialect_to_host_line
from coffee_lsp.session import DocumentSession
from coffee_lsp.speculative import emulate, synthesize
from coffee_lsp.virtual_documents import VirtualDocumentRegistry

logger = logging.getLogger(__name__)

TRIGGER_CHARACTERS = [".", '"']


class EditShape(Enum):
    NONE = "none"
    SIMPLE = "simple"
    INSERT_REPLACE = "insert_replace"


def edit_shape(edit) -> EditShape:
    """Classifica o range de edição de um item (ou dos item_defaults)."""
    if isinstance(edit, (TextEdit, Range)):
        return EditShape.SIMPLE
    if edit is None:
        return EditShape.NONE
    if hasattr(edit, "insert") and hasattr(edit, "replace"):
        return EditShape.INSERT_REPLACE
    return EditShape.NONE


def simple_range(cursor: Position) -> Range:
    """Um caractere antes do cursor até o cursor."""
    return Range(
        start=Position(line=cursor.line, character=max(cursor.character - 1, 0)),
        end=Position(line=cursor.line, character=cursor.character),
    )


def empty_range(cursor: Position) -> Range:
    return Range(start=cursor, end=cursor)


def remap_item(item: CompletionItem, cursor: Position) -> CompletionItem:
    """Ancora o range de edição do item no cursor CoffeeScript real."""
    shape = edit_shape(item.text_edit)
    if shape is EditShape.SIMPLE:
        item.text_edit = TextEdit(range=simple_range(cursor), new_text=item.text_edit.new_text)
    elif shape is EditShape.INSERT_REPLACE:
        item.text_edit = InsertReplaceEdit(
            new_text=item.text_edit.new_text,
            insert=empty_range(cursor),
            replace=empty_range(cursor),
        )
    return item


def remap_defaults(completion_list: CompletionList, cursor: Position) -> None:
    defaults = completion_list.item_defaults
    if defaults is None:
        return
    shape = edit_shape(defaults.edit_range)
    if shape is EditShape.SIMPLE:
        defaults.edit_range = simple_range(cursor)
    elif shape is EditShape.INSERT_REPLACE:
        defaults.edit_range = type(defaults.edit_range)(
            insert=empty_range(cursor), replace=empty_range(cursor)
        )


def remap_response(response: CompletionResponse, cursor: Position) -> CompletionList:
    """Normaliza a resposta do servidor JS em CompletionList ancorada no cursor."""
    if response is None:
        return CompletionList(is_incomplete=False, items=[])
    if isinstance(response, CompletionList):
        completion_list = response
    else:
        completion_list = CompletionList(is_incomplete=False, items=list(response))

    completion_list.items = [remap_item(item, cursor) for item in completion_list.items]
    remap_defaults(completion_list, cursor)
    return completion_list


async def compute_completions(
    source: str,
    position: Position,
    uri: str,
    compiler: CoffeeCompiler,
    host: HostCompletionService,
    virtual_documents: VirtualDocumentRegistry,
    session: Optional[DocumentSession] = None,
    trigger_char: Optional[str] = None,
) -> CompletionList:
    """
    Computa a lista de autocomplete para o cursor CoffeeScript.

    Args:
        source: Texto-fonte CoffeeScript do documento
        position: Posição do cursor (0-based)
        uri: URI do documento real (chave do documento virtual)
        compiler: CoffeeCompiler com cache
        host: Serviço de autocomplete JavaScript
        virtual_documents: Registro de documentos virtuais
        session: Sessão do documento (descarta respostas obsoletas)
        trigger_char: Caractere que disparou o autocomplete (ex: ".")

    Returns:
        CompletionList com ranges em coordenadas CoffeeScript
    """
    empty = CompletionList(is_incomplete=False, items=[])
    generation = session.next_completion() if session else None

    buffer = synthesize(source, position)
    result = compiler.compile(buffer.candidate)
    if isinstance(result, CompilationFailure):
        logger.debug(f"Buffer com placeholder não compila: {result.diagnostics[0].message}")
        return empty

    host_line = dialect_to_host_line(
        result.source_map, buffer.probe.line, buffer.probe.character
    )
    if host_line is None:
        return empty

    host_text, emulated_cursor = emulate(result.js, host_line, buffer.current_line)
    virtual_uri = virtual_documents.publish(uri, host_text)

    try:
        response = await host.complete(virtual_uri, host_text, emulated_cursor, trigger_char)
    except HostServiceFault as e:
        logger.warning(f"Autocomplete indisponível para {uri}: {e}")
        return empty

    if session is not None and not session.is_current_completion(generation):
        logger.debug(f"Autocomplete obsoleto descartado: {uri}")
        return empty

    return remap_response(response, position)
