"""
definition.py - Go-to-definition via servidor JavaScript

Propósito:
    Resolve a definição do símbolo sob o cursor CoffeeScript perguntando ao
    servidor JS sobre o JavaScript compilado do documento inteiro.

Notas de implementação:
    - Sem buffer substituto: o documento precisa compilar; erro de sintaxe
      resulta em lista vazia
    - O cursor vai para o JS pelo mapeamento mais próximo à esquerda na
      mesma linha (cursor no meio do identificador)
    - Destinos no próprio documento virtual voltam para o .coffee como
      range de linha inteira; destinos em arquivos reais (ex: .d.ts)
      passam intactos; destinos em outros documentos virtuais são
      descartados (não há source map para eles)
"""

from __future__ import annotations

import logging
from typing import Sequence

from lsprotocol.types import Location, LocationLink, Position

from coffee_lsp.compiler import CoffeeCompiler, CompilationFailure, SourceMap
from coffee_lsp.errors import HostServiceFault, MappingMiss
from coffee_lsp.host_client import DefinitionResponse, HostCompletionService
from coffee_lsp.positions import dialect_to_host_position, host_range_to_dialect
from coffee_lsp.virtual_documents import VirtualDocumentRegistry, original_uri

logger = logging.getLogger(__name__)


def _as_locations(response: DefinitionResponse) -> list[Location]:
    if response is None:
        return []
    if isinstance(response, Location):
        return [response]
    locations = []
    for target in response:
        if isinstance(target, LocationLink):
            locations.append(
                Location(uri=target.target_uri, range=target.target_selection_range)
            )
        else:
            locations.append(target)
    return locations


def map_locations(
    response: DefinitionResponse,
    virtual_uri: str,
    uri: str,
    source_map: SourceMap,
    dialect_lines: Sequence[str],
) -> list[Location]:
    """Converte destinos no documento virtual para o documento CoffeeScript."""
    mapped: list[Location] = []
    for location in _as_locations(response):
        if location.uri == virtual_uri:
            try:
                range_ = host_range_to_dialect(source_map, location.range, dialect_lines)
            except MappingMiss as e:
                logger.debug(f"Destino de definição descartado: {e}")
                continue
            mapped.append(Location(uri=uri, range=range_))
        elif original_uri(location.uri) is None:
            mapped.append(location)
    return mapped


async def compute_definition(
    source: str,
    position: Position,
    uri: str,
    compiler: CoffeeCompiler,
    host: HostCompletionService,
    virtual_documents: VirtualDocumentRegistry,
) -> list[Location]:
    """
    Resolve a definição do símbolo no cursor CoffeeScript.

    Args:
        source: Texto-fonte CoffeeScript do documento
        position: Posição do cursor (0-based)
        uri: URI do documento real
        compiler: CoffeeCompiler com cache
        host: Servidor JS
        virtual_documents: Registro de documentos virtuais

    Returns:
        Lista de Location (vazia se não houver definição ou mapeamento)
    """
    result = compiler.compile(source)
    if isinstance(result, CompilationFailure):
        return []

    host_position = dialect_to_host_position(
        result.source_map, position.line, position.character
    )
    if host_position is None:
        return []

    virtual_uri = virtual_documents.publish(uri, result.js)
    try:
        response = await host.definition(virtual_uri, result.js, host_position)
    except HostServiceFault as e:
        logger.warning(f"Definição indisponível para {uri}: {e}")
        return []

    return map_locations(
        response, virtual_uri, uri, result.source_map, source.split("\n")
    )
