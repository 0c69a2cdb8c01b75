"""
test_definition.py - Testes do go-to-definition

Propósito:
    Validar o cursor levado ao JS pelo mapeamento à esquerda, o retorno
    de destinos do documento virtual como linhas CoffeeScript inteiras e
    as saídas vazias (erro de sintaxe, sem mapeamento, falha do serviço).
"""

from __future__ import annotations

import asyncio

from lsprotocol.types import Location, LocationLink, Position, Range

from coffee_lsp.compiler import ColumnMapping, CompilationFailure, CompilationSuccess
from coffee_lsp.definition import compute_definition, map_locations
from coffee_lsp.errors import HostServiceFault
from coffee_lsp.virtual_documents import VirtualDocumentRegistry, virtual_uri

URI = "file:///tmp/app.coffee"
VIRTUAL = virtual_uri(URI)
SOURCE = "x = 1\ny = x"


def _range(line: int, start: int, end: int) -> Range:
    return Range(start=Position(line=line, character=start), end=Position(line=line, character=end))


class FakeCompiler:
    """'JS' com uma linha de cabeçalho e depois cada linha CoffeeScript."""

    def __init__(self, fail: bool = False, unmapped: bool = False):
        self.fail = fail
        self.unmapped = unmapped

    def compile(self, text: str):
        if self.fail:
            return CompilationFailure(diagnostics=())
        lines = text.split("\n")
        source_map = ((),) + tuple(
            () if self.unmapped else (ColumnMapping(0, i, 0),) for i in range(len(lines))
        )
        return CompilationSuccess(js="\n".join(["// header"] + lines), source_map=source_map)


class FakeHost:
    def __init__(self, response=None, error: Exception = None):
        self.response = response
        self.error = error
        self.requests: list[tuple] = []

    async def definition(self, uri, text, position):
        self.requests.append((uri, text, position))
        if self.error is not None:
            raise self.error
        return self.response


def _run(compiler, host, position=Position(line=1, character=4), registry=None):
    registry = registry if registry is not None else VirtualDocumentRegistry()
    return asyncio.run(
        compute_definition(SOURCE, position, URI, compiler, host, registry)
    )


def test_target_in_virtual_document_maps_to_whole_line():
    host = FakeHost([Location(uri=VIRTUAL, range=_range(1, 0, 1))])

    result = _run(FakeCompiler(), host)

    assert result == [Location(uri=URI, range=_range(0, 0, len("x = 1")))]


def test_cursor_forwarded_at_host_position():
    host = FakeHost([])
    registry = VirtualDocumentRegistry()

    _run(FakeCompiler(), host, registry=registry)

    uri, text, position = host.requests[0]
    assert uri == VIRTUAL
    assert text == "// header\nx = 1\ny = x"
    # Linha 1 do CoffeeScript é a linha 2 do JS; a coluna acompanha o cursor.
    assert position == Position(line=2, character=4)
    assert registry.get(URI) == text


def test_external_target_passes_through():
    external = Location(uri="file:///lib/lib.es5.d.ts", range=_range(40, 2, 9))
    host = FakeHost(external)

    assert _run(FakeCompiler(), host) == [external]


def test_other_virtual_document_dropped():
    other = Location(uri=virtual_uri("file:///tmp/other.coffee"), range=_range(1, 0, 1))
    host = FakeHost([other])

    assert _run(FakeCompiler(), host) == []


def test_location_link_uses_selection_range():
    link = LocationLink(
        target_uri=VIRTUAL,
        target_range=_range(1, 0, 6),
        target_selection_range=_range(2, 0, 1),
    )
    host = FakeHost([link])

    result = _run(FakeCompiler(), host)

    assert result == [Location(uri=URI, range=_range(1, 0, len("y = x")))]


def test_syntax_error_gives_empty_list():
    host = FakeHost([Location(uri=VIRTUAL, range=_range(1, 0, 1))])

    assert _run(FakeCompiler(fail=True), host) == []
    assert host.requests == []


def test_unmapped_cursor_gives_empty_list():
    host = FakeHost([])

    assert _run(FakeCompiler(unmapped=True), host) == []
    assert host.requests == []


def test_service_fault_gives_empty_list():
    host = FakeHost(error=HostServiceFault("typescript-language-server", "timeout"))

    assert _run(FakeCompiler(), host) == []


def test_unmappable_target_dropped():
    """Destino em linha JS sem mapeamento na vizinhança é descartado."""
    source_map = ((ColumnMapping(0, 0, 0),), (), (), ())
    kept = Location(uri=VIRTUAL, range=_range(0, 0, 1))
    lost = Location(uri=VIRTUAL, range=_range(3, 0, 1))

    result = map_locations([lost, kept], VIRTUAL, URI, source_map, ["x = 1"])

    assert result == [Location(uri=URI, range=_range(0, 0, 5))]


def test_no_response():
    assert map_locations(None, VIRTUAL, URI, (), []) == []
