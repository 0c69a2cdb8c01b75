"""
test_host_client.py - Testes do cliente do servidor JavaScript

Propósito:
    Validar a sincronização do documento virtual (didOpen e didChange
    com texto completo) e a conversão de falhas em HostServiceFault,
    com um BaseLanguageClient simulado.
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from lsprotocol.types import (
    CompletionItem,
    CompletionTriggerKind,
    Location,
    Position,
    Range,
)

from coffee_lsp.errors import HostServiceFault
from coffee_lsp.host_client import HostCompletionService

URI = "coffee-lsp://compiled/app.js"


def _service(response=None, error=None):
    service = HostCompletionService(timeout=0.5)
    client = MagicMock()
    client.stopped = False
    if error is not None:
        client.text_document_completion_async = AsyncMock(side_effect=error)
    else:
        client.text_document_completion_async = AsyncMock(return_value=response)
    service._client = client
    service._started = True
    return service, client


def test_sync_opens_then_changes():
    service, client = _service()

    service.sync(URI, "var x;")
    service.sync(URI, "var y;")

    open_params = client.text_document_did_open.call_args[0][0]
    assert open_params.text_document.version == 0
    assert open_params.text_document.language_id == "javascript"
    change_params = client.text_document_did_change.call_args[0][0]
    assert change_params.text_document.version == 1
    assert change_params.content_changes[0].text == "var y;"


def test_complete_with_trigger_character():
    items = [CompletionItem(label="length")]
    service, client = _service(items)

    result = asyncio.run(service.complete(URI, "x.", Position(line=0, character=2), "."))

    assert result == items
    params = client.text_document_completion_async.call_args[0][0]
    assert params.context.trigger_kind == CompletionTriggerKind.TriggerCharacter
    assert params.context.trigger_character == "."
    assert params.position == Position(line=0, character=2)


def test_complete_invoked_without_trigger():
    service, client = _service([])

    asyncio.run(service.complete(URI, "x", Position(line=0, character=1)))

    params = client.text_document_completion_async.call_args[0][0]
    assert params.context.trigger_kind == CompletionTriggerKind.Invoked


def test_complete_error_becomes_fault():
    service, _ = _service(error=RuntimeError("pipe fechado"))

    with pytest.raises(HostServiceFault, match="pipe fechado"):
        asyncio.run(service.complete(URI, "x", Position(line=0, character=1)))


def test_complete_before_start_faults():
    service = HostCompletionService()

    with pytest.raises(HostServiceFault):
        asyncio.run(service.complete(URI, "x", Position(line=0, character=1)))


def test_stopped_client_is_not_started():
    """Cliente marcado como parado pelo pygls (processo morto) não serve pedidos."""
    service, client = _service([])
    client.stopped = True

    assert not service.started
    with pytest.raises(HostServiceFault, match="não iniciado"):
        asyncio.run(service.complete(URI, "x", Position(line=0, character=1)))
    client.text_document_completion_async.assert_not_called()


def test_start_replaces_dead_client():
    service, dead = _service([])
    dead.stopped = True
    dead.stop = AsyncMock()
    service._versions[URI] = 3

    fresh = MagicMock()
    fresh.stopped = False
    fresh.start_io = AsyncMock()
    fresh.initialize_async = AsyncMock()

    with patch("coffee_lsp.host_client.BaseLanguageClient", return_value=fresh):
        asyncio.run(service.start())

    dead.stop.assert_awaited_once()
    fresh.start_io.assert_awaited_once_with(*service.command)
    fresh.initialized.assert_called_once()
    assert service._client is fresh
    assert service.started
    assert service._versions == {}


def test_start_is_noop_while_running():
    service, client = _service([])

    with patch("coffee_lsp.host_client.BaseLanguageClient") as factory:
        asyncio.run(service.start())

    factory.assert_not_called()
    assert service._client is client


def test_definition_forwards_position():
    target = Location(
        uri=URI,
        range=Range(start=Position(line=0, character=4), end=Position(line=0, character=5)),
    )
    service, client = _service()
    client.text_document_definition_async = AsyncMock(return_value=[target])

    result = asyncio.run(service.definition(URI, "var x;\nx;", Position(line=1, character=0)))

    assert result == [target]
    params = client.text_document_definition_async.call_args[0][0]
    assert params.text_document.uri == URI
    assert params.position == Position(line=1, character=0)
    client.text_document_did_open.assert_called_once()


def test_definition_timeout_becomes_fault():
    async def never_answers(params):
        await asyncio.sleep(10)

    service, client = _service()
    service.timeout = 0.01
    client.text_document_definition_async = never_answers

    with pytest.raises(HostServiceFault, match="definição excedeu"):
        asyncio.run(service.definition(URI, "x", Position(line=0, character=0)))
