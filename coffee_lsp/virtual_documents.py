"""
virtual_documents.py - Registro de documentos JS virtuais

Propósito:
    Guarda o JS sintetizado para cada documento CoffeeScript e o expõe,
    somente leitura, por um esquema de URI próprio:

        coffee-lsp://compiled/<uri-original-codificada>.js

Notas de implementação:
    - O sufixo '.js' faz o serviço JS tratar o documento como JavaScript
    - O conteúdo é sobrescrito a cada requisição e nunca removido
      explicitamente; vive enquanto o servidor estiver de pé
    - resolve() decodifica a URI e remove o sufixo fixo para achar a chave
"""

from __future__ import annotations

import logging
from typing import Optional
from urllib.parse import quote, unquote, urlparse

logger = logging.getLogger(__name__)

SCHEME = "coffee-lsp"
AUTHORITY = "compiled"
HOST_EXTENSION = ".js"


def virtual_uri(original_uri: str) -> str:
    """URI virtual para o documento CoffeeScript original."""
    return f"{SCHEME}://{AUTHORITY}/{quote(original_uri, safe='')}{HOST_EXTENSION}"


def original_uri(uri: str) -> Optional[str]:
    """URI original a partir da URI virtual, ou None se não for do esquema."""
    parsed = urlparse(uri)
    if parsed.scheme != SCHEME:
        return None
    path = parsed.path[1:] if parsed.path.startswith("/") else parsed.path
    if not path.endswith(HOST_EXTENSION):
        return None
    return unquote(path[: -len(HOST_EXTENSION)])


class VirtualDocumentRegistry:
    """URI original → texto JS sintetizado."""

    def __init__(self):
        self._contents: dict[str, str] = {}

    def publish(self, uri: str, text: str) -> str:
        """Registra o texto JS para o documento e devolve a URI virtual."""
        self._contents[uri] = text
        return virtual_uri(uri)

    def get(self, uri: str) -> Optional[str]:
        return self._contents.get(uri)

    def resolve(self, uri: str) -> Optional[str]:
        """Conteúdo para uma URI virtual, ou None se nada foi registrado."""
        key = original_uri(uri)
        if key is None:
            logger.debug(f"URI fora do esquema {SCHEME}: {uri}")
            return None
        return self._contents.get(key)

    def __len__(self) -> int:
        return len(self._contents)
