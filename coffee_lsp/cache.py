"""
cache.py - Cache de resultados de compilação por impressão digital do texto

Propósito:
    Memoriza resultados de compilação (CoffeeScript → JS, e verificação
    tsserver) pelo hash MD5 do texto exato, com expiração por tempo.

Componentes principais:
    - CachedCompilation: Resultado em cache com instante de expiração
    - FingerprintCache: Dicionário hash → resultado, por namespace

Notas de implementação:
    - Chave sensível a espaços em branco: "<namespace>:<md5>"
    - Entradas só expiram por TTL (nunca por tamanho ou acesso)
    - Um miss equivale a uma compilação a frio; o cache nunca é
      necessário para a corretude
    - Dois caches podem dividir o mesmo dict de armazenamento sem colisão,
      pois o namespace faz parte de toda chave
"""

from __future__ import annotations

import hashlib
import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

logger = logging.getLogger(__name__)

DEFAULT_TTL = 180.0


def fingerprint(text: str) -> str:
    """Hash determinístico do texto exato."""
    return hashlib.md5(text.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class CachedCompilation:
    """Resultado de compilação em cache com instante de expiração."""

    result: object
    expires_at: float


class FingerprintCache:
    """Cache de resultados por hash de conteúdo com TTL."""

    def __init__(
        self,
        namespace: str,
        ttl: float = DEFAULT_TTL,
        clock: Callable[[], float] = time.monotonic,
        storage: Optional[dict[str, CachedCompilation]] = None,
    ):
        self.namespace = namespace
        self.ttl = ttl
        self._clock = clock
        self._cache: dict[str, CachedCompilation] = storage if storage is not None else {}

    def key(self, text: str) -> str:
        return f"{self.namespace}:{fingerprint(text)}"

    def get(self, text: str):
        """Retorna o resultado em cache para o texto, ou None."""
        key = self.key(text)
        cached = self._cache.get(key)
        if cached is None:
            return None
        if self._clock() >= cached.expires_at:
            self._cache.pop(key, None)
            return None
        return cached.result

    def put(self, text: str, result) -> None:
        """Armazena resultado; entradas existentes não são sobrescritas."""
        key = self.key(text)
        existing = self._cache.get(key)
        if existing is not None and self._clock() < existing.expires_at:
            return
        self._cache[key] = CachedCompilation(
            result=result, expires_at=self._clock() + self.ttl
        )

    def purge_expired(self) -> int:
        """Remove entradas expiradas deste namespace; retorna quantas."""
        now = self._clock()
        prefix = f"{self.namespace}:"
        expired = [
            key
            for key, cached in self._cache.items()
            if key.startswith(prefix) and now >= cached.expires_at
        ]
        for key in expired:
            del self._cache[key]
        if expired:
            logger.debug(f"Cache {self.namespace}: {len(expired)} entradas expiradas")
        return len(expired)

    def clear(self) -> None:
        prefix = f"{self.namespace}:"
        for key in [k for k in self._cache if k.startswith(prefix)]:
            del self._cache[key]
        logger.info(f"Cache {self.namespace} limpo")

    def __len__(self) -> int:
        prefix = f"{self.namespace}:"
        return sum(1 for key in self._cache if key.startswith(prefix))
