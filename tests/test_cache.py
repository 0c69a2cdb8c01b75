"""
test_cache.py - Testes unitários para FingerprintCache

Propósito:
    Validar operações de cache: put, get, expiração por TTL, limpeza e
    isolamento de namespaces. Testes isolados sem o compilador.
"""

from __future__ import annotations

from coffee_lsp.cache import CachedCompilation, FingerprintCache, fingerprint


class FakeClock:
    """Relógio controlado manualmente."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class FakeCompilationResult:
    """Mock simples de CompilationResult para testes."""

    def __init__(self, name: str = "test"):
        self.name = name


def test_put_get():
    """Armazena e recupera resultado do cache."""
    cache = FingerprintCache("coffee")
    cache.put("x = 1", FakeCompilationResult("projeto1"))

    cached = cache.get("x = 1")
    assert cached is not None
    assert cached.name == "projeto1"


def test_get_missing():
    """get retorna None para texto não cacheado."""
    cache = FingerprintCache("coffee")
    assert cache.get("y = 2") is None


def test_key_is_whitespace_sensitive():
    """Textos que diferem só em espaços têm chaves diferentes."""
    cache = FingerprintCache("coffee")
    cache.put("x = 1", FakeCompilationResult("a"))

    assert cache.get("x = 1 ") is None
    assert cache.get("x  = 1") is None
    assert cache.key("x = 1") != cache.key("x = 1\n")


def test_fingerprint_deterministic():
    assert fingerprint("abc") == fingerprint("abc")
    assert fingerprint("abc") != fingerprint("abd")


def test_ttl_boundary():
    """Entrada gravada em T existe em T+TTL-ε e some em T+TTL+ε."""
    clock = FakeClock(1000.0)
    cache = FingerprintCache("coffee", ttl=180.0, clock=clock)
    cache.put("x = 1", FakeCompilationResult())

    clock.now = 1000.0 + 180.0 - 0.001
    assert cache.get("x = 1") is not None

    clock.now = 1000.0 + 180.0 + 0.001
    assert cache.get("x = 1") is None


def test_put_does_not_overwrite_live_entry():
    """Entradas são imutáveis enquanto válidas."""
    cache = FingerprintCache("coffee")
    cache.put("x = 1", FakeCompilationResult("v1"))
    cache.put("x = 1", FakeCompilationResult("v2"))

    assert cache.get("x = 1").name == "v1"


def test_put_after_expiry_replaces():
    clock = FakeClock()
    cache = FingerprintCache("coffee", ttl=10.0, clock=clock)
    cache.put("x = 1", FakeCompilationResult("v1"))
    clock.now += 11.0
    cache.put("x = 1", FakeCompilationResult("v2"))

    assert cache.get("x = 1").name == "v2"


def test_namespaces_share_storage_without_collision():
    """Caches coffee e ts no mesmo dict nunca compartilham chaves."""
    storage: dict[str, CachedCompilation] = {}
    coffee = FingerprintCache("coffee", storage=storage)
    ts = FingerprintCache("ts", storage=storage)

    coffee.put("same text", FakeCompilationResult("coffee"))
    assert ts.get("same text") is None

    ts.put("same text", FakeCompilationResult("ts"))
    assert coffee.get("same text").name == "coffee"
    assert ts.get("same text").name == "ts"
    assert len(storage) == 2
    assert len(coffee) == 1
    assert len(ts) == 1


def test_purge_expired():
    clock = FakeClock()
    cache = FingerprintCache("coffee", ttl=5.0, clock=clock)
    cache.put("a", FakeCompilationResult())
    clock.now += 3.0
    cache.put("b", FakeCompilationResult())
    clock.now += 3.0

    assert cache.purge_expired() == 1
    assert cache.get("a") is None
    assert cache.get("b") is not None


def test_clear_only_own_namespace():
    storage: dict[str, CachedCompilation] = {}
    coffee = FingerprintCache("coffee", storage=storage)
    ts = FingerprintCache("ts", storage=storage)
    coffee.put("a", FakeCompilationResult())
    ts.put("a", FakeCompilationResult())

    coffee.clear()
    assert len(coffee) == 0
    assert len(ts) == 1
