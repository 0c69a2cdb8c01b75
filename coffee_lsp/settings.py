"""
settings.py - Configuração do servidor (seção 'coffeescript')

Propósito:
    Lê as configurações do cliente (initializationOptions e
    workspace/didChangeConfiguration) de forma tolerante: valores ausentes
    ou malformados caem no padrão.

Notas de implementação:
    - settings pode vir como {'coffeescript': {...}} ou já ser a seção
    - Atrasos em milissegundos na configuração, segundos internamente
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

from coffee_lsp.cache import DEFAULT_TTL
from coffee_lsp.host_client import DEFAULT_COMMAND as HOST_COMMAND
from coffee_lsp.verifier import DEFAULT_COMMAND as VERIFIER_COMMAND

logger = logging.getLogger(__name__)

SECTION = "coffeescript"


@dataclass(frozen=True)
class ServerSettings:
    validation_enabled: bool = True
    compile_delay: float = 0.5
    verifier_enabled: bool = True
    verify_delay: float = 0.25
    verifier_command: tuple[str, ...] = VERIFIER_COMMAND
    verifier_timeout: float = 10.0
    completion_enabled: bool = True
    completion_command: tuple[str, ...] = HOST_COMMAND
    completion_timeout: float = 5.0
    definition_enabled: bool = True
    cache_ttl: float = DEFAULT_TTL
    compiler_script: Optional[str] = None

    @property
    def host_enabled(self) -> bool:
        """O servidor JS atende autocomplete e definição."""
        return self.completion_enabled or self.definition_enabled

    def to_dict(self) -> dict:
        return {
            "validation": {"enabled": self.validation_enabled},
            "diagnostics": {"debounceMs": int(self.compile_delay * 1000)},
            "verifier": {
                "enabled": self.verifier_enabled,
                "debounceMs": int(self.verify_delay * 1000),
                "command": list(self.verifier_command),
                "timeoutMs": int(self.verifier_timeout * 1000),
            },
            "completion": {
                "enabled": self.completion_enabled,
                "command": list(self.completion_command),
                "timeoutMs": int(self.completion_timeout * 1000),
            },
            "definition": {"enabled": self.definition_enabled},
            "cache": {"ttlSeconds": self.cache_ttl},
            "compiler": {"scriptPath": self.compiler_script},
        }


def _section(settings: Any, name: str) -> dict:
    value = settings.get(name) if isinstance(settings, dict) else None
    return value if isinstance(value, dict) else {}


def _flag(section: dict, key: str, default: bool) -> bool:
    value = section.get(key, default)
    return value if isinstance(value, bool) else default


def _seconds(section: dict, key: str, default: float) -> float:
    value = section.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
        return default
    return value / 1000.0


def _command(section: dict, default: tuple[str, ...]) -> tuple[str, ...]:
    value = section.get("command")
    if isinstance(value, str) and value.strip():
        return tuple(value.split())
    if isinstance(value, list) and value and all(isinstance(v, str) for v in value):
        return tuple(value)
    return default


def parse_settings(settings: Any) -> ServerSettings:
    """
    Converte o payload de configuração do cliente em ServerSettings.

    Args:
        settings: dict com a seção 'coffeescript' ou a própria seção

    Returns:
        ServerSettings com padrões para tudo que faltar
    """
    defaults = ServerSettings()
    if not isinstance(settings, dict):
        return defaults

    config = settings.get(SECTION, settings)
    if not isinstance(config, dict):
        return defaults

    validation = _section(config, "validation")
    diagnostics = _section(config, "diagnostics")
    verifier = _section(config, "verifier")
    completion = _section(config, "completion")
    definition = _section(config, "definition")
    cache = _section(config, "cache")
    compiler = _section(config, "compiler")

    ttl = cache.get("ttlSeconds")
    if isinstance(ttl, bool) or not isinstance(ttl, (int, float)) or ttl <= 0:
        ttl = defaults.cache_ttl

    script = compiler.get("scriptPath")
    if not isinstance(script, str) or not script:
        script = None

    return ServerSettings(
        validation_enabled=_flag(validation, "enabled", defaults.validation_enabled),
        compile_delay=_seconds(diagnostics, "debounceMs", defaults.compile_delay),
        verifier_enabled=_flag(verifier, "enabled", defaults.verifier_enabled),
        verify_delay=_seconds(verifier, "debounceMs", defaults.verify_delay),
        verifier_command=_command(verifier, defaults.verifier_command),
        verifier_timeout=_seconds(verifier, "timeoutMs", defaults.verifier_timeout),
        completion_enabled=_flag(completion, "enabled", defaults.completion_enabled),
        completion_command=_command(completion, defaults.completion_command),
        completion_timeout=_seconds(completion, "timeoutMs", defaults.completion_timeout),
        definition_enabled=_flag(definition, "enabled", defaults.definition_enabled),
        cache_ttl=float(ttl),
        compiler_script=script,
    )
