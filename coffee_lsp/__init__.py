"""
coffee_lsp - Language Server Protocol para CoffeeScript

Propósito:
    Servidor LSP que empresta a inteligência do ferramental JavaScript
    (tsserver / typescript-language-server) a arquivos CoffeeScript:
    diagnósticos de sintaxe e de tipos, e autocomplete.

Componentes principais:
    - compiler: CoffeeScript → JavaScript + source map (V8 embutido)
    - positions: Tradução de posições entre CoffeeScript e JavaScript
    - speculative: Buffer substituto sempre compilável para autocomplete
    - diagnostics / completion: Pipelines de diagnóstico e autocomplete
    - server: Servidor principal usando pygls

Dependências críticas:
    - pygls: Framework LSP
    - mini-racer + CoffeeScript: Compilador CoffeeScript embutido

Exemplo de uso:
    python -m coffee_lsp

Notas de implementação:
    - Comunica via STDIO com o cliente
    - Debounce de 500ms para compilação, 250ms para verificação de tipos
"""
from importlib.metadata import PackageNotFoundError, version as _pkg_version
from pathlib import Path
import re


def _read_version_from_pyproject() -> str:
    pyproject = Path(__file__).resolve().parents[1] / "pyproject.toml"
    try:
        text = pyproject.read_text(encoding="utf-8")
    except OSError:
        return "0.0.0"
    match = re.search(r'(?m)^version = "([^"]+)"\s*$', text)
    return match.group(1) if match else "0.0.0"


try:
    __version__ = _pkg_version("coffee-lsp")
except PackageNotFoundError:
    __version__ = _read_version_from_pyproject()

__all__ = ["server", "compiler", "positions", "diagnostics", "completion"]
