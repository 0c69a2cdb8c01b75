"""
verifier.py - Verificação de tipos do JS gerado via tsserver

Propósito:
    Mantém uma sessão tsserver de longa duração com um único arquivo
    gerenciado, cujo texto inteiro é substituído a cada verificação, e
    devolve os diagnósticos pré-emissão em coordenadas JS.

Componentes principais:
    - TsServerSession: Processo tsserver + protocolo JSON (stdin/stdout)
    - TypeVerifier: Cache + filtro + conversão para Diagnostic

Notas de implementação:
    - Requisições: uma linha JSON por requisição no stdin
    - Respostas/eventos: mensagens com cabeçalho Content-Length no stdout
    - Lento (dezenas a centenas de ms): chamado no máximo uma vez por ciclo
      de debounce, nunca por tecla
    - "Cannot find module" é ruído esperado no documento virtual e é filtrado
    - A coluna do tsserver não é confiável: o diagnóstico cobre a linha inteira
    - O acesso à sessão é serializado por um asyncio.Lock
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import re
import tempfile
from typing import Any, Optional, Sequence

from lsprotocol.types import Diagnostic

from coffee_lsp.cache import FingerprintCache
from coffee_lsp.converters import verifier_diagnostic
from coffee_lsp.errors import HostServiceFault

logger = logging.getLogger(__name__)

SERVICE_NAME = "tsserver"
DEFAULT_COMMAND = ("tsserver",)
DEFAULT_TIMEOUT = 10.0

UNRESOLVED_IMPORT_CODES = {2307}
UNRESOLVED_IMPORT_PREFIX = "Cannot find module"

_LINE_BREAK = re.compile(r"\r\n|[\r\n\u2028\u2029]")

COMPILER_OPTIONS = {
    "allowJs": True,
    "alwaysStrict": True,
    "strictNullChecks": True,
    "target": "ESNext",
}


def managed_file_path() -> str:
    # O tsserver lê o conteúdo enviado; o arquivo não precisa existir.
    return os.path.join(tempfile.gettempdir(), "coffee-lsp", "coffee-lsp-verify.ts")


def is_unresolved_import(payload: dict) -> bool:
    if payload.get("code") in UNRESOLVED_IMPORT_CODES:
        return True
    return str(payload.get("text", "")).startswith(UNRESOLVED_IMPORT_PREFIX)


def utf16_length(text: str) -> int:
    return len(text.encode("utf-16-le")) // 2


def end_location(text: str) -> dict:
    """
    Posição 1-based (line, offset) do fim do texto, para o tsserver.

    O tsserver conta offsets em unidades UTF-16 e quebra linhas como o
    scanner do TypeScript (CRLF, CR, LF, U+2028, U+2029).
    """
    lines = _LINE_BREAK.split(text)
    return {"line": len(lines), "offset": utf16_length(lines[-1]) + 1}


async def read_message(reader: asyncio.StreamReader) -> Optional[dict]:
    """
    Lê uma mensagem enquadrada por Content-Length.

    Returns:
        Mensagem decodificada, ou None no EOF
    """
    headers: dict[str, str] = {}
    while True:
        line = await reader.readline()
        if not line:
            return None
        decoded = line.decode("utf-8").strip()
        if not decoded:
            if headers:
                break
            continue
        if ":" in decoded:
            key, value = decoded.split(":", 1)
            headers[key.strip().lower()] = value.strip()

    content_length = int(headers.get("content-length", 0))
    if content_length == 0:
        return {}
    content = await reader.readexactly(content_length)
    return json.loads(content.decode("utf-8"))


class TsServerSession:
    """
    Sessão tsserver com um único arquivo gerenciado.

    Attributes:
        command: Comando para iniciar o tsserver
        timeout: Tempo máximo por requisição (segundos)
    """

    def __init__(self, command: Sequence[str] = DEFAULT_COMMAND, timeout: float = DEFAULT_TIMEOUT):
        self.command = list(command)
        self.timeout = timeout
        self.file = managed_file_path()
        self._process: Optional[asyncio.subprocess.Process] = None
        self._reader_task: Optional[asyncio.Task] = None
        self._pending: dict[int, asyncio.Future] = {}
        self._seq = 0
        self._text: Optional[str] = None
        self._lock = asyncio.Lock()

    @property
    def running(self) -> bool:
        return self._process is not None and self._process.returncode is None

    async def start(self) -> None:
        if self.running:
            return
        try:
            self._process = await asyncio.create_subprocess_exec(
                *self.command,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except OSError as e:
            self._process = None
            raise HostServiceFault(SERVICE_NAME, f"falha ao iniciar {self.command}: {e}") from e

        self._text = None
        self._reader_task = asyncio.ensure_future(self._read_loop(self._process.stdout))
        logger.info(f"tsserver iniciado: {' '.join(self.command)}")
        await self.request(
            "compilerOptionsForInferredProjects",
            {"options": COMPILER_OPTIONS},
        )

    async def stop(self) -> None:
        process, self._process = self._process, None
        if self._reader_task:
            self._reader_task.cancel()
            self._reader_task = None
        self._fail_pending("sessão encerrada")
        if process and process.returncode is None:
            try:
                self._send(process, "exit", None)
            except (BrokenPipeError, ConnectionResetError):
                pass
            try:
                await asyncio.wait_for(process.wait(), timeout=2.0)
            except asyncio.TimeoutError:
                process.kill()
        self._text = None
        logger.info("tsserver encerrado")

    def _send(self, process, command: str, arguments: Any) -> int:
        self._seq += 1
        message: dict[str, Any] = {"seq": self._seq, "type": "request", "command": command}
        if arguments is not None:
            message["arguments"] = arguments
        process.stdin.write((json.dumps(message) + "\n").encode("utf-8"))
        return self._seq

    async def notify(self, command: str, arguments: Any = None) -> None:
        """Envia comando sem resposta (open, close)."""
        process = self._require_process()
        self._send(process, command, arguments)
        await process.stdin.drain()

    async def request(self, command: str, arguments: Any = None) -> Any:
        """Envia requisição e aguarda o corpo da resposta."""
        process = self._require_process()
        future = asyncio.get_running_loop().create_future()
        seq = self._send(process, command, arguments)
        self._pending[seq] = future
        try:
            await process.stdin.drain()
            return await asyncio.wait_for(future, timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise HostServiceFault(
                SERVICE_NAME, f"'{command}' excedeu {self.timeout}s"
            ) from e
        except (BrokenPipeError, ConnectionResetError) as e:
            raise HostServiceFault(SERVICE_NAME, f"conexão perdida: {e}") from e
        finally:
            self._pending.pop(seq, None)

    def _require_process(self):
        if not self.running:
            raise HostServiceFault(SERVICE_NAME, "processo não está em execução")
        return self._process

    async def _read_loop(self, reader: asyncio.StreamReader) -> None:
        while True:
            try:
                message = await read_message(reader)
            except asyncio.CancelledError:
                raise
            except (ValueError, asyncio.IncompleteReadError) as e:
                logger.warning(f"Mensagem inválida do tsserver: {e}")
                break
            if message is None:
                break
            self._dispatch(message)
        self._fail_pending("processo terminou")

    def _dispatch(self, message: dict) -> None:
        if message.get("type") != "response":
            return
        future = self._pending.get(message.get("request_seq"))
        if future is None or future.done():
            return
        if message.get("success", False):
            future.set_result(message.get("body"))
        else:
            future.set_exception(
                HostServiceFault(SERVICE_NAME, message.get("message") or "requisição falhou")
            )

    def _fail_pending(self, reason: str) -> None:
        for future in self._pending.values():
            if not future.done():
                future.set_exception(HostServiceFault(SERVICE_NAME, reason))
        self._pending.clear()

    async def diagnostics(self, text: str) -> list[dict]:
        """
        Substitui o texto do arquivo gerenciado e devolve os diagnósticos
        pré-emissão (sintáticos, depois semânticos).
        """
        async with self._lock:
            if not self.running:
                await self.start()
            if self._text is None:
                await self.notify(
                    "open",
                    {"file": self.file, "fileContent": text, "scriptKindName": "TS"},
                )
            else:
                await self.request(
                    "updateOpen",
                    {
                        "changedFiles": [
                            {
                                "fileName": self.file,
                                "textChanges": [
                                    {
                                        "start": {"line": 1, "offset": 1},
                                        "end": end_location(self._text),
                                        "newText": text,
                                    }
                                ],
                            }
                        ]
                    },
                )
            self._text = text

            syntactic = await self.request("syntacticDiagnosticsSync", {"file": self.file})
            semantic = await self.request("semanticDiagnosticsSync", {"file": self.file})
            return list(syntactic or []) + list(semantic or [])


class TypeVerifier:
    """
    Verificador de tipos do JS gerado (caminho lento).

    Attributes:
        session: TsServerSession compartilhada
        cache: FingerprintCache opcional (namespace "ts")
    """

    def __init__(self, session: TsServerSession, cache: Optional[FingerprintCache] = None):
        self.session = session
        self.cache = cache

    async def verify(self, js: str) -> list[Diagnostic]:
        """
        Verifica o JS e devolve diagnósticos em coordenadas JS.

        Raises:
            HostServiceFault: tsserver falhou, morreu ou excedeu o timeout
        """
        if self.cache is not None:
            cached = self.cache.get(js)
            if cached is not None:
                return list(cached)

        payloads = await self.session.diagnostics(js)
        host_lines = js.split("\n")
        diagnostics = [
            verifier_diagnostic(payload, host_lines)
            for payload in payloads
            if not is_unresolved_import(payload)
        ]
        logger.debug(
            f"tsserver: {len(payloads)} diagnósticos, {len(diagnostics)} após filtro"
        )

        if self.cache is not None:
            self.cache.put(js, tuple(diagnostics))
        return diagnostics

    async def close(self) -> None:
        await self.session.stop()
