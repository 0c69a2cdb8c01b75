"""
debounce.py - Timer cancelável de disparo único

Propósito:
    Modela o debounce como objeto explícito (schedule / cancel / fire-once)
    em vez de callbacks aninhados.

Notas de implementação:
    - schedule() cancela o timer pendente e agenda outro
    - cancel() só afeta um timer ainda dormindo; uma execução que já
      disparou segue até o fim (o descarte de resultados obsoletos é
      feito pelo contador de geração da sessão)
    - Exceções da execução são registradas no log com traceback
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class Debouncer:
    """Timer assíncrono de disparo único, reiniciado a cada schedule()."""

    def __init__(self, delay: float, name: str = "debounce"):
        self.delay = delay
        self.name = name
        self._pending: Optional[asyncio.Task] = None

    @property
    def pending(self) -> bool:
        return self._pending is not None and not self._pending.done()

    def schedule(self, callback: Callable[[], Awaitable[None]]) -> asyncio.Task:
        """Cancela o timer pendente e agenda callback após o atraso."""
        self.cancel()
        task = asyncio.ensure_future(self._fire(callback))
        task.add_done_callback(self._report)
        self._pending = task
        return task

    def cancel(self) -> bool:
        """Cancela o timer pendente; retorna True se havia um."""
        task, self._pending = self._pending, None
        if task is None or task.done():
            return False
        task.cancel()
        return True

    async def _fire(self, callback: Callable[[], Awaitable[None]]) -> None:
        await asyncio.sleep(self.delay)
        # Disparou: não pode mais ser cancelado por schedule()/cancel().
        if self._pending is asyncio.current_task():
            self._pending = None
        await callback()

    def _report(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                f"Execução de {self.name} falhou: {exc}",
                exc_info=(type(exc), exc, exc.__traceback__),
            )
