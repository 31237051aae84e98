"""Queue-backed logging so the playback tick never blocks on handler I/O."""

from __future__ import annotations

import logging
import queue
from logging.handlers import QueueHandler, QueueListener
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import Self


def _effective_handlers(log: logging.Logger) -> list[logging.Handler]:
    """Handlers that would actually receive records emitted on ``log``."""
    current: logging.Logger | None = log
    while current is not None:
        if current.handlers:
            return list(current.handlers)
        if not current.propagate:
            break
        current = current.parent
    return []


class AsyncLogHandler:
    """
    Moves one logger's output onto a background QueueListener thread.

    While started, records from ``logger_name`` are only enqueued on the
    calling thread; the listener forwards them to the handlers the logger
    previously resolved to (usually the root handlers from basicConfig).
    """

    def __init__(self, logger_name: str = "robodyn.playback"):
        self._logger = logging.getLogger(logger_name)
        self._queue: queue.SimpleQueue[logging.LogRecord] = queue.SimpleQueue()
        self._listener: QueueListener | None = None
        self._saved_handlers: list[logging.Handler] = []
        self._saved_propagate = True

    @property
    def active(self) -> bool:
        return self._listener is not None

    def start(self) -> None:
        if self._listener is not None:
            return
        targets = _effective_handlers(self._logger)
        if not targets:
            return
        self._saved_handlers = list(self._logger.handlers)
        self._saved_propagate = self._logger.propagate
        self._logger.handlers = [QueueHandler(self._queue)]
        self._logger.propagate = False
        self._listener = QueueListener(
            self._queue, *targets, respect_handler_level=True
        )
        self._listener.start()

    def stop(self) -> None:
        """Flush queued records and restore the logger's original wiring."""
        if self._listener is None:
            return
        self._listener.stop()
        self._listener = None
        self._logger.handlers = self._saved_handlers
        self._logger.propagate = self._saved_propagate
        self._saved_handlers = []

    def __enter__(self) -> Self:
        self.start()
        return self

    def __exit__(self, *args: object) -> None:
        self.stop()
