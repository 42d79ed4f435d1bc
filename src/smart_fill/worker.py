from __future__ import annotations

import queue
import threading
import time
from typing import Any, Callable

from loguru import logger
from pydantic import ValidationError

from smart_fill.models import AnalysisResponse, AnalyzeRequest

Handler = Callable[[AnalyzeRequest], AnalysisResponse]
Listener = Callable[[AnalysisResponse], None]

_STOP = object()


class AnalysisWorker:
    """A single background thread that processes analysis messages in order.

    ``post_message`` never waits for earlier messages to finish. Each
    response is passed to ``on_message`` on the worker thread before the next
    message is taken from the inbox.
    """

    def __init__(self, handler: Handler, on_message: Listener, name: str = "smart-fill-worker") -> None:
        self._handler = handler
        self._on_message = on_message
        self._inbox: queue.Queue[Any] = queue.Queue()
        self._outstanding = 0
        self._idle = threading.Condition()
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)
        self._started = False
        self._closed = False

    @property
    def alive(self) -> bool:
        return self._thread.is_alive()

    def start(self) -> None:
        if not self._started:
            self._started = True
            self._thread.start()

    def post_message(self, message: AnalyzeRequest | dict[str, Any]) -> None:
        if self._closed:
            raise RuntimeError("Worker has been terminated")
        self.start()
        with self._idle:
            self._outstanding += 1
        self._inbox.put(message)

    def wait_idle(self, timeout: float | None = None) -> bool:
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._idle:
            while self._outstanding:
                remaining = None if deadline is None else deadline - time.monotonic()
                if remaining is not None and remaining <= 0:
                    return False
                self._idle.wait(remaining)
        return True

    def terminate(self, timeout: float | None = 5.0) -> None:
        if self._closed:
            return
        self._closed = True
        if self._started:
            self._inbox.put(_STOP)
            self._thread.join(timeout)

    def _process(self, message: AnalyzeRequest | dict[str, Any]) -> AnalysisResponse:
        if isinstance(message, dict):
            try:
                message = AnalyzeRequest.model_validate(message)
            except ValidationError as exc:
                logger.warning("Unknown worker message: {error}", error=str(exc))
                return AnalysisResponse(
                    id=str(message.get("id", "")),
                    type="ERROR",
                    generation=int(message.get("generation", 0) or 0),
                    payload=f"Unknown message: {exc.error_count()} validation error(s)",
                )
        return self._handler(message)

    def _run(self) -> None:
        logger.debug("Analysis worker started")
        while True:
            message = self._inbox.get()
            if message is _STOP:
                break
            try:
                response = self._process(message)
                self._on_message(response)
            except Exception as exc:  # noqa: BLE001
                logger.error("Analysis worker message failed: {error}", error=str(exc))
            finally:
                with self._idle:
                    self._outstanding -= 1
                    if not self._outstanding:
                        self._idle.notify_all()
        logger.debug("Analysis worker stopped")
