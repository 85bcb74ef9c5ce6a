# src/task_checklist/notifications/runner.py

from __future__ import annotations

import asyncio
import concurrent.futures
import contextlib
import logging
import threading
from collections.abc import Coroutine
from typing import Any

logger = logging.getLogger(__name__)


class BackgroundLoop:
    """
    An asyncio event loop running in a daemon thread.

    Why a thread:
    - the console REPL is blocking (input())
    - notification capabilities are async (Matrix sync loop, room_send)
    submit() hands a coroutine over and returns immediately, so a slow or failing
    notification never blocks the task operation that triggered it.
    """

    def __init__(self, name: str = "notifications") -> None:
        self._name = name
        self._loop: asyncio.AbstractEventLoop | None = None
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return

        ready = threading.Event()
        loop = asyncio.new_event_loop()

        def runner() -> None:
            asyncio.set_event_loop(loop)
            loop.call_soon(ready.set)
            try:
                loop.run_forever()
            finally:
                with contextlib.suppress(Exception):
                    loop.run_until_complete(loop.shutdown_asyncgens())
                loop.close()

        self._loop = loop
        self._thread = threading.Thread(target=runner, name=self._name, daemon=True)
        self._thread.start()
        if not ready.wait(timeout=5.0):
            logger.error("Background loop %s did not start in time.", self._name)
        else:
            logger.debug("Background loop %s started.", self._name)

    def submit(self, coro: Coroutine[Any, Any, Any]) -> concurrent.futures.Future[Any]:
        if self._loop is None or not self.running:
            coro.close()
            raise RuntimeError(f"Background loop {self._name} is not running")
        fut = asyncio.run_coroutine_threadsafe(coro, self._loop)
        fut.add_done_callback(self._log_failure)
        return fut

    def call(self, coro: Coroutine[Any, Any, Any], timeout: float | None = None) -> Any:
        """Submit and wait (startup only; never used on the task-operation path)."""
        return self.submit(coro).result(timeout=timeout)

    def stop(self, timeout: float = 10.0) -> None:
        loop, thread = self._loop, self._thread
        if loop is None or thread is None:
            return

        async def _cancel_pending() -> None:
            current = asyncio.current_task()
            pending = [t for t in asyncio.all_tasks() if t is not current]
            for t in pending:
                t.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

        if thread.is_alive():
            try:
                asyncio.run_coroutine_threadsafe(_cancel_pending(), loop).result(timeout=timeout)
            except Exception:
                logger.debug("Cancelling pending notification work failed.", exc_info=True)
            loop.call_soon_threadsafe(loop.stop)
            thread.join(timeout=timeout)

        self._loop = None
        self._thread = None
        logger.debug("Background loop %s stopped.", self._name)

    @staticmethod
    def _log_failure(fut: concurrent.futures.Future[Any]) -> None:
        if fut.cancelled():
            return
        exc = fut.exception()
        if exc is not None:
            logger.error("Background notification call failed: %r", exc)
