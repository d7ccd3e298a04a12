"""
Background event loop.

Streamlit runs the app script synchronously and re-executes it on every
interaction, while the backend clients and the realtime listener are
asyncio-based and must keep running between reruns. One event loop runs on
a dedicated daemon thread, shared by the sessions of a server process; the
script thread submits coroutines to it and waits for the result.
"""

import asyncio
import threading
from concurrent.futures import Future
from typing import Any, Coroutine, Optional, TypeVar

from medclaim.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class BackgroundLoop:
    """An asyncio event loop running forever on its own thread."""

    def __init__(self, name: str = "medclaim-loop"):
        self._name = name
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._ready = threading.Event()

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            raise RuntimeError("Background loop has not been started")
        return self._loop

    @property
    def is_running(self) -> bool:
        return self._loop is not None and self._loop.is_running()

    def start(self) -> "BackgroundLoop":
        if self._thread is not None:
            return self
        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self._run_forever, name=self._name, daemon=True)
        self._thread.start()
        self._ready.wait()
        logger.debug(f"Background loop started: {self._name}")
        return self

    def _run_forever(self) -> None:
        assert self._loop is not None
        asyncio.set_event_loop(self._loop)
        self._loop.call_soon(self._ready.set)
        self._loop.run_forever()

    def submit(self, coro: Coroutine[Any, Any, T]) -> "Future[T]":
        """Schedule a coroutine without waiting for it."""
        if not self.is_running:
            coro.close()
            raise RuntimeError("Background loop is not running")
        return asyncio.run_coroutine_threadsafe(coro, self.loop)

    def run(self, coro: Coroutine[Any, Any, T], timeout: Optional[float] = None) -> T:
        """
        Run a coroutine on the loop and block until it finishes.

        Exceptions raised by the coroutine are re-raised here. ``timeout``
        bounds the wait only; the coroutine is cancelled if it expires.
        """
        if self._thread is threading.current_thread():
            coro.close()
            raise RuntimeError("BackgroundLoop.run() called from its own thread")
        future = self.submit(coro)
        try:
            return future.result(timeout)
        except TimeoutError:
            future.cancel()
            raise

    async def _cancel_pending(self) -> None:
        current = asyncio.current_task()
        tasks = [task for task in asyncio.all_tasks() if task is not current]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    def stop(self, timeout: float = 5.0) -> None:
        """Cancel outstanding tasks, stop the loop and join the thread. Idempotent."""
        if self._loop is None or self._thread is None:
            return
        loop, thread = self._loop, self._thread
        if loop.is_running():
            try:
                asyncio.run_coroutine_threadsafe(self._cancel_pending(), loop).result(timeout)
            except TimeoutError:
                logger.warning(f"Background loop {self._name}: tasks did not cancel within {timeout}s")
            loop.call_soon_threadsafe(loop.stop)
        thread.join(timeout)
        if not loop.is_running():
            loop.close()
        self._loop = None
        self._thread = None
        self._ready.clear()
        logger.debug(f"Background loop stopped: {self._name}")
