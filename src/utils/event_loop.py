import asyncio
import logging
import threading
from typing import Awaitable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class BackgroundLoop:
    """An asyncio loop running on a daemon thread.

    Streamlit scripts are synchronous and short-lived, while realtime
    channels must outlive a single script run, so all backend I/O is
    scheduled onto this loop and awaited from the caller's thread.
    """

    def __init__(self, name: str = "backend-loop"):
        self._name = name
        self._loop: asyncio.AbstractEventLoop | None = None
        self._thread: threading.Thread | None = None
        self._started = threading.Event()
        self._lock = threading.Lock()

    def _run(self):
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        self._loop = loop
        self._started.set()
        loop.run_forever()

    def start(self) -> asyncio.AbstractEventLoop:
        with self._lock:
            if self._loop is None or self._thread is None or not self._thread.is_alive():
                self._started.clear()
                self._thread = threading.Thread(
                    target=self._run, name=self._name, daemon=True
                )
                self._thread.start()
                self._started.wait()
                logger.info("Started background event loop %s", self._name)
        assert self._loop is not None
        return self._loop

    def run(self, coro: Awaitable[T], timeout: float | None = None) -> T:
        """Run a coroutine on the loop and block for its result.

        Raises `concurrent.futures.TimeoutError` after `timeout` seconds; the
        pending coroutine is cancelled so it cannot complete later.
        """
        loop = self.start()
        future = asyncio.run_coroutine_threadsafe(coro, loop)  # type: ignore[arg-type]
        try:
            return future.result(timeout=timeout)
        except BaseException:
            future.cancel()
            raise

    def stop(self):
        with self._lock:
            if self._loop is not None:
                self._loop.call_soon_threadsafe(self._loop.stop)
            if self._thread is not None:
                self._thread.join(timeout=5)
            self._loop = None
            self._thread = None
