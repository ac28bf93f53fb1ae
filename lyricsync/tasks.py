"""Async primitives shared by the engine and the render pipeline."""

import asyncio
import logging
from typing import Any, Callable, Optional

from .exceptions import EngineBusyError

logger = logging.getLogger(__name__)


def _log_late_failure(worker: "asyncio.Future") -> None:
    # Workers whose caller timed out finish unobserved; this retrieves and logs their error
    if worker.cancelled():
        return
    error = worker.exception()
    if error is not None:
        logger.debug(f"Worker finished with an error: {error!r}")


def start_worker(func: Callable[..., Any], *args: Any) -> "asyncio.Future":
    """Schedules a blocking call on a worker thread and returns its future."""
    worker = asyncio.ensure_future(asyncio.to_thread(func, *args))
    worker.add_done_callback(_log_late_failure)
    return worker


async def await_worker(worker: "asyncio.Future", timeout: Optional[float] = None,
                       on_timeout: Optional[Callable[[], Exception]] = None, name: str = "worker") -> Any:
    """
    Waits for a worker future, bounded by a deadline.

    On timeout the awaiting task gives up and the exception built by
    on_timeout is raised. The worker itself keeps running (a thread cannot be
    interrupted) and its future stays pending until the thread returns, so
    callers can tell when it is really finished.
    """
    try:
        return await asyncio.wait_for(asyncio.shield(worker), timeout)
    except asyncio.TimeoutError as e:
        logger.error(f"{name} did not finish within {timeout}s")
        if on_timeout is None:
            raise
        raise on_timeout() from e


async def run_blocking(func: Callable[..., Any], *args: Any, timeout: Optional[float] = None,
                       on_timeout: Optional[Callable[[], Exception]] = None,
                       on_abandon: Optional[Callable[["asyncio.Future"], None]] = None) -> Any:
    """
    Runs a blocking call in a worker thread, bounded by a deadline.

    on_abandon receives the still-running worker when the deadline passes.
    """
    worker = start_worker(func, *args)
    name = getattr(func, "__qualname__", repr(func))
    try:
        return await await_worker(worker, timeout, on_timeout, name)
    except BaseException:
        if not worker.done() and on_abandon is not None:
            on_abandon(worker)
        raise


class LoadGuard:
    """
    Makes a blocking load idempotent across concurrent callers.

    All callers share one load attempt and see its result or its exception.
    A load whose caller timed out still counts as in progress until its
    thread returns: the next attempt waits for it instead of starting a
    second load, and adopts its result. A failed load leaves the guard
    unloaded so a later call may try again.
    """

    def __init__(self, name: str, timeout: Optional[float] = None,
                 on_timeout: Optional[Callable[[], Exception]] = None):
        self.name = name
        self.timeout = timeout
        self.on_timeout = on_timeout
        self.is_loaded = False
        self.load_count = 0
        self._attempt: Optional[asyncio.Future] = None
        self._worker: Optional[asyncio.Future] = None

    @property
    def is_loading(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def _mark_loaded(self, worker: "asyncio.Future") -> None:
        if not worker.cancelled() and worker.exception() is None:
            self.is_loaded = True

    async def _load(self, load: Callable[[], Any]) -> None:
        try:
            if self.is_loading:
                logger.info(f"Waiting for the previous {self.name} load to finish...")
            else:
                logger.info(f"Loading {self.name}...")
                self.load_count += 1
                self._worker = start_worker(load)
                self._worker.add_done_callback(self._mark_loaded)
            await await_worker(self._worker, self.timeout, self.on_timeout, f"{self.name} load")
            self.is_loaded = True
            logger.info(f"{self.name} is ready.")
        finally:
            self._attempt = None

    async def ensure(self, load: Callable[[], Any]) -> None:
        if self.is_loaded:
            return
        if self._attempt is None:
            self._attempt = asyncio.ensure_future(self._load(load))
        else:
            logger.debug(f"{self.name} load already in flight; waiting for it.")
        # One caller giving up must not cancel the load the others wait on
        await asyncio.shield(self._attempt)

    def reset(self) -> None:
        """Forgets a completed load so the next ensure() loads again."""
        self.is_loaded = False


class SingleFlight:
    """
    Rejects a second concurrent run of the same operation on one instance.

    A run that timed out keeps the instance busy until its abandoned worker
    thread has actually returned.
    """

    def __init__(self, operation: str):
        self.operation = operation
        self.in_flight = False
        self._straggler: Optional[asyncio.Future] = None

    @property
    def busy(self) -> bool:
        return self.in_flight or (self._straggler is not None and not self._straggler.done())

    def abandon(self, worker: "asyncio.Future") -> None:
        """Keeps the instance busy until worker is done."""
        logger.warning(f"A timed-out {self.operation} is still running; the instance stays busy until it returns.")
        self._straggler = worker

    def __enter__(self):
        if self.busy:
            raise EngineBusyError(f"A {self.operation} is already running on this instance.")
        self.in_flight = True
        return self

    def __exit__(self, exc_type, exc, tb):
        self.in_flight = False
        return False
