"""Cancellable readiness waits.

Client waits block. When the caller passes a cancel signal, the blocking call
runs on a detached single-worker pool and the caller polls for completion or
cancellation. On cancellation the caller gets OperationCancelledError right
away and the worker is left to finish on its own; active_units counts such
workers until they do. Without a cancel signal the call runs in the calling
thread, which is how atomic cleanup runs.
"""

import threading
from concurrent.futures import ThreadPoolExecutor, wait as wait_futures
from typing import Callable, List, Optional

from kubeship.kube.client import ResourceClient
from kubeship.kube.resource import Resource
from kubeship.kube.wait import WaitStrategy
from kubeship.utils.errors import (
    ErrorContext,
    OperationCancelledError,
    WaitError,
    error_handler,
)
from kubeship.utils.logging import get_logger

# Seconds between cancellation checks while a worker runs
CANCEL_POLL_INTERVAL = 0.05


class WaitCoordinator:
    """Runs client waits, honoring a caller cancel signal."""

    def __init__(self, client: ResourceClient, poll_interval: float = CANCEL_POLL_INTERVAL):
        """Initialize coordinator.

        Args:
            client: Resource client doing the actual waiting
            poll_interval: Seconds between cancellation checks
        """
        self.client = client
        self.poll_interval = poll_interval
        self.logger = get_logger(__name__)
        self._active = 0
        self._lock = threading.Lock()

    @property
    def active_units(self) -> int:
        """Number of wait workers still running."""
        with self._lock:
            return self._active

    def wait(
        self,
        resources: List[Resource],
        strategy: WaitStrategy,
        timeout: float,
        cancel: Optional[threading.Event] = None,
        wait_for_jobs: bool = False
    ) -> None:
        """Wait for resources to become ready.

        The hook-only strategy returns immediately.

        Raises:
            WaitError: If the resources did not become ready
            OperationCancelledError: If cancel was set first
        """
        if WaitStrategy(strategy) == WaitStrategy.HOOK_ONLY:
            self.logger.debug("Skipping resource wait for hook-only strategy")
            return
        self.logger.debug(
            f"Waiting up to {timeout}s for {len(resources)} resource(s) "
            f"({WaitStrategy(strategy).value}, jobs={wait_for_jobs})"
        )
        self._run(
            lambda: self.client.wait(resources, timeout, strategy, wait_for_jobs),
            cancel,
            "wait",
        )

    def watch_until_ready(
        self,
        resources: List[Resource],
        strategy: WaitStrategy,
        timeout: float,
        cancel: Optional[threading.Event] = None
    ) -> None:
        """Wait for hook resources to finish."""
        self._run(
            lambda: self.client.watch_until_ready(resources, timeout, strategy),
            cancel,
            "watch",
        )

    def wait_for_delete(
        self,
        resources: List[Resource],
        strategy: WaitStrategy,
        timeout: float,
        cancel: Optional[threading.Event] = None
    ) -> None:
        """Wait for resources to be removed from the cluster."""
        self._run(
            lambda: self.client.wait_for_delete(resources, timeout, strategy),
            cancel,
            "delete wait",
        )

    def _run(self, func: Callable[[], None], cancel: Optional[threading.Event], what: str) -> None:
        context = ErrorContext(operation=what)

        if cancel is None:
            try:
                func()
            except Exception as e:
                raise error_handler.handle_exception(e, context, WaitError)
            return

        if cancel.is_set():
            raise OperationCancelledError()

        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="kubeship-wait")
        with self._lock:
            self._active += 1
        future = executor.submit(self._tracked, func)

        while True:
            finished, _ = wait_futures([future], timeout=self.poll_interval)
            if finished:
                executor.shutdown(wait=True)
                try:
                    future.result()
                except Exception as e:
                    raise error_handler.handle_exception(e, context, WaitError)
                return
            if cancel.is_set():
                # Leave the worker running; it exits once the client call returns
                executor.shutdown(wait=False)
                self.logger.info(f"Cancelled {what}; worker left to finish in background")
                raise OperationCancelledError(context=context)

    def _tracked(self, func: Callable[[], None]) -> None:
        try:
            func()
        finally:
            with self._lock:
                self._active -= 1
