"""Readiness wait strategies.

The set of strategies is closed: WaitStrategy maps each value to one waiter
implementation and nothing can be registered at runtime.
"""

import time
from abc import ABC, abstractmethod
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Type

from kubeship.kube.resource import Resource
from kubeship.utils.logging import get_logger

if TYPE_CHECKING:
    from kubeship.kube.client import ResourceClient

logger = get_logger(__name__)

DEFAULT_POLL_INTERVAL = 2.0


class WaitStrategy(Enum):
    """How an operation decides its resources are ready."""

    HOOK_ONLY = "hook-only"  # Only hooks are awaited
    LEGACY = "legacy"  # Fixed-interval polling
    WATCHER = "watcher"  # Event-driven status watch


def _conditions(live: Dict[str, Any]) -> Dict[str, str]:
    conditions = (live.get("status") or {}).get("conditions") or []
    return {c.get("type"): str(c.get("status")) for c in conditions if isinstance(c, dict)}


def is_ready(live: Optional[Dict[str, Any]], check_jobs: bool = False) -> bool:
    """Decide whether a live object is ready.

    Args:
        live: Live object, None if it does not exist
        check_jobs: Require Jobs to have completed

    Returns:
        True if the object is ready
    """
    if live is None:
        return False

    kind = live.get("kind")
    spec = live.get("spec") or {}
    status = live.get("status") or {}

    if kind == "Job":
        if not check_jobs:
            return True
        return int(status.get("succeeded") or 0) >= int(spec.get("completions") or 1)
    if kind == "Pod":
        return _conditions(live).get("Ready") == "True" or status.get("phase") == "Succeeded"
    if kind in ("Deployment", "StatefulSet", "ReplicaSet", "ReplicationController"):
        wanted = int(spec.get("replicas", 1) or 0)
        return int(status.get("readyReplicas") or 0) >= wanted
    if kind == "DaemonSet":
        return int(status.get("numberReady") or 0) >= int(status.get("desiredNumberScheduled") or 0)
    if kind == "PersistentVolumeClaim":
        return status.get("phase") == "Bound"
    if kind == "CustomResourceDefinition":
        return _conditions(live).get("Established") == "True"
    return True


def is_hook_complete(live: Optional[Dict[str, Any]]) -> bool:
    """Hooks are done once Jobs complete and Pods succeed."""
    if live is None:
        return False
    kind = live.get("kind")
    status = live.get("status") or {}
    if kind == "Job":
        if _conditions(live).get("Failed") == "True":
            raise RuntimeError(f"job {(live.get('metadata') or {}).get('name')} failed: BackoffLimitExceeded")
        return _conditions(live).get("Complete") == "True" or int(status.get("succeeded") or 0) > 0
    if kind == "Pod":
        phase = status.get("phase")
        if phase == "Failed":
            raise RuntimeError(f"pod {(live.get('metadata') or {}).get('name')} failed")
        return phase == "Succeeded"
    return True


class Waiter(ABC):
    """Waits for resources to become ready or to be deleted."""

    def __init__(self, client: "ResourceClient", poll_interval: float = DEFAULT_POLL_INTERVAL):
        self.client = client
        self.poll_interval = poll_interval
        self.logger = get_logger(__name__)

    def wait(self, resources: List[Resource], timeout: float) -> None:
        """Wait for resources to be ready."""
        self._until(resources, timeout, lambda live: is_ready(live), "ready")

    def wait_with_jobs(self, resources: List[Resource], timeout: float) -> None:
        """Wait for resources to be ready, including Job completion."""
        self._until(resources, timeout, lambda live: is_ready(live, check_jobs=True), "ready")

    def wait_for_delete(self, resources: List[Resource], timeout: float) -> None:
        """Wait for resources to be gone."""
        self._until(resources, timeout, lambda live: live is None, "deleted")

    def watch_until_ready(self, resources: List[Resource], timeout: float) -> None:
        """Wait for hook resources to finish."""
        self._until(resources, timeout, is_hook_complete, "complete")

    @abstractmethod
    def _until(self, resources, timeout, condition, what) -> None:
        """Block until condition holds for every resource, or time out.

        Raises:
            TimeoutError: If some resource misses the condition at the deadline
        """
        pass


class HookOnlyWaiter(Waiter):
    """Does not wait for regular resources; hooks are still watched."""

    def wait(self, resources: List[Resource], timeout: float) -> None:
        return None

    def wait_with_jobs(self, resources: List[Resource], timeout: float) -> None:
        return None

    def wait_for_delete(self, resources: List[Resource], timeout: float) -> None:
        return None

    def _until(self, resources, timeout, condition, what) -> None:
        LegacyWaiter(self.client, self.poll_interval)._until(resources, timeout, condition, what)


class LegacyWaiter(Waiter):
    """Polls every resource at a fixed interval."""

    def _until(self, resources, timeout, condition, what) -> None:
        deadline = time.monotonic() + timeout
        pending = list(resources)
        while True:
            pending = [r for r in pending if not condition(self.client.get(r))]
            if not pending:
                return
            if time.monotonic() >= deadline:
                raise TimeoutError(
                    f"timed out waiting for the condition: {len(pending)} resource(s) not {what}, "
                    f"first {pending[0]}"
                )
            self.logger.debug(f"Waiting for {len(pending)} resource(s) to be {what}")
            time.sleep(self.poll_interval)


class WatcherWaiter(Waiter):
    """Consumes status events from the client until every resource matches."""

    def _until(self, resources, timeout, condition, what) -> None:
        pending = {r.key: r for r in resources if not condition(self.client.get(r))}
        if not pending:
            return
        for resource, live in self.client.watch(list(pending.values()), timeout):
            if resource.key in pending and condition(live):
                del pending[resource.key]
                if not pending:
                    return
        raise TimeoutError(
            f"timed out waiting for the condition: {len(pending)} resource(s) not {what}"
        )


WAITERS: Dict[WaitStrategy, Type[Waiter]] = {
    WaitStrategy.HOOK_ONLY: HookOnlyWaiter,
    WaitStrategy.LEGACY: LegacyWaiter,
    WaitStrategy.WATCHER: WatcherWaiter,
}


def get_waiter(strategy: WaitStrategy, client: "ResourceClient", poll_interval: float = DEFAULT_POLL_INTERVAL) -> Waiter:
    """Return the waiter implementing a strategy."""
    return WAITERS[WaitStrategy(strategy)](client, poll_interval)
