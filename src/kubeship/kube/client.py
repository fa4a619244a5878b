"""Resource client interface consumed by the release engine."""

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, TextIO, Tuple

from kubeship.kube.resource import Resource, difference, intersect, parse_resources
from kubeship.kube.wait import DEFAULT_POLL_INTERVAL, WaitStrategy, Waiter, get_waiter
from kubeship.utils.logging import get_logger

DEFAULT_KUBE_VERSION = "1.30.0"


@dataclass
class UpdateResult:
    """Objects touched by an apply or delete."""

    created: List[Resource] = field(default_factory=list)
    updated: List[Resource] = field(default_factory=list)
    deleted: List[Resource] = field(default_factory=list)


class ResourceClient(ABC):
    """Applies, reads, deletes and waits on cluster objects.

    Waits are delegated to the waiter of the requested strategy. Clients
    talking to a real cluster override watch() with a server-side watch.
    """

    def __init__(self, namespace: str = "default", poll_interval: float = DEFAULT_POLL_INTERVAL):
        """Initialize client.

        Args:
            namespace: Namespace for objects that set none
            poll_interval: Seconds between polls for polling waiters
        """
        self.namespace = namespace
        self.poll_interval = poll_interval
        self.logger = get_logger(__name__)

    def build(self, manifest: str, validate: bool = False) -> List[Resource]:
        """Parse manifest text into resources."""
        return parse_resources(manifest, self.namespace)

    @abstractmethod
    def create(self, resources: List[Resource]) -> UpdateResult:
        """Create objects."""
        pass

    @abstractmethod
    def update(self, original: List[Resource], target: List[Resource], force: bool = False) -> UpdateResult:
        """Move the cluster from the original object set to the target set.

        Objects only in target are created, objects in both are updated and
        objects only in original are deleted.
        """
        pass

    @abstractmethod
    def get(self, resource: Resource) -> Optional[Dict[str, Any]]:
        """Fetch the live object, None if it does not exist."""
        pass

    @abstractmethod
    def delete(self, resources: List[Resource]) -> Tuple[UpdateResult, List[Exception]]:
        """Delete objects, collecting per-object errors."""
        pass

    @abstractmethod
    def server_version(self) -> str:
        """Version of the cluster API server, e.g. "1.30.2"."""
        pass

    def is_reachable(self) -> None:
        """Check connectivity.

        Raises:
            ConnectionError: If the cluster cannot be reached
        """
        return None

    def watch(self, resources: List[Resource], timeout: float) -> Iterator[Tuple[Resource, Optional[Dict[str, Any]]]]:
        """Yield (resource, live object) status events until the timeout."""
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            for resource in resources:
                yield resource, self.get(resource)
            time.sleep(self.poll_interval)

    def get_waiter(self, strategy: WaitStrategy) -> Waiter:
        """Return the waiter for a strategy."""
        return get_waiter(strategy, self, self.poll_interval)

    def wait(
        self,
        resources: List[Resource],
        timeout: float,
        strategy: WaitStrategy = WaitStrategy.WATCHER,
        wait_for_jobs: bool = False
    ) -> None:
        """Block until resources are ready.

        Raises:
            TimeoutError: If the resources are not ready in time
        """
        waiter = self.get_waiter(strategy)
        if wait_for_jobs:
            waiter.wait_with_jobs(resources, timeout)
        else:
            waiter.wait(resources, timeout)

    def watch_until_ready(
        self,
        resources: List[Resource],
        timeout: float,
        strategy: WaitStrategy = WaitStrategy.WATCHER
    ) -> None:
        """Block until hook resources have finished."""
        self.get_waiter(strategy).watch_until_ready(resources, timeout)

    def wait_for_delete(
        self,
        resources: List[Resource],
        timeout: float,
        strategy: WaitStrategy = WaitStrategy.WATCHER
    ) -> None:
        """Block until resources are gone."""
        self.get_waiter(strategy).wait_for_delete(resources, timeout)


class PrintingResourceClient(ResourceClient):
    """Client that talks to no cluster, used in client-only mode.

    Applied manifests are written to out when given; no object ever exists.
    """

    def __init__(
        self,
        namespace: str = "default",
        kube_version: str = DEFAULT_KUBE_VERSION,
        out: Optional[TextIO] = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL
    ):
        super().__init__(namespace, poll_interval)
        self.kube_version = kube_version
        self.out = out

    def _print(self, verb: str, resources: List[Resource]) -> None:
        if self.out is None:
            return
        for resource in resources:
            self.out.write(f"{verb} {resource}\n")

    def create(self, resources: List[Resource]) -> UpdateResult:
        self._print("created", resources)
        return UpdateResult(created=list(resources))

    def update(self, original: List[Resource], target: List[Resource], force: bool = False) -> UpdateResult:
        result = UpdateResult(
            created=difference(target, original),
            updated=intersect(target, original),
            deleted=difference(original, target),
        )
        self._print("created", result.created)
        self._print("updated", result.updated)
        self._print("deleted", result.deleted)
        return result

    def get(self, resource: Resource) -> Optional[Dict[str, Any]]:
        return None

    def delete(self, resources: List[Resource]) -> Tuple[UpdateResult, List[Exception]]:
        self._print("deleted", resources)
        return UpdateResult(deleted=list(resources)), []

    def server_version(self) -> str:
        return self.kube_version

    def wait(self, resources, timeout, strategy=WaitStrategy.WATCHER, wait_for_jobs=False) -> None:
        return None

    def watch_until_ready(self, resources, timeout, strategy=WaitStrategy.WATCHER) -> None:
        return None

    def wait_for_delete(self, resources, timeout, strategy=WaitStrategy.WATCHER) -> None:
        return None
