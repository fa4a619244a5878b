"""Collaborators shared by every operation of an orchestrator."""

from dataclasses import dataclass, field, replace
from typing import Optional

from kubeship.config.models import EngineSettings
from kubeship.kube.client import DEFAULT_KUBE_VERSION, PrintingResourceClient, ResourceClient
from kubeship.orchestrator.render import BundleRenderer
from kubeship.orchestrator.waiting import WaitCoordinator
from kubeship.release.models import Release
from kubeship.storage.driver import MemoryDriver
from kubeship.storage.storage import ReleaseStore
from kubeship.utils.errors import KubeshipError
from kubeship.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class EngineContext:
    """Store, client, renderer and settings, fixed at construction.

    Operations that need different collaborators (client-only installs, a
    per-operation history cap) derive a new context instead of mutating this
    one.
    """

    store: ReleaseStore
    client: ResourceClient
    renderer: BundleRenderer
    settings: EngineSettings = field(default_factory=EngineSettings)
    waits: Optional[WaitCoordinator] = field(default=None, repr=False, compare=False)

    def __post_init__(self):
        if self.waits is None:
            object.__setattr__(self, "waits", WaitCoordinator(self.client))

    def client_only(self, namespace: Optional[str] = None) -> "EngineContext":
        """Context that talks to no cluster and keeps history in memory."""
        namespace = namespace or self.settings.namespace
        client = PrintingResourceClient(
            namespace=namespace,
            kube_version=self.settings.kube_version or DEFAULT_KUBE_VERSION,
            poll_interval=self.settings.poll_interval,
        )
        return replace(
            self,
            store=ReleaseStore(MemoryDriver(namespace), self.store.max_history),
            client=client,
            waits=WaitCoordinator(client),
        )

    def with_max_history(self, max_history: Optional[int]) -> "EngineContext":
        """Context whose store prunes to a different history cap."""
        if max_history is None or max_history == self.store.max_history:
            return self
        return replace(self, store=ReleaseStore(self.store.driver, max_history))

    def record(self, release: Release) -> None:
        """Persist changes to a release, logging rather than raising on failure."""
        try:
            self.store.update(release)
        except KubeshipError as e:
            logger.warning(
                f"Failed to update release {release.name} version {release.version}: {e}"
            )
