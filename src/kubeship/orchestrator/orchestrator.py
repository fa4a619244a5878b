"""Main orchestrator that coordinates release operations."""

import threading
from typing import Any, Dict, List, Optional

from kubeship.config.models import EngineSettings
from kubeship.kube.client import ResourceClient
from kubeship.orchestrator.context import EngineContext
from kubeship.orchestrator.install import Installer
from kubeship.orchestrator.options import (
    InstallOptions,
    RollbackOptions,
    UninstallOptions,
    UpgradeOptions,
)
from kubeship.orchestrator.render import BundleRenderer
from kubeship.orchestrator.rollback import Rollbacker
from kubeship.orchestrator.uninstall import UninstallResponse, Uninstaller
from kubeship.orchestrator.upgrade import Upgrader
from kubeship.orchestrator.waiting import WaitCoordinator
from kubeship.release.models import Bundle, Release
from kubeship.release.naming import validate_release_name
from kubeship.release.util import sort_by_version
from kubeship.storage.driver import MemoryDriver, ReleaseDriver
from kubeship.storage.storage import ReleaseStore
from kubeship.utils.errors import KubeshipError, ReleaseNotFoundError, error_handler
from kubeship.utils.logging import LogContext, get_logger, setup_logging


class ReleaseOrchestrator:
    """Coordinates install, upgrade, rollback and uninstall of releases.

    Each operation builds its own runner over the shared EngineContext, so one
    orchestrator can serve concurrent operations on different release names.
    """

    def __init__(self, context: EngineContext):
        """Initialize release orchestrator.

        Args:
            context: Store, client, renderer and settings to operate with
        """
        self.context = context
        self.logger = get_logger(__name__)

    @classmethod
    def from_settings(
        cls,
        settings: EngineSettings,
        client: ResourceClient,
        renderer: BundleRenderer,
        driver: Optional[ReleaseDriver] = None,
        configure_logging: bool = False
    ) -> "ReleaseOrchestrator":
        """Create an orchestrator from engine settings.

        The client's poll interval is set from the settings.

        Args:
            settings: Engine settings
            client: Cluster client
            renderer: Bundle renderer
            driver: Storage driver (in-memory if not given)
            configure_logging: Set up root logging from log_level and log_dir

        Returns:
            ReleaseOrchestrator
        """
        if configure_logging:
            setup_logging(settings.log_level, log_dir=settings.log_dir)
        client.poll_interval = settings.poll_interval
        driver = driver or MemoryDriver(settings.namespace)
        store = ReleaseStore(driver, max_history=settings.max_history)
        return cls(EngineContext(
            store=store,
            client=client,
            renderer=renderer,
            settings=settings,
        ))

    @property
    def waits(self) -> WaitCoordinator:
        """Wait coordinator, exposing the count of running wait workers."""
        return self.context.waits

    def install(
        self,
        bundle: Bundle,
        values: Optional[Dict[str, Any]] = None,
        options: Optional[InstallOptions] = None,
        cancel: Optional[threading.Event] = None
    ) -> Release:
        """Install a bundle as a new release.

        Args:
            bundle: Bundle to install
            values: Values supplied by the caller
            options: Install options
            cancel: Caller cancel signal

        Returns:
            Installed release
        """
        options = options or InstallOptions()
        with LogContext(self.logger, release=options.name or bundle.name, operation="install"):
            try:
                return Installer(self.context, options).run(bundle, values, cancel)
            except KubeshipError as e:
                error_handler.log_error(e)
                raise

    def upgrade(
        self,
        name: str,
        bundle: Bundle,
        values: Optional[Dict[str, Any]] = None,
        options: Optional[UpgradeOptions] = None,
        cancel: Optional[threading.Event] = None
    ) -> Release:
        """Upgrade a release to a new bundle or new values.

        Args:
            name: Release name
            bundle: Bundle to upgrade to
            values: Values supplied by the caller
            options: Upgrade options
            cancel: Caller cancel signal

        Returns:
            The new release version
        """
        with LogContext(self.logger, release=name, operation="upgrade"):
            try:
                return Upgrader(self.context, options).run(name, bundle, values, cancel)
            except KubeshipError as e:
                error_handler.log_error(e)
                raise

    def rollback(
        self,
        name: str,
        options: Optional[RollbackOptions] = None,
        cancel: Optional[threading.Event] = None
    ) -> Release:
        """Roll a release back to an earlier version.

        Args:
            name: Release name
            options: Rollback options; version 0 means the previous version
            cancel: Caller cancel signal

        Returns:
            The new release version
        """
        with LogContext(self.logger, release=name, operation="rollback"):
            try:
                return Rollbacker(self.context, options).run(name, cancel)
            except KubeshipError as e:
                error_handler.log_error(e)
                raise

    def uninstall(
        self,
        name: str,
        options: Optional[UninstallOptions] = None,
        cancel: Optional[threading.Event] = None
    ) -> UninstallResponse:
        """Uninstall a release."""
        with LogContext(self.logger, release=name, operation="uninstall"):
            try:
                return Uninstaller(self.context, options).run(name, cancel)
            except KubeshipError as e:
                error_handler.log_error(e)
                raise

    def history(self, name: str, max: int = 0) -> List[Release]:
        """Return versions of a release, newest first.

        Args:
            name: Release name
            max: Return at most this many versions (0 for all)

        Raises:
            ValidationError: If the name is invalid
            ReleaseNotFoundError: If the release has no history
        """
        validate_release_name(name)
        releases = self.context.store.history(name)
        if not releases:
            raise ReleaseNotFoundError()
        releases = sort_by_version(releases, reverse=True)
        return releases[:max] if max > 0 else releases

    def status(self, name: str, version: int = 0) -> Release:
        """Return one version of a release; version 0 means the newest.

        Raises:
            ValidationError: If the name is invalid
            ReleaseNotFoundError: If the version does not exist
        """
        validate_release_name(name)
        if version <= 0:
            return self.context.store.last(name)
        return self.context.store.get(name, version)
