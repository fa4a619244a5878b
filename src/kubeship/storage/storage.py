"""Release store: versioned release history on top of a storage driver."""

from typing import Dict, List, Optional

from kubeship.release.models import Release, ReleaseStatus, utcnow
from kubeship.release.util import sort_by_version, with_status
from kubeship.storage.driver import ReleaseDriver
from kubeship.utils.errors import (
    NoDeployedReleasesError,
    ReleaseNotFoundError,
    StorageError,
)
from kubeship.utils.logging import get_logger

# Owner label value of records written by this engine
OWNER = "kubeship"

# Labels managed by the store; user labels may not use these keys
SYSTEM_LABELS = ["name", "owner", "status", "version", "createdAt", "modifiedAt"]


def system_labels() -> List[str]:
    """Return the reserved system label names."""
    return list(SYSTEM_LABELS)


def contains_system_labels(labels: Optional[Dict[str, str]]) -> bool:
    """Check whether user labels use any reserved system label name."""
    return any(key in SYSTEM_LABELS for key in (labels or {}))


def make_key(name: str, version: int) -> str:
    """Build the storage key of a release version."""
    return f"{OWNER}.release.v1.{name}.v{version}"


class ReleaseStore:
    """Versioned release history.

    Only the store writes system labels. History is capped at max_history
    records per name (0 = unlimited); the oldest records are pruned first and
    the deployed record is never pruned.
    """

    def __init__(self, driver: ReleaseDriver, max_history: int = 0):
        """Initialize store.

        Args:
            driver: Storage driver holding the records
            max_history: Maximum number of records kept per release name
        """
        self.driver = driver
        self.max_history = max_history
        self.logger = get_logger(__name__)

    def _labels(self, release: Release, created: Optional[str] = None) -> Dict[str, str]:
        now = str(int(utcnow().timestamp()))
        return {
            "name": release.name,
            "owner": OWNER,
            "status": release.info.status.value,
            "version": str(release.version),
            "createdAt": created or now,
            "modifiedAt": now,
        }

    def get(self, name: str, version: int) -> Release:
        """Get a release version.

        Raises:
            ReleaseNotFoundError: If the version does not exist
        """
        self.logger.debug(f"Getting release {name} version {version}")
        return self.driver.get(make_key(name, version))

    def create(self, release: Release) -> None:
        """Persist a new release version, pruning history first."""
        self.logger.debug(f"Creating release {release.name} version {release.version}")
        if self.max_history > 0:
            # Leave room for the record being created
            self.remove_least_recent(release.name, self.max_history - 1)
        self.driver.create(make_key(release.name, release.version), release, self._labels(release))

    def update(self, release: Release) -> None:
        """Persist changes to an existing release version."""
        self.logger.debug(
            f"Updating release {release.name} version {release.version} "
            f"to {release.info.status.value}"
        )
        key = make_key(release.name, release.version)
        created = self.driver.labels(key).get("createdAt")
        self.driver.update(key, release, self._labels(release, created))

    def delete(self, name: str, version: int) -> Release:
        """Delete a release version and return it."""
        self.logger.debug(f"Deleting release {name} version {version}")
        return self.driver.delete(make_key(name, version))

    def history(self, name: str) -> List[Release]:
        """Return all versions of a release, oldest first.

        Returns an empty list when the name is unknown.
        """
        return sort_by_version(self.driver.query({"name": name, "owner": OWNER}))

    def last(self, name: str) -> Release:
        """Return the highest version of a release.

        Raises:
            ReleaseNotFoundError: If the name has no records
        """
        history = self.history(name)
        if not history:
            raise ReleaseNotFoundError()
        return history[-1]

    def deployed_all(self, name: str) -> List[Release]:
        """Return all deployed versions of a release, newest first.

        Raises:
            NoDeployedReleasesError: If no version is deployed
        """
        releases = self.driver.query({
            "name": name,
            "owner": OWNER,
            "status": ReleaseStatus.DEPLOYED.value,
        })
        if not releases:
            raise NoDeployedReleasesError(name)
        return sort_by_version(releases, reverse=True)

    def deployed(self, name: str) -> Release:
        """Return the deployed version of a release.

        Raises:
            NoDeployedReleasesError: If no version is deployed
        """
        return self.deployed_all(name)[0]

    def list_releases(self) -> List[Release]:
        """Return every record in the namespace."""
        return sort_by_version(self.driver.list(lambda r: True))

    def list_deployed(self) -> List[Release]:
        """Return every deployed record in the namespace."""
        return sort_by_version(self.driver.list(with_status(ReleaseStatus.DEPLOYED)))

    def list_uninstalled(self) -> List[Release]:
        """Return every uninstalled record in the namespace."""
        return sort_by_version(self.driver.list(with_status(ReleaseStatus.UNINSTALLED)))

    def remove_least_recent(self, name: str, maximum: int) -> None:
        """Delete the oldest versions of a release until at most maximum remain.

        The deployed version is kept even when it is among the oldest.

        Raises:
            StorageError: If any deletion failed
        """
        if maximum < 0:
            return

        history = self.history(name)
        if len(history) <= maximum:
            return

        try:
            last_deployed = self.deployed(name)
        except NoDeployedReleasesError:
            last_deployed = None

        to_delete = []
        for release in history:
            if len(history) - len(to_delete) == maximum:
                break
            if last_deployed is not None and release.version == last_deployed.version:
                continue
            to_delete.append(release)

        errors = []
        for release in to_delete:
            try:
                self.delete(release.name, release.version)
            except StorageError as e:
                errors.append(f"v{release.version}: {e}")

        self.logger.debug(
            f"Pruned {len(to_delete) - len(errors)} of {len(history)} records for {name}, "
            f"max history {maximum}"
        )
        if errors:
            raise StorageError(f"error pruning release history: {'; '.join(errors)}")
