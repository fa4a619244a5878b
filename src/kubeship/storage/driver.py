"""Storage drivers for release records."""

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from kubeship.release.models import Release
from kubeship.utils.errors import ReleaseExistsError, ReleaseNotFoundError
from kubeship.utils.logging import get_logger


@dataclass
class StoredRecord:
    """A release record together with its storage labels."""

    release: Release
    labels: Dict[str, str] = field(default_factory=dict)


class ReleaseDriver(ABC):
    """Key/value persistence of release records.

    Records are scoped to the namespace the driver was created for. Drivers
    hand out and take in copies so callers cannot mutate stored state.
    """

    name: str = "abstract"

    def __init__(self, namespace: str = "default"):
        """Initialize driver.

        Args:
            namespace: Namespace whose records this driver manages
        """
        self.namespace = namespace
        self.logger = get_logger(__name__)

    @abstractmethod
    def get(self, key: str) -> Release:
        """Get a record by key.

        Raises:
            ReleaseNotFoundError: If no record exists for the key
        """
        pass

    @abstractmethod
    def list(self, predicate: Callable[[Release], bool]) -> List[Release]:
        """List records matching a predicate."""
        pass

    @abstractmethod
    def query(self, labels: Dict[str, str]) -> List[Release]:
        """List records whose storage labels contain all given labels."""
        pass

    @abstractmethod
    def create(self, key: str, release: Release, labels: Dict[str, str]) -> None:
        """Store a new record.

        Raises:
            ReleaseExistsError: If a record already exists for the key
        """
        pass

    @abstractmethod
    def update(self, key: str, release: Release, labels: Dict[str, str]) -> None:
        """Replace an existing record.

        Raises:
            ReleaseNotFoundError: If no record exists for the key
        """
        pass

    @abstractmethod
    def delete(self, key: str) -> Release:
        """Delete a record and return it.

        Raises:
            ReleaseNotFoundError: If no record exists for the key
        """
        pass

    @abstractmethod
    def labels(self, key: str) -> Dict[str, str]:
        """Get the storage labels of a record."""
        pass


class MemoryDriver(ReleaseDriver):
    """In-memory driver, used for client-only mode, dry runs and tests."""

    name = "memory"

    def __init__(self, namespace: str = "default"):
        super().__init__(namespace)
        self._records: Dict[str, Dict[str, StoredRecord]] = {}
        self._lock = threading.Lock()

    def _scope(self) -> Dict[str, StoredRecord]:
        return self._records.setdefault(self.namespace, {})

    def get(self, key: str) -> Release:
        with self._lock:
            record = self._scope().get(key)
            if record is None:
                raise ReleaseNotFoundError()
            return record.release.copy_record()

    def list(self, predicate: Callable[[Release], bool]) -> List[Release]:
        with self._lock:
            return [
                record.release.copy_record()
                for record in self._scope().values()
                if predicate(record.release)
            ]

    def query(self, labels: Dict[str, str]) -> List[Release]:
        with self._lock:
            return [
                record.release.copy_record()
                for record in self._scope().values()
                if all(record.labels.get(k) == v for k, v in labels.items())
            ]

    def create(self, key: str, release: Release, labels: Dict[str, str]) -> None:
        with self._lock:
            scope = self._scope()
            if key in scope:
                raise ReleaseExistsError()
            scope[key] = StoredRecord(release=release.copy_record(), labels=dict(labels))
        self.logger.debug(f"Created record {key} in namespace {self.namespace}")

    def update(self, key: str, release: Release, labels: Dict[str, str]) -> None:
        with self._lock:
            scope = self._scope()
            if key not in scope:
                raise ReleaseNotFoundError()
            scope[key] = StoredRecord(release=release.copy_record(), labels=dict(labels))

    def delete(self, key: str) -> Release:
        with self._lock:
            record = self._scope().pop(key, None)
            if record is None:
                raise ReleaseNotFoundError()
        self.logger.debug(f"Deleted record {key} in namespace {self.namespace}")
        return record.release

    def labels(self, key: str) -> Dict[str, str]:
        with self._lock:
            record = self._scope().get(key)
            if record is None:
                raise ReleaseNotFoundError()
            return dict(record.labels)

    def keys(self) -> List[str]:
        """Keys of all records in the namespace, for inspection."""
        with self._lock:
            return sorted(self._scope())

    def set_namespace(self, namespace: Optional[str]) -> None:
        """Switch the namespace records are scoped to."""
        self.namespace = namespace or "default"
