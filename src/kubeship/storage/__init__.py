"""Release history storage."""

from kubeship.storage.driver import MemoryDriver, ReleaseDriver, StoredRecord
from kubeship.storage.storage import (
    OWNER,
    SYSTEM_LABELS,
    ReleaseStore,
    contains_system_labels,
    make_key,
    system_labels,
)

__all__ = [
    'MemoryDriver',
    'ReleaseDriver',
    'StoredRecord',
    'OWNER',
    'SYSTEM_LABELS',
    'ReleaseStore',
    'contains_system_labels',
    'make_key',
    'system_labels',
]
