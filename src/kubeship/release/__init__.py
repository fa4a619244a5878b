"""Release records, hooks and bundles."""

from kubeship.release.models import (
    Bundle,
    BundleDependency,
    BundleMetadata,
    Hook,
    HookDeletePolicy,
    HookEvent,
    HookExecution,
    HookPhase,
    Release,
    ReleaseInfo,
    ReleaseStatus,
    utcnow,
)

__all__ = [
    'Bundle',
    'BundleDependency',
    'BundleMetadata',
    'Hook',
    'HookDeletePolicy',
    'HookEvent',
    'HookExecution',
    'HookPhase',
    'Release',
    'ReleaseInfo',
    'ReleaseStatus',
    'utcnow',
]
