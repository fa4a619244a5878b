"""Release record data models.

The field names, status strings and hook enums in this module are the durable
layout of persisted release records. Changing them breaks reading history
written by earlier versions.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field


def utcnow() -> datetime:
    """Timestamp source for release and hook records."""
    return datetime.now(timezone.utc)


class ReleaseStatus(Enum):
    """Status of a release version."""

    UNKNOWN = "unknown"
    DEPLOYED = "deployed"
    UNINSTALLED = "uninstalled"
    SUPERSEDED = "superseded"
    FAILED = "failed"
    UNINSTALLING = "uninstalling"
    PENDING_INSTALL = "pending-install"
    PENDING_UPGRADE = "pending-upgrade"
    PENDING_ROLLBACK = "pending-rollback"

    def is_pending(self) -> bool:
        """Check if this is a transient in-flight status."""
        return self in (
            ReleaseStatus.PENDING_INSTALL,
            ReleaseStatus.PENDING_UPGRADE,
            ReleaseStatus.PENDING_ROLLBACK,
        )


class HookEvent(Enum):
    """Lifecycle events a hook can be bound to."""

    PRE_INSTALL = "pre-install"
    POST_INSTALL = "post-install"
    PRE_DELETE = "pre-delete"
    POST_DELETE = "post-delete"
    PRE_UPGRADE = "pre-upgrade"
    POST_UPGRADE = "post-upgrade"
    PRE_ROLLBACK = "pre-rollback"
    POST_ROLLBACK = "post-rollback"
    TEST = "test"


class HookDeletePolicy(Enum):
    """When a hook resource is removed from the cluster."""

    SUCCEEDED = "hook-succeeded"
    FAILED = "hook-failed"
    BEFORE_HOOK_CREATION = "before-hook-creation"


class HookPhase(Enum):
    """Outcome of the last hook run."""

    UNKNOWN = "Unknown"
    RUNNING = "Running"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"


class HookExecution(BaseModel):
    """Record of the most recent hook run."""

    started_at: Optional[datetime] = Field(None, description="When the hook was applied")
    completed_at: Optional[datetime] = Field(
        None, description="When the hook finished; None means it never ran"
    )
    phase: HookPhase = Field(HookPhase.UNKNOWN, description="Hook outcome")


class Hook(BaseModel):
    """A resource applied outside the main resource set at a lifecycle event."""

    name: str = Field(..., description="Object name of the hook resource")
    kind: str = Field(..., description="Object kind of the hook resource")
    path: str = Field(..., description="Source path of the rendered manifest")
    manifest: str = Field(..., description="Rendered manifest text")
    events: List[HookEvent] = Field(default_factory=list, description="Trigger events in order")
    weight: int = Field(0, description="Execution order within an event, ascending")
    delete_policies: List[HookDeletePolicy] = Field(
        default_factory=list, description="When to delete the hook resource"
    )
    last_run: HookExecution = Field(default_factory=HookExecution, description="Last run record")

    def has_delete_policy(self, policy: HookDeletePolicy) -> bool:
        """Check if the hook carries a deletion policy."""
        return policy in self.delete_policies


class BundleDependency(BaseModel):
    """A sub-bundle the bundle declares."""

    name: str
    version: Optional[str] = None
    repository: Optional[str] = None


class BundleMetadata(BaseModel):
    """Descriptive metadata of a bundle."""

    name: str = Field(..., description="Bundle name")
    version: str = Field("0.1.0", description="Bundle version")
    app_version: Optional[str] = Field(None, description="Version of the packaged application")
    description: Optional[str] = Field(None, description="Bundle description")
    kube_version: Optional[str] = Field(
        None, description="Platform version constraint, e.g. '>=1.25'"
    )
    deprecated: bool = Field(False, description="Whether the bundle is deprecated")
    dependencies: List[BundleDependency] = Field(default_factory=list)


class Bundle(BaseModel):
    """A loaded bundle: metadata, templates and default values."""

    metadata: BundleMetadata
    templates: Dict[str, str] = Field(
        default_factory=dict, description="Template sources keyed by path"
    )
    values: Dict[str, Any] = Field(default_factory=dict, description="Default values")
    path: Optional[str] = Field(None, description="Location the bundle was loaded from")

    @property
    def name(self) -> str:
        """Bundle name."""
        return self.metadata.name


class ReleaseInfo(BaseModel):
    """Status information of a release version."""

    first_deployed: Optional[datetime] = None
    last_deployed: Optional[datetime] = None
    deleted: Optional[datetime] = None
    description: str = ""
    status: ReleaseStatus = ReleaseStatus.UNKNOWN
    notes: str = ""


class Release(BaseModel):
    """A named, versioned deployment record."""

    name: str = Field(..., description="Release name")
    namespace: str = Field(..., description="Namespace the release is deployed to")
    version: int = Field(..., ge=1, description="Release version, increasing per name")
    info: ReleaseInfo = Field(default_factory=ReleaseInfo)
    bundle: Optional[Bundle] = Field(None, description="Bundle the release was rendered from")
    config: Dict[str, Any] = Field(
        default_factory=dict, description="Values supplied by the caller"
    )
    manifest: str = Field("", description="Rendered manifest of the standard resources")
    hooks: List[Hook] = Field(default_factory=list)
    labels: Dict[str, str] = Field(default_factory=dict, description="User labels")

    def set_status(self, status: ReleaseStatus, description: str) -> None:
        """Set status and description together."""
        self.info.status = status
        self.info.description = description

    @property
    def status(self) -> ReleaseStatus:
        """Current status."""
        return self.info.status

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return self.model_dump(mode="json")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Release":
        """Create Release from dictionary."""
        return cls.model_validate(data)

    def copy_record(self) -> "Release":
        """Deep copy for storing or handing out detached snapshots."""
        return self.model_copy(deep=True)
