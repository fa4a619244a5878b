"""Per-operation options.

Unset timeouts, wait strategies and history caps fall back to the engine
settings of the orchestrator running the operation.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional, Union

from kubeship.config.models import EngineSettings
from kubeship.kube.wait import WaitStrategy


@dataclass
class OperationOptions:
    """Options shared by every mutating operation."""

    namespace: Optional[str] = None
    description: str = ""
    dry_run: bool = False
    disable_hooks: bool = False
    timeout: Optional[float] = None
    wait_strategy: Optional[WaitStrategy] = None
    wait_for_jobs: bool = False

    def effective_timeout(self, settings: EngineSettings) -> float:
        """Timeout in seconds for waits and hooks."""
        return self.timeout if self.timeout is not None else settings.timeout

    def effective_strategy(self, settings: EngineSettings) -> WaitStrategy:
        """Wait strategy for this operation."""
        if self.wait_strategy is not None:
            return WaitStrategy(self.wait_strategy)
        return settings.wait_strategy

    def effective_namespace(self, settings: EngineSettings) -> str:
        return self.namespace or settings.namespace


@dataclass
class InstallOptions(OperationOptions):
    """Options of an install."""

    name: Optional[str] = None
    generate_name: bool = False
    name_template: Optional[str] = None
    replace: bool = False
    client_only: bool = False
    atomic: bool = False
    force: bool = False
    take_ownership: bool = False
    hide_secret: bool = False
    output_dir: Optional[Union[str, Path]] = None
    use_release_name: bool = False
    labels: Dict[str, str] = field(default_factory=dict)

    def effective_strategy(self, settings: EngineSettings) -> WaitStrategy:
        strategy = super().effective_strategy(settings)
        # Atomic installs must see their resources become ready
        if self.atomic and strategy == WaitStrategy.HOOK_ONLY:
            return WaitStrategy.WATCHER
        return strategy

    def is_dry_run(self) -> bool:
        """Writing to an output directory implies a dry run."""
        return self.dry_run or self.output_dir is not None


@dataclass
class UpgradeOptions(OperationOptions):
    """Options of an upgrade."""

    install: bool = False
    atomic: bool = False
    cleanup_on_fail: bool = False
    force: bool = False
    reset_values: bool = False
    reuse_values: bool = False
    reset_then_reuse_values: bool = False
    take_ownership: bool = False
    hide_secret: bool = False
    max_history: Optional[int] = None
    labels: Dict[str, str] = field(default_factory=dict)

    def effective_strategy(self, settings: EngineSettings) -> WaitStrategy:
        strategy = super().effective_strategy(settings)
        if self.atomic and strategy == WaitStrategy.HOOK_ONLY:
            return WaitStrategy.WATCHER
        return strategy

    def to_install_options(self, name: str, replace: bool = False) -> InstallOptions:
        """Options for installing a release the upgrade found missing."""
        return InstallOptions(
            namespace=self.namespace,
            description=self.description,
            dry_run=self.dry_run,
            disable_hooks=self.disable_hooks,
            timeout=self.timeout,
            wait_strategy=self.wait_strategy,
            wait_for_jobs=self.wait_for_jobs,
            name=name,
            replace=replace,
            atomic=self.atomic,
            force=self.force,
            take_ownership=self.take_ownership,
            hide_secret=self.hide_secret,
            labels=dict(self.labels),
        )


@dataclass
class RollbackOptions(OperationOptions):
    """Options of a rollback. A version of 0 targets the version before the newest."""

    version: int = 0
    atomic: bool = False
    cleanup_on_fail: bool = False
    force: bool = False
    max_history: Optional[int] = None


@dataclass
class UninstallOptions(OperationOptions):
    """Options of an uninstall."""

    keep_history: bool = False
    ignore_not_found: bool = False
    wait: bool = False
