"""Release orchestration: install, upgrade, rollback and uninstall."""

from kubeship.orchestrator.context import EngineContext
from kubeship.orchestrator.hooks import HookExecutor
from kubeship.orchestrator.install import Installer
from kubeship.orchestrator.options import (
    InstallOptions,
    OperationOptions,
    RollbackOptions,
    UninstallOptions,
    UpgradeOptions,
)
from kubeship.orchestrator.render import (
    BundleRenderer,
    RenderedRelease,
    RenderResult,
    TemplateRenderer,
)
from kubeship.orchestrator.rollback import Rollbacker
from kubeship.orchestrator.uninstall import UninstallResponse, Uninstaller
from kubeship.orchestrator.upgrade import Upgrader
from kubeship.orchestrator.waiting import WaitCoordinator
from kubeship.orchestrator.orchestrator import ReleaseOrchestrator

__all__ = [
    # Context and options
    'EngineContext',
    'OperationOptions',
    'InstallOptions',
    'UpgradeOptions',
    'RollbackOptions',
    'UninstallOptions',

    # Rendering
    'BundleRenderer',
    'RenderResult',
    'RenderedRelease',
    'TemplateRenderer',

    # Operations
    'HookExecutor',
    'WaitCoordinator',
    'Installer',
    'Upgrader',
    'Rollbacker',
    'Uninstaller',
    'UninstallResponse',

    # Main orchestrator
    'ReleaseOrchestrator',
]
