"""Kubeship - release lifecycle engine for versioned application bundles."""

__version__ = "0.1.0"

from kubeship.config import EngineSettings, load_settings
from kubeship.kube import PrintingResourceClient, ResourceClient, WaitStrategy
from kubeship.orchestrator import (
    InstallOptions,
    ReleaseOrchestrator,
    RollbackOptions,
    TemplateRenderer,
    UninstallOptions,
    UpgradeOptions,
)
from kubeship.release import Bundle, BundleMetadata, Release, ReleaseStatus

__all__ = [
    '__version__',
    'EngineSettings',
    'load_settings',
    'PrintingResourceClient',
    'ResourceClient',
    'WaitStrategy',
    'InstallOptions',
    'ReleaseOrchestrator',
    'RollbackOptions',
    'TemplateRenderer',
    'UninstallOptions',
    'UpgradeOptions',
    'Bundle',
    'BundleMetadata',
    'Release',
    'ReleaseStatus',
]
