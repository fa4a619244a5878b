"""Checks run before anything is persisted."""

from typing import Dict, Optional

from packaging.specifiers import InvalidSpecifier, SpecifierSet
from packaging.version import InvalidVersion, Version

from kubeship.release.models import Bundle
from kubeship.storage.storage import contains_system_labels, system_labels
from kubeship.utils.errors import PlatformVersionError, ValidationError


def _parse_version(version: str) -> Version:
    cleaned = version.strip().lstrip("vV")
    # Vendor suffixes such as "-gke.100" are not part of the version
    cleaned = cleaned.split("-", 1)[0]
    return Version(cleaned)


def check_platform_version(bundle: Bundle, server_version: str) -> None:
    """Check the bundle's platform-version constraint against the cluster.

    Raises:
        PlatformVersionError: If the cluster version does not satisfy it
        ValidationError: If the constraint or server version cannot be parsed
    """
    constraint = bundle.metadata.kube_version
    if not constraint:
        return

    try:
        specifiers = SpecifierSet(constraint.replace(" ", ""), prereleases=True)
    except InvalidSpecifier as e:
        raise ValidationError(f"invalid kubeVersion constraint {constraint!r}: {e}", cause=e)

    try:
        version = _parse_version(server_version)
    except InvalidVersion as e:
        raise ValidationError(f"invalid Kubernetes version {server_version!r}: {e}", cause=e)

    if version not in specifiers:
        raise PlatformVersionError(
            f"bundle requires kubeVersion: {constraint} which is incompatible "
            f"with Kubernetes {server_version}"
        )


def check_labels(labels: Optional[Dict[str, str]]) -> None:
    """Reject user labels that use reserved system label names.

    Raises:
        ValidationError: If any reserved name is used
    """
    if contains_system_labels(labels):
        raise ValidationError(
            "user supplied labels contains system reserved label name. "
            f"System labels: {system_labels()}"
        )
