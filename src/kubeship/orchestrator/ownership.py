"""Ownership checks for live objects a release is about to apply over."""

from typing import Any, Dict, List, Optional

from kubeship.kube.client import ResourceClient
from kubeship.kube.resource import (
    MANAGED_BY_LABEL,
    MANAGED_BY_VALUE,
    RELEASE_NAME_ANNOTATION,
    RELEASE_NAMESPACE_ANNOTATION,
    Resource,
)
from kubeship.utils.errors import ApplyError, ErrorContext, OwnershipConflictError, error_handler
from kubeship.utils.logging import get_logger

logger = get_logger(__name__)


def require_value(meta: Dict[str, str], key: str, value: str) -> Optional[str]:
    """Describe why meta[key] is not value, None if it is."""
    if key not in meta:
        return f'missing key "{key}": must be set to "{value}"'
    if meta[key] != value:
        return f'key "{key}" must equal "{value}": current value is "{meta[key]}"'
    return None


def _ownership_problems(live: Dict[str, Any], release_name: str, release_namespace: str) -> List[str]:
    metadata = live.get("metadata") or {}
    labels = metadata.get("labels") or {}
    annotations = metadata.get("annotations") or {}

    problems = []
    err = require_value(labels, MANAGED_BY_LABEL, MANAGED_BY_VALUE)
    if err:
        problems.append(f"label validation error: {err}")
    err = require_value(annotations, RELEASE_NAME_ANNOTATION, release_name)
    if err:
        problems.append(f"annotation validation error: {err}")
    err = require_value(annotations, RELEASE_NAMESPACE_ANNOTATION, release_namespace)
    if err:
        problems.append(f"annotation validation error: {err}")
    return problems


def owned_by_other_release(live: Dict[str, Any], release_name: str, release_namespace: str) -> bool:
    """Check whether an object carries another release's identity."""
    annotations = (live.get("metadata") or {}).get("annotations") or {}
    name = annotations.get(RELEASE_NAME_ANNOTATION)
    namespace = annotations.get(RELEASE_NAMESPACE_ANNOTATION)
    return (name is not None and name != release_name) or (
        namespace is not None and namespace != release_namespace
    )


def check_ownership(
    live: Optional[Dict[str, Any]],
    release_name: str,
    release_namespace: str,
    take_ownership: bool = False
) -> None:
    """Decide whether a release may apply over a live object.

    Absent objects and objects owned by this release pass. Unowned objects
    pass only with take_ownership. Objects owned by another release never
    pass.

    Raises:
        OwnershipConflictError: If the object may not be adopted
    """
    if live is None:
        return

    problems = _ownership_problems(live, release_name, release_namespace)
    if not problems:
        return

    if take_ownership and not owned_by_other_release(live, release_name, release_namespace):
        logger.debug(
            f"Taking ownership of {live.get('kind')}/{(live.get('metadata') or {}).get('name')}"
        )
        return

    raise OwnershipConflictError(f"invalid ownership metadata; {'; '.join(problems)}")


def existing_resource_conflict(
    client: ResourceClient,
    resources: List[Resource],
    release_name: str,
    release_namespace: str,
    take_ownership: bool = False
) -> List[Resource]:
    """Check every resource against the cluster.

    Returns:
        Resources that already exist and will be adopted

    Raises:
        OwnershipConflictError: If any existing object may not be adopted
        ApplyError: If an object could not be fetched
    """
    adopt = []
    for resource in resources:
        try:
            live = client.get(resource)
        except Exception as e:
            raise error_handler.handle_exception(
                e, ErrorContext(resource=str(resource)), ApplyError
            )
        if live is None:
            continue
        try:
            check_ownership(live, release_name, release_namespace, take_ownership)
        except OwnershipConflictError as e:
            raise OwnershipConflictError(
                f"{resource.describe()} exists and cannot be imported into the current release: {e}",
                context=ErrorContext(
                    release_name=release_name,
                    namespace=release_namespace,
                    resource=str(resource),
                ),
                cause=e,
            )
        adopt.append(resource)
    return adopt
