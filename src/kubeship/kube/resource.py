"""Cluster resource representation."""

import copy
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

import yaml

from kubeship.utils.errors import ValidationError

# Ownership marker stamped on every applied resource
MANAGED_BY_LABEL = "app.kubernetes.io/managed-by"
MANAGED_BY_VALUE = "Kubeship"
RELEASE_NAME_ANNOTATION = "meta.kubeship.io/release-name"
RELEASE_NAMESPACE_ANNOTATION = "meta.kubeship.io/release-namespace"

CLUSTER_SCOPED_KINDS = {
    "APIService",
    "ClusterRole",
    "ClusterRoleBinding",
    "ClusterRoleBindingList",
    "ClusterRoleList",
    "CustomResourceDefinition",
    "IngressClass",
    "MutatingWebhookConfiguration",
    "Namespace",
    "PersistentVolume",
    "PodSecurityPolicy",
    "PriorityClass",
    "StorageClass",
    "ValidatingWebhookConfiguration",
}


@dataclass
class Resource:
    """A single object to be applied to, or read from, the cluster."""

    kind: str
    name: str
    namespace: Optional[str] = None
    api_version: str = "v1"
    body: Dict[str, Any] = field(default_factory=dict)

    @property
    def key(self) -> Tuple[str, str, str, str]:
        """Identity of the object: API group, kind, namespace and name."""
        group = self.api_version.split("/")[0] if "/" in self.api_version else ""
        return (group, self.kind, self.namespace or "", self.name)

    @property
    def metadata(self) -> Dict[str, Any]:
        return self.body.setdefault("metadata", {})

    @property
    def labels(self) -> Dict[str, str]:
        return self.metadata.get("labels") or {}

    @property
    def annotations(self) -> Dict[str, str]:
        return self.metadata.get("annotations") or {}

    def set_ownership(self, release_name: str, release_namespace: str) -> None:
        """Stamp the ownership marker of a release on the object."""
        metadata = self.metadata
        labels = metadata.get("labels") or {}
        labels[MANAGED_BY_LABEL] = MANAGED_BY_VALUE
        metadata["labels"] = labels
        annotations = metadata.get("annotations") or {}
        annotations[RELEASE_NAME_ANNOTATION] = release_name
        annotations[RELEASE_NAMESPACE_ANNOTATION] = release_namespace
        metadata["annotations"] = annotations

    def describe(self) -> str:
        """Human readable identity used in messages."""
        if self.namespace:
            return f'{self.kind} "{self.name}" in namespace "{self.namespace}"'
        return f'{self.kind} "{self.name}"'

    def __str__(self) -> str:
        return f"{self.kind}/{self.name}"


def parse_resources(manifest: str, default_namespace: Optional[str] = None) -> List[Resource]:
    """Parse manifest text into resources.

    Args:
        manifest: One or more YAML documents
        default_namespace: Namespace for namespaced objects that set none

    Returns:
        Resources in document order; empty documents are skipped

    Raises:
        ValidationError: If a document is not valid YAML or lacks kind/name
    """
    resources = []
    try:
        documents = list(yaml.safe_load_all(manifest or ""))
    except yaml.YAMLError as e:
        raise ValidationError(f"unable to build kubernetes objects from release manifest: {e}", cause=e)

    for doc in documents:
        if not doc:
            continue
        if not isinstance(doc, dict):
            raise ValidationError(
                f"unable to build kubernetes objects from release manifest: "
                f"expected a mapping, got {type(doc).__name__}"
            )
        kind = doc.get("kind")
        metadata = doc.get("metadata") or {}
        name = metadata.get("name")
        if not kind or not name:
            raise ValidationError(
                "unable to build kubernetes objects from release manifest: "
                "object is missing kind or metadata.name"
            )
        namespace = metadata.get("namespace")
        if namespace is None and kind not in CLUSTER_SCOPED_KINDS:
            namespace = default_namespace
        resources.append(Resource(
            kind=kind,
            name=name,
            namespace=namespace,
            api_version=doc.get("apiVersion", "v1"),
            body=copy.deepcopy(doc),
        ))
    return resources


def difference(resources: Iterable[Resource], other: Iterable[Resource]) -> List[Resource]:
    """Resources not present in other, by identity."""
    other_keys = {r.key for r in other}
    return [r for r in resources if r.key not in other_keys]


def intersect(resources: Iterable[Resource], other: Iterable[Resource]) -> List[Resource]:
    """Resources present in other, by identity."""
    other_keys = {r.key for r in other}
    return [r for r in resources if r.key in other_keys]
