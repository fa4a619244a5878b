"""Splitting and sorting of rendered manifests.

Rendered output is a stream of YAML documents separated by "---", each
preceded by a "# Source: <path>" line naming the template it came from.
Documents annotated with kubeship.io/hook become hooks; the rest become the
release manifest, ordered by kind for installation.
"""

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Set, Tuple, Union

import yaml

from kubeship.release.models import Hook, HookDeletePolicy, HookEvent
from kubeship.utils.errors import ValidationError
from kubeship.utils.logging import get_logger

logger = get_logger(__name__)

HOOK_ANNOTATION = "kubeship.io/hook"
HOOK_WEIGHT_ANNOTATION = "kubeship.io/hook-weight"
HOOK_DELETE_ANNOTATION = "kubeship.io/hook-delete-policy"

SECRET_KIND = "Secret"
HIDDEN_SECRET_LINE = "# HIDDEN: The Secret output has been suppressed"

INSTALL_ORDER = [
    "PriorityClass",
    "Namespace",
    "NetworkPolicy",
    "ResourceQuota",
    "LimitRange",
    "PodSecurityPolicy",
    "PodDisruptionBudget",
    "ServiceAccount",
    "Secret",
    "SecretList",
    "ConfigMap",
    "StorageClass",
    "PersistentVolume",
    "PersistentVolumeClaim",
    "CustomResourceDefinition",
    "ClusterRole",
    "ClusterRoleList",
    "ClusterRoleBinding",
    "ClusterRoleBindingList",
    "Role",
    "RoleList",
    "RoleBinding",
    "RoleBindingList",
    "Service",
    "DaemonSet",
    "Pod",
    "ReplicationController",
    "ReplicaSet",
    "Deployment",
    "HorizontalPodAutoscaler",
    "StatefulSet",
    "Job",
    "CronJob",
    "IngressClass",
    "Ingress",
    "APIService",
    "MutatingWebhookConfiguration",
    "ValidatingWebhookConfiguration",
]

UNINSTALL_ORDER = [
    "MutatingWebhookConfiguration",
    "ValidatingWebhookConfiguration",
    "APIService",
    "Ingress",
    "IngressClass",
    "Service",
    "CronJob",
    "Job",
    "StatefulSet",
    "HorizontalPodAutoscaler",
    "Deployment",
    "ReplicaSet",
    "ReplicationController",
    "Pod",
    "DaemonSet",
    "RoleBindingList",
    "RoleBinding",
    "RoleList",
    "Role",
    "ClusterRoleBindingList",
    "ClusterRoleBinding",
    "ClusterRoleList",
    "ClusterRole",
    "CustomResourceDefinition",
    "PersistentVolumeClaim",
    "PersistentVolume",
    "StorageClass",
    "ConfigMap",
    "SecretList",
    "Secret",
    "ServiceAccount",
    "PodDisruptionBudget",
    "PodSecurityPolicy",
    "LimitRange",
    "ResourceQuota",
    "NetworkPolicy",
    "Namespace",
    "PriorityClass",
]

_SEPARATOR = re.compile(r"^---[ \t]*$", re.MULTILINE)
_SOURCE = re.compile(r"^# Source: (.+)$", re.MULTILINE)


@dataclass
class Manifest:
    """A single rendered document."""

    name: str
    content: str
    head: Dict[str, Any] = field(default_factory=dict)

    @property
    def kind(self) -> str:
        return self.head.get("kind", "")

    @property
    def object_name(self) -> str:
        return (self.head.get("metadata") or {}).get("name", "")

    @property
    def annotations(self) -> Dict[str, str]:
        return (self.head.get("metadata") or {}).get("annotations") or {}


def split_manifests(text: str) -> List[Manifest]:
    """Split rendered output into documents.

    Documents that hold only whitespace or comments are dropped.

    Raises:
        ValidationError: If a document is not valid YAML
    """
    manifests = []
    for index, chunk in enumerate(_SEPARATOR.split(text or "")):
        source = _SOURCE.search(chunk)
        name = source.group(1).strip() if source else f"manifest-{index}"
        content = _SOURCE.sub("", chunk, count=1).strip("\n")
        try:
            head = yaml.safe_load(content) if content.strip() else None
        except yaml.YAMLError as e:
            raise ValidationError(f"YAML parse error on {name}: {e}", cause=e)
        if not head:
            continue
        if not isinstance(head, dict):
            raise ValidationError(f"YAML parse error on {name}: document is not a mapping")
        manifests.append(Manifest(name=name, content=content, head=head))
    return manifests


def _kind_sort_key(ordering: List[str]):
    positions = {kind: i for i, kind in enumerate(ordering)}

    def key(kind: str) -> Tuple[int, str]:
        # Unknown kinds go last, alphabetically
        return (positions.get(kind, len(ordering)), "" if kind in positions else kind)
    return key


def sort_manifests_by_kind(manifests: List[Manifest], ordering: Optional[List[str]] = None) -> List[Manifest]:
    """Stable sort of documents by kind order."""
    key = _kind_sort_key(ordering or INSTALL_ORDER)
    return sorted(manifests, key=lambda m: key(m.kind))


def _split_annotation(value: str) -> List[str]:
    return [part.strip().lower() for part in str(value).split(",") if part.strip()]


def _hook_weight(manifest: Manifest) -> int:
    raw = manifest.annotations.get(HOOK_WEIGHT_ANNOTATION, "0")
    try:
        return int(str(raw).strip())
    except ValueError:
        return 0


def _to_hook(manifest: Manifest) -> Optional[Hook]:
    events = []
    for value in _split_annotation(manifest.annotations[HOOK_ANNOTATION]):
        try:
            events.append(HookEvent(value))
        except ValueError:
            logger.info(f"Skipping unknown hook {value!r} in {manifest.name}")
            return None

    policies = []
    for value in _split_annotation(manifest.annotations.get(HOOK_DELETE_ANNOTATION, "")):
        try:
            policies.append(HookDeletePolicy(value))
        except ValueError:
            logger.warning(f"Ignoring unknown hook delete policy {value!r} in {manifest.name}")

    return Hook(
        name=manifest.object_name,
        kind=manifest.kind,
        path=manifest.name,
        manifest=manifest.content,
        events=events,
        weight=_hook_weight(manifest),
        delete_policies=policies,
    )


def sort_manifests(text: str, ordering: Optional[List[str]] = None) -> Tuple[List[Hook], List[Manifest]]:
    """Separate hooks from regular documents.

    Args:
        text: Rendered output
        ordering: Kind order for regular documents

    Returns:
        Hooks in declaration order, and regular documents in kind order
    """
    hooks = []
    generic = []
    for manifest in split_manifests(text):
        if HOOK_ANNOTATION not in manifest.annotations:
            generic.append(manifest)
            continue
        hook = _to_hook(manifest)
        if hook is not None:
            hooks.append(hook)
    return hooks, sort_manifests_by_kind(generic, ordering)


def join_manifests(manifests: List[Manifest], hide_secret: bool = False) -> str:
    """Join documents back into manifest text."""
    parts = []
    for manifest in manifests:
        if hide_secret and manifest.kind == SECRET_KIND:
            parts.append(f"---\n# Source: {manifest.name}\n{HIDDEN_SECRET_LINE}\n")
        else:
            parts.append(f"---\n# Source: {manifest.name}\n{manifest.content}\n")
    return "".join(parts)


def write_manifests(
    output_dir: Union[str, Path],
    manifests: List[Manifest],
    release_name: Optional[str] = None,
    hooks: Optional[List[Hook]] = None
) -> List[Path]:
    """Write each document to <output_dir>[/<release_name>]/<source path>.

    Documents sharing a source path are appended to the same file.

    Returns:
        Paths written, in order of first write

    Raises:
        ValidationError: If a source path would land outside the output
            directory; nothing is written then
    """
    base = Path(output_dir)
    if release_name:
        base = base / release_name

    written: List[Path] = []
    seen: Set[Path] = set()

    entries = [(m.name, m.content) for m in manifests]
    entries.extend((h.path, h.manifest) for h in hooks or [])

    root = base.resolve()
    for name, _ in entries:
        resolved = (base / name).resolve()
        if root not in resolved.parents:
            raise ValidationError(f"manifest path {name!r} resolves outside of {base}")

    for name, content in entries:
        target = base / name
        target.parent.mkdir(parents=True, exist_ok=True)
        if target in seen:
            with open(target, "a") as f:
                f.write(f"---\n# Source: {name}\n{content}\n")
        else:
            with open(target, "w") as f:
                f.write(f"---\n# Source: {name}\n{content}\n")
            seen.add(target)
            written.append(target)
        logger.debug(f"Wrote {target}")
    return written
