"""Uninstall: remove a release's resources and retire or purge its history."""

import threading
from dataclasses import dataclass
from typing import List, Optional, Tuple

from kubeship.kube.manifest import UNINSTALL_ORDER, sort_manifests_by_kind, split_manifests
from kubeship.kube.resource import Resource
from kubeship.orchestrator.context import EngineContext
from kubeship.orchestrator.hooks import HookExecutor
from kubeship.orchestrator.options import UninstallOptions
from kubeship.release.models import HookEvent, Release, ReleaseStatus, utcnow
from kubeship.release.naming import is_valid_release_name
from kubeship.utils.errors import (
    ExecutionError,
    KubeshipError,
    ReleaseNotFoundError,
    StorageError,
    ValidationError,
)
from kubeship.utils.logging import get_logger

RESOURCE_POLICY_ANNOTATION = "kubeship.io/resource-policy"
KEEP_POLICY = "keep"


@dataclass
class UninstallResponse:
    """Result of an uninstall."""

    release: Optional[Release]
    info: str = ""


class Uninstaller:
    """Runs an uninstall."""

    def __init__(self, context: EngineContext, options: Optional[UninstallOptions] = None):
        self.context = context
        self.options = options or UninstallOptions()
        self.hooks = HookExecutor(context)
        self.logger = get_logger(__name__)

    def run(self, name: str, cancel: Optional[threading.Event] = None) -> UninstallResponse:
        """Uninstall a release.

        Args:
            name: Release name
            cancel: Caller cancel signal for hook and delete waits

        Returns:
            The uninstalled release and notes about kept resources

        Raises:
            ValidationError: If the name is invalid
            ReleaseNotFoundError: If the release does not exist
            ExecutionError: If the release is already deleted, or deletion
                completed with errors
        """
        opts = self.options
        settings = self.context.settings
        store = self.context.store

        if not is_valid_release_name(name):
            raise ValidationError(f"uninstall: Release name is invalid: {name}")

        history = store.history(name)
        if not history:
            if opts.ignore_not_found:
                return UninstallResponse(release=None)
            raise ReleaseNotFoundError()

        if opts.dry_run:
            return UninstallResponse(release=history[-1])

        release = history[-1]

        if release.info.status == ReleaseStatus.UNINSTALLED:
            if not opts.keep_history:
                self._purge(history)
                return UninstallResponse(release=release)
            raise ExecutionError(f'the release named "{name}" is already deleted', release=release)

        self.logger.info(f"Uninstalling release {name} version {release.version}")
        release.set_status(ReleaseStatus.UNINSTALLING, "Deletion in progress (or silently failed)")
        release.info.deleted = utcnow()

        timeout = opts.effective_timeout(settings)
        strategy = opts.effective_strategy(settings)

        if not opts.disable_hooks:
            try:
                self.hooks.run(release, HookEvent.PRE_DELETE, timeout, strategy, cancel)
            except KubeshipError as e:
                e.release = release
                raise
        else:
            self.logger.debug(f"Delete hooks disabled for {name}")

        self.context.record(release)

        errors: List[Exception] = []
        deleted, kept, delete_errors = self._delete_resources(release)
        errors.extend(delete_errors)

        info = ""
        if kept:
            info = "These resources were kept due to the resource policy:\n" + kept

        if opts.wait and deleted:
            try:
                self.context.waits.wait_for_delete(deleted, strategy, timeout, cancel)
            except KubeshipError as e:
                errors.append(e)

        if not opts.disable_hooks:
            try:
                self.hooks.run(release, HookEvent.POST_DELETE, timeout, strategy, cancel)
            except KubeshipError as e:
                errors.append(e)

        release.set_status(ReleaseStatus.UNINSTALLED, opts.description or "Uninstallation complete")

        if not opts.keep_history:
            self.logger.debug(f"Purging history of {name}")
            try:
                self._purge(history)
            except StorageError as e:
                errors.append(ExecutionError(f"uninstall: Failed to purge the release: {e}"))
        else:
            self.context.record(release)

        if errors:
            raise ExecutionError(
                f"uninstallation completed with {len(errors)} error(s): "
                f"{'; '.join(str(e) for e in errors)}",
                release=release,
            )

        self.logger.info(f"Release {name} uninstalled")
        return UninstallResponse(release=release, info=info)

    def _delete_resources(self, release: Release) -> Tuple[List[Resource], str, List[Exception]]:
        manifests = sort_manifests_by_kind(split_manifests(release.manifest), UNINSTALL_ORDER)

        kept_lines = []
        to_delete = []
        for manifest in manifests:
            if manifest.annotations.get(RESOURCE_POLICY_ANNOTATION) == KEEP_POLICY:
                kept_lines.append(f"[{manifest.kind}] {manifest.object_name}")
                continue
            to_delete.append(manifest.content)

        if not to_delete:
            return [], "\n".join(kept_lines), []

        try:
            resources = self.context.client.build("\n---\n".join(to_delete))
        except KubeshipError as e:
            return [], "\n".join(kept_lines), [
                ExecutionError(f"unable to build kubernetes objects for delete: {e}", cause=e)
            ]

        try:
            result, errors = self.context.client.delete(resources)
        except Exception as e:
            return [], "\n".join(kept_lines), [e]
        return result.deleted, "\n".join(kept_lines), list(errors)

    def _purge(self, releases: List[Release]) -> None:
        for release in releases:
            self.context.store.delete(release.name, release.version)
