"""Upgrade: render a new version of an existing release and apply the diff."""

import copy
import threading
from typing import Any, Dict, List, Optional, Tuple

from kubeship.kube.client import UpdateResult
from kubeship.kube.resource import Resource, difference
from kubeship.kube.wait import WaitStrategy
from kubeship.orchestrator.context import EngineContext
from kubeship.orchestrator.hooks import HookExecutor
from kubeship.orchestrator.install import Installer, check_cancelled, hook_failure
from kubeship.orchestrator.options import RollbackOptions, UpgradeOptions
from kubeship.orchestrator.ownership import existing_resource_conflict
from kubeship.orchestrator.preflight import check_labels, check_platform_version
from kubeship.orchestrator.render import render_release, to_render_values
from kubeship.orchestrator.rollback import Rollbacker, last_successful_version
from kubeship.release.models import (
    Bundle,
    HookEvent,
    Release,
    ReleaseInfo,
    ReleaseStatus,
    utcnow,
)
from kubeship.release.naming import is_valid_release_name
from kubeship.release.util import merge_custom_labels
from kubeship.release.values import coalesce_tables, coalesce_values
from kubeship.utils.errors import (
    ApplyError,
    AtomicRollbackError,
    ErrorContext,
    ExecutionError,
    KubeshipError,
    NoDeployedReleasesError,
    OwnershipConflictError,
    PendingOperationError,
    ReleaseNotFoundError,
    ValidationError,
    error_handler,
)
from kubeship.utils.logging import get_logger


class Upgrader:
    """Runs an upgrade.

    The new version is persisted as pending-upgrade before anything is
    applied. On success the version it replaced becomes superseded.
    """

    def __init__(self, context: EngineContext, options: Optional[UpgradeOptions] = None):
        """Initialize upgrader.

        Args:
            context: Engine context
            options: Upgrade options
        """
        self.options = options or UpgradeOptions()
        self.context = context.with_max_history(self.options.max_history)
        self.logger = get_logger(__name__)
        self._result: Optional[UpdateResult] = None

    def run(
        self,
        name: str,
        bundle: Bundle,
        values: Optional[Dict[str, Any]] = None,
        cancel: Optional[threading.Event] = None
    ) -> Release:
        """Upgrade a release.

        With install set, a release with no history (or only an uninstalled
        record) is installed instead.

        Args:
            name: Release name
            bundle: Bundle to upgrade to
            values: Values supplied by the caller
            cancel: Caller cancel signal

        Returns:
            The new release version (not persisted for dry runs)

        Raises:
            KubeshipError: On any failure; error.release holds the new version
                when it was built
        """
        opts = self.options
        values = values or {}

        if not is_valid_release_name(name):
            raise ValidationError(f"release name is invalid: {name}")

        if opts.install:
            history = self.context.store.history(name)
            if not history or history[-1].info.status == ReleaseStatus.UNINSTALLED:
                replace = bool(history)
                self.logger.info(f"Release {name} does not exist, installing it now")
                installer = Installer(self.context, opts.to_install_options(name, replace=replace))
                return installer.run(bundle, values, cancel)

        if opts.hide_secret and not opts.dry_run:
            raise ValidationError("hiding Kubernetes secrets requires a dry-run mode")

        current, upgraded, current_resources, target_resources = self._prepare(name, bundle, values)

        if opts.dry_run:
            self.logger.info(f"Dry run for release {name}, nothing applied")
            upgraded.info.description = "Dry run complete"
            return upgraded

        self.logger.debug(f"Creating upgraded release {name} version {upgraded.version}")
        try:
            self.context.store.create(upgraded)
        except KubeshipError as e:
            e.release = upgraded
            raise

        try:
            self._perform(current, upgraded, current_resources, target_resources, cancel)
        except KubeshipError as e:
            raise self._fail_release(upgraded, e)
        return upgraded

    def _current_release(self, name: str) -> Tuple[Release, Release]:
        """Return the newest record and the record to diff against."""
        store = self.context.store
        try:
            last = store.last(name)
        except ReleaseNotFoundError:
            raise NoDeployedReleasesError(name)

        if last.info.status.is_pending():
            raise PendingOperationError(context=ErrorContext(release_name=name))

        if last.info.status == ReleaseStatus.DEPLOYED:
            return last, last

        try:
            return last, store.deployed(name)
        except NoDeployedReleasesError:
            # A failed or superseded newest record stands in for the deployed one
            if last.info.status in (ReleaseStatus.FAILED, ReleaseStatus.SUPERSEDED):
                return last, last
            raise

    def _reuse_values(self, bundle: Bundle, current: Release, values: Dict[str, Any]) -> Tuple[Bundle, Dict[str, Any]]:
        """Decide which values the new version renders with.

        reset_values wins over reuse_values, which wins over
        reset_then_reuse_values.
        """
        opts = self.options
        # Flag docs: reuse_values is ignored when reset_values is set, and
        # reset_then_reuse_values is ignored when either of the others is
        # set. Setting all three is therefore a plain reset.
        if opts.reset_values:
            self.logger.debug("Resetting values to the bundle's defaults")
            return bundle, values

        if opts.reuse_values:
            self.logger.debug("Reusing the previous release's values")
            merged = coalesce_tables(copy.deepcopy(values), current.config)
            previous_defaults = current.bundle.values if current.bundle else {}
            bundle = bundle.model_copy(update={
                "values": coalesce_values(previous_defaults, current.config)
            })
            return bundle, merged

        if opts.reset_then_reuse_values:
            self.logger.debug("Merging new values over the previous release's values")
            return bundle, coalesce_tables(copy.deepcopy(values), current.config)

        if not values and current.config:
            self.logger.debug("No values supplied, reusing the previous release's values")
            return bundle, dict(current.config)

        return bundle, values

    def _prepare(
        self,
        name: str,
        bundle: Bundle,
        values: Dict[str, Any]
    ) -> Tuple[Release, Release, List[Resource], List[Resource]]:
        opts = self.options
        ctx = self.context

        last, current = self._current_release(name)
        bundle, values = self._reuse_values(bundle, current, values)

        revision = last.version + 1
        namespace = current.namespace

        kube_version = ctx.client.server_version()
        check_platform_version(bundle, kube_version)
        check_labels(opts.labels)

        rendered = render_release(
            ctx.renderer,
            bundle,
            to_render_values(bundle, values, name, namespace, revision, False, kube_version),
            hide_secret=opts.hide_secret,
        )

        upgraded = Release(
            name=name,
            namespace=namespace,
            version=revision,
            info=ReleaseInfo(
                first_deployed=current.info.first_deployed,
                last_deployed=utcnow(),
                status=ReleaseStatus.PENDING_UPGRADE,
                description="Preparing upgrade",
                notes=rendered.notes,
            ),
            bundle=bundle,
            config=values,
            manifest=rendered.manifest,
            hooks=rendered.hooks,
            labels=merge_custom_labels(last.labels, opts.labels),
        )

        try:
            current_resources = ctx.client.build(current.manifest)
        except KubeshipError as e:
            raise ApplyError(
                f"unable to build kubernetes objects from current release manifest: {e}",
                cause=e,
                release=upgraded,
            )
        try:
            target_resources = ctx.client.build(
                "\n---\n".join(m.content for m in rendered.manifests)
            )
        except KubeshipError as e:
            raise ApplyError(
                f"unable to build kubernetes objects from new release manifest: {e}",
                cause=e,
                release=upgraded,
            )

        for resource in target_resources:
            resource.set_ownership(name, namespace)

        to_be_created = difference(target_resources, current_resources)
        if to_be_created and not opts.dry_run:
            try:
                adopted = existing_resource_conflict(
                    ctx.client, to_be_created, name, namespace, opts.take_ownership
                )
            except OwnershipConflictError as e:
                raise OwnershipConflictError(
                    f"unable to continue with update: {e}", cause=e, release=upgraded
                )
            current_resources = current_resources + adopted

        return current, upgraded, current_resources, target_resources

    def _perform(
        self,
        current: Release,
        upgraded: Release,
        current_resources: List[Resource],
        target_resources: List[Resource],
        cancel: Optional[threading.Event]
    ) -> None:
        opts = self.options
        ctx = self.context
        timeout = opts.effective_timeout(ctx.settings)
        strategy = opts.effective_strategy(ctx.settings)
        hooks = HookExecutor(ctx)

        if not opts.disable_hooks:
            check_cancelled(cancel)
            try:
                hooks.run(upgraded, HookEvent.PRE_UPGRADE, timeout, strategy, cancel)
            except KubeshipError as e:
                raise hook_failure("pre-upgrade hooks failed: ", e)
        else:
            self.logger.debug(f"Upgrade hooks disabled for {upgraded.name}")

        check_cancelled(cancel)
        try:
            self._result = ctx.client.update(current_resources, target_resources, force=opts.force)
        except Exception as e:
            raise error_handler.handle_exception(
                e, ErrorContext(release_name=upgraded.name, operation="upgrade"), ApplyError
            )

        ctx.waits.wait(target_resources, strategy, timeout, cancel, wait_for_jobs=opts.wait_for_jobs)

        if not opts.disable_hooks:
            check_cancelled(cancel)
            try:
                hooks.run(upgraded, HookEvent.POST_UPGRADE, timeout, strategy, cancel)
            except KubeshipError as e:
                raise hook_failure("post-upgrade hooks failed: ", e)

        current.info.status = ReleaseStatus.SUPERSEDED
        ctx.record(current)

        upgraded.set_status(ReleaseStatus.DEPLOYED, opts.description or "Upgrade complete")
        ctx.record(upgraded)
        self.logger.info(f"Release {upgraded.name} upgraded to version {upgraded.version}")

    def _fail_release(self, upgraded: Release, error: KubeshipError) -> KubeshipError:
        """Mark the upgrade failed and return the error to raise."""
        opts = self.options
        ctx = self.context
        message = f'Upgrade "{upgraded.name}" failed: {error}'
        self.logger.warning(message)
        upgraded.set_status(ReleaseStatus.FAILED, message)
        ctx.record(upgraded)

        if opts.cleanup_on_fail and self._result is not None and self._result.created:
            self.logger.debug(f"Cleanup on fail set, deleting {len(self._result.created)} resource(s)")
            _, errors = ctx.client.delete(self._result.created)
            if errors:
                return ExecutionError(
                    "an error occurred while cleaning up resources. original upgrade error: "
                    f"{error}: {', '.join(str(e) for e in errors)}",
                    cause=error,
                    release=upgraded,
                )

        if opts.atomic:
            self.logger.info(f"Atomic set, rolling back release {upgraded.name}")
            version = last_successful_version(
                ctx.store.history(upgraded.name), exclude=upgraded.version
            )
            if version is None:
                return AtomicRollbackError(
                    "unable to find a previously successful release when attempting to rollback. "
                    f"original upgrade error: {error}",
                    original=error,
                    release=upgraded,
                )

            strategy = opts.effective_strategy(ctx.settings)
            if strategy == WaitStrategy.HOOK_ONLY:
                strategy = WaitStrategy.WATCHER
            rollback = Rollbacker(ctx, RollbackOptions(
                version=version,
                timeout=opts.timeout,
                wait_strategy=strategy,
                wait_for_jobs=opts.wait_for_jobs,
                disable_hooks=opts.disable_hooks,
                force=opts.force,
                cleanup_on_fail=opts.cleanup_on_fail,
                max_history=opts.max_history,
            ))
            # Rollback runs without the caller's cancel signal
            try:
                rollback.run(upgraded.name)
            except KubeshipError as rollback_error:
                return AtomicRollbackError(
                    "an error occurred while rolling back the release. "
                    f"original upgrade error: {error}: {rollback_error}",
                    original=error,
                    cleanup_error=rollback_error,
                    release=upgraded,
                )
            return AtomicRollbackError(
                f"release {upgraded.name} failed, and has been rolled back due to atomic being set: {error}",
                original=error,
                release=upgraded,
            )

        error.release = upgraded
        return error
