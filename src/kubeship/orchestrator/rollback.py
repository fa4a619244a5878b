"""Rollback: redeploy a previous release version as a new version."""

import threading
from typing import List, Optional, Tuple

from kubeship.kube.client import UpdateResult
from kubeship.kube.resource import Resource
from kubeship.orchestrator.context import EngineContext
from kubeship.orchestrator.hooks import HookExecutor
from kubeship.orchestrator.install import check_cancelled
from kubeship.orchestrator.options import RollbackOptions
from kubeship.release.models import HookEvent, Release, ReleaseInfo, ReleaseStatus, utcnow
from kubeship.release.naming import is_valid_release_name
from kubeship.utils.errors import (
    ApplyError,
    AtomicRollbackError,
    ErrorContext,
    ExecutionError,
    KubeshipError,
    NoDeployedReleasesError,
    ValidationError,
    error_handler,
)
from kubeship.utils.logging import get_logger


def last_successful_version(history: List[Release], exclude: Optional[int] = None) -> Optional[int]:
    """Newest version that was deployed at some point.

    Failed versions are not superseded unless a later version succeeded, so
    superseded and deployed versions are the ones known to have worked.
    """
    candidates = [
        r.version for r in history
        if r.info.status in (ReleaseStatus.SUPERSEDED, ReleaseStatus.DEPLOYED)
        and r.version != exclude
    ]
    return max(candidates) if candidates else None


class Rollbacker:
    """Runs a rollback.

    The target version's manifest, hooks, values and labels are reused as
    stored; nothing is re-rendered.
    """

    def __init__(self, context: EngineContext, options: Optional[RollbackOptions] = None):
        """Initialize rollbacker.

        Args:
            context: Engine context
            options: Rollback options
        """
        self.options = options or RollbackOptions()
        self.context = context.with_max_history(self.options.max_history)
        self.logger = get_logger(__name__)
        self._result: Optional[UpdateResult] = None

    def run(self, name: str, cancel: Optional[threading.Event] = None) -> Release:
        """Roll a release back.

        Args:
            name: Release name
            cancel: Caller cancel signal

        Returns:
            The new deployed release version

        Raises:
            KubeshipError: On any failure; error.release holds the new version
                when it was built
        """
        current, target = self._prepare(name)

        if self.options.dry_run:
            self.logger.info(f"Dry run rollback of {name} to {target.info.description}")
            return target

        self.context.store.create(target)

        try:
            self._perform(current, target, cancel)
        except KubeshipError as e:
            raise self._fail_release(target, e)

        self.context.record(target)
        return target

    def _prepare(self, name: str) -> Tuple[Release, Release]:
        if not is_valid_release_name(name):
            raise ValidationError(f"release name is invalid: {name}")
        if self.options.version < 0:
            raise ValidationError("invalid release revision")

        current = self.context.store.last(name)

        previous_version = self.options.version or current.version - 1
        history = self.context.store.history(name)
        if previous_version not in {r.version for r in history}:
            raise ExecutionError(f"release has no {previous_version} version")

        previous = self.context.store.get(name, previous_version)
        self.logger.info(f"Rolling back {name} to version {previous_version}")

        target = Release(
            name=name,
            namespace=current.namespace,
            version=current.version + 1,
            info=ReleaseInfo(
                first_deployed=current.info.first_deployed,
                last_deployed=utcnow(),
                status=ReleaseStatus.PENDING_ROLLBACK,
                notes=previous.info.notes,
                # Kept unless the rollback fails
                description=f"Rollback to {previous_version}",
            ),
            bundle=previous.bundle,
            config=previous.config,
            manifest=previous.manifest,
            hooks=[h.model_copy(deep=True) for h in previous.hooks],
            labels=dict(previous.labels),
        )
        return current, target

    def _build(self, manifest: str, which: str) -> List[Resource]:
        try:
            return self.context.client.build(manifest)
        except KubeshipError as e:
            raise ApplyError(f"unable to build kubernetes objects from {which} release manifest: {e}", cause=e)

    def _perform(self, current: Release, target: Release, cancel: Optional[threading.Event]) -> None:
        opts = self.options
        ctx = self.context
        timeout = opts.effective_timeout(ctx.settings)
        strategy = opts.effective_strategy(ctx.settings)
        hooks = HookExecutor(ctx)

        current_resources = self._build(current.manifest, "current")
        target_resources = self._build(target.manifest, "new")

        if not opts.disable_hooks:
            check_cancelled(cancel)
            hooks.run(target, HookEvent.PRE_ROLLBACK, timeout, strategy, cancel)
        else:
            self.logger.debug(f"Rollback hooks disabled for {target.name}")

        for resource in target_resources:
            resource.set_ownership(target.name, target.namespace)

        check_cancelled(cancel)
        try:
            self._result = ctx.client.update(current_resources, target_resources, force=opts.force)
        except Exception as e:
            raise error_handler.handle_exception(
                e, ErrorContext(release_name=target.name, operation="rollback"), ApplyError
            )

        ctx.waits.wait(target_resources, strategy, timeout, cancel, wait_for_jobs=opts.wait_for_jobs)

        if not opts.disable_hooks:
            check_cancelled(cancel)
            hooks.run(target, HookEvent.POST_ROLLBACK, timeout, strategy, cancel)

        try:
            deployed = ctx.store.deployed_all(current.name)
        except NoDeployedReleasesError:
            deployed = []

        # Supersede every deployed version before the target becomes deployed
        for release in deployed:
            self.logger.debug(f"Superseding version {release.version} of {release.name}")
            release.info.status = ReleaseStatus.SUPERSEDED
            ctx.record(release)

        target.info.status = ReleaseStatus.DEPLOYED
        self.logger.info(f"Release {target.name} rolled back as version {target.version}")

    def _fail_release(self, target: Release, error: KubeshipError) -> KubeshipError:
        """Mark the rollback failed and return the error to raise."""
        opts = self.options
        ctx = self.context
        message = f'Rollback "{target.name}" failed: {error}'
        self.logger.warning(message)
        target.set_status(ReleaseStatus.FAILED, message)
        ctx.record(target)

        result = self._result
        if opts.cleanup_on_fail and result is not None and result.created:
            self.logger.debug(f"Cleanup on fail set, deleting {len(result.created)} resource(s)")
            _, errors = ctx.client.delete(result.created)
            if errors:
                return ExecutionError(
                    "an error occurred while cleaning up resources. original rollback error: "
                    f"{error}: {', '.join(str(e) for e in errors)}",
                    cause=error,
                    release=target,
                )

        if opts.atomic:
            version = last_successful_version(ctx.store.history(target.name), exclude=target.version)
            if version is None:
                return AtomicRollbackError(
                    "unable to find a previously successful release when attempting to rollback. "
                    f"original rollback error: {error}",
                    original=error,
                    release=target,
                )
            redeploy = Rollbacker(ctx, RollbackOptions(
                version=version,
                timeout=opts.timeout,
                wait_strategy=opts.wait_strategy,
                wait_for_jobs=opts.wait_for_jobs,
                disable_hooks=opts.disable_hooks,
                force=opts.force,
            ))
            try:
                redeploy.run(target.name)
            except KubeshipError as rollback_error:
                return AtomicRollbackError(
                    "an error occurred while rolling back the release. "
                    f"original rollback error: {error}: {rollback_error}",
                    original=error,
                    cleanup_error=rollback_error,
                    release=target,
                )
            return AtomicRollbackError(
                f"release {target.name} failed, and has been rolled back due to atomic being set: {error}",
                original=error,
                release=target,
            )

        error.release = target
        return error
