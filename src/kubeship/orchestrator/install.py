"""Install: create the first deployed version of a release."""

import threading
from typing import Any, Dict, List, Optional

from kubeship.kube.resource import Resource
from kubeship.orchestrator.context import EngineContext
from kubeship.orchestrator.hooks import HookExecutor
from kubeship.orchestrator.options import InstallOptions, UninstallOptions
from kubeship.orchestrator.ownership import existing_resource_conflict
from kubeship.orchestrator.preflight import check_labels, check_platform_version
from kubeship.orchestrator.render import render_release, to_render_values
from kubeship.orchestrator.uninstall import Uninstaller
from kubeship.release.models import (
    Bundle,
    HookEvent,
    Release,
    ReleaseInfo,
    ReleaseStatus,
    utcnow,
)
from kubeship.release.naming import resolve_release_name, validate_release_name
from kubeship.utils.errors import (
    ApplyError,
    AtomicRollbackError,
    ErrorContext,
    HookError,
    KubeshipError,
    NameInUseError,
    OperationCancelledError,
    OwnershipConflictError,
    PreconditionError,
    RenderError,
    ValidationError,
    error_handler,
)
from kubeship.utils.logging import get_logger


def check_cancelled(cancel: Optional[threading.Event]) -> None:
    """Raise if the caller has cancelled."""
    if cancel is not None and cancel.is_set():
        raise OperationCancelledError()


def hook_failure(prefix: str, error: KubeshipError) -> KubeshipError:
    """Prefix a hook failure, keeping cancellation recognizable."""
    if isinstance(error, OperationCancelledError):
        return OperationCancelledError(f"{prefix}{error}", cause=error)
    return HookError(f"{prefix}{error}", context=error.context, cause=error)


class Installer:
    """Runs an install.

    The release is persisted as pending-install before anything is applied.
    Failures after that point mark it failed, or with atomic set, uninstall it
    and purge its history.
    """

    def __init__(self, context: EngineContext, options: Optional[InstallOptions] = None):
        """Initialize installer.

        Args:
            context: Engine context
            options: Install options
        """
        self.context = context
        self.options = options or InstallOptions()
        self.logger = get_logger(__name__)

    def run(
        self,
        bundle: Bundle,
        values: Optional[Dict[str, Any]] = None,
        cancel: Optional[threading.Event] = None
    ) -> Release:
        """Install a bundle.

        Args:
            bundle: Bundle to install
            values: Values supplied by the caller
            cancel: Caller cancel signal

        Returns:
            The installed release (not persisted for dry runs)

        Raises:
            KubeshipError: On any failure; error.release holds the release
                record when one was built
        """
        opts = self.options
        ctx = self.context
        settings = ctx.settings
        values = values or {}

        if opts.hide_secret and not opts.dry_run:
            raise ValidationError("hiding Kubernetes secrets requires a dry-run mode")

        dry_run = opts.is_dry_run()
        namespace = opts.effective_namespace(settings)

        if opts.client_only:
            ctx = ctx.client_only(namespace)
        else:
            try:
                ctx.client.is_reachable()
            except Exception as e:
                raise PreconditionError(f"cluster reachability check failed: {e}", cause=e)

        name = resolve_release_name(opts.name, bundle.path, opts.generate_name, opts.name_template)
        self._check_name_available(ctx, name)

        check_labels(opts.labels)

        kube_version = ctx.client.server_version()
        if not opts.client_only:
            check_platform_version(bundle, kube_version)

        release = self._create_release(bundle, values, name, namespace)

        try:
            rendered = render_release(
                ctx.renderer,
                bundle,
                to_render_values(bundle, values, name, namespace, release.version, True, kube_version),
                hide_secret=opts.hide_secret,
                output_dir=opts.output_dir,
                release_name=name if opts.use_release_name else None,
            )
        except RenderError as e:
            release.set_status(ReleaseStatus.FAILED, str(e))
            e.release = release
            raise

        release.manifest = rendered.manifest
        release.hooks = rendered.hooks
        release.info.notes = rendered.notes
        release.set_status(ReleaseStatus.PENDING_INSTALL, "Initial install underway")

        resources = self._build_resources(ctx, release, rendered.manifests)

        to_be_adopted: List[Resource] = []
        if not opts.client_only and not dry_run and resources:
            try:
                to_be_adopted = existing_resource_conflict(
                    ctx.client, resources, name, namespace, opts.take_ownership
                )
            except OwnershipConflictError as e:
                raise OwnershipConflictError(
                    f"unable to continue with install: {e}", cause=e, release=release
                )

        if dry_run:
            self.logger.info(f"Dry run for release {name}, nothing applied")
            release.info.description = opts.description or "Dry run complete"
            return release

        if opts.replace:
            self._replace_release(ctx, release)

        try:
            ctx.store.create(release)
        except KubeshipError as e:
            e.release = release
            raise

        try:
            return self._perform(ctx, release, resources, to_be_adopted, cancel)
        except KubeshipError as e:
            raise self._fail_release(ctx, release, e)

    def _check_name_available(self, ctx: EngineContext, name: str) -> None:
        validate_release_name(name)

        history = ctx.store.history(name)
        if not history:
            return

        newest = history[-1]
        if self.options.replace and newest.info.status != ReleaseStatus.DEPLOYED:
            return
        raise NameInUseError(context=ErrorContext(release_name=name))

    def _create_release(self, bundle: Bundle, values: Dict[str, Any], name: str, namespace: str) -> Release:
        now = utcnow()
        return Release(
            name=name,
            namespace=namespace,
            version=1,
            info=ReleaseInfo(
                first_deployed=now,
                last_deployed=now,
                status=ReleaseStatus.UNKNOWN,
            ),
            bundle=bundle,
            config=values,
            labels=dict(self.options.labels),
        )

    def _build_resources(self, ctx: EngineContext, release: Release, manifests) -> List[Resource]:
        try:
            # Built from the documents, so hidden Secrets are still included
            resources = ctx.client.build("\n---\n".join(m.content for m in manifests))
        except KubeshipError as e:
            raise ApplyError(
                f"unable to build kubernetes objects from release manifest: {e}",
                cause=e,
                release=release,
            )
        for resource in resources:
            resource.set_ownership(release.name, release.namespace)
        return resources

    def _replace_release(self, ctx: EngineContext, release: Release) -> None:
        history = ctx.store.history(release.name)
        if not history:
            return
        last = history[-1]
        release.version = last.version + 1

        # A failed newest record keeps its status; older deployed ones do not
        superseded = [r for r in history if r.info.status == ReleaseStatus.DEPLOYED]
        if last.info.status != ReleaseStatus.FAILED and last not in superseded:
            superseded.append(last)
        for previous in superseded:
            previous.set_status(ReleaseStatus.SUPERSEDED, "superseded by new release")
            ctx.record(previous)

    def _perform(
        self,
        ctx: EngineContext,
        release: Release,
        resources: List[Resource],
        to_be_adopted: List[Resource],
        cancel: Optional[threading.Event]
    ) -> Release:
        opts = self.options
        timeout = opts.effective_timeout(ctx.settings)
        strategy = opts.effective_strategy(ctx.settings)
        hooks = HookExecutor(ctx)

        if not opts.disable_hooks:
            check_cancelled(cancel)
            try:
                hooks.run(release, HookEvent.PRE_INSTALL, timeout, strategy, cancel)
            except KubeshipError as e:
                raise hook_failure("failed pre-install: ", e)

        check_cancelled(cancel)
        try:
            if not to_be_adopted and resources:
                ctx.client.create(resources)
            elif resources:
                ctx.client.update(to_be_adopted, resources, force=opts.force)
        except Exception as e:
            raise error_handler.handle_exception(
                e, ErrorContext(release_name=release.name, operation="install"), ApplyError
            )

        ctx.waits.wait(resources, strategy, timeout, cancel, wait_for_jobs=opts.wait_for_jobs)

        if not opts.disable_hooks:
            check_cancelled(cancel)
            try:
                hooks.run(release, HookEvent.POST_INSTALL, timeout, strategy, cancel)
            except KubeshipError as e:
                raise hook_failure("failed post-install: ", e)

        release.set_status(ReleaseStatus.DEPLOYED, opts.description or "Install complete")
        # The release exists in the cluster even if recording the outcome fails
        ctx.record(release)
        self.logger.info(f"Release {release.name} version {release.version} installed")
        return release

    def _fail_release(self, ctx: EngineContext, release: Release, error: KubeshipError) -> KubeshipError:
        """Mark the release failed and return the error to raise."""
        opts = self.options
        release.set_status(ReleaseStatus.FAILED, f'Release "{release.name}" failed: {error}')
        self.logger.warning(f"Install of {release.name} failed: {error}")

        if opts.atomic:
            self.logger.info(f"Atomic set, uninstalling release {release.name}")
            uninstall = Uninstaller(ctx, UninstallOptions(
                namespace=release.namespace,
                disable_hooks=True,
                keep_history=False,
                timeout=opts.timeout,
                wait_strategy=opts.effective_strategy(ctx.settings),
            ))
            # Cleanup runs without the caller's cancel signal
            try:
                uninstall.run(release.name)
            except KubeshipError as cleanup_error:
                return AtomicRollbackError(
                    "an error occurred while uninstalling the release. "
                    f"original install error: {error}: {cleanup_error}",
                    original=error,
                    cleanup_error=cleanup_error,
                    release=release,
                )
            return AtomicRollbackError(
                f"release {release.name} failed, and has been uninstalled due to atomic being set: {error}",
                original=error,
                release=release,
            )

        ctx.record(release)
        error.release = release
        return error
