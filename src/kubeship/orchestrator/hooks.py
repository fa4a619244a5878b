"""Execution of lifecycle hooks."""

import threading
from typing import List, Optional

from kubeship.kube.resource import Resource
from kubeship.kube.wait import WaitStrategy
from kubeship.orchestrator.context import EngineContext
from kubeship.release.models import (
    Hook,
    HookDeletePolicy,
    HookEvent,
    HookExecution,
    HookPhase,
    Release,
    utcnow,
)
from kubeship.utils.errors import (
    ErrorContext,
    HookError,
    KubeshipError,
    OperationCancelledError,
)
from kubeship.utils.logging import LogContext, get_logger

# Hook kinds that are never deleted by policy
UNDELETABLE_KINDS = ("CustomResourceDefinition",)


class HookExecutor:
    """Runs the hooks of a release bound to a lifecycle event.

    Hooks run one at a time in ascending weight, ties kept in declaration
    order. The first failing hook stops the batch.
    """

    def __init__(self, context: EngineContext):
        """Initialize hook executor.

        Args:
            context: Engine context of the running operation
        """
        self.context = context
        self.logger = get_logger(__name__)

    def run(
        self,
        release: Release,
        event: HookEvent,
        timeout: float,
        strategy: WaitStrategy = WaitStrategy.WATCHER,
        cancel: Optional[threading.Event] = None
    ) -> None:
        """Run all hooks of release bound to event.

        Hook last-run records are updated on the release and the release is
        re-persisted as each hook starts.

        Args:
            release: Release whose hooks run
            event: Lifecycle event
            timeout: Per-hook timeout in seconds
            strategy: Wait strategy for hook readiness and deletion
            cancel: Caller cancel signal

        Raises:
            HookError: If a hook failed to apply, become ready or be deleted
            OperationCancelledError: If cancelled while waiting on a hook
        """
        executing = sorted(
            [h for h in release.hooks if event in h.events],
            key=lambda h: h.weight,
        )
        if not executing:
            return

        self.logger.info(f"Running {len(executing)} {event.value} hook(s) for {release.name}")

        for index, hook in enumerate(executing):
            with LogContext(self.logger, hook=hook.path):
                self._run_hook(release, event, hook, executing[:index], timeout, strategy, cancel)

        # Reverse order so hooks that depend on earlier ones go first
        for hook in reversed(executing):
            self._delete_by_policy(hook, HookDeletePolicy.SUCCEEDED, timeout, strategy)

    def _run_hook(
        self,
        release: Release,
        event: HookEvent,
        hook: Hook,
        previous: List[Hook],
        timeout: float,
        strategy: WaitStrategy,
        cancel: Optional[threading.Event]
    ) -> None:
        if not hook.delete_policies:
            hook.delete_policies = [HookDeletePolicy.BEFORE_HOOK_CREATION]

        self._delete_by_policy(hook, HookDeletePolicy.BEFORE_HOOK_CREATION, timeout, strategy)

        resources = self._build(hook, event)

        hook.last_run = HookExecution(started_at=utcnow(), phase=HookPhase.RUNNING)
        self.context.record(release)

        try:
            self.context.client.create(resources)
        except Exception as e:
            hook.last_run.completed_at = utcnow()
            hook.last_run.phase = HookPhase.FAILED
            raise self._hook_error(event, hook, e)

        try:
            self.context.waits.watch_until_ready(resources, strategy, timeout, cancel)
        except KubeshipError as e:
            hook.last_run.completed_at = utcnow()
            hook.last_run.phase = HookPhase.FAILED
            self.logger.warning(f"Hook {event.value} {hook.path} failed: {e}")
            self._cleanup_after_failure(hook, previous, timeout, strategy)
            if isinstance(e, OperationCancelledError):
                raise
            raise self._hook_error(event, hook, e)

        hook.last_run.completed_at = utcnow()
        hook.last_run.phase = HookPhase.SUCCEEDED
        self.logger.debug(f"Hook {hook.path} succeeded")

    def _build(self, hook: Hook, event: HookEvent) -> List[Resource]:
        try:
            return self.context.client.build(hook.manifest)
        except Exception as e:
            raise HookError(
                f"unable to build kubernetes object for {event.value} hook {hook.path}: {e}",
                context=ErrorContext(hook=hook.path),
                cause=e,
            )

    def _hook_error(self, event: HookEvent, hook: Hook, error: Exception) -> HookError:
        return HookError(
            f"warning: Hook {event.value} {hook.path} failed: {error}",
            context=ErrorContext(hook=hook.path, operation=event.value),
            cause=error,
        )

    def _cleanup_after_failure(
        self,
        failed: Hook,
        succeeded: List[Hook],
        timeout: float,
        strategy: WaitStrategy
    ) -> None:
        try:
            self._delete_by_policy(failed, HookDeletePolicy.FAILED, timeout, strategy)
        except KubeshipError as e:
            self.logger.error(f"Error deleting failed hook {failed.path}: {e}")

        for hook in succeeded:
            try:
                self._delete_by_policy(hook, HookDeletePolicy.SUCCEEDED, timeout, strategy)
            except KubeshipError as e:
                self.logger.error(f"Error deleting succeeded hook {hook.path}: {e}")

    def _delete_by_policy(
        self,
        hook: Hook,
        policy: HookDeletePolicy,
        timeout: float,
        strategy: WaitStrategy
    ) -> None:
        if hook.kind in UNDELETABLE_KINDS or not hook.has_delete_policy(policy):
            return

        resources = self.context.client.build(hook.manifest)
        try:
            _, errors = self.context.client.delete(resources)
        except Exception as e:
            errors = [e]
        if errors:
            raise HookError(
                f"unable to delete hook {hook.path}: {'; '.join(str(e) for e in errors)}",
                context=ErrorContext(hook=hook.path),
            )

        try:
            self.context.waits.wait_for_delete(resources, strategy, timeout)
        except KubeshipError as e:
            raise HookError(f"hook {hook.path} was not deleted: {e}", cause=e)
        self.logger.debug(f"Deleted hook {hook.path} ({policy.value})")
