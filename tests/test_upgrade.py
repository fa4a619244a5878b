"""Tests for upgrading releases."""

from __future__ import annotations

import pytest

from conftest import CONFIGMAP_TEMPLATE, NAMESPACE, make_bundle
from kubeship.kube.wait import WaitStrategy
from kubeship.orchestrator.options import InstallOptions, UninstallOptions, UpgradeOptions
from kubeship.release.models import Release, ReleaseInfo, ReleaseStatus
from kubeship.utils.errors import (
    AtomicRollbackError,
    ExecutionError,
    NoDeployedReleasesError,
    OwnershipConflictError,
    PendingOperationError,
    PlatformVersionError,
    ValidationError,
    WaitError,
)


def statuses(store, name):
    return [(r.version, r.status) for r in store.history(name)]


def test_upgrade_release(orchestrator, store, bundle):
    orchestrator.install(bundle, {}, InstallOptions(name="up"))

    release = orchestrator.upgrade("up", bundle, {"replicas": 2})

    assert release.version == 2
    assert release.status == ReleaseStatus.DEPLOYED
    assert release.info.description == "Upgrade complete"
    assert "replicas: 2" in release.manifest
    assert statuses(store, "up") == [(1, ReleaseStatus.SUPERSEDED), (2, ReleaseStatus.DEPLOYED)]
    assert release.info.first_deployed == store.get("up", 1).info.first_deployed


def test_upgrade_reuses_previous_values_when_none_given(orchestrator, bundle):
    orchestrator.install(bundle, {"replicas": 3}, InstallOptions(name="same"))

    release = orchestrator.upgrade("same", bundle, {})

    assert release.config == {"replicas": 3}
    assert "replicas: 3" in release.manifest


def test_upgrade_reuse_values(orchestrator, bundle):
    orchestrator.install(bundle, {"replicas": 3}, InstallOptions(name="reuse"))

    release = orchestrator.upgrade("reuse", bundle, {"color": "red"}, UpgradeOptions(reuse_values=True))

    assert release.config == {"color": "red", "replicas": 3}
    assert "replicas: 3" in release.manifest


def test_upgrade_reset_values(orchestrator, bundle):
    orchestrator.install(bundle, {"replicas": 3}, InstallOptions(name="reset"))

    release = orchestrator.upgrade(
        "reset", bundle, {"color": "red"}, UpgradeOptions(reset_values=True, reuse_values=True)
    )

    assert release.config == {"color": "red"}
    assert "replicas: 1" in release.manifest


def test_upgrade_reset_then_reuse_values(orchestrator, bundle):
    orchestrator.install(bundle, {"replicas": 3, "color": "blue"}, InstallOptions(name="layered"))

    release = orchestrator.upgrade(
        "layered", bundle, {"color": "red"}, UpgradeOptions(reset_then_reuse_values=True)
    )

    assert release.config == {"color": "red", "replicas": 3}


def test_upgrade_reset_wins_over_every_reuse_flag(orchestrator, bundle):
    orchestrator.install(bundle, {"replicas": 3}, InstallOptions(name="all-flags"))

    release = orchestrator.upgrade("all-flags", bundle, {"color": "red"}, UpgradeOptions(
        reset_values=True, reuse_values=True, reset_then_reuse_values=True,
    ))

    assert release.config == {"color": "red"}
    assert "replicas: 1" in release.manifest


def test_upgrade_reuse_wins_over_reset_then_reuse(orchestrator):
    extra = {"templates/configmap.yaml": CONFIGMAP_TEMPLATE}
    first = make_bundle(extra=extra, values={"replicas": 1, "color": "green"})
    second = make_bundle(extra=extra, values={"replicas": 1, "color": "purple"})
    orchestrator.install(first, {"replicas": 3}, InstallOptions(name="two-flags"))

    release = orchestrator.upgrade("two-flags", second, {}, UpgradeOptions(
        reuse_values=True, reset_then_reuse_values=True,
    ))

    # Defaults of the previous bundle are kept only by reuse_values
    assert "color: green" in release.manifest
    assert "replicas: 3" in release.manifest


def test_upgrade_does_not_modify_supplied_values(orchestrator, bundle):
    orchestrator.install(bundle, {"replicas": 3}, InstallOptions(name="untouched"))
    supplied = {"color": "red"}

    orchestrator.upgrade("untouched", bundle, supplied, UpgradeOptions(reuse_values=True))

    assert supplied == {"color": "red"}


def test_upgrade_missing_release(orchestrator, bundle):
    with pytest.raises(NoDeployedReleasesError) as exc_info:
        orchestrator.upgrade("ghost", bundle, {})

    assert str(exc_info.value) == '"ghost" has no deployed releases'


def test_upgrade_install_missing_release(orchestrator, bundle):
    release = orchestrator.upgrade("fresh", bundle, {}, UpgradeOptions(install=True))

    assert release.version == 1
    assert release.status == ReleaseStatus.DEPLOYED
    assert release.info.description == "Install complete"


def test_upgrade_install_uninstalled_release(orchestrator, bundle):
    orchestrator.install(bundle, {}, InstallOptions(name="again"))
    orchestrator.uninstall("again", UninstallOptions(keep_history=True))

    release = orchestrator.upgrade("again", bundle, {}, UpgradeOptions(install=True))

    assert release.version == 2
    assert release.status == ReleaseStatus.DEPLOYED


def test_upgrade_pending_release(orchestrator, store, bundle):
    store.create(Release(
        name="busy",
        namespace=NAMESPACE,
        version=1,
        info=ReleaseInfo(status=ReleaseStatus.PENDING_INSTALL),
    ))

    with pytest.raises(PendingOperationError) as exc_info:
        orchestrator.upgrade("busy", bundle, {})

    assert "another operation (install/upgrade/rollback) is in progress" in str(exc_info.value)


def test_upgrade_invalid_name(orchestrator, bundle):
    with pytest.raises(ValidationError) as exc_info:
        orchestrator.upgrade("Bad_Name", bundle, {})

    assert str(exc_info.value) == "release name is invalid: Bad_Name"


def test_upgrade_hide_secret_requires_dry_run(orchestrator, bundle):
    orchestrator.install(bundle, {}, InstallOptions(name="secretive"))

    with pytest.raises(ValidationError):
        orchestrator.upgrade("secretive", bundle, {}, UpgradeOptions(hide_secret=True))


def test_upgrade_kube_version_incompatible(orchestrator, store, bundle):
    orchestrator.install(bundle, {}, InstallOptions(name="pinned"))

    with pytest.raises(PlatformVersionError):
        orchestrator.upgrade("pinned", make_bundle(kube_version="<1.20"), {})

    assert len(store.history("pinned")) == 1


def test_upgrade_dry_run(orchestrator, store, client, bundle):
    orchestrator.install(bundle, {}, InstallOptions(name="rehearsal"))
    applied = len(client.created)

    release = orchestrator.upgrade("rehearsal", bundle, {"replicas": 5}, UpgradeOptions(dry_run=True))

    assert release.version == 2
    assert release.status == ReleaseStatus.PENDING_UPGRADE
    assert release.info.description == "Dry run complete"
    assert len(store.history("rehearsal")) == 1
    assert len(client.created) == applied


def test_upgrade_wait_error(orchestrator, client, store, bundle):
    orchestrator.install(bundle, {}, InstallOptions(name="slow"))
    client.wait_error = TimeoutError("I timed out")

    with pytest.raises(WaitError):
        orchestrator.upgrade("slow", bundle, {}, UpgradeOptions(wait_strategy=WaitStrategy.WATCHER))

    failed = store.get("slow", 2)
    assert failed.status == ReleaseStatus.FAILED
    assert failed.info.description == 'Upgrade "slow" failed: I timed out'
    assert store.get("slow", 1).status == ReleaseStatus.DEPLOYED


def test_upgrade_after_failed_upgrade(orchestrator, client, store, bundle):
    orchestrator.install(bundle, {}, InstallOptions(name="retry"))
    client.wait_errors = [TimeoutError("I timed out")]
    with pytest.raises(WaitError):
        orchestrator.upgrade("retry", bundle, {}, UpgradeOptions(wait_strategy=WaitStrategy.WATCHER))

    release = orchestrator.upgrade("retry", bundle, {}, UpgradeOptions(wait_strategy=WaitStrategy.WATCHER))

    assert release.version == 3
    assert statuses(store, "retry") == [
        (1, ReleaseStatus.SUPERSEDED),
        (2, ReleaseStatus.FAILED),
        (3, ReleaseStatus.DEPLOYED),
    ]


def test_upgrade_atomic_rolls_back(orchestrator, client, store, bundle):
    orchestrator.install(bundle, {}, InstallOptions(name="atomic"))
    client.wait_errors = [TimeoutError("I timed out")]

    with pytest.raises(AtomicRollbackError) as exc_info:
        orchestrator.upgrade("atomic", bundle, {"replicas": 2}, UpgradeOptions(atomic=True))

    assert "has been rolled back due to atomic being set: I timed out" in str(exc_info.value)
    assert statuses(store, "atomic") == [
        (1, ReleaseStatus.SUPERSEDED),
        (2, ReleaseStatus.FAILED),
        (3, ReleaseStatus.DEPLOYED),
    ]
    restored = store.get("atomic", 3)
    assert restored.info.description == "Rollback to 1"
    assert restored.manifest == store.get("atomic", 1).manifest


def test_upgrade_atomic_rollback_fails(orchestrator, client, bundle):
    orchestrator.install(bundle, {}, InstallOptions(name="doomed"))
    client.wait_error = TimeoutError("I timed out")

    with pytest.raises(AtomicRollbackError) as exc_info:
        orchestrator.upgrade("doomed", bundle, {}, UpgradeOptions(atomic=True))

    message = str(exc_info.value)
    assert "an error occurred while rolling back the release" in message
    assert "original upgrade error: I timed out" in message
    assert exc_info.value.cleanup_failed


def test_upgrade_atomic_without_successful_release(orchestrator, client, store, bundle):
    store.create(Release(
        name="never-worked",
        namespace=NAMESPACE,
        version=1,
        info=ReleaseInfo(status=ReleaseStatus.FAILED),
    ))
    client.wait_error = TimeoutError("I timed out")

    with pytest.raises(AtomicRollbackError) as exc_info:
        orchestrator.upgrade("never-worked", bundle, {}, UpgradeOptions(atomic=True))

    assert "unable to find a previously successful release" in str(exc_info.value)


def test_upgrade_cleanup_on_fail(orchestrator, client):
    orchestrator.install(make_bundle(with_hook=False), {}, InstallOptions(name="tidy"))
    bigger = make_bundle(with_hook=False, extra={"templates/configmap.yaml": CONFIGMAP_TEMPLATE})
    client.wait_error = TimeoutError("I timed out")

    with pytest.raises(WaitError):
        orchestrator.upgrade(
            "tidy", bigger, {},
            UpgradeOptions(cleanup_on_fail=True, wait_strategy=WaitStrategy.WATCHER),
        )

    assert [(r.kind, r.name) for r in client.deleted] == [("ConfigMap", "tidy-config")]


def test_upgrade_cleanup_on_fail_error(orchestrator, client):
    orchestrator.install(make_bundle(with_hook=False), {}, InstallOptions(name="messy"))
    bigger = make_bundle(with_hook=False, extra={"templates/configmap.yaml": CONFIGMAP_TEMPLATE})
    client.wait_error = TimeoutError("I timed out")
    client.delete_error = RuntimeError("still there")

    with pytest.raises(ExecutionError) as exc_info:
        orchestrator.upgrade(
            "messy", bigger, {},
            UpgradeOptions(cleanup_on_fail=True, wait_strategy=WaitStrategy.WATCHER),
        )

    assert str(exc_info.value) == (
        "an error occurred while cleaning up resources. "
        "original upgrade error: I timed out: still there"
    )


def test_upgrade_labels_merge(orchestrator, bundle):
    orchestrator.install(bundle, {}, InstallOptions(name="tagged", labels={"a": "1", "b": "2"}))

    release = orchestrator.upgrade("tagged", bundle, {}, UpgradeOptions(labels={"b": "null", "c": "3"}))

    assert release.labels == {"a": "1", "c": "3"}


def test_upgrade_new_resource_owned_elsewhere(orchestrator, client, bundle):
    orchestrator.install(bundle, {}, InstallOptions(name="grow"))
    client.live[("", "ConfigMap", NAMESPACE, "grow-config")] = {
        "kind": "ConfigMap",
        "metadata": {"name": "grow-config"},
    }
    bigger = make_bundle(extra={"templates/configmap.yaml": CONFIGMAP_TEMPLATE})

    with pytest.raises(OwnershipConflictError) as exc_info:
        orchestrator.upgrade("grow", bigger, {})

    assert str(exc_info.value).startswith("unable to continue with update")


def test_upgrade_take_ownership_of_new_resource(orchestrator, client, bundle):
    orchestrator.install(bundle, {}, InstallOptions(name="grow"))
    client.live[("", "ConfigMap", NAMESPACE, "grow-config")] = {
        "kind": "ConfigMap",
        "metadata": {"name": "grow-config"},
    }
    bigger = make_bundle(extra={"templates/configmap.yaml": CONFIGMAP_TEMPLATE})

    release = orchestrator.upgrade("grow", bigger, {}, UpgradeOptions(take_ownership=True))

    assert release.status == ReleaseStatus.DEPLOYED
    assert "grow-config" in [r.name for r in client.updated]


def test_upgrade_max_history(orchestrator, store, bundle):
    orchestrator.install(bundle, {}, InstallOptions(name="capped"))
    orchestrator.upgrade("capped", bundle, {})

    orchestrator.upgrade("capped", bundle, {}, UpgradeOptions(max_history=2))

    assert [r.version for r in store.history("capped")] == [2, 3]
