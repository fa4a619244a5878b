"""Tests for the release store and the memory driver."""

from __future__ import annotations

import pytest

from kubeship.release.models import Release, ReleaseInfo, ReleaseStatus
from kubeship.storage.driver import MemoryDriver
from kubeship.storage.storage import (
    ReleaseStore,
    contains_system_labels,
    make_key,
    system_labels,
)
from kubeship.utils.errors import (
    NoDeployedReleasesError,
    ReleaseExistsError,
    ReleaseNotFoundError,
)


def release(name, version, status=ReleaseStatus.SUPERSEDED, namespace="default"):
    return Release(
        name=name,
        namespace=namespace,
        version=version,
        info=ReleaseInfo(status=status, description=f"v{version}"),
        labels={"team": "core"},
    )


@pytest.fixture
def store():
    return ReleaseStore(MemoryDriver())


def test_make_key():
    assert make_key("web", 3) == "kubeship.release.v1.web.v3"


def test_system_labels():
    assert "owner" in system_labels()
    assert contains_system_labels({"status": "x"})
    assert not contains_system_labels({"team": "core"})
    assert not contains_system_labels(None)


def test_create_and_get(store):
    store.create(release("web", 1, ReleaseStatus.DEPLOYED))

    stored = store.get("web", 1)

    assert stored.status == ReleaseStatus.DEPLOYED
    assert stored.labels == {"team": "core"}


def test_create_twice_fails(store):
    store.create(release("web", 1))

    with pytest.raises(ReleaseExistsError):
        store.create(release("web", 1))


def test_get_missing(store):
    with pytest.raises(ReleaseNotFoundError):
        store.get("web", 1)


def test_update_missing(store):
    with pytest.raises(ReleaseNotFoundError):
        store.update(release("web", 1))


def test_update_keeps_created_label(store):
    store.create(release("web", 1))
    created = store.driver.labels(make_key("web", 1))["createdAt"]

    updated = release("web", 1, ReleaseStatus.DEPLOYED)
    store.update(updated)

    labels = store.driver.labels(make_key("web", 1))
    assert labels["createdAt"] == created
    assert labels["status"] == "deployed"
    assert labels["owner"] == "kubeship"


def test_records_are_copies(store):
    original = release("web", 1)
    store.create(original)
    original.info.description = "changed"

    fetched = store.get("web", 1)
    fetched.info.description = "changed again"

    assert store.get("web", 1).info.description == "v1"


def test_history_is_sorted_and_scoped_by_name(store):
    store.create(release("web", 2))
    store.create(release("web", 1))
    store.create(release("db", 1))

    assert [r.version for r in store.history("web")] == [1, 2]
    assert store.history("cache") == []


def test_last(store):
    store.create(release("web", 1))
    store.create(release("web", 3))

    assert store.last("web").version == 3
    with pytest.raises(ReleaseNotFoundError):
        store.last("cache")


def test_deployed(store):
    store.create(release("web", 1, ReleaseStatus.DEPLOYED))
    store.create(release("web", 2, ReleaseStatus.DEPLOYED))
    store.create(release("web", 3, ReleaseStatus.FAILED))

    assert store.deployed("web").version == 2
    assert [r.version for r in store.deployed_all("web")] == [2, 1]


def test_no_deployed_releases(store):
    store.create(release("web", 1, ReleaseStatus.FAILED))

    with pytest.raises(NoDeployedReleasesError) as exc_info:
        store.deployed("web")

    assert str(exc_info.value) == '"web" has no deployed releases'


def test_list_operations(store):
    store.create(release("web", 1, ReleaseStatus.DEPLOYED))
    store.create(release("db", 1, ReleaseStatus.UNINSTALLED))

    assert len(store.list_releases()) == 2
    assert [r.name for r in store.list_deployed()] == ["web"]
    assert [r.name for r in store.list_uninstalled()] == ["db"]


def test_namespaces_are_isolated():
    driver = MemoryDriver("one")
    store = ReleaseStore(driver)
    store.create(release("web", 1, namespace="one"))

    driver.set_namespace("two")

    assert store.history("web") == []


def test_max_history_prunes_oldest(store):
    capped = ReleaseStore(store.driver, max_history=2)
    capped.create(release("web", 1))
    capped.create(release("web", 2, ReleaseStatus.DEPLOYED))
    capped.create(release("web", 3, ReleaseStatus.FAILED))

    assert [r.version for r in store.history("web")] == [2, 3]


def test_max_history_keeps_deployed(store):
    store.create(release("web", 1, ReleaseStatus.DEPLOYED))
    store.create(release("web", 2, ReleaseStatus.FAILED))
    store.create(release("web", 3, ReleaseStatus.FAILED))

    store.remove_least_recent("web", 2)

    assert [r.version for r in store.history("web")] == [1, 3]


def test_unlimited_history(store):
    for version in range(1, 6):
        store.create(release("web", version))

    assert len(store.history("web")) == 5


def test_delete_returns_release(store):
    store.create(release("web", 1))

    removed = store.delete("web", 1)

    assert removed.version == 1
    assert store.history("web") == []
    with pytest.raises(ReleaseNotFoundError):
        store.delete("web", 1)


def test_release_serialises_to_json_safe_dict():
    original = release("web", 2, ReleaseStatus.DEPLOYED)
    original.config = {"replicas": 3}

    data = original.to_dict()
    restored = Release.from_dict(data)

    assert data["info"]["status"] == "deployed"
    assert restored.status == ReleaseStatus.DEPLOYED
    assert restored.config == {"replicas": 3}
    assert restored.version == 2
