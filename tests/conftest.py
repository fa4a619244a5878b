"""
Pytest configuration and shared fakes for release engine tests.
"""

from __future__ import annotations

import time
from typing import Any, Dict, List, Optional, Tuple

import pytest

from kubeship.config.models import EngineSettings
from kubeship.kube.client import PrintingResourceClient, UpdateResult
from kubeship.kube.resource import Resource
from kubeship.kube.wait import WaitStrategy
from kubeship.orchestrator.context import EngineContext
from kubeship.orchestrator.orchestrator import ReleaseOrchestrator
from kubeship.orchestrator.render import TemplateRenderer
from kubeship.release.models import Bundle, BundleMetadata
from kubeship.storage.driver import MemoryDriver
from kubeship.storage.storage import ReleaseStore

NAMESPACE = "spaced"

DEPLOYMENT_TEMPLATE = """apiVersion: apps/v1
kind: Deployment
metadata:
  name: {{ Release.Name }}
spec:
  replicas: {{ Values.replicas }}
"""

HOOK_TEMPLATE = """apiVersion: batch/v1
kind: Job
metadata:
  name: {{ Release.Name }}-hook
  annotations:
    kubeship.io/hook: post-install,pre-delete
"""

SECRET_TEMPLATE = """apiVersion: v1
kind: Secret
metadata:
  name: {{ Release.Name }}-secret
stringData:
  password: hunter2
"""

CONFIGMAP_TEMPLATE = """apiVersion: v1
kind: ConfigMap
metadata:
  name: {{ Release.Name }}-config
data:
  color: {{ Values.color | default('blue') }}
"""

NOTES_TEMPLATE = "Release {{ Release.Name }} is at revision {{ Release.Revision }}."


class FailingResourceClient(PrintingResourceClient):
    """Resource client whose calls can be made to fail or block.

    Live objects are kept in `live`, keyed by Resource.key. Errors in
    `wait_errors` are raised by successive waits, one each, before
    `wait_error` applies to every wait.
    """

    def __init__(self, namespace: str = NAMESPACE, kube_version: str = "1.30.0"):
        super().__init__(namespace=namespace, kube_version=kube_version, poll_interval=0.01)
        self.create_error: Optional[Exception] = None
        self.update_error: Optional[Exception] = None
        self.wait_error: Optional[Exception] = None
        self.wait_errors: List[Exception] = []
        self.wait_duration: float = 0.0
        self.delete_error: Optional[Exception] = None
        self.watch_until_ready_error: Optional[Exception] = None
        self.live: Dict[Tuple[str, str, str, str], Dict[str, Any]] = {}
        self.created: List[Resource] = []
        self.updated: List[Resource] = []
        self.deleted: List[Resource] = []
        self.wait_calls = 0

    def get(self, resource: Resource) -> Optional[Dict[str, Any]]:
        return self.live.get(resource.key)

    def create(self, resources: List[Resource]) -> UpdateResult:
        if self.create_error is not None:
            raise self.create_error
        self.created.extend(resources)
        return super().create(resources)

    def update(self, original: List[Resource], target: List[Resource], force: bool = False) -> UpdateResult:
        if self.update_error is not None:
            raise self.update_error
        result = super().update(original, target, force)
        self.created.extend(result.created)
        self.updated.extend(result.updated)
        self.deleted.extend(result.deleted)
        return result

    def delete(self, resources: List[Resource]) -> Tuple[UpdateResult, List[Exception]]:
        if self.delete_error is not None:
            return UpdateResult(), [self.delete_error]
        self.deleted.extend(resources)
        for resource in resources:
            self.live.pop(resource.key, None)
        return super().delete(resources)

    def wait(self, resources, timeout, strategy=WaitStrategy.WATCHER, wait_for_jobs=False) -> None:
        self.wait_calls += 1
        if self.wait_duration:
            time.sleep(self.wait_duration)
        if self.wait_errors:
            raise self.wait_errors.pop(0)
        if self.wait_error is not None:
            raise self.wait_error

    def watch_until_ready(self, resources, timeout, strategy=WaitStrategy.WATCHER) -> None:
        if self.watch_until_ready_error is not None:
            raise self.watch_until_ready_error


def make_bundle(
    name: str = "web",
    kube_version: Optional[str] = None,
    with_hook: bool = True,
    with_secret: bool = False,
    with_notes: bool = False,
    extra: Optional[Dict[str, str]] = None,
    values: Optional[Dict[str, Any]] = None,
    path: Optional[str] = None
) -> Bundle:
    """Build a small bundle with a Deployment and, by default, a hook Job."""
    templates = {"templates/deployment.yaml": DEPLOYMENT_TEMPLATE}
    if with_hook:
        templates["templates/hooks.yaml"] = HOOK_TEMPLATE
    if with_secret:
        templates["templates/secret.yaml"] = SECRET_TEMPLATE
    if with_notes:
        templates["templates/NOTES.txt"] = NOTES_TEMPLATE
    templates.update(extra or {})
    return Bundle(
        metadata=BundleMetadata(name=name, version="0.1.0", kube_version=kube_version),
        templates=templates,
        values={"replicas": 1} if values is None else values,
        path=path,
    )


def deployment_key(name: str, namespace: str = NAMESPACE) -> Tuple[str, str, str, str]:
    return ("apps", "Deployment", namespace, name)


@pytest.fixture
def settings():
    return EngineSettings(namespace=NAMESPACE, max_history=0, timeout=5.0)


@pytest.fixture
def client():
    return FailingResourceClient()


@pytest.fixture
def store():
    return ReleaseStore(MemoryDriver(NAMESPACE))


@pytest.fixture
def context(store, client, settings):
    return EngineContext(store=store, client=client, renderer=TemplateRenderer(), settings=settings)


@pytest.fixture
def orchestrator(context):
    return ReleaseOrchestrator(context)


@pytest.fixture
def bundle():
    return make_bundle()
