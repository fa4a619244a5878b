"""Tests for manifest splitting, sorting and writing."""

from __future__ import annotations

import pytest

from kubeship.kube.manifest import (
    HIDDEN_SECRET_LINE,
    UNINSTALL_ORDER,
    join_manifests,
    sort_manifests,
    sort_manifests_by_kind,
    split_manifests,
    write_manifests,
)
from kubeship.kube.resource import parse_resources
from kubeship.release.models import HookDeletePolicy, HookEvent
from kubeship.utils.errors import ValidationError

RENDERED = """---
# Source: web/templates/service.yaml
apiVersion: v1
kind: Service
metadata:
  name: web
---
# Source: web/templates/hooks.yaml
apiVersion: batch/v1
kind: Job
metadata:
  name: migrate
  annotations:
    kubeship.io/hook: pre-install, pre-upgrade
    kubeship.io/hook-weight: "-5"
    kubeship.io/hook-delete-policy: hook-succeeded,hook-failed
---
# Source: web/templates/empty.yaml
---
# Source: web/templates/namespace.yaml
apiVersion: v1
kind: Namespace
metadata:
  name: web-ns
---
# Source: web/templates/secret.yaml
apiVersion: v1
kind: Secret
metadata:
  name: creds
stringData:
  token: abc
"""


def test_split_manifests_reads_sources_and_skips_empty():
    manifests = split_manifests(RENDERED)

    assert [m.name for m in manifests] == [
        "web/templates/service.yaml",
        "web/templates/hooks.yaml",
        "web/templates/namespace.yaml",
        "web/templates/secret.yaml",
    ]
    assert manifests[0].kind == "Service"
    assert manifests[0].object_name == "web"
    assert "# Source" not in manifests[0].content


def test_split_manifests_without_source_lines():
    manifests = split_manifests("kind: ConfigMap\nmetadata:\n  name: a\n---\nkind: ConfigMap\nmetadata:\n  name: b\n")

    assert [m.name for m in manifests] == ["manifest-0", "manifest-1"]


def test_split_manifests_invalid_yaml():
    with pytest.raises(ValidationError) as exc_info:
        split_manifests("# Source: web/templates/bad.yaml\nkind: [unclosed\n")

    assert "YAML parse error on web/templates/bad.yaml" in str(exc_info.value)


def test_sort_manifests_separates_hooks():
    hooks, manifests = sort_manifests(RENDERED)

    assert len(hooks) == 1
    hook = hooks[0]
    assert hook.name == "migrate"
    assert hook.kind == "Job"
    assert hook.path == "web/templates/hooks.yaml"
    assert hook.events == [HookEvent.PRE_INSTALL, HookEvent.PRE_UPGRADE]
    assert hook.weight == -5
    assert hook.delete_policies == [HookDeletePolicy.SUCCEEDED, HookDeletePolicy.FAILED]

    assert [m.kind for m in manifests] == ["Namespace", "Secret", "Service"]


def test_sort_manifests_skips_unknown_hook_event():
    text = """# Source: web/templates/odd.yaml
kind: Job
metadata:
  name: odd
  annotations:
    kubeship.io/hook: pre-lunch
"""
    hooks, manifests = sort_manifests(text)

    assert hooks == []
    assert manifests == []


def test_sort_by_kind_for_uninstall():
    _, manifests = sort_manifests(RENDERED)

    ordered = sort_manifests_by_kind(manifests, UNINSTALL_ORDER)

    assert [m.kind for m in ordered] == ["Service", "Secret", "Namespace"]


def test_unknown_kinds_sort_last_alphabetically():
    text = "kind: Zebra\nmetadata:\n  name: z\n---\nkind: Apple\nmetadata:\n  name: a\n---\nkind: Service\nmetadata:\n  name: s\n"

    _, manifests = sort_manifests(text)

    assert [m.kind for m in manifests] == ["Service", "Apple", "Zebra"]


def test_join_manifests_hides_secrets():
    _, manifests = sort_manifests(RENDERED)

    joined = join_manifests(manifests, hide_secret=True)

    assert HIDDEN_SECRET_LINE in joined
    assert "token: abc" not in joined
    assert "# Source: web/templates/secret.yaml" in joined
    assert "token: abc" in join_manifests(manifests)


def test_joined_manifest_parses_back():
    _, manifests = sort_manifests(RENDERED)

    resources = parse_resources(join_manifests(manifests), "spaced")

    assert [(r.kind, r.name, r.namespace) for r in resources] == [
        ("Namespace", "web-ns", None),
        ("Secret", "creds", "spaced"),
        ("Service", "web", "spaced"),
    ]


def test_write_manifests(tmp_path):
    hooks, manifests = sort_manifests(RENDERED)

    written = write_manifests(tmp_path, manifests, release_name="rel", hooks=hooks)

    service = tmp_path / "rel" / "web" / "templates" / "service.yaml"
    assert service in written
    assert service.read_text().startswith("---\n# Source: web/templates/service.yaml\n")
    assert (tmp_path / "rel" / "web" / "templates" / "hooks.yaml").is_file()
    assert not (tmp_path / "rel" / "web" / "templates" / "empty.yaml").exists()


def test_write_manifests_appends_same_source(tmp_path):
    text = "# Source: web/templates/all.yaml\nkind: ConfigMap\nmetadata:\n  name: a\n---\n# Source: web/templates/all.yaml\nkind: ConfigMap\nmetadata:\n  name: b\n"
    _, manifests = sort_manifests(text)

    written = write_manifests(tmp_path, manifests)

    assert len(written) == 1
    content = (tmp_path / "web" / "templates" / "all.yaml").read_text()
    assert "name: a" in content
    assert "name: b" in content


def test_parse_resources_requires_kind_and_name():
    with pytest.raises(ValidationError) as exc_info:
        parse_resources("kind: ConfigMap\nmetadata: {}\n")

    assert "missing kind or metadata.name" in str(exc_info.value)


def test_write_manifests_rejects_paths_outside_output_dir(tmp_path):
    out = tmp_path / "out"
    text = (
        "# Source: web/templates/ok.yaml\nkind: ConfigMap\nmetadata:\n  name: ok\n---\n"
        "# Source: ../../escaped.yaml\nkind: ConfigMap\nmetadata:\n  name: escaped\n"
    )
    _, manifests = sort_manifests(text)

    with pytest.raises(ValidationError) as exc_info:
        write_manifests(out, manifests, release_name="rel")

    assert "resolves outside of" in str(exc_info.value)
    assert not (tmp_path / "escaped.yaml").exists()
    assert not (out / "rel" / "web" / "templates" / "ok.yaml").exists()
