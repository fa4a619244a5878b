"""Tests for values merging."""

from __future__ import annotations

from kubeship.release.values import coalesce_tables, coalesce_values


def test_coalesce_tables_dst_wins():
    dst = {"image": {"tag": "2.0"}, "replicas": 3}
    src = {"image": {"tag": "1.0", "repository": "web"}, "replicas": 1, "port": 80}

    merged = coalesce_tables(dst, src)

    assert merged == {"image": {"tag": "2.0", "repository": "web"}, "replicas": 3, "port": 80}
    assert merged is dst


def test_coalesce_tables_null_deletes_key():
    merged = coalesce_tables({"sidecar": None, "name": "web"}, {"sidecar": {"enabled": True}})

    assert merged == {"name": "web"}


def test_coalesce_tables_keeps_table_over_scalar():
    merged = coalesce_tables({"resources": {"cpu": "1"}}, {"resources": "none"})

    assert merged == {"resources": {"cpu": "1"}}


def test_coalesce_tables_copies_from_src():
    src = {"labels": {"team": "core"}}

    merged = coalesce_tables({}, src)
    merged["labels"]["team"] = "other"

    assert src == {"labels": {"team": "core"}}


def test_coalesce_values_does_not_modify_arguments():
    defaults = {"replicas": 1, "image": {"tag": "1.0"}}
    supplied = {"image": {"tag": "2.0"}}

    merged = coalesce_values(defaults, supplied)

    assert merged == {"replicas": 1, "image": {"tag": "2.0"}}
    assert defaults == {"replicas": 1, "image": {"tag": "1.0"}}
    assert supplied == {"image": {"tag": "2.0"}}


def test_coalesce_values_without_supplied():
    assert coalesce_values({"replicas": 1}, None) == {"replicas": 1}
