"""Helpers for working with lists of release records."""

from typing import Callable, Dict, Iterable, List

from kubeship.release.models import Release, ReleaseStatus


def sort_by_version(releases: Iterable[Release], reverse: bool = False) -> List[Release]:
    """Sort releases by version, oldest first unless reverse is set."""
    return sorted(releases, key=lambda r: r.version, reverse=reverse)


def with_status(*statuses: ReleaseStatus) -> Callable[[Release], bool]:
    """Build a predicate matching any of the given statuses."""
    return lambda r: r.info.status in statuses


def merge_custom_labels(current: Dict[str, str], desired: Dict[str, str]) -> Dict[str, str]:
    """Merge labels of the previous release with newly supplied ones.

    A supplied value of "null" removes the label.
    """
    labels = dict(current)
    for key, value in desired.items():
        if value == "null":
            labels.pop(key, None)
        else:
            labels[key] = value
    return labels
