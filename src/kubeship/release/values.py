"""Configuration value merging."""

import copy
from typing import Any, Dict, Optional

from kubeship.utils.logging import get_logger

logger = get_logger(__name__)


def coalesce_tables(dst: Dict[str, Any], src: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Merge src into dst, with values already in dst taking precedence.

    Nested mappings are merged recursively. A key set to None in dst removes
    it from the result even if src provides a value.

    Args:
        dst: Values with higher precedence, modified in place
        src: Values with lower precedence

    Returns:
        The merged dst mapping
    """
    if src is None:
        return dst

    for key, value in src.items():
        if key not in dst:
            dst[key] = copy.deepcopy(value)
            continue

        current = dst[key]
        if current is None:
            del dst[key]
        elif isinstance(current, dict) and isinstance(value, dict):
            coalesce_tables(current, value)
        elif isinstance(current, dict) != isinstance(value, dict) and value is not None:
            logger.warning(
                f"Cannot overwrite table with non table for {key} (keeping {type(current).__name__})"
            )

    # Remove explicit nulls that had nothing beneath them
    for key in [k for k, v in dst.items() if v is None]:
        del dst[key]

    return dst


def coalesce_values(defaults: Optional[Dict[str, Any]], supplied: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Compute render values: supplied values layered over bundle defaults.

    Args:
        defaults: Default values shipped with the bundle
        supplied: Values supplied by the caller

    Returns:
        New merged mapping; neither argument is modified
    """
    merged = copy.deepcopy(supplied) if supplied else {}
    return coalesce_tables(merged, defaults or {})
