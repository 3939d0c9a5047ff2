"""Pure helpers for batching and payload rendering."""

import json
from collections.abc import Sequence
from typing import Any, TypeVar

T = TypeVar("T")


def chunk(items: Sequence[T], size: int) -> list[list[T]]:
    """Split a sequence into consecutive batches of ``size`` items.

    The last batch holds the remainder. Order is preserved and nothing
    is deduplicated.

    Args:
        items: Sequence to split.
        size: Maximum batch length.

    Returns:
        List of batches, or an empty list when ``size`` is not positive.
    """
    if size <= 0:
        return []

    return [list(items[start : start + size]) for start in range(0, len(items), size)]


def try_dump_json(value: Any) -> str:
    """Render a value as JSON, or an empty string if it cannot be serialised."""
    try:
        return json.dumps(value, ensure_ascii=False, sort_keys=True)
    except (TypeError, ValueError):
        return ""
