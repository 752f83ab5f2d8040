"""Utilities for dropping repeated rows scraped from portal tables."""

from __future__ import annotations

import logging
from typing import Callable, Hashable, Iterable, List, TypeVar

T = TypeVar("T")

logger = logging.getLogger(__name__)


def dedupe_by_key(items: Iterable[T], key: Callable[[T], Hashable]) -> List[T]:
    """Keep the first item for each key, preserving order."""
    seen: set[Hashable] = set()
    unique_items: List[T] = []
    for item in items:
        item_key = key(item)
        if item_key in seen:
            logger.debug(f"Dropping duplicate row for key {item_key!r}")
            continue
        seen.add(item_key)
        unique_items.append(item)
    return unique_items
