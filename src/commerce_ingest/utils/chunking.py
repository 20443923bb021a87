"""Chunking utilities for batched imports."""

from __future__ import annotations

from typing import TypeVar

T = TypeVar("T")


def chunk_list(items: list[T], chunk_size: int = 50) -> list[list[T]]:
    """Split a list into chunks of the given size.

    Args:
        items: The list to split.
        chunk_size: Maximum items per chunk (CSV imports commit in groups of 50).

    Returns:
        A list of sub-lists, each with at most chunk_size items.
    """
    if chunk_size < 1:
        raise ValueError("chunk_size must be positive")
    return [items[i : i + chunk_size] for i in range(0, len(items), chunk_size)]
