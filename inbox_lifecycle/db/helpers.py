"""Database session helpers."""

from collections.abc import Iterator, Sequence
from typing import TypeVar

T = TypeVar("T")


def chunked(items: Sequence[T], size: int) -> Iterator[Sequence[T]]:
    """Yield consecutive slices of at most size items (bounds transaction size)."""
    size = max(1, size)
    for start in range(0, len(items), size):
        yield items[start : start + size]
