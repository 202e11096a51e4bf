"""
Multipart chunk planning.

Splits a blob into the part layout used for multipart uploads. Pure and
deterministic: the same size and chunk size always produce the same parts.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import List

__all__ = ["Chunk", "plan_chunks"]


@dataclass(frozen=True, slots=True)
class Chunk:
    """One multipart part: 1-indexed part number and the byte range it covers."""
    part_number: int
    offset: int
    size: int


def plan_chunks(size: int, chunk_size: int) -> List[Chunk]:
    """
    Compute the part layout for a blob.

    Parts are numbered from 1, contiguous and non-overlapping. Every part is
    chunk_size bytes except the last, which holds the remainder.

    Args:
        size: Blob size in bytes
        chunk_size: Bytes per part

    Returns:
        Ordered parts covering [0, size); empty when size is 0

    Raises:
        ValueError: If chunk_size is not positive or size is negative

    Examples:
        >>> plan_chunks(10, 4)
        [Chunk(part_number=1, offset=0, size=4), Chunk(part_number=2, offset=4, size=4), Chunk(part_number=3, offset=8, size=2)]
    """
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")
    if size < 0:
        raise ValueError(f"size must be non-negative, got {size}")

    return [
        Chunk(part_number=index + 1, offset=offset, size=min(chunk_size, size - offset))
        for index, offset in enumerate(range(0, size, chunk_size))
    ]
