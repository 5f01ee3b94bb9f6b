"""Split key lists to respect per-call batch maxima."""

from collections.abc import Sequence


def chunked[T](keys: Sequence[T], max_size: int) -> list[list[T]]:
    """Split keys into contiguous groups of at most ``max_size``.

    Args:
        keys: Ordered keys.
        max_size: Largest allowed group.

    Returns:
        Groups in input order; only the last may be smaller.

    Raises:
        ValueError: If max_size is less than 1.
    """
    if max_size < 1:
        raise ValueError(f"max_size must be >= 1, got {max_size}")
    return [list(keys[i : i + max_size]) for i in range(0, len(keys), max_size)]
