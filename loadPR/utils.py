from typing import Iterator, List, Sequence, TypeVar

T = TypeVar('T')


def stable_hash(value: str) -> int:
    """
    Deterministic 32-bit string hash (h = h * 31 + codepoint, wrapping signed).

    Unlike the builtin hash() this does not change between interpreter runs,
    so provider and credential selection is reproducible.
    """
    h = 0
    for ch in value:
        h = (h * 31 + ord(ch)) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return h


def chunked(items: Sequence[T], size: int) -> Iterator[List[T]]:
    """Yield consecutive slices of at most `size` items."""
    if size <= 0:
        raise ValueError(f"chunk size must be positive, got {size}")
    for start in range(0, len(items), size):
        yield list(items[start:start + size])
