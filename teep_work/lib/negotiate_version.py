"""Picks the TEEP protocol version both sides support."""
from typing import Optional, Tuple


def overlap(supported: Tuple[int, int], offered_min: int, offered_max: int) -> Optional[Tuple[int, int]]:
    lo = max(supported[0], offered_min)
    hi = min(supported[1], offered_max)
    if lo > hi:
        return None
    return lo, hi


def select_version(supported: Tuple[int, int], offered_min: int, offered_max: int) -> Optional[int]:
    """Highest version in both ranges, or None when they do not intersect."""
    common = overlap(supported, offered_min, offered_max)
    return common[1] if common else None


def in_range(supported: Tuple[int, int], version: int) -> bool:
    return supported[0] <= version <= supported[1]
