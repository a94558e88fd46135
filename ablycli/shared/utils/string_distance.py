from __future__ import annotations

from typing import Iterable, Optional

from jellyfish import levenshtein_distance

MAX_DISTANCE = 3


def closest_command(target: str, candidates: Iterable[str]) -> Optional[str]:
    """
    Return the closest known command, or None when nothing is close enough.

    Comparison ignores case and treats ':' and ' ' as the same separator
    so "channels:subscribe" matches "channels subscribe".
    """
    needle = target.lower().replace(":", " ").strip()
    if not needle:
        return None

    threshold = min(max(1, len(needle) // 2), MAX_DISTANCE)
    best: Optional[str] = None
    best_distance = threshold + 1

    for candidate in candidates:
        distance = levenshtein_distance(needle, candidate.lower())
        if distance < best_distance:
            best = candidate
            best_distance = distance

    return best if best_distance <= threshold else None


__all__ = ["levenshtein_distance", "closest_command"]
