"""
Strategies for resolving a connection target described by content to a memory id.
"""

from typing import Callable, Iterable, Optional

from ..models.core import Memory

# (candidate_text, pool) -> memory id or None
TargetResolver = Callable[[str, Iterable[Memory]], Optional[str]]


def resolve_target_by_substring(candidate_text: str, pool: Iterable[Memory]) -> Optional[str]:
    """Return the id of the first memory whose content contains ``candidate_text``.

    Matching is case-insensitive. Blank text never matches.

    Args:
        candidate_text: Target description proposed by the extraction model
        pool: Memories the target may refer to, in priority order

    Returns:
        Matching memory id, or None
    """
    if not isinstance(candidate_text, str):
        return None
    needle = candidate_text.strip().lower()
    if not needle:
        return None

    for memory in pool:
        if needle in memory.content.lower():
            return memory.id
    return None
