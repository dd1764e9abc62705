"""
Wildcard matching for event subscriptions.

Patterns
--------
- ``"*"`` matches every event
- ``"quest.*"`` matches ``quest.completed``, ``quest.generated``
- ``"*.leveled_up"`` matches ``progression.leveled_up``
- a pattern without ``*`` matches only the identical event name
"""

from __future__ import annotations

from typing import Iterable


def matches(event_name: str, pattern: str) -> bool:
    """
    Check whether ``event_name`` matches ``pattern``.

    Examples
    --------
    >>> matches("quest.completed", "quest.*")
    True
    >>> matches("progression.leveled_up", "quest.*")
    False
    """
    if pattern == "*":
        return True
    if "*" not in pattern:
        return event_name == pattern

    while "**" in pattern:
        pattern = pattern.replace("**", "*")

    parts = pattern.split("*")
    if parts[0] and not event_name.startswith(parts[0]):
        return False
    if parts[-1] and not event_name.endswith(parts[-1]):
        return False

    # Middle fragments must appear in order between prefix and suffix.
    idx = len(parts[0])
    limit = len(event_name) - len(parts[-1])
    for mid in parts[1:-1]:
        if not mid:
            continue
        found = event_name.find(mid, idx, limit)
        if found == -1:
            return False
        idx = found + len(mid)

    return idx <= limit


def matching_patterns(event_name: str, patterns: Iterable[str]) -> list[str]:
    """Subscription keys that receive ``event_name``, exact key first."""
    keys = list(patterns)
    result = [event_name] if event_name in keys else []
    result.extend(
        key for key in keys if key != event_name and "*" in key and matches(event_name, key)
    )
    return result
