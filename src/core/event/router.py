"""
Wildcard routing for event names.

Patterns may contain ``*`` which matches any run of characters, including
dots: ``progression.*`` matches ``progression.leveled_up`` and
``*.breakthrough_ready`` matches ``progression.breakthrough_ready``.
Matching is case-sensitive; ``*`` alone matches everything.
"""

from __future__ import annotations


class EventRouter:
    """
    Stateless wildcard matcher.

    >>> router = EventRouter()
    >>> router.matches("progression.leveled_up", "progression.*")
    True
    >>> router.matches("progression.leveled_up", "submission.*")
    False
    """

    def is_pattern(self, name: str) -> bool:
        return "*" in name

    def matches(self, event_name: str, pattern: str) -> bool:
        if pattern == "*":
            return True
        if "*" not in pattern:
            return event_name == pattern

        while "**" in pattern:
            pattern = pattern.replace("**", "*")

        parts = pattern.split("*")
        head, tail = parts[0], parts[-1]

        if not event_name.startswith(head):
            return False
        if tail and not event_name.endswith(tail):
            return False
        if len(head) + len(tail) > len(event_name):
            return False

        # Middle fragments must appear in order between head and tail
        idx = len(head)
        limit = len(event_name) - len(tail)
        for mid in parts[1:-1]:
            if not mid:
                continue
            found = event_name.find(mid, idx, limit)
            if found == -1:
                return False
            idx = found + len(mid)

        return True


__all__ = ["EventRouter"]
