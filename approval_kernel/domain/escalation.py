"""
Escalation policy shared by the bypass and settlement flows.

A ladder is an ordered tuple of roles, lowest authority first.  Escalating
a level moves its required role one rung up the ladder of the workflow's
category; categories without their own ladder use ``default_ladder``.
Settlement workflows are the degenerate case: one level whose role climbs
a six-rung ladder (escalation levels 0-5).
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field


@dataclass(frozen=True)
class EscalationPolicy:
    """Per-category escalation ladders."""

    default_ladder: tuple[str, ...]
    ladders: Mapping[str, tuple[str, ...]] = field(default_factory=dict)

    def __post_init__(self) -> None:
        for name, ladder in (("default", self.default_ladder), *self.ladders.items()):
            if not ladder:
                raise ValueError(f"Escalation ladder '{name}' is empty")
            if len(set(ladder)) != len(ladder):
                raise ValueError(f"Escalation ladder '{name}' repeats a role")

    def ladder_for(self, category: str) -> tuple[str, ...]:
        return self.ladders.get(category, self.default_ladder)

    def rank(self, category: str, role: str) -> int | None:
        """Position of ``role`` on the category's ladder, or None."""
        ladder = self.ladder_for(category)
        return ladder.index(role) if role in ladder else None

    def next_role(self, category: str, role: str) -> str | None:
        """The role one rung above ``role``; None at the top or off-ladder."""
        rank = self.rank(category, role)
        ladder = self.ladder_for(category)
        if rank is None or rank + 1 >= len(ladder):
            return None
        return ladder[rank + 1]

    def can_escalate(self, category: str, actor_role: str, current_role: str) -> bool:
        """Actors at or above the current level's rung may escalate it."""
        if actor_role == current_role:
            return True
        actor_rank = self.rank(category, actor_role)
        current_rank = self.rank(category, current_role)
        if actor_rank is None or current_rank is None:
            return False
        return actor_rank >= current_rank

    def max_level(self, category: str) -> int:
        """Highest reachable escalation level (rungs above the first)."""
        return len(self.ladder_for(category)) - 1
