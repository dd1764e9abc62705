"""
Questline Progression Formulas

Purpose
-------
Pure calculation functions for XP and level progression. A level is a fixed
band of ``threshold`` XP: ``level = xp // threshold``.

Design Notes
------------
- Pure functions only (no side effects, no config access)
- Integer arithmetic throughout
- The threshold is passed in explicitly; callers load it once from
  ``progression.level_xp_threshold``

Usage
-----
    from src.modules.progression.formulas import apply_reward

    outcome = apply_reward(current_xp=280, current_level=0, xp_reward=50,
                           threshold=300)
    outcome.new_level  # 1
"""

from __future__ import annotations

from dataclasses import dataclass

from src.domain.models.base import validate_non_negative, validate_positive

DEFAULT_LEVEL_XP_THRESHOLD = 300


@dataclass(frozen=True)
class ProgressionOutcome:
    """Result of applying one XP reward."""

    new_xp: int
    new_level: int
    leveled_up: bool


def level_for_xp(xp: int, threshold: int = DEFAULT_LEVEL_XP_THRESHOLD) -> int:
    """
    Level reached with `xp` total experience.

    Example:
        >>> level_for_xp(299)
        0
        >>> level_for_xp(300)
        1
    """
    validate_non_negative(xp, "xp")
    validate_positive(threshold, "threshold")
    return xp // threshold


def apply_reward(
    current_xp: int,
    current_level: int,
    xp_reward: int,
    threshold: int = DEFAULT_LEVEL_XP_THRESHOLD,
) -> ProgressionOutcome:
    """
    Apply an XP reward.

    ``current_level`` is taken as given (it is expected to already equal
    ``current_xp // threshold``); the new level is always recomputed from the
    new XP total, never incremented.

    Args:
        current_xp: XP before the reward (>= 0)
        current_level: Level before the reward (>= 0)
        xp_reward: Reward to apply (> 0)
        threshold: XP per level (> 0)

    Raises:
        DomainValidationError: If any argument violates its precondition

    Example:
        >>> apply_reward(280, 0, 50)
        ProgressionOutcome(new_xp=330, new_level=1, leveled_up=True)
        >>> apply_reward(50, 0, 30)
        ProgressionOutcome(new_xp=80, new_level=0, leveled_up=False)
    """
    validate_non_negative(current_xp, "current_xp")
    validate_non_negative(current_level, "current_level")
    validate_positive(xp_reward, "xp_reward")
    validate_positive(threshold, "threshold")

    new_xp = current_xp + xp_reward
    new_level = new_xp // threshold
    return ProgressionOutcome(
        new_xp=new_xp,
        new_level=new_level,
        leveled_up=new_level > current_level,
    )


def xp_to_next_level(xp: int, threshold: int = DEFAULT_LEVEL_XP_THRESHOLD) -> int:
    """
    XP still needed to reach the next level. Always in ``1..threshold``.

    Example:
        >>> xp_to_next_level(330)
        270
        >>> xp_to_next_level(300)
        300
    """
    return threshold - xp_into_level(xp, threshold)


def xp_into_level(xp: int, threshold: int = DEFAULT_LEVEL_XP_THRESHOLD) -> int:
    """XP earned since the start of the current level."""
    validate_non_negative(xp, "xp")
    validate_positive(threshold, "threshold")
    return xp % threshold


def progress_percent(xp: int, threshold: int = DEFAULT_LEVEL_XP_THRESHOLD) -> int:
    """
    Whole-number percentage through the current level (0-99).

    Example:
        >>> progress_percent(150)
        50
    """
    return xp_into_level(xp, threshold) * 100 // threshold
