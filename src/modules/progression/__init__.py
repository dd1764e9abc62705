"""
Progression Module
==================

Domain: XP and levels

- formulas: pure XP/level arithmetic
- ProgressionService: user registration and progress reads
"""

from .formulas import ProgressionOutcome, apply_reward, level_for_xp
from .service import ProgressionService, ProgressSnapshot

__all__ = [
    "ProgressionOutcome",
    "ProgressionService",
    "ProgressSnapshot",
    "apply_reward",
    "level_for_xp",
]
