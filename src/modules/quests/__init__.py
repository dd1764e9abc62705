"""
Quests Module
=============

Domain: quest issuing and the exactly-once completion protocol

Services:
- QuestCompletionService: grants a quest's XP once per user
- QuestBoardService: daily/weekly boards from the template catalog
"""

from .board_service import QuestBoardService
from .catalog import QuestCatalog, QuestTemplate
from .completion_service import QuestCompletionService
from .idempotency import IdempotencyGuard, IdempotencyStatus, Reservation
from .results import (
    AlreadyCompleted,
    CompletionResult,
    CompletionStage,
    ErrorCode,
    Failed,
    Success,
)

__all__ = [
    "AlreadyCompleted",
    "CompletionResult",
    "CompletionStage",
    "ErrorCode",
    "Failed",
    "IdempotencyGuard",
    "IdempotencyStatus",
    "QuestBoardService",
    "QuestCatalog",
    "QuestCompletionService",
    "QuestTemplate",
    "Reservation",
    "Success",
]
