"""
Quest completion outcomes.

``complete_quest`` never raises for expected failures; it returns one of:

- ``Success``: XP was granted and the completion was recorded
- ``AlreadyCompleted``: the quest was completed earlier; nothing changed
- ``Failed``: nothing changed, with the stage and a stable error code
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from src.core.exceptions import StoreFailureCause


class CompletionStage(str, Enum):
    START = "start"
    VALIDATING = "validating"
    LOADING_USER = "loading_user"
    CHECKING_IDEMPOTENCY = "checking_idempotency"
    COMPUTING = "computing"
    PERSISTING_USER = "persisting_user"
    RECORDING_COMPLETION = "recording_completion"
    DONE = "done"
    FAILED = "failed"


class ErrorCode(str, Enum):
    INVALID_INPUT = "INVALID_INPUT"
    USER_NOT_FOUND = "USER_NOT_FOUND"
    QUEST_NOT_FOUND = "QUEST_NOT_FOUND"
    QUEST_EXPIRED = "QUEST_EXPIRED"
    PERSISTENCE_FAILED = "PERSISTENCE_FAILED"
    LEDGER_WRITE_FAILED = "LEDGER_WRITE_FAILED"
    INTERNAL_ERROR = "INTERNAL_ERROR"


@dataclass(frozen=True)
class Success:
    new_xp: int
    new_level: int
    leveled_up: bool
    xp_awarded: int
    message: str


@dataclass(frozen=True)
class AlreadyCompleted:
    user_id: str
    quest_id: str
    message: str = "Quest already completed"


@dataclass(frozen=True)
class Failed:
    """
    A completion that changed nothing.

    ``cause`` is set for store failures so callers can tell permission,
    connectivity and not-found problems apart. ``retryable`` says whether
    repeating the same call may succeed.
    """

    stage: CompletionStage
    error_code: ErrorCode
    reason: str
    cause: Optional[StoreFailureCause] = None
    retryable: bool = False


CompletionResult = Union[Success, AlreadyCompleted, Failed]
