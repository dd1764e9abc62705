"""
Completion idempotency guard.

Every completion is recorded under a key derived only from
``(user_id, quest_id)``, so a quest can be rewarded at most once per user no
matter how many times or how concurrently completion is attempted.

- ``check`` is a read-only fast path for the common repeat case
- ``reserve`` is the atomic create-if-absent that actually decides the
  winner; it must run inside the transaction that grants the XP
- ``record_completion`` is the raising variant for callers outside the
  completion protocol
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from src.core.logging.logger import get_logger
from src.core.store.base import CreateResult, RecordReader, RecordWriter
from src.domain.models.progression import COMPLETIONS_COLLECTION, QuestCompletion
from src.modules.shared.exceptions import CompletionAlreadyRecordedError

logger = get_logger(__name__)

KEY_SEPARATOR = "/"


class IdempotencyStatus(str, Enum):
    ELIGIBLE = "eligible"
    ALREADY_COMPLETED = "already_completed"


class Reservation(str, Enum):
    RESERVED = "reserved"
    CONFLICT = "conflict"


class IdempotencyGuard:
    """Stateless; all state lives in the ``quest_completions`` collection."""

    collection = COMPLETIONS_COLLECTION

    @staticmethod
    def completion_key(user_id: str, quest_id: str) -> str:
        """
        Deterministic ledger key.

        Validated identifiers never contain the separator, so distinct
        pairs always produce distinct keys.
        """
        return f"{user_id}{KEY_SEPARATOR}{quest_id}"

    async def check(
        self, reader: RecordReader, user_id: str, quest_id: str
    ) -> IdempotencyStatus:
        record = await reader.get_record(
            self.collection, self.completion_key(user_id, quest_id)
        )
        if record is None:
            return IdempotencyStatus.ELIGIBLE
        return IdempotencyStatus.ALREADY_COMPLETED

    async def reserve(
        self, writer: RecordWriter, completion: QuestCompletion
    ) -> Reservation:
        key = self.completion_key(completion.user_id, completion.quest_id)
        result = await writer.create_record(self.collection, key, completion.to_record())

        if result is CreateResult.ALREADY_EXISTS:
            logger.info(
                "Completion reservation lost to an existing record",
                extra={"user_id": completion.user_id, "quest_id": completion.quest_id},
            )
            return Reservation.CONFLICT
        return Reservation.RESERVED

    async def record_completion(
        self, writer: RecordWriter, completion: QuestCompletion
    ) -> None:
        """
        Raises:
            CompletionAlreadyRecordedError: a record already exists
            StoreError: the store could not perform the write
        """
        if await self.reserve(writer, completion) is Reservation.CONFLICT:
            raise CompletionAlreadyRecordedError(completion.user_id, completion.quest_id)

    async def get_completion(
        self, reader: RecordReader, user_id: str, quest_id: str
    ) -> Optional[QuestCompletion]:
        record = await reader.get_record(
            self.collection, self.completion_key(user_id, quest_id)
        )
        return QuestCompletion.from_record(record) if record is not None else None
