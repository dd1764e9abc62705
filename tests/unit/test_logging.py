"""
Unit tests for the logging subsystem: context binding, formatting and the
bounded queue.
"""

import asyncio
import json
import logging
import queue
import sys

from src.core.logging.logger import (
    BoundedQueueHandler,
    ContextFilter,
    JSONFormatter,
    LogContext,
    _build_console_handler,
    get_log_context,
)


def _record(name="questline.quests.completion", msg="hello", **extra):
    record = logging.makeLogRecord({"name": name, "msg": msg, "levelname": "INFO"})
    record.__dict__.update(extra)
    return record


class TestLogContext:

    def test_fields_are_bound_to_records(self):
        with LogContext(user_id="user_000001", quest_id="quest-a", operation="complete_quest") as ctx:
            record = _record()
            ContextFilter().filter(record)

        assert record.user_id == "user_000001"
        assert record.quest_id == "quest-a"
        assert record.operation == "complete_quest"
        assert record.correlation_id == ctx.correlation_id
        assert record.component == "completion"

    def test_unbound_fields_default_to_na(self):
        record = _record()
        ContextFilter().filter(record)

        assert record.user_id == "N/A"
        assert record.correlation_id == "N/A"

    def test_nested_context_inherits_and_restores(self):
        with LogContext(user_id="user_000001", component="cli") as outer:
            with LogContext(quest_id="quest-a", component="quests") as inner:
                bound = get_log_context()
                assert bound["user_id"] == "user_000001"
                assert bound["component"] == "quests"
                assert inner.correlation_id == outer.correlation_id

            assert get_log_context() == outer.context

        assert get_log_context() == {}

    def test_get_log_context_returns_copy(self):
        with LogContext(user_id="user_000001"):
            get_log_context()["user_id"] = "someone_else"

            assert get_log_context()["user_id"] == "user_000001"

    async def test_tasks_do_not_share_context(self):
        seen = {}

        async def work(user_id):
            async with LogContext(user_id=user_id):
                await asyncio.sleep(0)
                seen[user_id] = get_log_context()["user_id"]

        await asyncio.gather(work("user_000001"), work("user_000002"))

        assert seen == {"user_000001": "user_000001", "user_000002": "user_000002"}


class TestFormatting:

    def test_json_carries_context_and_extra(self):
        with LogContext(user_id="user_000001", operation="complete_quest"):
            record = _record(stage="computing")
            ContextFilter().filter(record)

        payload = json.loads(JSONFormatter().format(record))

        assert payload["message"] == "hello"
        assert payload["user_id"] == "user_000001"
        assert "quest_id" not in payload
        assert payload["extra"] == {"stage": "computing"}

    def test_console_goes_to_stderr(self):
        handler = _build_console_handler()

        assert handler.stream is sys.stderr


class TestBoundedQueue:

    def test_full_queue_drops_record(self, capsys):
        handler = BoundedQueueHandler(queue.Queue(1))

        handler.enqueue(_record(msg="kept"))
        handler.enqueue(_record(msg="dropped"))

        assert handler.queue.qsize() == 1
        assert handler.queue.get_nowait().msg == "kept"
        assert "dropped record" in capsys.readouterr().err
