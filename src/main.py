"""
Questline - Application Entry Point
===================================

Bootstrap
---------
- Config validation
- ConfigManager initialization (YAML tunables)
- Event bus (global singleton)
- Service container (store, cache, services)
- Graceful shutdown: in-flight completions finish before the store closes

Command Line
------------
    python -m src.main register user_000001 --name Ada --career "Web Developer"
    python -m src.main generate "Web Developer" --level 0
    python -m src.main quests "Web Developer"
    python -m src.main complete user_000001 daily-2025-01-06-web-developer-0
    python -m src.main complete user_000001 intro-quest --xp 50
    python -m src.main progress user_000001

The default ``sql`` backend keeps state in ``DATABASE_URL`` (a local SQLite
file unless configured) so consecutive invocations see each other's writes;
``STORE_BACKEND=memory`` keeps everything in-process for a single run.
"""

import argparse
import asyncio
import dataclasses
import json
import sys
from enum import Enum
from typing import Any, Dict, List, Optional

from src.core.config.config import Config
from src.core.config.manager import ConfigManager
from src.core.event import event_bus
from src.core.exceptions import QuestlineInfrastructureException
from src.core.logging.logger import LogContext, get_logger, shutdown_logging
from src.core.services.container import ServiceContainer
from src.domain.models.quest import Quest
from src.modules.quests.results import CompletionResult, Failed
from src.modules.shared.exceptions import QuestlineDomainException

logger = get_logger(__name__)


# ============================================================================
# Application Bootstrap
# ============================================================================

async def _startup() -> ServiceContainer:
    """Initialize infrastructure and services."""
    logger.info("========== QUESTLINE INITIALIZATION START ==========")

    Config.validate()
    ConfigManager.initialize(Config.CONFIG_DIR)

    container = ServiceContainer(
        config_manager=ConfigManager,
        event_bus=event_bus,
        logger=get_logger("src.core.services.container"),
    )
    try:
        await container.initialize()
    except Exception as exc:
        logger.critical(f"Service container initialization failed: {exc}", exc_info=True)
        raise

    logger.info("========== INFRASTRUCTURE INITIALIZED SUCCESSFULLY ==========")
    return container


async def _shutdown(container: Optional[ServiceContainer]) -> None:
    if container is None:
        return
    try:
        await container.shutdown()
    except QuestlineInfrastructureException as exc:
        logger.error(f"Service container shutdown error: {exc}", exc_info=True)
    logger.info("========== SHUTDOWN COMPLETE ==========")


# ============================================================================
# Output
# ============================================================================

def _plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {key: _plain(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(item) for item in value]
    return value


def result_to_dict(result: CompletionResult) -> Dict[str, Any]:
    return {"outcome": type(result).__name__, **_plain(dataclasses.asdict(result))}


def quest_to_dict(quest: Quest) -> Dict[str, Any]:
    return {"quest_id": quest.quest_id, **quest.to_record()}


def _emit(payload: Any) -> None:
    print(json.dumps(payload, indent=2, ensure_ascii=False))


# ============================================================================
# Commands
# ============================================================================

async def _cmd_register(container: ServiceContainer, args: argparse.Namespace) -> int:
    user = await container.progression.register_user(
        args.user_id, name=args.name, career=args.career
    )
    _emit({"user_id": user.user_id, **user.to_record()})
    return 0


async def _cmd_progress(container: ServiceContainer, args: argparse.Namespace) -> int:
    snapshot = await container.progression.get_progress(args.user_id)
    _emit(snapshot.to_dict())
    return 0


async def _cmd_complete(container: ServiceContainer, args: argparse.Namespace) -> int:
    if args.xp is not None:
        result = await container.completion.complete_quest(args.user_id, args.quest_id, args.xp)
    else:
        result = await container.boards.complete_quest(args.user_id, args.quest_id)
    _emit(result_to_dict(result))
    return 1 if isinstance(result, Failed) else 0


async def _cmd_generate(container: ServiceContainer, args: argparse.Namespace) -> int:
    quests = await container.boards.generate_quests(
        args.career, args.level, experience=args.experience
    )
    _emit([quest_to_dict(quest) for quest in quests])
    return 0


async def _cmd_quests(container: ServiceContainer, args: argparse.Namespace) -> int:
    quests = await container.boards.list_quests(args.career)
    _emit([quest_to_dict(quest) for quest in quests])
    return 0


_COMMANDS = {
    "register": _cmd_register,
    "progress": _cmd_progress,
    "complete": _cmd_complete,
    "generate": _cmd_generate,
    "quests": _cmd_quests,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="questline", description="Questline quest progression service"
    )
    sub = parser.add_subparsers(dest="command", required=True)

    register = sub.add_parser("register", help="Create a user's progression record")
    register.add_argument("user_id")
    register.add_argument("--name")
    register.add_argument("--career")

    progress = sub.add_parser("progress", help="Show a user's XP and level")
    progress.add_argument("user_id")

    complete = sub.add_parser("complete", help="Complete a quest for a user")
    complete.add_argument("user_id")
    complete.add_argument("quest_id")
    complete.add_argument(
        "--xp", type=int, help="Reward to grant; defaults to the issued quest's reward"
    )

    generate = sub.add_parser("generate", help="Issue today's and this week's quests")
    generate.add_argument("career")
    generate.add_argument("--level", type=int, default=0)
    generate.add_argument(
        "--experience",
        default="beginner",
        choices=["beginner", "intermediate", "advanced"],
    )

    quests = sub.add_parser("quests", help="List open quests for a career")
    quests.add_argument("career")

    return parser


async def main(argv: Optional[List[str]] = None) -> int:
    """Run one command. Returns the process exit code."""
    args = build_parser().parse_args(argv)
    container: Optional[ServiceContainer] = None

    try:
        container = await _startup()
        async with LogContext(component="cli", operation=args.command):
            return await _COMMANDS[args.command](container, args)

    except QuestlineDomainException as exc:
        _emit({"error": exc.to_dict()})
        return 1

    except QuestlineInfrastructureException as exc:
        logger.error(f"Command failed: {exc}", exc_info=True)
        _emit({"error": exc.to_dict()})
        return 2

    finally:
        await _shutdown(container)


def run() -> None:
    """Console script entry point."""
    try:
        code = asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Stopped via keyboard interrupt.")
        code = 130
    finally:
        shutdown_logging()
    sys.exit(code)


if __name__ == "__main__":
    run()
