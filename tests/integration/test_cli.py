"""
Integration tests for the command line entry point.

Every ``main()`` call bootstraps and shuts down the full stack the way a
separate process would, against a SQLite file in ``tmp_path``.
"""

import json

import pytest

from src.core.config.config import Config
from src.core.database.service import DatabaseService
from src.main import build_parser, main

from tests.conftest import TEST_USER_ID

pytestmark = [pytest.mark.integration, pytest.mark.database]


# ============================================================================
# COMMAND LINE
# ============================================================================


@pytest.fixture
def cli_database(monkeypatch, tmp_path):
    """Each ``main()`` call opens this SQLite file like a separate process would."""
    monkeypatch.delenv("STORE_BACKEND", raising=False)
    monkeypatch.setenv("DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'questline.db'}")
    monkeypatch.setenv("LOGS_DIR", str(tmp_path / "logs"))
    Config.reset()
    yield tmp_path / "questline.db"
    monkeypatch.undo()
    Config.reset()
    Config.validate()


def read_output(capsys):
    return json.loads(capsys.readouterr().out)


class TestCommandLine:
    """Commands run against the default SQL backend; state persists between runs."""

    def test_parser_requires_command(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    async def test_register_then_complete_then_progress(self, cli_database, capsys):
        assert await main(["register", TEST_USER_ID, "--name", "Ada"]) == 0
        assert read_output(capsys)["xp"] == 0
        assert cli_database.exists()
        assert not DatabaseService.is_initialized()

        assert await main(["complete", TEST_USER_ID, "quest-a", "--xp", "280"]) == 0
        assert read_output(capsys)["outcome"] == "Success"

        assert await main(["complete", TEST_USER_ID, "quest-b", "--xp", "50"]) == 0
        output = read_output(capsys)
        assert output["leveled_up"] is True
        assert output["message"] == "Level up! 50 XP gained, you reached level 1"

        assert await main(["progress", TEST_USER_ID]) == 0
        assert read_output(capsys)["level"] == 1

    async def test_duplicate_completion_across_runs(self, cli_database, capsys):
        await main(["register", TEST_USER_ID])
        await main(["complete", TEST_USER_ID, "quest-a", "--xp", "10"])
        capsys.readouterr()

        assert await main(["complete", TEST_USER_ID, "quest-a", "--xp", "10"]) == 0
        assert read_output(capsys)["outcome"] == "AlreadyCompleted"

        await main(["progress", TEST_USER_ID])
        assert read_output(capsys)["xp"] == 10

    async def test_failed_completion_exit_code(self, cli_database, capsys):
        code = await main(["complete", TEST_USER_ID, "no-such-quest"])

        output = read_output(capsys)
        assert code == 1
        assert output["outcome"] == "Failed"
        assert output["stage"] == "validating"
        assert output["error_code"] == "QUEST_NOT_FOUND"

    async def test_domain_error_exit_code(self, cli_database, capsys):
        code = await main(["progress", "user_999999"])

        assert code == 1
        assert read_output(capsys)["error"]["error_code"] == "USER_NOT_FOUND"

    async def test_generate_then_list_in_next_run(self, cli_database, capsys):
        assert await main(["generate", "Web Developer"]) == 0
        generated = read_output(capsys)

        assert await main(["quests", "Web Developer"]) == 0
        listed = read_output(capsys)

        assert generated
        assert [q["quest_id"] for q in listed] == [q["quest_id"] for q in generated]

    async def test_memory_backend_does_not_persist(self, cli_database, monkeypatch, capsys):
        monkeypatch.setenv("STORE_BACKEND", "memory")
        Config.reset()

        await main(["register", TEST_USER_ID])
        capsys.readouterr()

        assert await main(["progress", TEST_USER_ID]) == 1
        assert not cli_database.exists()
