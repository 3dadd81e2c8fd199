"""Management CLI tests against the SQLite test engine."""

import json

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from conftest import OWNER_ID, WORKSPACE_ID, make_step
from onboard import cli
from onboard.engine import StepRegistry
from onboard.models.workspace import Workspace
from onboard.services.persistence import SqlAlchemyOnboardingStore


async def _failing(data, context):
    raise RuntimeError("CRM rejected the request")


@pytest.fixture
def cli_registry(chain_registry) -> StepRegistry:
    return chain_registry


@pytest_asyncio.fixture
async def cli_sessions(test_engine, cli_registry, monkeypatch):
    """Point the CLI at the test engine and registry, with a committed workspace."""
    sessions = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)
    async with sessions() as db:
        db.add(Workspace(id=WORKSPACE_ID, name="Acme", owner_id=OWNER_ID))
        await db.commit()

    monkeypatch.setattr(cli, "async_session", sessions)
    monkeypatch.setattr(cli, "build_default_registry", lambda: cli_registry)
    return sessions


@pytest.mark.unit
class TestDispatch:
    """Argument handling that needs no database."""

    def test_list_steps(self, chain_registry, monkeypatch, capsys):
        monkeypatch.setattr(cli, "build_default_registry", lambda: chain_registry)

        cli.main(["list-steps"])
        out = capsys.readouterr().out

        assert "p1" in out
        assert "(after p1)" in out
        assert "2 step(s), 2 required" in out

    @pytest.mark.parametrize("argv", [[], ["state"], ["migrate"]])
    def test_usage(self, argv, capsys):
        cli.main(argv)

        assert capsys.readouterr().out.startswith("Usage: python -m onboard.cli")


@pytest.mark.integration
@pytest.mark.asyncio
class TestWorkspaceCommands:
    """state and run against a stored workspace."""

    async def test_show_state(self, cli_sessions, capsys):
        await cli.show_state(WORKSPACE_ID)
        state = json.loads(capsys.readouterr().out)

        assert state["current_step_id"] == "p1"
        assert state["step_statuses"] == {"p1": "in_progress", "p2": "pending"}
        assert state["is_complete"] is False

    async def test_run_persists_progress(self, cli_sessions, capsys):
        await cli.run_remaining(WORKSPACE_ID)
        out = capsys.readouterr().out

        assert "p1 started" in out
        assert "p2 completed" in out
        assert "OK (2 step(s) complete)" in out
        async with cli_sessions() as db:
            store = SqlAlchemyOnboardingStore(db)
            assert await store.load_completed_step_ids(WORKSPACE_ID) == ["p1", "p2"]

    @pytest.mark.parametrize(
        "cli_registry",
        [StepRegistry.from_steps([make_step("connect-crm", 1, execute=_failing)])],
    )
    async def test_run_failure_exits_nonzero(self, cli_sessions, capsys):
        with pytest.raises(SystemExit) as exc_info:
            await cli.run_remaining(WORKSPACE_ID)

        assert exc_info.value.code == 1
        assert "FAILED: CRM rejected the request" in capsys.readouterr().out
