"""Management CLI for onboarding operations.

Usage:
    python -m onboard.cli init-db               # Create the workspaces table
    python -m onboard.cli list-steps            # Show the registered steps in order
    python -m onboard.cli state <workspace_id>  # Print a workspace's onboarding state
    python -m onboard.cli run <workspace_id>    # Run every remaining automatic step

API steps post to APP_BASE_URL, so `run` needs the service to be up.
"""

import asyncio
import json
import sys

from onboard.config import settings
from onboard.database import async_session, create_all, engine
from onboard.engine.types import ProgressStatus
from onboard.services.onboarding import OnboardingService
from onboard.services.persistence import SqlAlchemyOnboardingStore
from onboard.steps import build_default_registry
from onboard.utils.log import configure_logging


def list_steps():
    registry = build_default_registry()
    for step in registry:
        flag = "required" if step.required else "optional"
        deps = f" (after {', '.join(step.dependencies)})" if step.dependencies else ""
        print(f"  {step.order:>3}  {step.id:<30} {flag}{deps}")
    print(f"\n{len(registry)} step(s), {registry.get_required_step_count()} required")


async def _with_service(workspace_id: str, action):
    async with async_session() as db:
        service = OnboardingService(build_default_registry(), SqlAlchemyOnboardingStore(db))
        try:
            outcome = await action(service, workspace_id)
            await db.commit()
            return outcome
        except Exception:
            await db.rollback()
            raise


async def show_state(workspace_id: str):
    state = await _with_service(workspace_id, lambda s, ws: s.get_state(ws))
    print(json.dumps(state.model_dump(mode="json"), indent=2))


def _print_progress(step_id: str, status: ProgressStatus):
    print(f"  {step_id} {status.value}")


async def run_remaining(workspace_id: str):
    run = await _with_service(
        workspace_id, lambda s, ws: s.run_remaining(ws, on_progress=_print_progress)
    )
    if run.success:
        print(f"  OK ({len(run.completed_step_ids)} step(s) complete)")
    else:
        print(f"  FAILED: {run.error}")
        sys.exit(1)


async def init_db():
    await create_all()
    print("  Tables created.")


def _run(coro):
    async def runner():
        try:
            await coro
        finally:
            await engine.dispose()

    asyncio.run(runner())


def main(argv: list[str]) -> None:
    cmd = argv[0] if argv else ""
    arg = argv[1] if len(argv) > 1 else ""
    if cmd == "init-db":
        _run(init_db())
    elif cmd == "list-steps":
        list_steps()
    elif cmd == "state" and arg:
        _run(show_state(arg))
    elif cmd == "run" and arg:
        _run(run_remaining(arg))
    else:
        print("Usage: python -m onboard.cli [init-db|list-steps|state <workspace_id>|run <workspace_id>]")


if __name__ == "__main__":
    configure_logging(settings.log_level)
    main(sys.argv[1:])
