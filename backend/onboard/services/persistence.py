"""Persistence adapter: durable onboarding progress per workspace.

The engine never calls this directly. OnboardingService loads a fresh
context from it on every request and writes back only successful,
validated outcomes.

Writes take a row lock (SELECT ... FOR UPDATE) so two concurrent
requests cannot interleave their read-modify-write of the same
workspace's progress. SQLite ignores the lock clause.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from onboard.middleware.exceptions import WorkspaceNotFoundError
from onboard.models.workspace import Workspace

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WorkspaceMeta:
    name: str
    owner_id: str
    onboarding_completed: bool = False


class OnboardingStore(Protocol):
    async def load_completed_step_ids(self, workspace_id: str) -> list[str]: ...

    async def load_step_results(self, workspace_id: str) -> dict[str, Any]: ...

    async def load_skipped_step_ids(self, workspace_id: str) -> list[str]: ...

    async def append_completed_step_id(
        self, workspace_id: str, step_id: str, result: Any = None, skipped: bool = False
    ) -> None:
        """Record ``step_id`` as completed; a repeated id is a no-op for the id list.

        ``skipped`` additionally marks it as skipped by the user.
        """
        ...

    async def load_workspace_meta(self, workspace_id: str) -> WorkspaceMeta: ...

    async def mark_complete(self, workspace_id: str) -> None: ...


class SqlAlchemyOnboardingStore:
    """OnboardingStore over the ``workspaces`` table.

    Uses the caller's session and only flushes; committing is left to
    the request-scoped session dependency.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _get(self, workspace_id: str, *, for_update: bool = False) -> Workspace:
        stmt = select(Workspace).where(Workspace.id == workspace_id)
        if for_update:
            stmt = stmt.with_for_update()
        workspace = (await self.db.execute(stmt)).scalar_one_or_none()
        if workspace is None:
            raise WorkspaceNotFoundError(workspace_id)
        return workspace

    async def load_completed_step_ids(self, workspace_id: str) -> list[str]:
        workspace = await self._get(workspace_id)
        return list(workspace.completed_step_ids or [])

    async def load_step_results(self, workspace_id: str) -> dict[str, Any]:
        workspace = await self._get(workspace_id)
        return dict(workspace.step_results or {})

    async def load_skipped_step_ids(self, workspace_id: str) -> list[str]:
        workspace = await self._get(workspace_id)
        return list(workspace.skipped_step_ids or [])

    async def load_workspace_meta(self, workspace_id: str) -> WorkspaceMeta:
        workspace = await self._get(workspace_id)
        return WorkspaceMeta(
            name=workspace.name,
            owner_id=workspace.owner_id,
            onboarding_completed=bool(workspace.onboarding_completed),
        )

    async def append_completed_step_id(
        self, workspace_id: str, step_id: str, result: Any = None, skipped: bool = False
    ) -> None:
        workspace = await self._get(workspace_id, for_update=True)

        # Reassign rather than mutate so the JSON columns are marked dirty
        completed = list(workspace.completed_step_ids or [])
        if step_id not in completed:
            completed.append(step_id)
            workspace.completed_step_ids = completed

        if result is not None:
            results = dict(workspace.step_results or {})
            results[step_id] = result
            workspace.step_results = results

        skipped_ids = list(workspace.skipped_step_ids or [])
        if skipped and step_id not in skipped_ids:
            skipped_ids.append(step_id)
            workspace.skipped_step_ids = skipped_ids

        workspace.updated_at = datetime.utcnow()
        await self.db.flush()
        logger.info(
            "Marked step completed: %s",
            step_id,
            extra={
                "workspace_id": workspace_id,
                "step_id": step_id,
                "has_result": result is not None,
                "skipped": skipped,
            },
        )

    async def mark_complete(self, workspace_id: str) -> None:
        workspace = await self._get(workspace_id, for_update=True)
        workspace.onboarding_completed = True
        workspace.updated_at = datetime.utcnow()
        await self.db.flush()
        logger.info("Marked onboarding complete", extra={"workspace_id": workspace_id})
