"""Workspace record, reduced to what onboarding needs to resume.

completed_step_ids is append-only and order-preserving; step_results
holds the validated result of each completed step, keyed by step id.
skipped_step_ids is the subset of completed steps the user chose to skip.
"""

import uuid
from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from onboard.database import Base


class Workspace(Base):
    __tablename__ = "workspaces"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    owner_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    onboarding_completed: Mapped[bool] = mapped_column(Boolean, default=False)
    completed_step_ids: Mapped[list] = mapped_column(JSON, default=list)
    step_results: Mapped[dict] = mapped_column(JSON, default=dict)
    skipped_step_ids: Mapped[list] = mapped_column(JSON, default=list)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )
