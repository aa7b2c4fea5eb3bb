"""Uploaded course materials (one row per upload)."""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import String, Text, DateTime
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class CourseSubmission(Base):
    __tablename__ = "course_submissions"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    owner_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    course_title: Mapped[str] = mapped_column(String(120), nullable=False)
    course_description: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    # One-or-many storage paths, see materials.paths
    slides_storage_path: Mapped[str] = mapped_column(Text, nullable=False)
    sample_storage_path: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
