"""Disciplinary ORM model: DisciplinaryCase."""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from staffops.common.constants import CaseStatus
from staffops.database import Base


class DisciplinaryCase(Base):
    __tablename__ = "disciplinary_cases"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    staff_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("staff.id"), nullable=False, index=True
    )
    infraction_type: Mapped[Optional[str]] = mapped_column(sa.String(20))
    status: Mapped[Optional[str]] = mapped_column(
        sa.String(20), default=CaseStatus.open.value
    )
    date_of_infraction: Mapped[Optional[date]] = mapped_column(sa.Date)
    description: Mapped[Optional[str]] = mapped_column(sa.Text)
    sanction: Mapped[Optional[str]] = mapped_column(sa.String(100))
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
