"""Staff ORM model: the read-only staff profile joined by reports."""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from staffops.common.constants import UserRole
from staffops.database import Base


class Staff(Base):
    __tablename__ = "staff"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    employee_code: Mapped[str] = mapped_column(sa.String(30), unique=True, nullable=False)
    first_name: Mapped[str] = mapped_column(sa.String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(sa.String(100), nullable=False)
    email: Mapped[str] = mapped_column(sa.String(255), unique=True, nullable=False)
    department: Mapped[Optional[str]] = mapped_column(sa.String(100), index=True)
    position: Mapped[Optional[str]] = mapped_column(sa.String(100))
    role: Mapped[str] = mapped_column(
        sa.String(20), nullable=False, default=UserRole.staff.value
    )
    is_active: Mapped[bool] = mapped_column(sa.Boolean, default=True)
    supervisor_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("staff.id")
    )
    date_of_joining: Mapped[Optional[date]] = mapped_column(sa.Date)
    # {leave_type: {"total": n, "taken": n, "remaining": n}}
    leave_balance: Mapped[Optional[dict]] = mapped_column(JSONB)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()
