"""Attendance ORM model: one record per staff member per calendar day."""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from staffops.database import Base


class AttendanceRecord(Base):
    __tablename__ = "attendance_records"
    __table_args__ = (
        sa.UniqueConstraint("staff_id", "date", name="uq_attendance_staff_date"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    staff_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("staff.id"), nullable=False, index=True
    )
    date: Mapped[date] = mapped_column(sa.Date, nullable=False, index=True)
    # AttendanceStatus value; stored as text so unknown values still load
    status: Mapped[Optional[str]] = mapped_column(sa.String(20))
    check_in_time: Mapped[Optional[datetime]] = mapped_column(
        sa.DateTime(timezone=True)
    )
    check_out_time: Mapped[Optional[datetime]] = mapped_column(
        sa.DateTime(timezone=True)
    )
    hours_worked: Mapped[Optional[float]] = mapped_column(sa.Float)
    remarks: Mapped[Optional[str]] = mapped_column(sa.Text)
    marked_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("staff.id")
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )


def compute_hours_worked(
    check_in: Optional[datetime],
    check_out: Optional[datetime],
) -> Optional[float]:
    """Hours between check-in and check-out, or None unless both are set."""
    if check_in is None or check_out is None:
        return None
    return (check_out - check_in).total_seconds() / 3600
