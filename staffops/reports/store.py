"""Record Accessor — the read-only record store the reports are computed from.

``RecordStore`` is the interface the report engine consumes; no aggregation
happens behind it. ``SqlRecordStore`` implements it over async SQLAlchemy and
opens one session per call so that concurrent sub-fetches of a single report
never share a session.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Optional, Protocol, Sequence

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from staffops.attendance.models import AttendanceRecord
from staffops.common.constants import EntityKind, UserRole
from staffops.common.exceptions import UpstreamFetchError
from staffops.common.filters import apply_filters, apply_sorting
from staffops.disciplinary.models import DisciplinaryCase
from staffops.leave.models import LeaveApplication
from staffops.reports.filters import RecordFilter
from staffops.staff.models import Staff

logger = logging.getLogger(__name__)

MODELS: dict[EntityKind, Any] = {
    EntityKind.staff: Staff,
    EntityKind.attendance: AttendanceRecord,
    EntityKind.leave: LeaveApplication,
    EntityKind.disciplinary: DisciplinaryCase,
}


class RecordStore(Protocol):
    async def fetch(
        self,
        entity: EntityKind,
        record_filter: Optional[RecordFilter] = None,
        *,
        sort: Optional[str] = None,
    ) -> Sequence[Any]:
        ...

    async def count(
        self,
        entity: EntityKind,
        record_filter: Optional[RecordFilter] = None,
    ) -> int:
        ...

    async def resolve_staff_ids_by_department(self, department: str) -> Sequence[uuid.UUID]:
        ...

    async def resolve_supervised_staff_ids(self, supervisor_id: uuid.UUID) -> Sequence[uuid.UUID]:
        ...

    async def get_active_staff_count(self) -> int:
        ...


class SqlRecordStore:
    """``RecordStore`` backed by an async SQLAlchemy session factory."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def fetch(
        self,
        entity: EntityKind,
        record_filter: Optional[RecordFilter] = None,
        *,
        sort: Optional[str] = None,
    ) -> list[Any]:
        if record_filter is not None and record_filter.matches_nothing:
            return []
        model = MODELS[entity]
        query = _filtered(select(model), model, record_filter)
        query = apply_sorting(query, model, sort)
        async with self._session_factory() as session:
            result = await self._execute(session, query, entity.value)
            return list(result.scalars().all())

    async def count(
        self,
        entity: EntityKind,
        record_filter: Optional[RecordFilter] = None,
    ) -> int:
        if record_filter is not None and record_filter.matches_nothing:
            return 0
        model = MODELS[entity]
        query = _filtered(select(func.count(model.id)), model, record_filter)
        async with self._session_factory() as session:
            result = await self._execute(session, query, entity.value)
            return result.scalar() or 0

    async def resolve_staff_ids_by_department(self, department: str) -> list[uuid.UUID]:
        query = select(Staff.id).where(Staff.department == department)
        async with self._session_factory() as session:
            result = await self._execute(session, query, "staff")
            return list(result.scalars().all())

    async def resolve_supervised_staff_ids(self, supervisor_id: uuid.UUID) -> list[uuid.UUID]:
        query = select(Staff.id).where(Staff.supervisor_id == supervisor_id)
        async with self._session_factory() as session:
            result = await self._execute(session, query, "staff")
            return list(result.scalars().all())

    async def get_active_staff_count(self) -> int:
        query = select(func.count(Staff.id)).where(
            Staff.role == UserRole.staff.value,
            Staff.is_active.is_(True),
        )
        async with self._session_factory() as session:
            result = await self._execute(session, query, "staff")
            return result.scalar() or 0

    @staticmethod
    async def _execute(session: AsyncSession, query, source: str):
        try:
            return await session.execute(query)
        except (SQLAlchemyError, OSError) as exc:
            logger.error("Record store fetch failed for %s: %s", source, exc)
            raise UpstreamFetchError(source, exc.__class__.__name__) from exc


def _filtered(query, model: Any, record_filter: Optional[RecordFilter]):
    if record_filter is None:
        return query
    return apply_filters(query, model, record_filter.to_query_filters())
