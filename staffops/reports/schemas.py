"""Report Pydantic v2 schemas — request parameters, caller scope, statistic
blocks and the canonical ``Report`` consumed by every renderer.

Naming conventions:
  - *Params            → parsed request input
  - *Summary / *Stats  → statistic blocks produced by the aggregator
  - Report             → format-independent result, never persisted
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Any, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from staffops.common.constants import (
    InfractionType,
    LeaveType,
    ReportPeriod,
    ReportType,
    UserRole,
)
from staffops.common.exceptions import InvalidParameterException


# ═════════════════════════════════════════════════════════════════════
# Request input
# ═════════════════════════════════════════════════════════════════════


class ReportParams(BaseModel):
    """Optional filter parameters shared by every report type.

    Field aliases match the query-string names (``startDate``, ``staffId``…).
    """

    model_config = ConfigDict(
        populate_by_name=True,
        extra="ignore",
        str_strip_whitespace=True,
        frozen=True,
    )

    start_date: Optional[date] = Field(None, alias="startDate")
    end_date: Optional[date] = Field(None, alias="endDate")
    department: Optional[str] = None
    staff_id: Optional[uuid.UUID] = Field(None, alias="staffId")
    leave_type: Optional[LeaveType] = Field(None, alias="leaveType")
    infraction_type: Optional[InfractionType] = Field(None, alias="infractionType")
    status: Optional[str] = None
    period: Optional[ReportPeriod] = None
    reference_date: Optional[date] = Field(None, alias="referenceDate")

    @field_validator("*", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @classmethod
    def parse(cls, raw: Optional[Mapping[str, Any]] = None) -> ReportParams:
        """Validate raw parameters, surfacing the first problem as
        ``InvalidParameterException``."""
        try:
            params = cls.model_validate(dict(raw or {}))
        except ValidationError as exc:
            err = exc.errors()[0]
            field = ".".join(str(p) for p in err.get("loc", ())) or "parameters"
            raise InvalidParameterException(field, err.get("msg", "is invalid")) from exc

        if (
            params.start_date is not None
            and params.end_date is not None
            and params.start_date > params.end_date
        ):
            raise InvalidParameterException("startDate", "must not be after endDate")
        return params

    @property
    def has_date_range(self) -> bool:
        return self.start_date is not None and self.end_date is not None

    def echo(self) -> dict[str, Any]:
        """Parameters that were actually supplied, keyed by their aliases."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class CallerScope(BaseModel):
    """Who is asking, and which staff they may see.

    ``allowed_staff_ids`` of ``None`` means full access.
    """

    model_config = ConfigDict(frozen=True)

    role: UserRole
    staff_id: Optional[uuid.UUID] = None
    allowed_staff_ids: Optional[frozenset[uuid.UUID]] = None

    @classmethod
    def full_access(
        cls,
        role: UserRole = UserRole.admin,
        staff_id: Optional[uuid.UUID] = None,
    ) -> CallerScope:
        return cls(role=role, staff_id=staff_id)

    def permits(self, staff_id: uuid.UUID) -> bool:
        return self.allowed_staff_ids is None or staff_id in self.allowed_staff_ids


# ═════════════════════════════════════════════════════════════════════
# Statistic blocks
# ═════════════════════════════════════════════════════════════════════


class AttendanceSummary(BaseModel):
    """Status tally and accounted-for rate over attendance records."""

    total_days: int = 0
    present: int = 0
    absent: int = 0
    leave: int = 0
    off_duty: int = 0
    late: int = 0
    unspecified: int = 0
    average_attendance: float = Field(
        0.0, description="Accounted-for days as a percentage of total records"
    )
    by_department: dict[str, dict[str, int]] = Field(default_factory=dict)


class LeaveTypeBreakdown(BaseModel):
    total: int = 0
    approved: int = 0
    days: int = Field(0, description="Days across approved applications")
    total_days: int = Field(0, description="Days across all applications")


class LeaveStatistics(BaseModel):
    total: int = 0
    approved: int = 0
    rejected: int = 0
    pending: int = 0
    cancelled: int = 0
    unspecified: int = 0
    approval_rate: float = 0.0
    by_type: dict[str, LeaveTypeBreakdown] = Field(default_factory=dict)
    by_month: dict[str, int] = Field(default_factory=dict)


class DisciplinaryStatistics(BaseModel):
    total: int = 0
    open: int = 0
    under_review: int = 0
    resolved: int = 0
    appealed: int = 0
    unspecified: int = 0
    resolution_rate: float = 0.0
    by_infraction_type: dict[str, int] = Field(default_factory=dict)
    by_sanction: dict[str, int] = Field(default_factory=dict)
    by_department: dict[str, dict[str, int]] = Field(default_factory=dict)


class PerformanceResult(BaseModel):
    """Score inputs and the bounded score for one staff member."""

    period: ReportPeriod
    start_date: date
    end_date: date
    total_days: int = 0
    present_days: int = 0
    attendance_rate: float = 0.0
    leaves_taken: int = Field(0, description="Days across approved leave in the window")
    leave_applications: int = 0
    disciplinary_cases: int = 0
    score: float = 0.0


class DashboardSummary(BaseModel):
    total_staff: int = 0
    active_staff: int = 0
    today_attendance: int = 0
    pending_leaves: int = 0
    open_disciplinary: int = 0
    attendance_rate: float = 0.0


class DailyTrendPoint(BaseModel):
    date: date
    attendance: int = 0
    rate: float = 0.0


class MonthlyTrendPoint(BaseModel):
    month: str
    year: int
    start_date: date
    end_date: date
    leaves: int = 0


# ═════════════════════════════════════════════════════════════════════
# Report
# ═════════════════════════════════════════════════════════════════════


class ReportPeriodInfo(BaseModel):
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    label: Optional[str] = None

    def describe(self) -> str:
        if self.start_date and self.end_date:
            text = f"{self.start_date.isoformat()} to {self.end_date.isoformat()}"
            return f"{self.label} ({text})" if self.label else text
        return self.label or "All records"


class Report(BaseModel):
    """Canonical, format-independent report.

    ``statistics`` maps block names to already-aggregated values; renderers
    read them through ``summary_metrics()`` and never recompute anything.
    """

    report_type: ReportType
    title: str
    period: ReportPeriodInfo = Field(default_factory=ReportPeriodInfo)
    filters: dict[str, Any] = Field(default_factory=dict)
    summary_key: str = "statistics"
    statistics: dict[str, dict[str, Any]] = Field(default_factory=dict)
    detail_key: str = "data"
    details: list[dict[str, Any]] = Field(default_factory=list)
    sections: dict[str, list[dict[str, Any]]] = Field(default_factory=dict)
    trends: dict[str, list[dict[str, Any]]] = Field(default_factory=dict)
    generated_at: datetime

    @property
    def total_records(self) -> int:
        return len(self.details)

    def summary_block(self) -> dict[str, Any]:
        """The statistics as exposed under ``summary_key``.

        A report with a single block named after ``summary_key`` is unwrapped.
        """
        if list(self.statistics) == [self.summary_key]:
            return self.statistics[self.summary_key]
        return self.statistics

    def summary_metrics(self) -> list[tuple[str, Any]]:
        """Flatten the summary block into ordered ``(dotted.path, value)`` pairs."""
        metrics: list[tuple[str, Any]] = []
        _flatten(self.summary_block(), "", metrics)
        return metrics

    def to_payload(self) -> dict[str, Any]:
        """Structured-data representation returned to JSON callers."""
        dumped = self.model_dump(mode="json")
        payload: dict[str, Any] = {
            "reportType": dumped["report_type"],
            "title": dumped["title"],
            "period": dumped["period"],
            "filters": dumped["filters"],
            self.summary_key: _summary_of(dumped, self.summary_key),
            self.detail_key: dumped["details"],
            "totalRecords": self.total_records,
            "generatedAt": dumped["generated_at"],
        }
        for name, rows in dumped["sections"].items():
            payload[name] = rows
        if dumped["trends"]:
            payload["trends"] = dumped["trends"]
        return payload


def _summary_of(dumped: dict[str, Any], summary_key: str) -> dict[str, Any]:
    statistics = dumped["statistics"]
    if list(statistics) == [summary_key]:
        return statistics[summary_key]
    return statistics


def _flatten(value: Any, prefix: str, out: list[tuple[str, Any]]) -> None:
    if isinstance(value, Mapping):
        for key, item in value.items():
            _flatten(item, f"{prefix}.{key}" if prefix else str(key), out)
    else:
        out.append((prefix, value))
