"""Enums and constants for the staff operations tracker."""

from __future__ import annotations

import enum


# ── Staff / Roles ───────────────────────────────────────────────────

class UserRole(str, enum.Enum):
    admin = "admin"
    supervisor = "supervisor"
    clerk = "clerk"
    staff = "staff"


# ── Attendance ──────────────────────────────────────────────────────

class AttendanceStatus(str, enum.Enum):
    present = "present"
    absent = "absent"
    leave = "leave"
    off_duty = "off-duty"
    late = "late"


# Days counted toward the attendance rate numerator
ACCOUNTED_FOR_STATUSES: frozenset[str] = frozenset({
    AttendanceStatus.present.value,
    AttendanceStatus.late.value,
    AttendanceStatus.leave.value,
    AttendanceStatus.off_duty.value,
})


# ── Leave ───────────────────────────────────────────────────────────

class LeaveType(str, enum.Enum):
    annual = "annual"
    maternity = "maternity"
    paternity = "paternity"
    sick = "sick"
    compassionate = "compassionate"
    study = "study"


class LeaveStatus(str, enum.Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"
    cancelled = "cancelled"


# ── Disciplinary ────────────────────────────────────────────────────

class InfractionType(str, enum.Enum):
    minor = "minor"
    major = "major"
    severe = "severe"


class CaseStatus(str, enum.Enum):
    open = "open"
    under_review = "under-review"
    resolved = "resolved"
    appealed = "appealed"


OPEN_CASE_STATUSES: tuple[str, ...] = (
    CaseStatus.open.value,
    CaseStatus.under_review.value,
)


# ── Reports ─────────────────────────────────────────────────────────

class EntityKind(str, enum.Enum):
    staff = "staff"
    attendance = "attendance"
    leave = "leave"
    disciplinary = "disciplinary"


class ReportType(str, enum.Enum):
    attendance = "attendance"
    leave = "leave"
    disciplinary = "disciplinary"
    performance = "performance"
    department = "department"
    dashboard = "dashboard"
    staff = "staff"
    leave_balance = "leave-balance"


class ReportFormat(str, enum.Enum):
    json = "json"
    pdf = "pdf"
    excel = "excel"


class ReportPeriod(str, enum.Enum):
    week = "week"
    month = "month"
    quarter = "quarter"
    year = "year"


# Roles allowed to request each report type
REPORT_ACCESS: dict[ReportType, frozenset[UserRole]] = {
    ReportType.attendance: frozenset({UserRole.admin, UserRole.supervisor, UserRole.clerk}),
    ReportType.leave: frozenset({UserRole.admin, UserRole.supervisor, UserRole.clerk}),
    ReportType.leave_balance: frozenset({UserRole.admin, UserRole.supervisor, UserRole.clerk}),
    ReportType.disciplinary: frozenset({UserRole.admin, UserRole.supervisor}),
    ReportType.performance: frozenset({UserRole.admin, UserRole.supervisor}),
    ReportType.department: frozenset({UserRole.admin, UserRole.supervisor}),
    ReportType.dashboard: frozenset({UserRole.admin}),
    ReportType.staff: frozenset(UserRole),
}

# ── Misc constants ──────────────────────────────────────────────────

UNSPECIFIED = "unspecified"
NOT_AVAILABLE = "N/A"
MONTH_KEY_FORMAT = "%b %Y"        # Feb 2026
