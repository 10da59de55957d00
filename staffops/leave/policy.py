"""Leave entitlement policy and day-count rules.

The entitlement table is a small, versioned policy object. Callers pass it
explicitly to whatever needs default balances (the report composer, the
leave-balance report) instead of reading a module-level global.
"""

from __future__ import annotations

from datetime import date
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from staffops.common.constants import LeaveType


def _default_days() -> dict[str, int]:
    return {
        LeaveType.annual.value: 21,
        LeaveType.maternity.value: 90,
        LeaveType.paternity.value: 14,
        LeaveType.sick.value: 30,
        LeaveType.compassionate.value: 7,
        LeaveType.study.value: 30,
    }


class LeaveEntitlementPolicy(BaseModel):
    """Default yearly entitlement in days per leave type."""

    model_config = ConfigDict(frozen=True)

    version: str = "2024.1"
    days: dict[str, int] = Field(default_factory=_default_days)

    def entitlement(self, leave_type: str) -> int:
        """Default days for *leave_type*; 0 for types the policy does not know."""
        return self.days.get(leave_type, 0)

    def balance_for(self, stored: Optional[dict[str, Any]]) -> dict[str, dict[str, int]]:
        """Merge a staff member's stored balance map with policy defaults.

        Every leave type in the policy appears in the result. Stored entries
        win; missing ``taken`` is 0 and missing ``remaining`` is derived.
        """
        stored = stored or {}
        merged: dict[str, dict[str, int]] = {}
        for leave_type in self.days:
            entry = stored.get(leave_type) or {}
            total = _as_int(entry.get("total"), self.entitlement(leave_type))
            taken = _as_int(entry.get("taken"), 0)
            remaining = _as_int(entry.get("remaining"), total - taken)
            merged[leave_type] = {
                "total": total,
                "taken": taken,
                "remaining": remaining,
            }
        return merged


def leave_day_count(start_date: date, end_date: date) -> int:
    """Inclusive number of calendar days between *start_date* and *end_date*.

    A single-day leave counts 1; Monday to Friday counts 5.
    """
    if end_date < start_date:
        raise ValueError("end_date must not be before start_date")
    return (end_date - start_date).days + 1


def _as_int(value: Any, fallback: int) -> int:
    if value is None:
        return fallback
    try:
        return int(value)
    except (TypeError, ValueError):
        return fallback
