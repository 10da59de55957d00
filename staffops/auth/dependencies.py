"""Auth dependencies — JWT validation and caller scope.

Tokens are issued elsewhere; this service only verifies them. The ``sub``
claim is the caller's staff id and ``role`` one of ``UserRole``.
"""

from __future__ import annotations

import uuid

from fastapi import Depends, Request
from fastapi.exceptions import HTTPException
from jose import ExpiredSignatureError, JWTError, jwt

from staffops.common.constants import UserRole
from staffops.config import settings
from staffops.dependencies import get_record_store
from staffops.reports.schemas import CallerScope
from staffops.reports.store import RecordStore


def _extract_bearer(request: Request) -> str:
    """Extract Bearer token from Authorization header."""
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Missing or invalid Authorization header.")
    return auth_header[7:]


# ── Core dependency ─────────────────────────────────────────────────

async def get_caller_scope(
    request: Request,
    store: RecordStore = Depends(get_record_store),
) -> CallerScope:
    """Validate the JWT and work out which staff the caller may see.

    Admins and clerks see everyone, supervisors see themselves and the staff
    they supervise, staff see only themselves.
    """
    token = _extract_bearer(request)

    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
        )
    except ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token has expired.")
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid token.")

    try:
        staff_id = uuid.UUID(str(payload.get("sub")))
        role = UserRole(payload.get("role"))
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid token claims.")

    request.state.user_role = role

    if role == UserRole.supervisor:
        supervised = await store.resolve_supervised_staff_ids(staff_id)
        return CallerScope(
            role=role,
            staff_id=staff_id,
            allowed_staff_ids=frozenset(supervised) | {staff_id},
        )
    if role == UserRole.staff:
        return CallerScope(role=role, staff_id=staff_id, allowed_staff_ids=frozenset({staff_id}))
    return CallerScope.full_access(role=role, staff_id=staff_id)
