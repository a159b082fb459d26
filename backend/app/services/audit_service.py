"""
Audit trail for admin and repair-center actions.

Rows are added to the caller's session so the audit entry commits (or
rolls back) together with the change it describes.
"""
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Iterable, Optional

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.middleware import get_client_ip
from app.models.audit_log import AuditLog

# Columns that must never end up in an audit snapshot
_SECRET_FIELDS = frozenset({
    "hashed_password",
    "verification_token_hash",
    "reset_token_hash",
    "mfa_secret",
    "mfa_pending_secret",
    "token_hash",
})


def _jsonable(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    return value


def snapshot(obj: Any, fields: Optional[Iterable[str]] = None) -> Dict[str, Any]:
    """Plain-dict copy of an ORM object's columns (or the given subset), secrets removed"""
    if obj is None:
        return {}
    if fields is None:
        fields = [column.key for column in obj.__table__.columns]
    return {
        field: _jsonable(getattr(obj, field))
        for field in fields
        if field not in _SECRET_FIELDS
    }


async def record_audit(
    db: AsyncSession,
    actor_id: str,
    action: str,
    target_type: str,
    target_id: Optional[str] = None,
    before: Optional[Dict[str, Any]] = None,
    after: Optional[Dict[str, Any]] = None,
    request: Optional[Request] = None,
) -> AuditLog:
    log = AuditLog(
        user_id=str(actor_id),
        action=action,
        target_type=target_type,
        target_id=str(target_id) if target_id else None,
        before_snapshot=before,
        after_snapshot=after,
        ip_address=get_client_ip(request) if request else None,
        user_agent=request.headers.get("user-agent") if request else None,
    )
    db.add(log)
    await db.flush()
    return log
