"""
Admin Audit Logs endpoints.
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.orm import selectinload
from typing import Optional

from app.core.database import get_db
from app.models import AuditLog, User
from app.modules.auth.dependencies import get_current_admin
from app.schemas.admin import AuditActionsResponse, AuditLogListResponse, AuditLogResponse
from app.utils.pagination import paginate

router = APIRouter()


def to_audit_log_response(log: AuditLog) -> AuditLogResponse:
    """Expects log.actor to be loaded already"""
    actor = log.actor
    return AuditLogResponse(
        id=str(log.id),
        user_id=str(log.user_id),
        actor_email=actor.email if actor else None,
        actor_name=actor.name if actor else None,
        action=log.action,
        target_type=log.target_type,
        target_id=str(log.target_id) if log.target_id else None,
        before_snapshot=log.before_snapshot,
        after_snapshot=log.after_snapshot,
        ip_address=log.ip_address,
        user_agent=log.user_agent,
        created_at=log.created_at,
    )


@router.get("", response_model=AuditLogListResponse)
async def list_audit_logs(
    page: int = Query(1),
    limit: int = Query(10),
    action: Optional[str] = None,
    target_type: Optional[str] = None,
    user_id: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
    current_admin: User = Depends(get_current_admin)
):
    """List audit logs with filtering and pagination, newest first"""
    query = select(AuditLog).options(selectinload(AuditLog.actor))

    if action:
        query = query.where(AuditLog.action == action)
    if target_type:
        query = query.where(AuditLog.target_type == target_type)
    if user_id:
        query = query.where(AuditLog.user_id == user_id)

    page_data = await paginate(db, query.order_by(AuditLog.created_at.desc()), page, limit)
    return AuditLogListResponse(
        logs=[to_audit_log_response(log) for log in page_data["items"]],
        pagination=page_data["pagination"],
    )


@router.get("/actions", response_model=AuditActionsResponse)
async def get_available_actions(
    db: AsyncSession = Depends(get_db),
    current_admin: User = Depends(get_current_admin)
):
    """Distinct action and target types, for filter dropdowns"""
    actions = await db.execute(select(AuditLog.action).distinct().order_by(AuditLog.action))
    target_types = await db.execute(select(AuditLog.target_type).distinct().order_by(AuditLog.target_type))

    return AuditActionsResponse(
        actions=[row[0] for row in actions.all() if row[0]],
        target_types=[row[0] for row in target_types.all() if row[0]],
    )
