"""
Admin KYC review endpoints.
"""
from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from app.core.database import get_db
from app.models import KycStatus, User, UserRole
from app.modules.auth.dependencies import get_current_admin
from app.schemas.kyc import KycApplicationListResponse, KycApplicationResponse, KycRejectRequest
from app.services import kyc_service
from app.services.audit_service import record_audit
from app.services.email_service import email_service

router = APIRouter()


async def _review(
    db: AsyncSession,
    request: Request,
    admin: User,
    user_id: str,
    approve: bool,
    reason: Optional[str] = None,
) -> KycApplicationResponse:
    user, profile, before = await kyc_service.review_application(db, admin, user_id, approve, reason)
    await record_audit(
        db, admin.id, "kyc_approved" if approve else "kyc_rejected", "kyc", user.id,
        before=before,
        after={"kyc_status": profile.kyc_status.value, "rejection_reason": profile.kyc_rejection_reason},
        request=request,
    )
    await db.commit()

    await email_service.send_kyc_decision_email(user.email, user.name, approve, reason)

    documents = await kyc_service.list_documents(db, user.id)
    return KycApplicationResponse(
        message="KYC application approved" if approve else "KYC application rejected",
        application=kyc_service.build_application(user, profile, documents),
    )


@router.get("", response_model=KycApplicationListResponse)
async def list_kyc_applications(
    page: int = Query(1),
    limit: int = Query(10),
    status: Optional[KycStatus] = None,
    role: Optional[UserRole] = None,
    db: AsyncSession = Depends(get_db),
    current_admin: User = Depends(get_current_admin)
):
    """Seller and repair center applications, newest accounts first"""
    page_data = await kyc_service.list_applications(db, status=status, role=role, page=page, limit=limit)
    return KycApplicationListResponse(**page_data)


@router.post("/{user_id}/approve", response_model=KycApplicationResponse)
async def approve_kyc(
    user_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_admin: User = Depends(get_current_admin)
):
    return await _review(db, request, current_admin, user_id, approve=True)


@router.post("/{user_id}/reject", response_model=KycApplicationResponse)
async def reject_kyc(
    user_id: str,
    body: KycRejectRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_admin: User = Depends(get_current_admin)
):
    return await _review(db, request, current_admin, user_id, approve=False, reason=body.reason)
