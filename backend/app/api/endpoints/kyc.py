"""
KYC endpoints for sellers and repair centers (/api/seller/kyc, /api/repair-center/kyc).
"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.models.user import User, UserRole
from app.modules.auth.dependencies import require_role
from app.schemas.kyc import KycDocumentResponse, KycStatusResponse, KycSubmitRequest
from app.services import kyc_service


def _status_response(profile, documents, message=None) -> KycStatusResponse:
    return KycStatusResponse(
        message=message,
        kyc_status=profile.kyc_status,
        business_name=profile.business_name,
        submitted_at=profile.kyc_submitted_at,
        reviewed_at=profile.kyc_reviewed_at,
        rejection_reason=profile.kyc_rejection_reason,
        documents=[KycDocumentResponse.model_validate(d) for d in documents],
    )


def build_kyc_router(role: UserRole) -> APIRouter:
    router = APIRouter()
    current_user_dep = require_role(role)

    @router.post("", response_model=KycStatusResponse)
    async def submit_kyc(
        body: KycSubmitRequest,
        current_user: User = Depends(current_user_dep),
        db: AsyncSession = Depends(get_db)
    ):
        """Submit business details and documents for verification"""
        profile, documents = await kyc_service.submit_kyc(db, current_user, body)
        await db.commit()
        return _status_response(profile, documents, "KYC application submitted for review")

    @router.get("", response_model=KycStatusResponse)
    async def get_kyc_status(
        current_user: User = Depends(current_user_dep),
        db: AsyncSession = Depends(get_db)
    ):
        profile = await kyc_service.get_business_profile(db, current_user)
        documents = await kyc_service.list_documents(db, current_user.id)
        return _status_response(profile, documents)

    return router
