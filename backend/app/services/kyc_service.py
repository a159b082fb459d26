"""
Business verification (KYC) for sellers and repair centers.

not_submitted -> pending (application with documents)
pending -> approved | rejected (admin review)
rejected -> pending (resubmission)
"""
from datetime import datetime
from typing import Dict, List, Optional, Tuple, Union

from sqlalchemy import delete, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import (
    KycApplicationNotFoundError,
    RepairCenterNotFoundError,
    SellerNotFoundError,
    ValidationError,
)
from app.core.logging_config import logger
from app.models.business_profile import KycDocument, KycStatus, RepairCenterProfile, SellerProfile
from app.models.user import User, UserRole
from app.schemas.kyc import KycApplication, KycDocumentResponse, KycSubmitRequest
from app.utils.pagination import paginate

BusinessProfile = Union[SellerProfile, RepairCenterProfile]

BUSINESS_ROLES = (UserRole.SELLER, UserRole.REPAIR_CENTER)
_BUSINESS_FIELDS = ("business_name", "business_address", "tax_id", "contact_phone")


def profile_model_for(role: UserRole):
    if role == UserRole.SELLER:
        return SellerProfile
    if role == UserRole.REPAIR_CENTER:
        return RepairCenterProfile
    raise ValueError(f"{role} has no business profile")


async def get_business_profile(db: AsyncSession, user: User, for_update: bool = False) -> BusinessProfile:
    model = profile_model_for(user.role)
    query = select(model).where(model.user_id == user.id)
    if for_update:
        query = query.with_for_update()
    profile = (await db.execute(query)).scalar_one_or_none()
    if profile is None:
        raise SellerNotFoundError() if user.role == UserRole.SELLER else RepairCenterNotFoundError()
    return profile


async def list_documents(db: AsyncSession, user_id: str) -> List[KycDocument]:
    result = await db.execute(
        select(KycDocument).where(KycDocument.user_id == user_id).order_by(KycDocument.created_at)
    )
    return list(result.scalars().all())


async def submit_kyc(db: AsyncSession, user: User, data: KycSubmitRequest) -> Tuple[BusinessProfile, List[KycDocument]]:
    """
    File (or refile) a KYC application. Documents of an earlier application
    still awaiting review are replaced; rejected ones are kept as history.
    """
    profile = await get_business_profile(db, user, for_update=True)
    if profile.kyc_status == KycStatus.APPROVED:
        raise ValidationError("Business is already verified", code="ALREADY_VERIFIED")

    for field in _BUSINESS_FIELDS:
        value = getattr(data, field)
        if value is not None:
            setattr(profile, field, value)
    if user.role == UserRole.REPAIR_CENTER and data.service_radius is not None:
        profile.service_radius = data.service_radius

    await db.execute(
        delete(KycDocument)
        .where(KycDocument.user_id == user.id, KycDocument.status == KycStatus.PENDING)
        .execution_options(synchronize_session=False)
    )
    for document in data.documents:
        db.add(KycDocument(
            user_id=user.id,
            document_type=document.document_type,
            document_url=document.document_url,
            status=KycStatus.PENDING,
        ))

    profile.kyc_status = KycStatus.PENDING
    profile.kyc_submitted_at = datetime.utcnow()
    profile.kyc_reviewed_by = None
    profile.kyc_reviewed_at = None
    profile.kyc_rejection_reason = None
    await db.flush()

    logger.info(
        f"KYC submitted by {user.email} ({user.role.value})",
        extra={"event_type": "kyc_submitted", "documents": len(data.documents)}
    )
    return profile, await list_documents(db, user.id)


def build_application(user: User, profile: BusinessProfile, documents: List[KycDocument]) -> KycApplication:
    return KycApplication(
        user_id=user.id,
        name=user.name,
        email=user.email,
        role=user.role,
        business_name=profile.business_name,
        business_address=profile.business_address,
        tax_id=profile.tax_id,
        kyc_status=profile.kyc_status,
        submitted_at=profile.kyc_submitted_at,
        reviewed_at=profile.kyc_reviewed_at,
        rejection_reason=profile.kyc_rejection_reason,
        documents=[KycDocumentResponse.model_validate(d) for d in documents],
    )


async def list_applications(
    db: AsyncSession,
    status: Optional[KycStatus] = None,
    role: Optional[UserRole] = None,
    page: int = 1,
    limit: int = 10,
) -> dict:
    """Paginated KYC applications across sellers and repair centers"""
    query = (
        select(User)
        .outerjoin(SellerProfile, SellerProfile.user_id == User.id)
        .outerjoin(RepairCenterProfile, RepairCenterProfile.user_id == User.id)
        .where(User.role.in_(BUSINESS_ROLES))
    )
    if role is not None:
        query = query.where(User.role == role)
    if status is not None:
        query = query.where(or_(SellerProfile.kyc_status == status, RepairCenterProfile.kyc_status == status))
    query = query.order_by(User.created_at.desc())

    page_data = await paginate(db, query, page, limit)
    users: List[User] = page_data["items"]
    user_ids = [u.id for u in users]

    profiles: Dict[str, BusinessProfile] = {}
    for model in (SellerProfile, RepairCenterProfile):
        result = await db.execute(select(model).where(model.user_id.in_(user_ids)))
        profiles.update({p.user_id: p for p in result.scalars().all()})

    documents: Dict[str, List[KycDocument]] = {uid: [] for uid in user_ids}
    result = await db.execute(
        select(KycDocument).where(KycDocument.user_id.in_(user_ids)).order_by(KycDocument.created_at)
    )
    for document in result.scalars().all():
        documents[document.user_id].append(document)

    return {
        "applications": [
            build_application(u, profiles[u.id], documents[u.id]) for u in users if u.id in profiles
        ],
        "pagination": page_data["pagination"],
    }


async def review_application(
    db: AsyncSession,
    admin: User,
    user_id: str,
    approve: bool,
    reason: Optional[str] = None,
) -> Tuple[User, BusinessProfile, dict]:
    """
    Approve or reject a pending application.

    Returns the applicant, the updated profile and the pre-review state
    of the profile for the audit trail.
    """
    user = (await db.execute(select(User).where(User.id == user_id))).scalar_one_or_none()
    if user is None or user.role not in BUSINESS_ROLES:
        raise KycApplicationNotFoundError(user_id)

    try:
        profile = await get_business_profile(db, user, for_update=True)
    except (SellerNotFoundError, RepairCenterNotFoundError):
        raise KycApplicationNotFoundError(user_id)

    if profile.kyc_status != KycStatus.PENDING:
        raise ValidationError(
            f"Only pending applications can be reviewed (current: {profile.kyc_status.value})",
            code="INVALID_KYC_STATUS",
        )

    before = {"kyc_status": profile.kyc_status.value}
    now = datetime.utcnow()
    new_status = KycStatus.APPROVED if approve else KycStatus.REJECTED

    profile.kyc_status = new_status
    profile.kyc_reviewed_by = admin.id
    profile.kyc_reviewed_at = now
    profile.kyc_rejection_reason = None if approve else reason

    for document in await list_documents(db, user.id):
        if document.status == KycStatus.PENDING:
            document.status = new_status
            document.reviewed_by = admin.id
            document.reviewed_at = now
            if not approve:
                document.notes = reason

    await db.flush()
    logger.info(
        f"KYC {new_status.value} for {user.email} by {admin.email}",
        extra={"event_type": "kyc_reviewed", "kyc_status": new_status.value}
    )
    return user, profile, before
