from fastapi import APIRouter

from app.api.endpoints import buyer_repairs, repair_center
from app.api.endpoints.admin import admin_router
from app.api.endpoints.auth import build_auth_router
from app.api.endpoints.kyc import build_kyc_router
from app.models.user import UserRole

api_router = APIRouter()

# Auth, one router per portal: /api/buyer/auth, /api/seller/auth, ...
for role in (UserRole.BUYER, UserRole.SELLER, UserRole.REPAIR_CENTER, UserRole.ADMIN):
    api_router.include_router(
        build_auth_router(role),
        prefix=f"/{role.portal}/auth",
        tags=[f"{role.portal.replace('-', ' ').title()} Auth"],
    )

# Business verification
for role in (UserRole.SELLER, UserRole.REPAIR_CENTER):
    api_router.include_router(build_kyc_router(role), prefix=f"/{role.portal}/kyc", tags=["KYC"])

# Repairs
api_router.include_router(buyer_repairs.router, prefix="/buyer/repair-requests", tags=["Buyer Repairs"])
api_router.include_router(repair_center.router, prefix="/repair-center/requests", tags=["Repair Center"])

# Admin
api_router.include_router(admin_router, prefix="/admin")
