"""
Admin API endpoints. Everything here requires an admin access token
(with the MFA claim once the admin has MFA enabled).
"""
from fastapi import APIRouter

from app.api.endpoints.admin import users, kyc, audit_logs

admin_router = APIRouter(tags=["Admin"])

admin_router.include_router(users.router, prefix="/users", tags=["Admin Users"])
admin_router.include_router(kyc.router, prefix="/kyc", tags=["Admin KYC"])
admin_router.include_router(audit_logs.router, prefix="/audit-logs", tags=["Admin Audit Logs"])
