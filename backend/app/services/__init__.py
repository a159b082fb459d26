# Business services
from app.services import audit_service, auth_service, kyc_service, repair_workflow
from app.services.email_service import EmailService, email_service

__all__ = [
    "audit_service",
    "auth_service",
    "kyc_service",
    "repair_workflow",
    "EmailService",
    "email_service",
]
