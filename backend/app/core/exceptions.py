"""
Custom Exceptions for the E-Waste Marketplace API
=================================================

Every error the API returns is rendered as:

    {"error": true, "code": "<MACHINE_CODE>", "message": "<human text>"}

with the HTTP status carrying the class of failure (400 validation,
401/403 auth, 404 not found, 409 conflict, 500 server).

Usage:
    from app.core.exceptions import RepairRequestNotFoundError

    if not repair_request:
        raise RepairRequestNotFoundError(request_id)
"""

from typing import Optional, Any, Dict


class MarketplaceError(Exception):
    """Base exception for all marketplace errors"""

    status_code: int = 500

    def __init__(
        self,
        message: str,
        code: str = "SERVER_ERROR",
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        if status_code is not None:
            self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "error": True,
            "code": self.code,
            "message": self.message,
        }
        if self.details:
            body["details"] = self.details
        return body


# ============================================
# Authentication Errors (401)
# ============================================

class AuthenticationError(MarketplaceError):
    """User authentication failed"""

    status_code = 401

    def __init__(self, message: str = "Authentication failed", code: str = "AUTH_FAILED"):
        super().__init__(message, code=code)


class InvalidCredentialsError(AuthenticationError):
    def __init__(self):
        super().__init__("Invalid email or password", code="INVALID_CREDENTIALS")


class UnverifiedAccountError(AuthenticationError):
    def __init__(self):
        super().__init__("Please verify your email before logging in", code="UNVERIFIED_ACCOUNT")


class TokenMissingError(AuthenticationError):
    def __init__(self):
        super().__init__("Authentication token is missing", code="TOKEN_MISSING")


class TokenExpiredError(AuthenticationError):
    """JWT token has expired"""

    def __init__(self, message: str = "Authentication token expired"):
        super().__init__(message, code="TOKEN_EXPIRED")


class InvalidTokenError(AuthenticationError):
    """JWT token is invalid"""

    def __init__(self, message: str = "Invalid authentication token"):
        super().__init__(message, code="TOKEN_INVALID")


class RefreshTokenError(AuthenticationError):
    """Refresh token rejected. `code` tells the client why."""

    def __init__(self, code: str = "INVALID_REFRESH_TOKEN", message: str = "Invalid refresh token"):
        super().__init__(message, code=code)


class InvalidMfaCodeError(AuthenticationError):
    def __init__(self):
        super().__init__("Invalid MFA code", code="INVALID_MFA_CODE")


# ============================================
# Authorization Errors (403)
# ============================================

class AuthorizationError(MarketplaceError):
    """User not authorized for this action"""

    status_code = 403

    def __init__(self, message: str = "Not authorized", code: str = "NOT_AUTHORIZED"):
        super().__init__(message, code=code)


class AccountSuspendedError(AuthorizationError):
    def __init__(self):
        super().__init__("Your account has been suspended", code="ACCOUNT_SUSPENDED")


class RoleMismatchError(AuthorizationError):
    def __init__(self, required_role: str):
        super().__init__(f"This endpoint requires the '{required_role}' role", code="ROLE_MISMATCH")
        self.details = {"required_role": required_role}


class MfaRequiredError(AuthorizationError):
    def __init__(self):
        super().__init__("MFA verification required", code="MFA_REQUIRED")
        self.details = {"require_mfa": True}


class KycNotApprovedError(AuthorizationError):
    def __init__(self):
        super().__init__("Business verification (KYC) must be approved first", code="KYC_NOT_APPROVED")


# ============================================
# Resource Errors (404)
# ============================================

class ResourceNotFoundError(MarketplaceError):
    """Base class for not found errors"""

    status_code = 404

    def __init__(self, resource_type: str, code: str, resource_id: Optional[str] = None):
        message = f"{resource_type} not found"
        super().__init__(
            message,
            code=code,
            details={"resource_id": resource_id} if resource_id else None
        )


class UserNotFoundError(ResourceNotFoundError):
    def __init__(self, user_id: Optional[str] = None):
        super().__init__("User", "USER_NOT_FOUND", user_id)


class AdminProfileNotFoundError(ResourceNotFoundError):
    def __init__(self):
        super().__init__("Admin profile", "ADMIN_NOT_FOUND")


class SellerNotFoundError(ResourceNotFoundError):
    def __init__(self):
        super().__init__("Seller profile", "SELLER_NOT_FOUND")


class RepairCenterNotFoundError(ResourceNotFoundError):
    def __init__(self, repair_center_id: Optional[str] = None):
        super().__init__("Repair center", "REPAIR_CENTER_NOT_FOUND", repair_center_id)


class RepairRequestNotFoundError(ResourceNotFoundError):
    def __init__(self, request_id: Optional[str] = None):
        super().__init__("Repair request", "REPAIR_REQUEST_NOT_FOUND", request_id)


class QuoteNotFoundError(ResourceNotFoundError):
    def __init__(self, quote_id: Optional[str] = None):
        super().__init__("Repair quote", "QUOTE_NOT_FOUND", quote_id)


class KycApplicationNotFoundError(ResourceNotFoundError):
    def __init__(self, user_id: Optional[str] = None):
        super().__init__("KYC application", "KYC_NOT_FOUND", user_id)


# ============================================
# Validation Errors (400)
# ============================================

class ValidationError(MarketplaceError):
    """Input validation failed"""

    status_code = 400

    def __init__(self, message: str, code: str = "VALIDATION_ERROR", field: Optional[str] = None):
        super().__init__(message, code=code, details={"field": field} if field else None)


class EmailExistsError(ValidationError):
    def __init__(self):
        super().__init__("Email already in use", code="EMAIL_EXISTS", field="email")


class InvalidVerificationTokenError(ValidationError):
    def __init__(self, message: str = "Invalid or expired token"):
        super().__init__(message, code="INVALID_TOKEN")


class InvalidStatusTransitionError(ValidationError):
    """Repair request cannot move between the two statuses"""

    def __init__(self, current: str, target: str):
        super().__init__(f"Cannot update from {current} to {target}", code="INVALID_STATUS_TRANSITION")
        self.details = {"current_status": current, "requested_status": target}


class InvalidStatusError(ValidationError):
    def __init__(self, message: str):
        super().__init__(message, code="INVALID_STATUS")


class QuoteExpiredError(ValidationError):
    def __init__(self, quote_id: str):
        super().__init__("Repair quote has expired", code="QUOTE_EXPIRED")
        self.details = {"quote_id": quote_id}


# ============================================
# Conflict Errors (409)
# ============================================

class ConflictError(MarketplaceError):
    status_code = 409

    def __init__(self, message: str, code: str = "CONFLICT"):
        super().__init__(message, code=code)


# ============================================
# Helper function for API responses
# ============================================

def error_response(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Build the uniform error body for errors that are not MarketplaceError instances"""
    body: Dict[str, Any] = {"error": True, "code": code, "message": message}
    if details:
        body["details"] = details
    return body
