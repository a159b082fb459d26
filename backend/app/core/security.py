from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any
from jose import JWTError, ExpiredSignatureError, jwt
import bcrypt
import pyotp
import qrcode
from qrcode.constants import ERROR_CORRECT_M
import base64
import hashlib
import io
import secrets

from app.core.config import settings
from app.core.exceptions import TokenExpiredError, InvalidTokenError

ACCESS_TOKEN_TYPE = "access"
MFA_CHALLENGE_TOKEN_TYPE = "mfa_challenge"


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify password"""
    # Bcrypt has a 72 byte limit - truncate password if necessary
    password_bytes = plain_password.encode('utf-8')[:72]
    try:
        return bcrypt.checkpw(password_bytes, hashed_password.encode('utf-8'))
    except ValueError:
        # Malformed stored hash
        return False


def get_password_hash(password: str) -> str:
    """Hash password with configurable rounds (BCRYPT_ROUNDS in .env)"""
    password_bytes = password.encode('utf-8')[:72]
    hashed = bcrypt.hashpw(password_bytes, bcrypt.gensalt(rounds=settings.BCRYPT_ROUNDS))
    return hashed.decode('utf-8')


def _encode(claims: Dict[str, Any], token_type: str, expire: datetime) -> str:
    to_encode = claims.copy()
    # Fractional iat so it can be ordered against password_changed_at within a second
    issued_at = datetime.now(timezone.utc).timestamp()
    to_encode.update({"exp": expire, "iat": issued_at, "type": token_type})
    return jwt.encode(to_encode, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a short-lived JWT access token.

    `data` carries the identity claims: sub (user id), email, role and,
    for admins, mfa (whether the session passed the second factor).
    """
    if expires_delta:
        expire = datetime.utcnow() + expires_delta
    else:
        expire = datetime.utcnow() + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    return _encode(data, ACCESS_TOKEN_TYPE, expire)


def create_mfa_challenge_token(user_id: str) -> str:
    """Token handed out after a correct password when the admin still owes a TOTP code"""
    expire = datetime.utcnow() + timedelta(minutes=settings.MFA_CHALLENGE_EXPIRE_MINUTES)
    return _encode({"sub": user_id}, MFA_CHALLENGE_TOKEN_TYPE, expire)


def decode_token(token: str, expected_type: Optional[str] = ACCESS_TOKEN_TYPE) -> Dict[str, Any]:
    """
    Decode and verify a JWT.

    Raises:
        TokenExpiredError: signature valid but token past its exp
        InvalidTokenError: bad signature, malformed token or wrong type
    """
    try:
        payload = jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except ExpiredSignatureError:
        raise TokenExpiredError()
    except JWTError:
        raise InvalidTokenError()

    if expected_type and payload.get("type") != expected_type:
        raise InvalidTokenError("Invalid token type")
    if not payload.get("sub"):
        raise InvalidTokenError()
    return payload


# ==========================================
# Opaque tokens (refresh, email verification, password reset)
# ==========================================

def generate_opaque_token(nbytes: int = 48) -> str:
    """Random URL-safe token. Only its hash is ever stored."""
    return secrets.token_urlsafe(nbytes)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


# ==========================================
# TOTP (admin MFA)
# ==========================================

def generate_mfa_secret() -> str:
    return pyotp.random_base32()


def build_otpauth_url(email: str, secret: str) -> str:
    return pyotp.TOTP(secret).provisioning_uri(name=email, issuer_name=settings.MFA_ISSUER)


def generate_mfa_qr_code(otpauth_url: str) -> str:
    """Render the otpauth URL as a PNG data URL for authenticator apps"""
    qr = qrcode.QRCode(
        version=None,
        error_correction=ERROR_CORRECT_M,
        box_size=6,
        border=2,
    )
    qr.add_data(otpauth_url)
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")

    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    encoded = base64.b64encode(buffer.getvalue()).decode('ascii')
    return f"data:image/png;base64,{encoded}"


def verify_mfa_code(code: Optional[str], secret: Optional[str]) -> bool:
    """Check a 6-digit TOTP code, tolerating MFA_VALID_WINDOW steps of clock drift"""
    if not secret or not code:
        return False
    code = code.strip().replace(" ", "")
    if not code.isdigit():
        return False
    return pyotp.TOTP(secret).verify(code, valid_window=settings.MFA_VALID_WINDOW)
