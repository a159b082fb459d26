from pydantic_settings import BaseSettings
from typing import List, Any
import json


def parse_csv_list(v: Any) -> List[str]:
    """Parse a list setting from a JSON array or comma-separated string"""
    if isinstance(v, list):
        return v
    if isinstance(v, str):
        # Try JSON parsing first
        if v.startswith('['):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                pass
        # Fall back to comma-separated
        return [item.strip() for item in v.split(',') if item.strip()]
    return []


class Settings(BaseSettings):
    """Application settings - all configurable via environment variables"""

    # ==========================================
    # Application
    # ==========================================
    APP_NAME: str = "E-Waste Marketplace"
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    SECRET_KEY: str

    # Server Configuration
    SERVER_HOST: str = "0.0.0.0"
    SERVER_PORT: int = 5000

    # ==========================================
    # Database
    # ==========================================
    DATABASE_URL: str
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20
    DB_POOL_TIMEOUT: int = 30
    DB_POOL_RECYCLE: int = 1800  # 30 minutes
    DB_ECHO: bool = False

    # ==========================================
    # Authentication
    # ==========================================
    JWT_SECRET_KEY: str
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 15
    REFRESH_TOKEN_EXPIRE_DAYS: int = 30
    MFA_CHALLENGE_EXPIRE_MINUTES: int = 5
    EMAIL_VERIFICATION_EXPIRE_HOURS: int = 24
    PASSWORD_RESET_EXPIRE_HOURS: int = 1
    BCRYPT_ROUNDS: int = 12  # 4 for tests (fast), 12 for prod (secure)
    MIN_PASSWORD_LENGTH: int = 8

    # ==========================================
    # MFA (TOTP, admin accounts)
    # ==========================================
    MFA_ISSUER: str = "RepairReuseReduce"
    MFA_VALID_WINDOW: int = 1  # accept codes one 30s step either side

    # ==========================================
    # Admin access
    # ==========================================
    ADMIN_IP_ALLOWLIST_STR: str = ""
    # Reverse proxies whose X-Forwarded-For header is believed
    TRUSTED_PROXIES_STR: str = ""

    @property
    def ADMIN_IP_ALLOWLIST(self) -> List[str]:
        """Parse admin IP allowlist from comma-separated string"""
        return parse_csv_list(self.ADMIN_IP_ALLOWLIST_STR)

    @property
    def TRUSTED_PROXIES(self) -> List[str]:
        """Parse trusted proxy addresses from comma-separated string"""
        return parse_csv_list(self.TRUSTED_PROXIES_STR)

    # ==========================================
    # Repair workflow
    # ==========================================
    QUOTE_VALIDITY_DAYS: int = 7

    # ==========================================
    # Email
    # ==========================================
    SMTP_HOST: str = "smtp.example.com"
    SMTP_PORT: int = 587
    SMTP_USER: str = ""
    SMTP_PASSWORD: str = ""
    SMTP_START_TLS: bool = True
    EMAIL_FROM: str = "no-reply@example.com"
    EMAIL_FROM_NAME: str = "E-Waste Marketplace"

    # ==========================================
    # Frontend
    # ==========================================
    FRONTEND_URL: str = "http://localhost:5173"

    # ==========================================
    # CORS (stored as comma-separated string, parsed to list)
    # ==========================================
    CORS_ORIGINS_STR: str = "http://localhost:5173,http://localhost:3000,http://127.0.0.1:5173"

    @property
    def CORS_ORIGINS(self) -> List[str]:
        """Parse CORS origins from comma-separated string"""
        return parse_csv_list(self.CORS_ORIGINS_STR)

    # ==========================================
    # Request limits
    # ==========================================
    MAX_REQUEST_SIZE: int = 10 * 1024 * 1024  # 10MB

    # ==========================================
    # Logging
    # ==========================================
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = ""

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"

    def is_dev_mode(self) -> bool:
        """Check if running in development mode"""
        return self.ENVIRONMENT == "development"

    def email_verification_url(self, token: str, portal: str = "buyer") -> str:
        """Link to the verification page of the role's frontend portal"""
        return f"{self.FRONTEND_URL}/{portal}/verify-email/{token}"

    def password_reset_url(self, token: str, portal: str = "buyer") -> str:
        return f"{self.FRONTEND_URL}/{portal}/reset-password/{token}"


# Create settings instance
settings = Settings()
