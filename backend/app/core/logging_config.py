"""
E-Waste Marketplace - Centralized Logging Configuration
Plain text lines in development, JSON structured records in production
"""

import logging
import sys
import json
import traceback
import uuid
from datetime import datetime
from pathlib import Path
from logging.handlers import RotatingFileHandler
from typing import Any, Dict, Optional
from contextvars import ContextVar

from app.core.config import settings


# Context variables for request tracing
request_id_var: ContextVar[str] = ContextVar('request_id', default='')
user_id_var: ContextVar[str] = ContextVar('user_id', default='')
user_role_var: ContextVar[str] = ContextVar('user_role', default='')

# LogRecord attributes that are not "extra" fields
_RESERVED_RECORD_KEYS = frozenset([
    'name', 'msg', 'args', 'created', 'filename', 'funcName',
    'levelname', 'levelno', 'lineno', 'module', 'msecs',
    'pathname', 'process', 'processName', 'relativeCreated',
    'stack_info', 'exc_info', 'exc_text', 'thread', 'threadName',
    'message', 'taskName', 'request_id', 'user_id', 'user_role',
])


def get_request_id() -> str:
    return request_id_var.get() or ''


def set_request_id(request_id: str) -> None:
    request_id_var.set(request_id)


def get_user_id() -> str:
    return user_id_var.get() or ''


def set_user_context(user_id: str, role: str = '') -> None:
    """Attach the authenticated user to every log line of the current request"""
    user_id_var.set(user_id)
    user_role_var.set(role)


def generate_request_id() -> str:
    """Generate a short request ID"""
    return uuid.uuid4().hex[:12]


class JSONFormatter(logging.Formatter):
    """
    One JSON object per line, for log aggregation (ELK, CloudWatch, ...)
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "line": record.lineno,
        }

        if get_request_id():
            log_data["request_id"] = get_request_id()
        if get_user_id():
            log_data["user_id"] = get_user_id()
            log_data["user_role"] = user_role_var.get()

        if record.exc_info and record.exc_info[0]:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": traceback.format_exception(*record.exc_info),
            }

        for key, value in record.__dict__.items():
            if key not in _RESERVED_RECORD_KEYS and not key.startswith('_'):
                log_data[key] = value

        return json.dumps(log_data, default=str)


class ContextualFormatter(logging.Formatter):
    """Readable development format carrying request and user ids"""

    def format(self, record: logging.LogRecord) -> str:
        record.request_id = get_request_id() or '-'
        record.user_id = get_user_id() or '-'
        return super().format(record)


class MarketplaceLogger(logging.Logger):
    """
    Logger with helpers for the events the marketplace cares about
    """

    def log_request(self, method: str, path: str, status_code: int,
                    duration_ms: float, **kwargs) -> None:
        """Log HTTP request details (warning on 4xx, error on 5xx)"""
        if status_code >= 500:
            level = logging.ERROR
        elif status_code >= 400:
            level = logging.WARNING
        else:
            level = logging.INFO
        self.log(
            level,
            f"HTTP {method} {path} - {status_code} ({duration_ms:.2f}ms)",
            extra={
                "event_type": "http_request",
                "http_method": method,
                "http_path": path,
                "http_status": status_code,
                "duration_ms": duration_ms,
                **kwargs
            }
        )

    def log_auth_event(self, event: str, success: bool, user_email: Optional[str] = None,
                       reason: Optional[str] = None, **kwargs) -> None:
        """Log authentication events (login, refresh, MFA, password reset)"""
        level = logging.INFO if success else logging.WARNING
        self.log(
            level,
            f"Auth {event}: {'success' if success else 'failed'}" +
            (f" - {user_email}" if user_email else "") +
            (f" - {reason}" if reason else ""),
            extra={
                "event_type": "auth",
                "auth_event": event,
                "auth_success": success,
                "user_email": user_email,
                "failure_reason": reason,
                **kwargs
            }
        )

    def log_security_event(self, event: str, user_id: Optional[str] = None, **kwargs) -> None:
        """Log events that need attention, e.g. refresh token reuse"""
        self.warning(
            f"Security {event}" + (f" - user {user_id}" if user_id else ""),
            extra={
                "event_type": "security",
                "security_event": event,
                "subject_user_id": user_id,
                **kwargs
            }
        )

    def log_repair_event(self, request_id: str, from_status: Optional[str],
                         to_status: str, actor_id: Optional[str] = None, **kwargs) -> None:
        """Log repair request status transitions"""
        self.info(
            f"Repair {request_id}: {from_status or '-'} -> {to_status}",
            extra={
                "event_type": "repair_transition",
                "repair_request_id": request_id,
                "from_status": from_status,
                "to_status": to_status,
                "actor_id": actor_id,
                **kwargs
            }
        )

    def log_error_with_context(self, error: Exception, context: Optional[str] = None,
                               **kwargs) -> None:
        """Log error with traceback and context"""
        self.error(
            f"Error in {context}: {type(error).__name__}: {str(error)}",
            exc_info=True,
            extra={
                "event_type": "error",
                "error_type": type(error).__name__,
                "error_message": str(error),
                "error_context": context,
                **kwargs
            }
        )


def _file_handler(formatter: logging.Formatter, backup_count: int) -> RotatingFileHandler:
    log_file = Path(settings.LOG_FILE)
    log_file.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(log_file, maxBytes=10485760, backupCount=backup_count)  # 10MB
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(formatter)
    return handler


def setup_logging() -> MarketplaceLogger:
    """Setup logging configuration based on environment"""

    logging.setLoggerClass(MarketplaceLogger)

    logger = logging.getLogger("marketplace")
    logger.__class__ = MarketplaceLogger
    logger.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))
    logger.handlers.clear()
    logger.propagate = False

    is_production = settings.ENVIRONMENT == "production"

    if is_production:
        json_formatter = JSONFormatter()

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(logging.INFO)
        console_handler.setFormatter(json_formatter)
        logger.addHandler(console_handler)

        if settings.LOG_FILE:
            logger.addHandler(_file_handler(json_formatter, backup_count=10))
    else:
        detailed_formatter = ContextualFormatter(
            "%(asctime)s | %(levelname)-8s | "
            "[%(request_id)s] [%(user_id)s] | "
            "%(funcName)s:%(lineno)d | %(message)s"
        )
        simple_formatter = ContextualFormatter("%(levelname)-8s | [%(request_id)s] %(message)s")

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(logging.INFO)
        console_handler.setFormatter(simple_formatter)
        logger.addHandler(console_handler)

        if settings.LOG_FILE:
            logger.addHandler(_file_handler(detailed_formatter, backup_count=5))

    # Suppress noisy loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("aiosmtplib").setLevel(logging.WARNING)

    logger.debug(
        "Logging initialized",
        extra={
            "environment": settings.ENVIRONMENT,
            "log_level": settings.LOG_LEVEL,
            "json_logging": is_production
        }
    )

    return logger


logger: MarketplaceLogger = setup_logging()


__all__ = [
    'logger',
    'setup_logging',
    'get_request_id',
    'set_request_id',
    'get_user_id',
    'set_user_context',
    'generate_request_id',
    'MarketplaceLogger',
]
