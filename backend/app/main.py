from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from contextlib import asynccontextmanager

from app.core.config import settings
from app.core.database import init_db, close_db
from app.core.exceptions import MarketplaceError, error_response
from app.core.logging_config import logger, get_request_id
from app.core.middleware import (
    RequestLoggingMiddleware,
    SecurityHeadersMiddleware,
    RequestSizeLimitMiddleware,
)
from app.api.router import api_router

# HTTP status -> error code for errors raised by the framework itself (404 route, 405 method, ...)
HTTP_ERROR_CODES = {
    400: "BAD_REQUEST",
    401: "AUTH_FAILED",
    403: "NOT_AUTHORIZED",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
    413: "PAYLOAD_TOO_LARGE",
    429: "TOO_MANY_REQUESTS",
}


async def validate_critical_config():
    """Validate critical configuration at startup - fail fast if missing"""
    errors = []
    warnings = []

    if not settings.DATABASE_URL:
        errors.append("DATABASE_URL is not set")

    if not settings.SECRET_KEY or settings.SECRET_KEY == "CHANGE_ME":
        errors.append("SECRET_KEY is not set or using default value")

    if not settings.JWT_SECRET_KEY or settings.JWT_SECRET_KEY == "CHANGE_ME":
        errors.append("JWT_SECRET_KEY is not set or using default value")

    if not settings.SMTP_USER:
        warnings.append("SMTP_USER not set - verification and reset emails will not be sent")

    if not settings.ADMIN_IP_ALLOWLIST and not settings.is_dev_mode():
        warnings.append("ADMIN_IP_ALLOWLIST_STR empty - admin API reachable from any address")

    if errors:
        for err in errors:
            logger.critical(f"[Startup] CRITICAL: {err}")
        raise RuntimeError(f"Missing critical configuration: {', '.join(errors)}")

    for warn in warnings:
        logger.warning(f"[Startup] WARNING: {warn}")

    logger.info("[Startup] Critical configuration validated")
    return True


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan event handler for startup and shutdown"""
    logger.info("=" * 60)
    logger.info(f"Starting {settings.APP_NAME}...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info("=" * 60)

    await validate_critical_config()
    await init_db()
    logger.info("[Startup] Database tables ready")

    yield

    logger.info(f"Shutting down {settings.APP_NAME}...")
    await close_db()


app = FastAPI(
    title=settings.APP_NAME,
    description="Marketplace for refurbished electronics and device repair",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
    redirect_slashes=False  # Prevent 307 redirects that break CORS
)

# Add middleware (order matters - last added runs first)
# 1. Request logging
app.add_middleware(RequestLoggingMiddleware)

# 2. Security headers
app.add_middleware(SecurityHeadersMiddleware)

# 3. Request size limit
app.add_middleware(RequestSizeLimitMiddleware, max_size=settings.MAX_REQUEST_SIZE)

# 4. CORS - Origins from CORS_ORIGINS_STR in .env
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID", "X-Response-Time"],
)


# Exception handlers
@app.exception_handler(MarketplaceError)
async def marketplace_exception_handler(request: Request, exc: MarketplaceError):
    if exc.status_code >= 500:
        logger.log_error_with_context(exc, context=request.url.path)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    code = HTTP_ERROR_CODES.get(exc.status_code, "SERVER_ERROR" if exc.status_code >= 500 else "HTTP_ERROR")
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    return JSONResponse(
        status_code=exc.status_code,
        content=error_response(code, message),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = [
        {
            "field": ".".join(str(part) for part in err.get("loc", ()) if part != "body"),
            "message": err.get("msg", "Invalid value"),
        }
        for err in exc.errors()
    ]
    message = f"{errors[0]['field']}: {errors[0]['message']}" if errors else "Invalid request"
    return JSONResponse(
        status_code=400,
        content=error_response("VALIDATION_ERROR", message, {"errors": errors}),
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.log_error_with_context(exc, context=f"{request.method} {request.url.path}")
    return JSONResponse(
        status_code=500,
        content=error_response(
            "SERVER_ERROR",
            str(exc) if settings.DEBUG else "An unexpected error occurred",
            {"request_id": get_request_id()} if get_request_id() else None,
        )
    )


# Health check endpoint
@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "app_name": settings.APP_NAME,
        "version": "1.0.0",
        "environment": settings.ENVIRONMENT
    }


# Include API router
app.include_router(api_router, prefix="/api")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host=settings.SERVER_HOST,
        port=settings.SERVER_PORT,
        reload=settings.DEBUG
    )
