import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from reservapp.config import settings
from reservapp.core.exceptions import (
    ConflictException,
    ForbiddenException,
    NotFoundException,
    PaymentGatewayException,
    UnauthorizedException,
    ValidationException,
)
from reservapp.routes import auth_routes, payment_routes, reservation_routes, user_routes
from reservapp.schemas.common import failure

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    docs_url="/docs" if settings.DEBUG else None,  # Disable in production
    redoc_url="/redoc" if settings.DEBUG else None,
)

# CORS middleware
cors_origins = settings.cors_origins_list
if cors_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
        allow_methods=["*"],
        allow_headers=["*"],
    )


def _error_response(status_code: int, message: str, error: str, headers: dict | None = None):
    return JSONResponse(
        status_code=status_code, content=failure(message, error), headers=headers
    )


# Exception handlers
@app.exception_handler(UnauthorizedException)
async def unauthorized_exception_handler(request: Request, exc: UnauthorizedException):
    return _error_response(
        status.HTTP_401_UNAUTHORIZED,
        str(exc),
        type(exc).__name__,
        headers={"WWW-Authenticate": "Bearer"},
    )


@app.exception_handler(ForbiddenException)
async def forbidden_exception_handler(request: Request, exc: ForbiddenException):
    return _error_response(status.HTTP_403_FORBIDDEN, str(exc), "Forbidden")


@app.exception_handler(NotFoundException)
async def not_found_exception_handler(request: Request, exc: NotFoundException):
    return _error_response(status.HTTP_404_NOT_FOUND, str(exc), "NotFound")


@app.exception_handler(ValidationException)
async def validation_exception_handler(request: Request, exc: ValidationException):
    return _error_response(status.HTTP_400_BAD_REQUEST, str(exc), type(exc).__name__)


@app.exception_handler(ConflictException)
async def conflict_exception_handler(request: Request, exc: ConflictException):
    return _error_response(status.HTTP_409_CONFLICT, str(exc), "Conflict")


@app.exception_handler(PaymentGatewayException)
async def gateway_exception_handler(request: Request, exc: PaymentGatewayException):
    return _error_response(status.HTTP_502_BAD_GATEWAY, str(exc), "PaymentGatewayError")


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = "; ".join(
        f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in exc.errors()
    )
    return _error_response(
        status.HTTP_422_UNPROCESSABLE_ENTITY, "Request validation failed", errors
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return _error_response(exc.status_code, str(exc.detail), "HTTPError", headers=exc.headers)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return _error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error", "InternalServerError"
    )


# Health check endpoint
@app.get("/health")
async def health_check():
    return {"status": "healthy", "version": settings.APP_VERSION}


# Root endpoint
@app.get("/")
async def root():
    return {
        "message": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "docs": "/docs" if settings.DEBUG else "Documentation disabled in production",
    }


# Include routers
app.include_router(auth_routes.router, prefix="/api/auth", tags=["Auth"])
app.include_router(user_routes.router, prefix="/api/users", tags=["Users"])
app.include_router(reservation_routes.router, prefix="/api/reservations", tags=["Reservations"])
app.include_router(payment_routes.router, prefix="/api/payments", tags=["Payments"])
