"""
Coolscool Practice API

FastAPI application entry point.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from coolscool.api.middleware.rate_limit import RateLimitMiddleware
from coolscool.api.middleware.request_id import RequestIdMiddleware
from coolscool.api.v1 import router as api_v1_router
from coolscool.config import Settings, get_settings
from coolscool.database import Database
from coolscool.errors import (
    AnswerValidationError,
    ConflictError,
    CoolscoolError,
    ForbiddenError,
    InsufficientQuestionsError,
    InvalidSessionStateError,
    NotFoundError,
)
from coolscool.kernel.identity.jwt import JWTManager
from coolscool.logging_config import configure_logging, get_logger, get_request_id
from coolscool.schemas.common import HealthResponse

logger = get_logger(__name__)

# Most specific first; the first isinstance match wins
_ERROR_STATUS = (
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ForbiddenError, status.HTTP_403_FORBIDDEN),
    (InvalidSessionStateError, status.HTTP_409_CONFLICT),
    (ConflictError, status.HTTP_409_CONFLICT),
    (InsufficientQuestionsError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (AnswerValidationError, status.HTTP_422_UNPROCESSABLE_ENTITY),
)

_CORS_ORIGINS = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]


def status_for(exc: CoolscoolError) -> int:
    for error_type, code in _ERROR_STATUS:
        if isinstance(exc, error_type):
            return code
    return status.HTTP_400_BAD_REQUEST


def _error_body(detail, code: str) -> dict:
    return {"detail": detail, "code": code, "request_id": get_request_id()}


def create_app(settings: Optional[Settings] = None, database: Optional[Database] = None) -> FastAPI:
    """
    Build the application.

    Tests pass their own settings and database; otherwise both come from the
    environment and the database is created on startup.
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator:
        configure_logging(
            log_level=settings.log_level,
            environment=settings.environment,
            debug=settings.debug,
        )
        logger.info("Starting %s v%s", settings.project_name, settings.version)
        owns_database = database is None
        if owns_database:
            app.state.database = Database(settings.database_url, echo=settings.debug)

        yield

        logger.info("Shutting down...")
        if owns_database:
            await app.state.database.dispose()
            logger.info("Database connections closed")

    app = FastAPI(
        title=settings.project_name,
        description="""
    Coolscool Practice API

    Quiz sessions that adapt question difficulty to demonstrated mastery, and
    pressure-free proficiency bands per topic.
    """,
        version=settings.version,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )
    app.state.settings = settings
    app.state.jwt_manager = JWTManager(
        secret_key=settings.secret_key,
        algorithm=settings.algorithm,
        access_token_expire_minutes=settings.access_token_expire_minutes,
    )
    if database is not None:
        app.state.database = database

    # Last added = outermost: CORS wraps request ids, request ids wrap the limiter
    app.add_middleware(RateLimitMiddleware, settings=settings)
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=_CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(CoolscoolError)
    async def domain_exception_handler(request: Request, exc: CoolscoolError):
        code = status_for(exc)
        if code >= status.HTTP_409_CONFLICT:
            logger.info("Request rejected", extra={"code": exc.code, "path": request.url.path})
        return JSONResponse(status_code=code, content=_error_body(exc.message, exc.code))

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        errors = [
            {
                "field": ".".join(str(loc) for loc in error["loc"]),
                "message": error["msg"],
                "type": error["type"],
            }
            for error in exc.errors()
        ]
        content = _error_body("Validation error", "validation_error")
        content["errors"] = errors
        return JSONResponse(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content=content)

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled exception: %s", exc)
        detail = str(exc) if settings.debug else "Internal server error"
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=_error_body(detail, "internal_error"),
        )

    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    async def health_check(request: Request, response: Response):
        """Liveness plus a SELECT 1 against the database; 503 when it is unreachable."""
        database_ok = await request.app.state.database.ping()
        if not database_ok:
            response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(
            status="ok" if database_ok else "degraded",
            version=settings.version,
            database="connected" if database_ok else "unavailable",
        )

    app.include_router(api_v1_router, prefix=settings.api_v1_prefix)
    return app


app = create_app()


# Main entry point for development
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "coolscool.main:app",
        host="0.0.0.0",
        port=8000,
        reload=get_settings().debug,
    )
