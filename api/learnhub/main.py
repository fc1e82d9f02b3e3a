"""LearnHub API - Main Application."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from dataclasses import fields
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from learnhub.config import get_settings
from learnhub.config.settings import Settings
from learnhub.core.context import get_request_id
from learnhub.core.database import MemoryDatabase, init_async_cassandra
from learnhub.core.exceptions import DomainError
from learnhub.core.logging import configure_structlog, get_logger
from learnhub.core.middleware import RequestContextMiddleware
from learnhub.courses.router import router as courses_router
from learnhub.enrollments.router import router as enrollments_router
from learnhub.health.router import router as health_router
from learnhub.notifications.router import router as notifications_router
from learnhub.progress.router import router as progress_router
from learnhub.quizzes.router import router as quizzes_router
from learnhub.services import (
    Services,
    build_services,
    cassandra_repositories,
    memory_repositories,
)
from learnhub.short_questions.router import router as short_questions_router


# Configure logging early (before creating logger)
settings = get_settings()
configure_structlog(settings)

logger = get_logger(__name__)

ROUTERS = (
    health_router,
    courses_router,
    enrollments_router,
    progress_router,
    quizzes_router,
    short_questions_router,
    notifications_router,
)


def install_services(app: FastAPI, services: Services) -> None:
    """Expose each service on ``app.state`` under its field name."""
    for name, service in vars(services).items():
        setattr(app.state, name, service)


def uninstall_services(app: FastAPI) -> None:
    for field in fields(Services):
        setattr(app.state, field.name, None)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Build the storage backend and the services, tear down on exit."""
    settings: Settings = app.state.settings
    logger.info(
        "starting_application",
        app_name=settings.app_name,
        version=settings.app_version,
        environment=settings.environment,
        database_backend=settings.database_backend,
    )

    connection = None
    if settings.uses_memory_backend:
        repositories = memory_repositories(MemoryDatabase())
    else:
        connection = await init_async_cassandra(settings)
        repositories = cassandra_repositories(connection.session, settings)

    install_services(app, build_services(repositories, settings))
    logger.info("services_initialized")

    try:
        yield
    finally:
        logger.info("shutting_down_application")
        uninstall_services(app)
        if connection is not None:
            connection.close()


def error_response(
    request: Request, status_code: int, message: str, **extra: Any
) -> ORJSONResponse:
    """Uniform error body: ``error``, ``message``, ``status_code``, ``request_id``."""
    request_id = getattr(request.state, "request_id", None) or get_request_id()
    return ORJSONResponse(
        status_code=status_code,
        content={
            "error": True,
            "message": message,
            "status_code": status_code,
            "request_id": request_id,
            **extra,
        },
    )


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> ORJSONResponse:
        logger.warning(
            "http_exception",
            status_code=exc.status_code,
            detail=str(exc.detail),
            path=request.url.path,
            method=request.method,
        )
        # 5xx details stay in the log
        message = (
            str(exc.detail)
            if exc.status_code < status.HTTP_500_INTERNAL_SERVER_ERROR
            else "Internal server error"
        )
        return error_response(request, exc.status_code, message)

    @app.exception_handler(DomainError)
    async def domain_exception_handler(
        request: Request, exc: DomainError
    ) -> ORJSONResponse:
        """Domain errors that reached the app without a router translating them."""
        logger.warning(
            "domain_error",
            code=exc.code,
            status_code=exc.status_code,
            detail=exc.message,
            path=request.url.path,
        )
        return error_response(request, exc.status_code, exc.message, code=exc.code)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> ORJSONResponse:
        errors = exc.errors()
        logger.warning("validation_error", errors=errors, path=request.url.path)
        details = [
            {
                "field": ".".join(str(loc) for loc in err.get("loc", [])),
                "message": err.get("msg", "Invalid value"),
            }
            for err in errors
        ]
        return error_response(
            request,
            status.HTTP_422_UNPROCESSABLE_ENTITY,
            "Validation error",
            details=details,
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(
        request: Request, exc: Exception
    ) -> ORJSONResponse:
        logger.exception(
            "unhandled_exception",
            error_type=type(exc).__name__,
            error_message=str(exc),
            path=request.url.path,
            method=request.method,
        )
        return error_response(
            request,
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "An unexpected error occurred. Please try again later.",
        )


def create_app(app_settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    app_settings = app_settings or get_settings()
    expose_docs = app_settings.is_development

    # Starlette's debug pages stay off; the handlers log full details.
    app = FastAPI(
        title=app_settings.app_name,
        version=app_settings.app_version,
        description="Course enrollment and progress API",
        debug=False,
        lifespan=lifespan,
        default_response_class=ORJSONResponse,
        docs_url="/docs" if expose_docs else None,
        redoc_url="/redoc" if expose_docs else None,
        openapi_url="/openapi.json" if expose_docs else None,
    )
    app.state.settings = app_settings

    # Request ids and logging context
    app.add_middleware(
        RequestContextMiddleware,
        log_requests=app_settings.log_requests,
        exclude_paths=app_settings.log_exclude_paths,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.cors_origins,
        allow_credentials=app_settings.cors_allow_credentials,
        allow_methods=app_settings.cors_allow_methods,
        allow_headers=app_settings.cors_allow_headers,
        expose_headers=[
            RequestContextMiddleware.REQUEST_ID_HEADER,
            RequestContextMiddleware.CORRELATION_ID_HEADER,
        ],
        max_age=app_settings.cors_max_age,
    )

    register_exception_handlers(app)
    for router in ROUTERS:
        app.include_router(router)

    @app.get("/", include_in_schema=False)
    async def root(request: Request) -> dict[str, str]:
        return {
            "message": "LearnHub API",
            "version": app_settings.app_version,
            "docs": f"{request.url}docs",
        }

    return app


app = create_app()


def run() -> None:
    """Serve the API with uvicorn using the api_* settings."""
    import uvicorn

    uvicorn.run(
        "learnhub.main:app",
        host=settings.api_host,
        port=settings.api_port,
        workers=settings.api_workers,
        reload=settings.api_reload and settings.is_development,
        log_config=None,
    )


if __name__ == "__main__":
    run()
