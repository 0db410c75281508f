"""
Steady Vitality - FastAPI Application Entrypoint

This module initializes the FastAPI application with:
- CORS and security middleware
- Authentication, assignment and admin routes
- Database lifecycle management
- Application-wide error handlers

Run:
    uvicorn steady_vitality.app:app --reload
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from steady_vitality import __version__
from steady_vitality.admin.routes import router as admin_router
from steady_vitality.assignments.routes import coaches_router, router as assignments_router
from steady_vitality.assignments.state import AssignmentError
from steady_vitality.auth.database import get_engine, get_session_factory, init_db
from steady_vitality.auth.routes import router as auth_router
from steady_vitality.config import DEFAULT_JWT_SECRET, settings
from steady_vitality.gateway.middleware import SecurityMiddleware
from steady_vitality.log import logger


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Startup:
        - Create the async engine and tables
        - Expose the session factory on app.state

    Shutdown:
        - Dispose the engine's connection pool
    """
    if settings.JWT_SECRET == DEFAULT_JWT_SECRET and settings.ENVIRONMENT != "development":
        logger.warning(
            "JWT_SECRET is the built-in default in {}; set a real secret", settings.ENVIRONMENT
        )

    engine = get_engine(settings.DATABASE_URL, echo=settings.DEBUG)
    await init_db(engine)
    app.state.db_engine = engine
    app.state.db_session_factory = get_session_factory(engine)
    logger.info("{} started ({})", settings.APP_NAME, settings.ENVIRONMENT)

    yield

    await engine.dispose()
    logger.info("{} stopped", settings.APP_NAME)


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "success": False,
            "message": "Please check your input data",
            "details": jsonable_encoder(exc.errors()),
        },
    )


async def assignment_exception_handler(request: Request, exc: AssignmentError):
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"success": False, "message": exc.message},
    )


async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.opt(exception=exc).error(
        "Unhandled error on {} {}", request.method, request.url.path
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"success": False, "message": "Internal server error"},
    )


def create_app() -> FastAPI:
    app = FastAPI(
        title=settings.APP_NAME,
        description="Coaching platform backend: accounts, sessions and coach assignments",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE", "PUT", "PATCH"],
        allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
    )
    app.add_middleware(SecurityMiddleware)

    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(AssignmentError, assignment_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    app.include_router(auth_router, prefix="/api/v1")
    app.include_router(assignments_router, prefix="/api/v1")
    app.include_router(coaches_router, prefix="/api/v1")
    app.include_router(admin_router, prefix="/api/v1")

    @app.get("/health")
    async def health_check(request: Request):
        """Service status with a database round trip."""
        database = False
        try:
            async with request.app.state.db_engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            database = True
        except SQLAlchemyError:
            logger.exception("Database health check failed")

        return JSONResponse(
            status_code=status.HTTP_200_OK if database else status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "status": "healthy" if database else "degraded",
                "version": __version__,
                "environment": settings.ENVIRONMENT,
                "services": {"database": database},
            },
        )

    @app.get("/")
    async def root():
        """Root endpoint with API information."""
        return {
            "name": settings.APP_NAME,
            "version": __version__,
            "docs": "/docs",
            "health": "/health",
        }

    return app


app = create_app()
