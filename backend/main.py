"""
EquiCare API - patient feedback and care-equity dashboard

Backend for the EquiCare patient submission, profile and admin views.

This API provides:
- A relay that asks a language model for a bias score and visit review
- Transcript submission under a device-scoped patient id
- Aggregated ratings per doctor, gender and race for the admin dashboard
"""

import time
from contextlib import asynccontextmanager
from uuid import uuid4

from fastapi import Depends, FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from config.config import Settings, get_settings
from config.logging_config import configure_logging, get_logger, log_request_context
from database.database import EquiCareStore, close_connection, get_store
from models.models import (
    AnalyzeRequest,
    AnalyzeResponse,
    DashboardSummary,
    Doctor,
    DoctorDetail,
    ErrorResponse,
    HealthResponse,
    HealthStatus,
    LocalProfile,
    SubmissionResult,
    TranscriptSubmission,
    UserProfile,
)
from services.analyze_service import AnalyzeService, get_analyze_service
from services.dashboard_service import DashboardService
from services.errors import EquiCareError
from services.profile_service import ProfileService
from services.submission_service import SubmissionService

# Configure logging before anything else
configure_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Log startup configuration and release clients on shutdown."""
    settings = get_settings()

    logger.info(
        "Application starting",
        app_name=settings.app_name,
        version=settings.app_version,
        environment=settings.environment,
        config=settings.get_safe_config_dict(),
    )

    yield

    await get_analyze_service().aclose()
    close_connection()
    logger.info("Application shutting down")


def _error_response(status_code: int, error: str, detail=None) -> JSONResponse:
    content = ErrorResponse(error=error, detail=detail).model_dump(mode="json")
    if detail is None:
        content.pop("detail")
    return JSONResponse(status_code=status_code, content=content)


def create_app(settings: Settings | None = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        settings: Optional settings override for testing.

    Returns:
        Configured FastAPI application.
    """
    settings = settings or get_settings()

    app = FastAPI(
        title=settings.app_name,
        description=__doc__,
        version=settings.app_version,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log all requests with timing and context."""
        request_id = str(uuid4())
        start_time = time.perf_counter()

        log_request_context(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )

        try:
            response = await call_next(request)
        except Exception as exc:
            logger.exception("Unhandled exception", error=str(exc))
            response = _error_response(500, str(exc) or exc.__class__.__name__)

        processing_time = int((time.perf_counter() - start_time) * 1000)
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Processing-Time-Ms"] = str(processing_time)

        logger.info(
            "Request completed",
            status_code=response.status_code,
            processing_time_ms=processing_time,
        )

        return response

    @app.exception_handler(EquiCareError)
    async def equicare_exception_handler(request: Request, exc: EquiCareError):
        """Map service errors to their status code."""
        if exc.status_code >= 500:
            logger.error("Service error", error=exc.message, status_code=exc.status_code)
        return _error_response(exc.status_code, exc.message, exc.detail)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return _error_response(exc.status_code, str(exc.detail))

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Malformed bodies are client errors in the standard error shape."""
        return _error_response(400, "Invalid request", jsonable_encoder(exc.errors()))

    # Added last so it wraps the request logger and its 500 responses
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_routes(app)

    return app


def get_dashboard_service(store: EquiCareStore = Depends(get_store)) -> DashboardService:
    return DashboardService(store)


def get_submission_service(store: EquiCareStore = Depends(get_store)) -> SubmissionService:
    return SubmissionService(store)


def get_profile_service(store: EquiCareStore = Depends(get_store)) -> ProfileService:
    return ProfileService(store)


def register_routes(app: FastAPI) -> None:
    """Register all API routes."""

    @app.get("/", tags=["Root"])
    async def root(settings: Settings = Depends(get_settings)):
        """Root endpoint with API information."""
        return {
            "name": settings.app_name,
            "version": settings.app_version,
            "status": "operational",
            "docs": "/docs" if settings.debug else "disabled",
        }

    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    async def health_check(settings: Settings = Depends(get_settings)) -> HealthResponse:
        """Report configuration health for monitoring."""
        checks = {
            "api": True,
            "anthropic_configured": bool(settings.anthropic_api_key),
            "store_configured": bool(settings.arango_host and settings.arango_database),
        }

        if all(checks.values()):
            status = HealthStatus.HEALTHY
        elif checks["api"]:
            status = HealthStatus.DEGRADED
        else:
            status = HealthStatus.UNHEALTHY

        return HealthResponse(
            status=status,
            version=settings.app_version,
            environment=settings.environment,
            checks=checks,
        )

    @app.post(
        "/analyze",
        response_model=AnalyzeResponse,
        responses={400: {"model": ErrorResponse}, 502: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
        tags=["Analysis"],
    )
    async def analyze(
        request: AnalyzeRequest,
        service: AnalyzeService = Depends(get_analyze_service),
    ) -> AnalyzeResponse:
        """
        Ask the language model for a bias score and short review of a visit.

        Returns `{score, review}`; when the model's reply is not valid JSON
        the score is null and the review holds the raw reply.
        """
        return await service.analyze(request)

    @app.get("/api/v1/doctors", response_model=list[Doctor], tags=["Doctors"])
    def list_doctors(service: DashboardService = Depends(get_dashboard_service)) -> list[Doctor]:
        """All doctors, ordered by name."""
        return service.list_doctors()

    @app.get("/api/v1/doctors/{doctor_id}", response_model=DoctorDetail, tags=["Doctors"])
    def doctor_detail(
        doctor_id: str,
        service: DashboardService = Depends(get_dashboard_service),
    ) -> DoctorDetail:
        """A doctor's rating summary and patient interactions, newest first."""
        return service.doctor_detail(doctor_id)

    @app.get("/api/v1/dashboard", response_model=DashboardSummary, tags=["Dashboard"])
    def dashboard(service: DashboardService = Depends(get_dashboard_service)) -> DashboardSummary:
        """
        Hospital-wide statistics.

        Averages are null when there is nothing to average.
        """
        return service.summary()

    @app.post("/api/v1/transcripts", response_model=SubmissionResult, status_code=201, tags=["Transcripts"])
    def submit_transcript(
        submission: TranscriptSubmission,
        service: SubmissionService = Depends(get_submission_service),
    ) -> SubmissionResult:
        """
        Submit a visit transcript.

        The patient row and the transcript are written together; when
        `user_id` is omitted a new one is generated and returned.
        """
        logger.info("Submission received", doctor_id=submission.doctor_id, has_user_id=bool(submission.user_id))
        return service.submit(submission)

    @app.get("/api/v1/users/{user_id}", response_model=UserProfile, tags=["Profile"])
    def get_profile(
        user_id: str,
        service: ProfileService = Depends(get_profile_service),
    ) -> UserProfile:
        return service.get_profile(user_id)

    @app.put("/api/v1/users/{user_id}", response_model=UserProfile, tags=["Profile"])
    def save_profile(
        user_id: str,
        profile: LocalProfile,
        service: ProfileService = Depends(get_profile_service),
    ) -> UserProfile:
        """Store the non-empty profile fields; blanks never clear stored values."""
        return service.save_profile(user_id, profile)


# Create the application instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
