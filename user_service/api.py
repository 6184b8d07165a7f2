"""FastAPI application exposing user CRUD and health endpoints."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, List

from fastapi import APIRouter, Body, Depends, FastAPI, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from starlette.exceptions import HTTPException as StarletteHTTPException
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from . import __version__
from .config import Settings, load_settings
from .health import HealthReporter
from .middleware import (
    AccessLogMiddleware,
    BodySizeLimitMiddleware,
    RateLimiter,
    RateLimitMiddleware,
    SecurityHeadersMiddleware,
)
from .models import User
from .store import EmailConflictError, UserNotFoundError, UserStore
from .users import UserService
from .validation import ValidationFailed, Violation

logger = logging.getLogger("userservice.api")

SERVICE_NAME = "user-service"


class UserResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    email: str
    name: str
    role: str
    created_at: datetime = Field(alias="createdAt")
    updated_at: datetime = Field(alias="updatedAt")


class UserListResponse(BaseModel):
    count: int
    users: List[UserResponse]


class ServiceInfoResponse(BaseModel):
    service: str
    version: str
    status: str
    timestamp: datetime


def user_to_response(user: User) -> UserResponse:
    return UserResponse(
        id=user.id,
        email=user.email,
        name=user.name,
        role=user.role,
        created_at=user.created_at,
        updated_at=user.updated_at,
    )


def _violation_from_pydantic(error: Dict[str, Any]) -> Violation:
    loc = tuple(error.get("loc") or ("body",))
    location = "params" if loc[0] == "path" else str(loc[0])
    names = [str(part) for part in loc[1:] if isinstance(part, str)]
    field = ".".join(names) or str(loc[0])
    return Violation(field, str(error.get("msg", "Invalid value")), location=location)


def create_app(
    *,
    store: UserStore | None = None,
    settings: Settings | None = None,
    health: HealthReporter | None = None,
) -> FastAPI:
    if settings is None:
        settings = load_settings()
    if store is None:
        store = UserStore()
    if health is None:
        health = HealthReporter(memory_limit_bytes=settings.memory_limit_bytes)

    service = UserService(store)

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        yield
        logger.info("Discarding %d in-memory user(s) on shutdown", len(store))
        store.clear()

    app = FastAPI(
        title="User Service",
        description="CRUD operations for user management",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.store = store
    app.state.health = health

    # Starlette wraps middleware in reverse order: the last one added runs first.
    app.add_middleware(BodySizeLimitMiddleware, max_bytes=settings.max_body_bytes)
    if settings.rate_limit_enabled:
        app.state.rate_limiter = RateLimiter(settings.rate_limit_max, settings.rate_limit_window)
        app.add_middleware(RateLimitMiddleware, limiter=app.state.rate_limiter)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.allowed_origins),
        allow_methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=["Content-Type", "Authorization"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=1024)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(AccessLogMiddleware)
    app.add_middleware(ProxyHeadersMiddleware, trusted_hosts=list(settings.trusted_proxies))

    def get_service() -> UserService:
        return service

    def get_health() -> HealthReporter:
        return health

    @app.get("/", response_model=ServiceInfoResponse)
    def read_service_info() -> ServiceInfoResponse:
        return ServiceInfoResponse(
            service=SERVICE_NAME,
            version=__version__,
            status="running",
            timestamp=datetime.now(timezone.utc),
        )

    users_router = APIRouter(prefix="/api/users", tags=["users"])

    @users_router.get("", response_model=UserListResponse)
    def list_users(users: UserService = Depends(get_service)) -> UserListResponse:
        records = users.list_users()
        return UserListResponse(count=len(records), users=[user_to_response(user) for user in records])

    @users_router.get("/{user_id}", response_model=UserResponse)
    def read_user(user_id: str, users: UserService = Depends(get_service)) -> UserResponse:
        return user_to_response(users.get_user(user_id))

    @users_router.post("", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
    def create_user(
        payload: Any = Body(default=None),
        users: UserService = Depends(get_service),
    ) -> UserResponse:
        return user_to_response(users.create_user(payload))

    @users_router.put("/{user_id}", response_model=UserResponse)
    def update_user(
        user_id: str,
        payload: Any = Body(default=None),
        users: UserService = Depends(get_service),
    ) -> UserResponse:
        return user_to_response(users.update_user(user_id, payload))

    @users_router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
    def delete_user(user_id: str, users: UserService = Depends(get_service)) -> Response:
        users.delete_user(user_id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    health_router = APIRouter(prefix="/health", tags=["health"])

    @health_router.get("")
    def read_health(reporter: HealthReporter = Depends(get_health)) -> Dict[str, object]:
        return reporter.summary()

    @health_router.get("/live")
    def read_liveness(reporter: HealthReporter = Depends(get_health)) -> Dict[str, str]:
        return reporter.liveness()

    @health_router.get("/ready")
    def read_readiness(reporter: HealthReporter = Depends(get_health)) -> JSONResponse:
        report = reporter.readiness()
        status_code = status.HTTP_200_OK if report.ready else status.HTTP_503_SERVICE_UNAVAILABLE
        return JSONResponse(status_code=status_code, content=report.to_dict())

    @health_router.get("/metrics")
    def read_metrics(reporter: HealthReporter = Depends(get_health)) -> Dict[str, object]:
        return reporter.metrics()

    app.include_router(users_router)
    app.include_router(health_router)

    @app.exception_handler(ValidationFailed)
    async def handle_validation_failed(_: Request, exc: ValidationFailed):
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(_: Request, exc: RequestValidationError):
        violations = [_violation_from_pydantic(error) for error in exc.errors()]
        if not violations:
            violations = [Violation("body", "Malformed request")]
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=ValidationFailed(violations).to_dict(),
        )

    @app.exception_handler(UserNotFoundError)
    async def handle_not_found(_: Request, exc: UserNotFoundError):
        return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"error": "User not found"})

    @app.exception_handler(EmailConflictError)
    async def handle_conflict(_: Request, exc: EmailConflictError):
        return JSONResponse(status_code=status.HTTP_409_CONFLICT, content={"error": "Email already exists"})

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(_: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def handle_internal_error(request: Request, exc: Exception):
        logger.exception("Unhandled error while serving %s %s", request.method, request.url.path)
        payload: Dict[str, object] = {"error": "Internal Server Error"}
        if settings.expose_errors:
            payload["message"] = str(exc)
        return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=payload)

    return app


def __getattr__(name: str):
    # ``uvicorn user_service.api:app`` builds the default app on first access,
    # so importing this module never reads configuration.
    if name == "app":
        application = create_app()
        globals()["app"] = application
        return application
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = ["UserResponse", "UserListResponse", "app", "create_app", "user_to_response"]
