from __future__ import annotations

import math
import time
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from apscheduler.triggers.interval import IntervalTrigger
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from limits.storage import MemoryStorage, RedisStorage
from limits.strategies import FixedWindowRateLimiter
from loguru import logger
from redis import asyncio as redis_asyncio
from starlette.middleware.base import BaseHTTPMiddleware

from api.v1.uploads_route import router as v1_uploads_router
from core.database import ping as mongo_ping
from core.errors import AppException
from core.logger import configure_logging
from core.rate_limiter import RateLimiter
from core.response_envelope import (
    apply_response_documentation,
    current_request_id,
    document_response,
    error_response,
    http_exception_response,
)
from core.role_config import build_role_rate_limits
from core.scheduler import register_rate_limit_sweep, scheduler
from core.settings import get_settings
from core.storage import StorageGatewayManager
from core.validation_errors import format_validation_error_details
from repositories.folder_repo import ensure_folder_indexes
from repositories.resource_repo import ensure_resource_indexes
from repositories.upload_repo import ensure_upload_indexes
from security.auth import principal_from_token

settings = get_settings()

redis_client = redis_asyncio.Redis.from_url(settings.redis_url, socket_connect_timeout=2, decode_responses=True)

HEARTBEAT_KEY = "apscheduler:heartbeat"
_last_heartbeat: float | None = None


class RequestIdMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        token = current_request_id.set(request_id)
        try:
            with logger.contextualize(request_id=request_id):
                response = await call_next(request)
        finally:
            current_request_id.reset(token)
        response.headers["X-Request-ID"] = request_id
        return response


class RequestTimingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        start_time = time.perf_counter()
        response = await call_next(request)
        elapsed = time.perf_counter() - start_time
        response.headers["X-Process-Time"] = f"{elapsed:.6f}"
        logger.debug("{} {} -> {} in {:.1f} ms", request.method, request.url.path, response.status_code, elapsed * 1000)
        return response


RATE_LIMITS = build_role_rate_limits(settings.role_rate_limits)

limiter_storage = RedisStorage(settings.redis_url) if settings.rate_limit_backend == "redis" else MemoryStorage()
limiter = FixedWindowRateLimiter(limiter_storage)


def get_user_type(request: Request) -> tuple[str, str]:
    auth_header = request.headers.get("Authorization")
    fallback_id = request.headers.get("X-Forwarded-For") or (request.client.host if request.client else "unknown")

    if not auth_header or not auth_header.startswith("Bearer "):
        return fallback_id, "anonymous"

    token = auth_header.split(" ", maxsplit=1)[1]
    try:
        principal = principal_from_token(token)
    except AppException:
        return fallback_id, "anonymous"

    user_type = principal.role if principal.role in RATE_LIMITS else "anonymous"
    return principal.user_id, user_type


class RateLimitingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        user_id, user_type = get_user_type(request)
        rate_limit_rule = RATE_LIMITS[user_type]

        allowed = limiter.hit(rate_limit_rule, user_type, user_id)
        reset_time, remaining = limiter.get_window_stats(rate_limit_rule, user_type, user_id)
        seconds_until_reset = max(math.ceil(reset_time - time.time()), 0)

        headers = {
            "X-RateLimit-Limit": str(rate_limit_rule.amount),
            "X-RateLimit-Remaining": str(max(remaining, 0)),
            "X-RateLimit-Reset": str(seconds_until_reset),
        }

        if not allowed:
            logger.warning("Global rate limit hit for {} ({})", user_id, user_type)
            headers["Retry-After"] = str(seconds_until_reset)
            return error_response(
                status_code=429,
                message="Too Many Requests",
                data={
                    "code": "TOO_MANY_REQUESTS",
                    "details": {
                        "retry_after_seconds": seconds_until_reset,
                        "user_type": user_type,
                    },
                },
                headers=headers,
                request_id=getattr(request.state, "request_id", None),
            )

        response = await call_next(request)
        for key, value in headers.items():
            response.headers[key] = value
        return response


async def apscheduler_heartbeat() -> None:
    global _last_heartbeat
    _last_heartbeat = time.time()
    try:
        await redis_client.set(HEARTBEAT_KEY, str(_last_heartbeat), ex=60)
    except Exception as exc:
        logger.debug("Could not publish scheduler heartbeat: {}", exc)


async def ensure_indexes() -> None:
    try:
        await ensure_resource_indexes()
        await ensure_folder_indexes()
        await ensure_upload_indexes()
    except Exception:
        logger.exception("Failed to ensure MongoDB indexes")


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    StorageGatewayManager.configure_from_settings()
    RateLimiter.configure_from_settings()
    await ensure_indexes()

    scheduler.add_job(
        apscheduler_heartbeat,
        trigger=IntervalTrigger(seconds=15),
        id="apscheduler_heartbeat",
        name="APScheduler Heartbeat",
        replace_existing=True,
    )
    if settings.rate_limit_backend == "memory":
        register_rate_limit_sweep(interval_seconds=settings.rate_limit_sweep_seconds)
    scheduler.start()
    logger.info(
        "Upload service started (storage={}, rate_limit={})",
        settings.storage_backend,
        settings.rate_limit_backend,
    )

    try:
        yield
    finally:
        scheduler.shutdown(wait=False)
        await redis_client.aclose()


app = FastAPI(lifespan=lifespan, title="Document Upload API")
app.add_middleware(RequestTimingMiddleware)
app.add_middleware(RateLimitingMiddleware)
app.add_middleware(RequestIdMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.cors_origins) if settings.cors_origins else ["http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(HTTPException)
async def custom_http_exception_handler(request: Request, exc: HTTPException):
    return http_exception_response(exc=exc, request=request)


@app.exception_handler(RequestValidationError)
async def custom_validation_exception_handler(request: Request, exc: RequestValidationError):
    return error_response(
        status_code=422,
        message="Validation error",
        data={"code": "VALIDATION_FAILED", "details": format_validation_error_details(exc.errors())},
        request_id=getattr(request.state, "request_id", None),
    )


@app.exception_handler(Exception)
async def custom_exception_handler(request: Request, exc: Exception):
    logger.opt(exception=exc).error("Unhandled error on {} {}", request.method, request.url.path)
    details = str(exc) if (settings.debug_include_error_details and not settings.is_production) else None
    return error_response(
        status_code=500,
        message="Internal Server Error",
        data={"code": "INTERNAL_ERROR", "details": details},
        request_id=getattr(request.state, "request_id", None),
    )


async def _probe(name: str, check) -> tuple[bool, dict[str, str | float]]:
    start = time.perf_counter()
    try:
        await check()
    except Exception as exc:
        return False, {
            "status": "unhealthy",
            "latency_ms": round((time.perf_counter() - start) * 1000, 2),
            "message": str(exc),
        }
    return True, {
        "status": "healthy",
        "latency_ms": round((time.perf_counter() - start) * 1000, 2),
        "message": f"{name} ping successful",
    }


@app.get("/health", tags=["Health"])
@document_response(
    message="Health check completed",
    success_example={"status": "healthy", "services": {"mongo": {"status": "healthy"}, "redis": {"status": "healthy"}}},
)
async def health_check():
    services: dict[str, dict[str, str | float]] = {}
    overall_status = "healthy"

    mongo_ok, services["mongo"] = await _probe("MongoDB", mongo_ping)
    redis_ok, services["redis"] = await _probe("Redis", redis_client.ping)
    if not (mongo_ok and redis_ok):
        overall_status = "degraded"

    if _last_heartbeat is not None:
        age = time.time() - _last_heartbeat
        services["apscheduler"] = {
            "status": "healthy" if age <= 30 else "degraded",
            "latency_ms": 0,
            "message": f"Last heartbeat {int(age)}s ago",
        }
        if age > 30:
            overall_status = "degraded"
    else:
        overall_status = "degraded"
        services["apscheduler"] = {
            "status": "unhealthy",
            "latency_ms": 0,
            "message": "No heartbeat found",
        }

    return {
        "status": overall_status,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "services": services,
    }


app.include_router(v1_uploads_router, prefix="/v1")

apply_response_documentation(app)
