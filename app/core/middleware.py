# app/core/middleware.py
"""Request tracing and access logging"""
import uuid
import time
import logging
from starlette.requests import Request

logger = logging.getLogger(__name__)


async def correlation_id_middleware(request: Request, call_next):
    """Attach an X-Correlation-ID to every request and response"""
    correlation_id = request.headers.get("X-Correlation-ID") or str(uuid.uuid4())
    request.state.correlation_id = correlation_id

    response = await call_next(request)
    response.headers["X-Correlation-ID"] = correlation_id
    return response


async def request_logging_middleware(request: Request, call_next):
    """One log line per request, with status and latency"""
    started = time.perf_counter()
    correlation_id = getattr(request.state, "correlation_id", "unknown")

    try:
        response = await call_next(request)
    except Exception:
        logger.error(
            f"{request.method} {request.url.path} failed",
            exc_info=True,
            extra={"correlation_id": correlation_id},
        )
        raise

    duration_ms = round((time.perf_counter() - started) * 1000, 2)
    log = logger.warning if response.status_code >= 500 else logger.info
    log(
        f"{request.method} {request.url.path} -> {response.status_code} ({duration_ms} ms)",
        extra={
            "correlation_id": correlation_id,
            "client": request.client.host if request.client else "unknown",
        }
    )
    return response
