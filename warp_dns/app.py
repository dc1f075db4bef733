import os
from ipaddress import ip_address, ip_network

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from .logging_config import configure_logging
from .sync_logic import process_logpush_batch

log = structlog.get_logger()


def get_rate_limit():
    return os.getenv("RATE_LIMIT", "100/minute")


configure_logging()
limiter = Limiter(key_func=get_remote_address)

app = FastAPI(docs_url=None, redoc_url=None, openapi_url=None)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        return response

app.add_middleware(SecurityHeadersMiddleware)


@app.exception_handler(405)
async def method_not_allowed_exception_handler(request: Request, exc: StarletteHTTPException):
    # The ingest endpoint answers every non-POST verb the same way, including TRACE and WebDAV verbs.
    if request.url.path == "/":
        return PlainTextResponse("Only POST requests are allowed", status_code=405, headers=exc.headers)
    return JSONResponse(status_code=405, content={"detail": exc.detail}, headers=exc.headers)


@app.exception_handler(500)
async def internal_server_error_exception_handler(request: Request, exc: Exception):
    return PlainTextResponse("Error processing data", status_code=500)


class IPWhitelistMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        allowed_subnets_str = os.getenv("ALLOWED_SUBNETS")
        if allowed_subnets_str:
            allowed_subnets = [ip_network(subnet.strip()) for subnet in allowed_subnets_str.split(",")]
            client_ip_str = request.headers.get("X-Forwarded-For", request.client.host)
            try:
                client_ip = ip_address(client_ip_str.split(",")[0].strip())
            except ValueError:
                return JSONResponse(status_code=403, content={"detail": "Forbidden"})
            if not any(client_ip in subnet for subnet in allowed_subnets):
                return JSONResponse(status_code=403, content={"detail": "Forbidden"})
        response = await call_next(request)
        return response


app.add_middleware(IPWhitelistMiddleware)


@app.post("/")
@limiter.limit(get_rate_limit)
async def ingest_logpush(request: Request):
    """Receives a gzip-compressed Logpush batch and returns the DNS action log."""
    try:
        body = await request.body()
        actions = await run_in_threadpool(process_logpush_batch, body)
    except Exception as e:
        log.error("Error processing Logpush data", error=str(e), exc_info=True)
        return PlainTextResponse("Error processing data", status_code=500)

    return JSONResponse(content=actions)


@app.get("/health")
@limiter.limit(get_rate_limit)
async def health_check(request: Request):
    return JSONResponse(content={"status": "ok"})
