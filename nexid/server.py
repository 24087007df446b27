"""
NexID Risk API - FastAPI service

Run: uvicorn nexid.server:app --host 0.0.0.0 --port 3000
"""

import hmac
import json
import logging
import uuid
from contextlib import asynccontextmanager
from typing import Optional
from urllib.parse import urlsplit

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from . import __version__
from .config import Settings, load_settings
from .errors import InvalidPayload, RateLimited, RiskError, Unauthorized
from .jobs import JobDispatcher
from .models import Status, VerifyRequest, VerifyResponse
from .risk import decide
from .stores import RateLimiter, ResultStore

logger = logging.getLogger(__name__)

API_KEY_HEADER = "x-api-key"
ASYNC_HEADER = "x-async"
TRUTHY = ("1", "true")
MAX_BODY_BYTES = 100 * 1024


# =============================================================================
# Request helpers
# =============================================================================

def client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for", "")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    return request.client.host if request.client else ""


def request_origin(request: Request) -> Optional[str]:
    origin = request.headers.get("origin")
    if origin:
        return origin
    referer = request.headers.get("referer")
    if referer:
        parts = urlsplit(referer)
        if parts.scheme and parts.netloc:
            return f"{parts.scheme}://{parts.netloc}"
    return None


def is_authorized(request: Request, settings: Settings) -> bool:
    if not settings.auth_enabled:
        return True

    if settings.api_key:
        key = request.headers.get(API_KEY_HEADER, "")
        # header values are latin-1 decoded raw bytes; API_KEY is configured as UTF-8 text
        if key and hmac.compare_digest(key.encode("latin-1"), settings.api_key.encode("utf-8")):
            return True

    if settings.allow_origin and request_origin(request) == settings.allow_origin:
        return True

    return False


def is_async(request: Request) -> bool:
    flag = request.query_params.get("async", "").lower()
    header = request.headers.get(ASYNC_HEADER, "").lower()
    return flag in TRUTHY or header in TRUTHY


async def parse_verify_request(request: Request) -> VerifyRequest:
    raw = await request.body()
    if len(raw) > MAX_BODY_BYTES:
        raise InvalidPayload(f"body exceeds {MAX_BODY_BYTES} bytes")
    try:
        body = json.loads(raw)
    except ValueError:
        raise InvalidPayload("body is not JSON")
    try:
        return VerifyRequest.model_validate(body)
    except ValidationError as e:
        logger.debug("invalid verify payload: %s", e.errors())
        raise InvalidPayload("body does not match VerifyRequest")


# =============================================================================
# App
# =============================================================================

def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or load_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if not settings.auth_enabled:
            logger.warning("API_KEY and ALLOW_ORIGIN are unset; /identity/verify is open to any caller")
        yield
        await app.state.dispatcher.drain()

    app = FastAPI(title="NexID Risk API", version=__version__, lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=False,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    results = ResultStore(ttl_s=settings.result_ttl_seconds)
    app.state.settings = settings
    app.state.results = results
    app.state.rate_limiter = RateLimiter(
        window_s=settings.rate_limit_window_ms / 1000,
        max_requests=settings.rate_limit_max,
    )
    app.state.dispatcher = JobDispatcher(settings, results)

    @app.exception_handler(RiskError)
    async def risk_error_handler(request: Request, exc: RiskError):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.code})

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    @app.post("/identity/verify")
    async def verify(request: Request):
        if not is_authorized(request, settings):
            raise Unauthorized()

        ip = client_ip(request)
        allowed, count = app.state.rate_limiter.admit(ip)
        if not allowed:
            logger.info("rate limit hit for %s (%d requests)", ip, count)
            raise RateLimited()

        req = await parse_verify_request(request)

        if is_async(request):
            request_id = app.state.dispatcher.enqueue(req, ip)
            return JSONResponse(status_code=202, content=VerifyResponse.pending(request_id).to_json())

        response = decide(req, ip, str(uuid.uuid4()), settings)
        return response.to_json()

    @app.get("/identity/result/{request_id}")
    async def result(request_id: str):
        found = app.state.results.get(request_id)
        if found is None:
            return JSONResponse(
                status_code=202,
                content={"status": Status.PROCESSING.value, "requestId": request_id},
            )
        return found.to_json()

    return app


app = create_app()


def run():
    import uvicorn

    settings = app.state.settings
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(app, host="0.0.0.0", port=settings.port)


if __name__ == "__main__":
    run()
