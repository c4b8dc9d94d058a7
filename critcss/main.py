"""FastAPI application entrypoint."""

import uuid

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from critcss.api import router as api_router
from critcss.api.dependencies import get_auth_dependency
from critcss.core.config import settings
from critcss.core.logging import configure_logging, extraction_context, get_logger

configure_logging()
logger = get_logger(__name__)

app = FastAPI(
    title=settings.app_name,
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Honour X-Forwarded-Proto and tag every log event with a request id."""

    async def dispatch(self, request, call_next):
        forwarded_proto = request.headers.get("x-forwarded-proto")
        if forwarded_proto:
            request.scope["scheme"] = forwarded_proto

        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
        with extraction_context(request_id=request_id):
            response = await call_next(request)
        response.headers["x-request-id"] = request_id
        return response


app.add_middleware(RequestContextMiddleware)

app.include_router(api_router.api_router, prefix=settings.api_v1_prefix)


@app.get("/healthz", tags=["health"])
def health_check() -> dict:
    """Simple health probe endpoint."""

    logger.debug("health_check_invoked")
    return {"status": "ok", "environment": settings.environment}


@app.get("/auth-check", tags=["health"], dependencies=[Depends(get_auth_dependency)])
def auth_check() -> dict:
    """Endpoint to verify API auth configuration."""

    return {"status": "authorized"}
