"""
GPAI Relay: chat relay to the OpenAI completion API with a bounded response cache.
"""

import json
import logging
import time
from contextlib import asynccontextmanager
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

load_dotenv()

from cache import BoundedResponseCache
from chat_service import ChatService
from config import Settings, RATE_LIMIT_WINDOW_SECONDS
from exceptions import InvalidRequestError, UpstreamError, InternalError
from llm_provider import LLMProvider, OpenAIProvider
from models import ChatResponse, HealthResponse
from rate_limiter import TokenBucketRateLimiter, rate_limit_middleware
import metrics  # Prometheus instrumentation

logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)

VERSION = "1.0.0"
HEALTH_MESSAGE = "GPAI backend running"


def create_app(settings: Optional[Settings] = None, provider: Optional[LLMProvider] = None) -> FastAPI:
    """
    Build a relay app with its own cache, rate limiter, provider and service.

    Everything stateful hangs off app.state, so two apps never share a cache.
    """
    settings = settings or Settings.from_env()
    provider = provider or OpenAIProvider(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup: open the upstream session. Shutdown: close it."""
        try:
            await provider.connect()
        except (OSError, ValueError) as e:
            logger.error(f"Startup failed: {e}")
            raise
        logger.info(f"GPAI relay started | model={settings.model} | cache_limit={settings.cache_limit}")

        yield

        await provider.disconnect()
        logger.info("GPAI relay shut down")

    app = FastAPI(
        title="GPAI Relay",
        description="Chat relay with history trimming and a bounded response cache",
        version=VERSION,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.cache = BoundedResponseCache(capacity=settings.cache_limit)
    app.state.rate_limiter = TokenBucketRateLimiter(
        max_requests=settings.rate_limit,
        window_seconds=RATE_LIMIT_WINDOW_SECONDS
    )
    app.state.chat_service = ChatService(
        settings=settings,
        cache=app.state.cache,
        llm_provider=provider
    )

    @app.middleware("http")
    async def limit_requests(request: Request, call_next):
        """Per-client rate limit. Registered first, so logging wraps it and sees 429s."""
        return await rate_limit_middleware(request, call_next, request.app.state.rate_limiter)

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log method, path and latency; record request metrics."""
        start_time = time.time()
        endpoint = request.url.path

        logger.info(f"→ {request.method} {endpoint}")

        response = await call_next(request)

        latency_seconds = time.time() - start_time
        logger.info(f"← {response.status_code} | {latency_seconds * 1000:.1f}ms")
        metrics.record_request(
            endpoint=endpoint,
            status=response.status_code,
            duration_seconds=latency_seconds
        )
        return response

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # EXCEPTION HANDLERS: map service exceptions to HTTP status codes

    @app.exception_handler(InvalidRequestError)
    async def invalid_request_handler(request: Request, exc: InvalidRequestError):
        logger.warning(f"Invalid request: {exc}")
        return JSONResponse(status_code=400, content={"error": str(exc)})

    @app.exception_handler(UpstreamError)
    async def upstream_error_handler(request: Request, exc: UpstreamError):
        """Provider failed. Callers retry on their own; nothing was cached."""
        return JSONResponse(
            status_code=500,
            content={"error": "AI service error", "details": exc.details}
        )

    @app.exception_handler(InternalError)
    async def internal_error_handler(request: Request, exc: InternalError):
        logger.error(f"Internal error: {exc}", exc_info=True)
        return JSONResponse(status_code=500, content={"error": "Internal server error"})

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Last resort. If this shows up in logs, it's a bug."""
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return JSONResponse(status_code=500, content={"error": "Internal server error"})

    @app.get("/", response_class=PlainTextResponse, tags=["health"])
    async def root() -> str:
        """Connectivity check."""
        return HEALTH_MESSAGE

    @app.get("/health", response_model=HealthResponse, tags=["health"])
    async def health_check() -> HealthResponse:
        """Health check for load balancers."""
        return HealthResponse(status="healthy", version=VERSION)

    @app.get("/metrics", tags=["monitoring"])
    async def prometheus_metrics() -> Response:
        """Prometheus metrics endpoint (text format)."""
        return Response(
            content=generate_latest(metrics.REGISTRY),
            media_type=CONTENT_TYPE_LATEST
        )

    @app.post("/api/chat", response_model=ChatResponse, tags=["chat"])
    async def chat(request: Request):
        """Relay a conversation upstream. Identical conversations are answered from cache."""
        too_large = JSONResponse(status_code=413, content={"error": "Request body too large"})

        declared = request.headers.get("content-length")
        if declared and declared.isdigit() and int(declared) > settings.max_body_bytes:
            logger.warning(f"Request body too large: Content-Length {declared}")
            return too_large

        # Chunked bodies carry no length; stop reading once past the limit
        chunks = []
        received = 0
        async for chunk in request.stream():
            received += len(chunk)
            if received > settings.max_body_bytes:
                logger.warning(f"Request body too large: over {settings.max_body_bytes} bytes streamed")
                return too_large
            chunks.append(chunk)
        raw = b"".join(chunks)

        try:
            body = json.loads(raw) if raw else None
        except (ValueError, UnicodeDecodeError) as e:
            raise InvalidRequestError("Request body must be valid JSON.") from e

        return await request.app.state.chat_service.handle_chat(body)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=app.state.settings.port, log_level="info")
