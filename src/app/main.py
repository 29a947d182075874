import time
import uuid
from collections.abc import Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from loguru import logger

from src import version
from src.app.admin import cors_headers
from src.app.admin import router as admin_router
from src.config.settings import settings
from src.core.clients import HTTPClientManager, SupabaseAuthClient
from src.core.database import init_db
from src.core.logger import configure_logging
from src.domain.accounts.exceptions import AccountError, ConfigurationError
from src.domain.accounts.router import router as auth_router


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manages the startup and shutdown lifecycle of the FastAPI application."""
    configure_logging()
    await init_db()

    if not (settings.SUPABASE_URL and settings.SUPABASE_SERVICE_ROLE_KEY):
        logger.warning("Identity provider is not configured; user provisioning will fail with HTTP 500.")

    yield

    await HTTPClientManager.teardown()


app = FastAPI(
    title=settings.APP_NAME,
    debug=settings.DEBUG,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url=None,
)


@app.middleware("http")
async def request_id_middleware(request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
    """Injects a unique Request-ID into the logging context and response headers."""
    request_id = str(uuid.uuid4())

    with logger.contextualize(request_id=request_id):
        logger.info(f"Started {request.method} {request.url.path}")
        start_time = time.perf_counter()

        try:
            response = await call_next(request)
            process_time = time.perf_counter() - start_time

            response.headers["X-Request-ID"] = request_id
            response.headers["X-Process-Time"] = str(process_time)
            if request.url.path.startswith("/api/"):
                response.headers.update(cors_headers())

            logger.info(f"Completed {response.status_code} in {process_time:.4f}s")
            return response
        except Exception as e:
            process_time = time.perf_counter() - start_time
            logger.error(f"Request failed after {process_time:.4f}s: {e}")
            raise


# --- Exception Handlers ---
@app.exception_handler(AccountError)
async def account_error_handler(request: Request, exc: AccountError) -> JSONResponse:
    """Surfaces account failures to the initiating action with the provider message intact."""
    if isinstance(exc, ConfigurationError):
        logger.error(f"Configuration error on {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catches unhandled exceptions and returns a standardized JSON response."""
    logger.exception("Unhandled server exception")
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal Server Error",
            "message": "An unexpected error occurred.",
            "request_id": request.headers.get("X-Request-ID", "unknown"),
        },
    )


# --- Routing ---
app.include_router(auth_router)
app.include_router(admin_router)


async def _identity_provider_status() -> dict[str, str]:
    try:
        client = SupabaseAuthClient()
    except ConfigurationError as e:
        return {"status": "danger", "detail": e.message}

    ok, detail = await client.ping()
    return {"status": "ok" if ok else "danger", "detail": detail}


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Provides a basic liveness check for the application."""
    return {
        "status": "ok",
        "service": settings.APP_NAME,
        "version": version.VERSION,
        "build_time": version.BUILD_TIMESTAMP,
    }


@app.get("/api/v1/health", tags=["System"])
async def api_health_check() -> dict[str, Any]:
    """Connectivity probe used by the admin UI before it offers user management."""
    identity = await _identity_provider_status()
    return {
        "status": "ok" if identity["status"] == "ok" else "degraded",
        "service": settings.APP_NAME,
        "version": version.VERSION,
        "integrations": {"identity_provider": identity},
    }
