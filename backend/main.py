"""
Storefront Order Engine — FastAPI Application

Checkout against a hosted payment processor, webhook-driven payment
reconciliation and the order lifecycle state machine.
"""
import logging
import os
import re
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi import HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import settings
from routes import checkout, health, orders

# ── Logging ─────────────────────────────────────────────────────────

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


# ── Lifespan ────────────────────────────────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup: validate settings and create DB tables."""
    # Ensure data/ directory exists for SQLite
    os.makedirs("data", exist_ok=True)

    settings.validate_production_settings()

    from database import init_db
    await init_db()
    logger.info("Database initialized")

    if settings.simulation_mode:
        logger.info("Simulation mode: charges are created by the simulated processor")

    yield  # app runs here

    from database import engine
    await engine.dispose()
    logger.info("Shutting down")


# ── App Factory ─────────────────────────────────────────────────────

app = FastAPI(
    title="Storefront Order Engine API",
    description="Checkout, payment reconciliation and order tracking",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Routes ──────────────────────────────────────────────────────────

app.include_router(health.router)
app.include_router(checkout.router)
app.include_router(orders.router)


# ── Exception Handlers ──────────────────────────────────────────────

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


def error_code_for(exc: Exception) -> str:
    """InvalidInput → invalid_input, NotFoundError → not_found."""
    name = exc.__class__.__name__
    if name.endswith("Error") and name != "Error":
        name = name[: -len("Error")]
    return _CAMEL_BOUNDARY.sub("_", name).lower()


@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """
    Catch-all for unhandled exceptions.

    Never return raw exception details to clients; the traceback is
    logged server-side.
    """
    logger.error(f"Unhandled exception on {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": {
                "code": "internal_server_error",
                "message": "Internal server error",
            },
        },
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request, exc: HTTPException):
    """
    Standardize HTTPException responses for frontend consumers.

    Keeps the original HTTP status code, but wraps the payload.
    """
    if hasattr(exc, "message") and hasattr(exc, "details"):
        # DomainError with structured error info
        if exc.status_code >= 500:
            logger.error(f"{exc.__class__.__name__} on {request.url.path}: {exc.message}")
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "success": False,
                "error": {
                    "code": error_code_for(exc),
                    "message": exc.message,
                    "details": exc.details,
                },
            },
        )

    # Regular HTTPException
    detail = exc.detail
    message = detail if isinstance(detail, str) else "Request failed"
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "error": {
                "code": "http_error",
                "message": message,
                "details": detail if not isinstance(detail, str) else None,
            },
        },
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request, exc: RequestValidationError):
    """Request body / query failed pydantic validation."""
    return JSONResponse(
        status_code=422,
        content={
            "success": False,
            "error": {
                "code": "validation_error",
                "message": "Request validation failed",
                "details": {"errors": [
                    {"loc": list(e.get("loc", ())), "msg": e.get("msg", "")}
                    for e in exc.errors()
                ]},
            },
        },
    )


# ── Entrypoint ──────────────────────────────────────────────────────

if __name__ == "__main__":
    import uvicorn
    port = int(os.environ.get("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port, log_level="info")
