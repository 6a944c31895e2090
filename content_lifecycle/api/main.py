import logging
import sys
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from content_lifecycle.adapters.sqlite.migrator import SQLiteMigrator
from content_lifecycle.api.deps import get_context, get_rules, get_settings
from content_lifecycle.app_shell.config import validate_ops_rules
from content_lifecycle.core.errors import TRANSIENT_FAILURE, TransientError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown."""
    logging.basicConfig(level=logging.INFO)
    settings = get_settings()

    # Load rules and validate on startup (fail-fast)
    try:
        rules = get_rules(settings)
        validate_ops_rules(rules)
        print(f"INFO: Rules loaded from {settings.rules_path}")
    except (OSError, ValueError) as e:
        print(f"CRITICAL: Rules load failed: {e}", file=sys.stderr)
        sys.exit(1)

    SQLiteMigrator(settings.db_path).run_migrations()

    ctx = get_context()
    ctx.start_background()
    try:
        yield
    finally:
        ctx.shutdown()


app = FastAPI(
    title="Content Lifecycle API",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# --- Routers ---
from content_lifecycle.api.routes import items, jobs, schedule, workflows  # noqa: E402

app.include_router(schedule.router, prefix="/api", tags=["Scheduling"])
app.include_router(workflows.router, prefix="/api", tags=["Workflows"])
app.include_router(items.router, prefix="/api", tags=["Items"])
app.include_router(jobs.router, prefix="/api", tags=["Bulk Jobs"])


@app.exception_handler(TransientError)
async def transient_error_handler(request: Request, exc: TransientError) -> JSONResponse:
    """Store or lock unavailability that escaped a route is still a 503."""
    logger.warning("Transient failure on %s: %s", request.url.path, exc)
    return JSONResponse(
        status_code=503,
        content={
            "detail": {
                "errors": [
                    {
                        "code": TRANSIENT_FAILURE,
                        "message": str(exc),
                        "item_id": getattr(exc, "item_id", None),
                    }
                ]
            }
        },
    )


@app.get("/health")
def health_check() -> dict[str, Any]:
    """Health check endpoint."""
    ctx = get_context()
    return {
        "status": "ok",
        "service": "content-lifecycle",
        "dispatcher_running": ctx.dispatcher.is_running,
        "job_workers_running": ctx.jobs.is_running,
    }
