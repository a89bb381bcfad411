"""Refunds FastAPI application.

Processes commands synchronously via HTTP. Each request runs inside the
refunds domain context.

Usage:
    uvicorn app:app --app-dir src --host 0.0.0.0 --port 8000 --reload
"""

# ---------------------------------------------------------------------------
# Domain initialization
# ---------------------------------------------------------------------------
# PROTEAN_ENV selects the config overlay from refunds/domain.toml.
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from refunds.domain import refunds
from refunds.utils.logging import clear_context, configure_logging

configure_logging()
refunds.init()


# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Refunds API",
    description="Orders, partial refunds and credit slips",
)


@app.middleware("http")
async def domain_context_middleware(request: Request, call_next):
    """Push the refunds domain context for each request."""
    clear_context()
    with refunds.domain_context():
        return await call_next(request)


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------
from refunds.api.routes import order_router  # noqa: E402

app.include_router(order_router)


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------
@app.get("/health")
async def health():
    return JSONResponse(content={"status": "ok", "domain": refunds.name})
