"""Messaging FastAPI application.

Web server that processes messaging commands synchronously via HTTP. Each
request under ``/messaging`` is wrapped in the messaging domain context.

Usage:
    uvicorn src.app:app --host 0.0.0.0 --port 8000 --reload
"""

# ---------------------------------------------------------------------------
# Domain initialization
# ---------------------------------------------------------------------------
# The domain is initialized at module level so uvicorn workers share it.
# PROTEAN_ENV controls which config overlay is applied:
#   - "test"       → memory providers, sync processing
#   - "production" → PostgreSQL + Redis, async event processing
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from protean.integrations.fastapi import register_exception_handlers

from messaging.domain import messaging

messaging.init()

# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Messaging API",
    description="Notification delivery and preference resolution",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)


@app.middleware("http")
async def domain_context_middleware(request: Request, call_next):
    """Push the messaging domain context for API requests."""
    if request.url.path.startswith("/messaging"):
        with messaging.domain_context():
            return await call_next(request)
    # Health check, docs and the like need no domain
    return await call_next(request)


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------
from messaging.api.routes import router as messaging_router  # noqa: E402

app.include_router(messaging_router)


# ---------------------------------------------------------------------------
# Health / root
# ---------------------------------------------------------------------------
@app.get("/health")
async def health():
    from messaging.channel import get_gateway

    return JSONResponse(
        content={
            "status": "ok",
            "domain": messaging.name,
            "push_gateway": type(get_gateway()).__name__,
        }
    )
