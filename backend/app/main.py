import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import settings
from app.middleware.exceptions import register_exception_handlers
from app.middleware.rate_limit import RateLimitMiddleware
from app.routers import health, realtime, tasks, users
from app.services.notifier import ConnectionManager
from app.utils.redis import close_redis

logger = logging.getLogger("taskhub")


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("TaskHub starting (%s)", settings.environment)
    yield
    await close_redis()
    logger.info("TaskHub stopped")


app = FastAPI(
    title="TaskHub",
    description="Role-based task management with activity trail and live updates",
    version="0.1.0",
    lifespan=lifespan,
)

# One registry of live sessions per process
app.state.notifier = ConnectionManager(send_timeout=settings.ws_send_timeout)

# ── Exception Handlers ───────────────────────────────────────
register_exception_handlers(app)

# ── Middleware (outermost first) ─────────────────────────────
if settings.rate_limit_enabled:
    app.add_middleware(
        RateLimitMiddleware,
        default_limit=settings.api_rate_limit,
        default_window=settings.api_rate_window,
        exempt_paths=["/health", "/docs", "/openapi.json", "/ws"],
        custom_limits={
            ("POST", "/api/tasks"): (settings.task_creation_limit, settings.task_creation_window),
        },
    )

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Routers ──────────────────────────────────────────────────
app.include_router(health.router)
app.include_router(tasks.router, prefix="/api/tasks", tags=["tasks"])
app.include_router(users.router, prefix="/api/users", tags=["users"])
app.include_router(realtime.router, tags=["realtime"])
