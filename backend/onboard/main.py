from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from onboard.config import settings
from onboard.database import engine
from onboard.middleware.exceptions import register_exception_handlers
from onboard.routers import health, onboarding
from onboard.steps import build_default_registry
from onboard.utils.log import configure_logging


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    await engine.dispose()


configure_logging(settings.log_level)

app = FastAPI(
    title="Workspace Onboarding",
    description="Ordered, dependency-aware onboarding steps for new workspaces",
    version="0.1.0",
    lifespan=lifespan,
)

# Built once at startup; a bad step definition fails the import
app.state.registry = build_default_registry()

# ── Exception Handlers ───────────────────────────────────────
register_exception_handlers(app)

# ── Middleware ───────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Routers ──────────────────────────────────────────────────
app.include_router(health.router)
app.include_router(onboarding.router, prefix="/api/onboarding", tags=["onboarding"])
