import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.cache.layer import cache_layer
from app.core.config import get_settings
from app.core.errors import register_exception_handlers
from app.core.logging import setup_logging
from app.database import create_db_and_tables
from app.realtime.broadcaster import broadcaster
from app.routers import auth, events, tasks, users

settings = get_settings()
setup_logging(settings.log_level)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting (environment=%s)", settings.environment)
    if not settings.is_production:
        await create_db_and_tables()
    await cache_layer.init_cache()
    yield
    await broadcaster.close()
    await cache_layer.close()


app = FastAPI(
    title="Task Management API",
    description="Role-based task management API with caching and realtime updates",
    swagger_ui_parameters={"displayRequestDuration": True},
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

# Include routers
app.include_router(auth.router)
app.include_router(users.router)
app.include_router(tasks.router)
app.include_router(events.router)


@app.get("/")
async def root():
    return {
        "message": "Welcome to Task Management API",
        "docs": "/docs",
        "version": "1.0.0",
    }


@app.get("/health")
async def health_check():
    return {"status": "healthy", "cache": cache_layer.get_stats()}
