"""
Toolkit Job Manager - Backend API
FastAPI application entry point
"""
import sys

from contextlib import asynccontextmanager
from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from config import settings
from database import init_db, close_db
from scheduler import QueueScheduler
from services import (
    JobRunnerClient,
    manager,
    get_job_store,
    get_settings_service,
)
from routers import jobs_router, queue_router, settings_router


# Configure logging
logger.remove()
logger.add(
    sys.stderr,
    format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
    level="DEBUG" if settings.DEBUG else "INFO"
)
logger.add(
    str(settings.LOGS_DIR / "toolkit_{time}.log"),
    rotation="500 MB",
    retention="10 days",
    level="DEBUG"
)


def build_scheduler() -> QueueScheduler:
    """Wire the queue scheduler to the process-wide store and settings cache"""
    return QueueScheduler(
        store=get_job_store(),
        settings_service=get_settings_service(),
        runner=JobRunnerClient(),
        interval=settings.QUEUE_POLL_INTERVAL_SECONDS,
        notifier=manager,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - startup and shutdown"""
    # Startup
    logger.info(f"Starting Toolkit Job Manager backend ({settings.ENVIRONMENT})...")
    await init_db()
    logger.info("Database initialized")

    scheduler = build_scheduler()
    app.state.scheduler = scheduler
    scheduler.start()
    logger.info(f"Job runner endpoint: {settings.job_runner_base_url}")

    yield

    # Shutdown - let an in-flight tick finish before closing the pool
    logger.info("Shutting down Toolkit Job Manager backend...")
    await scheduler.stop()
    await scheduler.runner.aclose()
    await close_db()
    logger.info("Cleanup complete")


# Create FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Training job control panel with queued job scheduling",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc"
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Include routers
app.include_router(jobs_router, prefix="/api")
app.include_router(queue_router, prefix="/api")
app.include_router(settings_router, prefix="/api")


# Health check
@app.get("/health")
async def health_check():
    """Health check endpoint"""
    scheduler = getattr(app.state, "scheduler", None)
    return {
        "status": "healthy",
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "scheduler": "running" if scheduler and scheduler.is_running else "stopped",
        "websocket_clients": manager.connection_count,
    }


# Root endpoint
@app.get("/")
async def root():
    """Root endpoint with API info"""
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "docs": "/docs",
        "health": "/health"
    }


# WebSocket endpoint
@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """
    Job and queue update stream. Clients may send {"type": "ping"}.
    """
    await manager.connect(websocket)

    try:
        while True:
            data = await websocket.receive_json()
            if data.get("type") == "ping":
                await websocket.send_json({"type": "pong"})

    except WebSocketDisconnect:
        manager.disconnect(websocket)
    except Exception as e:
        logger.error(f"WebSocket error: {e}")
        manager.disconnect(websocket)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG
    )
