"""
API Routers package
"""
from routers.jobs import router as jobs_router
from routers.queue import router as queue_router
from routers.settings import router as settings_router

__all__ = [
    "jobs_router",
    "queue_router",
    "settings_router",
]
