"""
Services package

Process-wide instances are built lazily here and handed to routers through
FastAPI dependencies, so tests can swap any of them with dependency_overrides.
"""
from functools import lru_cache

from services.job_store import JobStore
from services.settings_cache import SettingsCache, SettingsService, MISS
from services.job_runner import JobRunnerClient, StartResult
from services.job_launcher import JobLauncher, LaunchContext
from services.websocket_manager import manager, WebSocketManager
from services.job_import import JobImporter, ImportResult


@lru_cache
def get_job_store() -> JobStore:
    from database import async_session
    return JobStore(async_session)


@lru_cache
def get_settings_cache() -> SettingsCache:
    return SettingsCache()


@lru_cache
def get_settings_service() -> SettingsService:
    return SettingsService(get_job_store(), get_settings_cache())


@lru_cache
def get_job_launcher() -> JobLauncher:
    return JobLauncher()


def get_ws_manager() -> WebSocketManager:
    return manager


__all__ = [
    "JobStore",
    "SettingsCache",
    "SettingsService",
    "MISS",
    "JobRunnerClient",
    "StartResult",
    "JobLauncher",
    "LaunchContext",
    "JobImporter",
    "ImportResult",
    "manager",
    "WebSocketManager",
    "get_job_store",
    "get_settings_cache",
    "get_settings_service",
    "get_job_launcher",
    "get_ws_manager",
]
