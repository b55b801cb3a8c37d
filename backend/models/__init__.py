"""
Database models package
"""
from models.job import Job, JobCreate, JobRead, JobStatus, STARTABLE_STATUSES
from models.queue import Queue, QueueRead, QueueStatus
from models.setting import Setting, SettingsUpdate

__all__ = [
    "Job", "JobCreate", "JobRead", "JobStatus", "STARTABLE_STATUSES",
    "Queue", "QueueRead", "QueueStatus",
    "Setting", "SettingsUpdate",
]
