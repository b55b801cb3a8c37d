"""
Training Job model - one row per toolkit training run
"""
from datetime import datetime
from sqlmodel import SQLModel, Field
from typing import Optional
from enum import Enum
import uuid


class JobStatus(str, Enum):
    """Job status enum"""
    QUEUED = "queued"
    RUNNING = "running"
    STOPPED = "stopped"
    ERROR = "error"
    COMPLETED = "completed"


# Statuses the queue scheduler may promote to running
STARTABLE_STATUSES = frozenset({JobStatus.QUEUED, JobStatus.STOPPED, JobStatus.ERROR})


class JobBase(SQLModel):
    """Base job fields"""
    name: str = Field(index=True, unique=True)
    gpu_ids: str = "0"
    job_config: str  # JSON string


class Job(JobBase, table=True):
    """Job database model"""
    __tablename__ = "jobs"

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    status: JobStatus = Field(default=JobStatus.STOPPED, index=True)
    stop: bool = Field(default=False)
    step: int = Field(default=0)
    info: str = Field(default="")
    speed_string: str = Field(default="")

    # Timing
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class JobCreate(SQLModel):
    """Schema for creating a job"""
    name: str
    gpu_ids: str = "0"
    job_config: dict | str


class JobRead(JobBase):
    """Schema for reading a job"""
    id: str
    status: JobStatus
    stop: bool
    step: int
    info: str
    speed_string: str
    created_at: datetime
    updated_at: datetime
