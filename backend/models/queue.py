"""
Queue model - jobs waiting for the scheduler to start them
"""
from datetime import datetime
from sqlmodel import SQLModel, Field
from typing import Optional
from enum import Enum


class QueueStatus(str, Enum):
    WAITING = "waiting"


class Queue(SQLModel, table=True):
    """Queue entry. Autoincrement id keeps insertion order for equal timestamps."""
    __tablename__ = "queue"

    id: Optional[int] = Field(default=None, primary_key=True)
    job_id: str = Field(index=True)
    status: QueueStatus = Field(default=QueueStatus.WAITING, index=True)
    created_at: datetime = Field(default_factory=datetime.utcnow, index=True)


class QueueRead(SQLModel):
    """Schema for reading queue entries"""
    id: int
    job_id: str
    status: QueueStatus
    created_at: datetime
