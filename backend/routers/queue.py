"""
Queue routes - inspect what the scheduler will start next
"""
from fastapi import APIRouter, Depends

from models.queue import QueueRead
from services import JobStore, get_job_store

router = APIRouter(prefix="/queue", tags=["queue"])


@router.get("", response_model=list[QueueRead])
async def list_queue(store: JobStore = Depends(get_job_store)):
    """Waiting entries, next to start first"""
    return await store.list_queue()
