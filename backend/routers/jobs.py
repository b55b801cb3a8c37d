"""
Job routes - create, list, enqueue, start, delete, import
"""
from fastapi import APIRouter, Depends, UploadFile, File
from pathlib import Path
from typing import Optional
import asyncio
import json
import re
import shutil
import time
from loguru import logger

from config import settings
from models.job import Job, JobCreate, JobRead, JobStatus
from models.queue import QueueRead
from services import (
    JobStore,
    SettingsService,
    JobLauncher,
    LaunchContext,
    JobImporter,
    WebSocketManager,
    get_job_store,
    get_settings_service,
    get_job_launcher,
    get_ws_manager,
)
from exceptions import (
    LaunchError,
    DatabaseImportError,
    not_found,
    bad_request,
    conflict,
    server_error,
    file_too_large,
    invalid_file_type,
)

router = APIRouter(prefix="/jobs", tags=["jobs"])


@router.get("", response_model=list[JobRead])
async def list_jobs(
    status: JobStatus | None = None,
    limit: int = 100,
    store: JobStore = Depends(get_job_store),
):
    """List jobs, newest first"""
    return await store.list_jobs(status=status, limit=limit)


@router.post("", response_model=JobRead)
async def create_job(
    job_data: JobCreate,
    store: JobStore = Depends(get_job_store),
):
    """Create a stopped job from a name and a config"""
    if isinstance(job_data.job_config, str):
        try:
            json.loads(job_data.job_config)
        except json.JSONDecodeError:
            raise bad_request("job_config must be valid JSON")
        job_config = job_data.job_config
    else:
        job_config = json.dumps(job_data.job_config)

    if await store.get_job_by_name(job_data.name) is not None:
        raise conflict(f"A job named '{job_data.name}' already exists")

    job = Job(
        name=job_data.name,
        gpu_ids=job_data.gpu_ids,
        job_config=job_config,
        status=JobStatus.STOPPED,
    )
    return await store.create_job(job)


@router.post("/import")
async def import_jobs(
    database: Optional[UploadFile] = File(None),
    store: JobStore = Depends(get_job_store),
):
    """Import jobs from an uploaded toolkit SQLite database"""
    if database is None:
        raise bad_request("No database file provided")

    if database.size is not None and database.size > settings.max_import_bytes:
        raise file_too_large(settings.MAX_IMPORT_SIZE_MB)

    content = await database.read()
    if len(content) > settings.max_import_bytes:
        raise file_too_large(settings.MAX_IMPORT_SIZE_MB)

    filename = database.filename or ""
    if Path(filename).suffix.lower() not in settings.ALLOWED_IMPORT_EXTENSIONS:
        raise invalid_file_type(settings.ALLOWED_IMPORT_EXTENSIONS)

    try:
        settings.temp_dir.mkdir(parents=True, exist_ok=True)
    except OSError:
        raise server_error("Unable to create temporary directory for import")

    safe_name = re.sub(r"[^a-zA-Z0-9.-]", "_", filename)
    temp_path = settings.temp_dir / f"import_{int(time.time() * 1000)}_{safe_name}"

    try:
        temp_path.write_bytes(content)
    except OSError:
        raise server_error("Failed to save uploaded file")

    try:
        result = await JobImporter(store).import_file(temp_path)
    except DatabaseImportError as e:
        logger.error(f"Error importing jobs: {e.message}")
        raise server_error(e.message)
    finally:
        temp_path.unlink(missing_ok=True)

    return result.to_dict()


@router.get("/{job_id}", response_model=JobRead)
async def get_job(job_id: str, store: JobStore = Depends(get_job_store)):
    """Get a single job by ID"""
    job = await store.get_job(job_id)
    if not job:
        raise not_found("Job", job_id)
    return job


@router.post("/{job_id}/queue", response_model=QueueRead)
async def enqueue_job(
    job_id: str,
    store: JobStore = Depends(get_job_store),
    ws: WebSocketManager = Depends(get_ws_manager),
):
    """Put a job at the back of the queue; the scheduler starts it later"""
    job = await store.get_job(job_id)
    if not job:
        raise not_found("Job", job_id)
    if job.status == JobStatus.RUNNING:
        raise conflict("Job is already running")
    if await store.is_waiting(job_id):
        raise conflict("Job is already queued")

    entry = await store.enqueue_job(job_id)
    if entry is None:
        raise not_found("Job", job_id)

    logger.info(f"Queued job {job.name} ({job_id})")
    await ws.broadcast_queue_update(job_id, "enqueued")
    return entry


@router.get("/{job_id}/start", response_model=JobRead)
async def start_job(
    job_id: str,
    store: JobStore = Depends(get_job_store),
    settings_service: SettingsService = Depends(get_settings_service),
    launcher: JobLauncher = Depends(get_job_launcher),
    ws: WebSocketManager = Depends(get_ws_manager),
):
    """
    Start a job now. This is the endpoint the queue scheduler triggers.
    """
    job = await store.get_job(job_id)
    if not job:
        raise not_found("Job", job_id)
    if job.status == JobStatus.RUNNING:
        raise conflict("Job is already running")

    context = LaunchContext(
        training_folder=await settings_service.get_training_folder(),
        datasets_folder=await settings_service.get_datasets_root(),
        data_root=await settings_service.get_data_root(),
        hf_token=await settings_service.get_hf_token(),
    )

    # A manual start supersedes any place the job held in the queue
    await store.delete_queue_entries_for_job(job_id)
    await store.mark_started(job_id)

    loop = asyncio.get_running_loop()
    try:
        await loop.run_in_executor(None, launcher.launch, job, context)
    except LaunchError as e:
        info = f"Failed to launch job: {e.message}"
        logger.error(f"Job {job_id}: {info}")
        await store.update_job_status(job_id, JobStatus.ERROR, info)
        await ws.broadcast_job_update(job_id, JobStatus.ERROR.value, info)
        raise server_error(info)

    await ws.broadcast_job_update(job_id, JobStatus.RUNNING.value, "Starting job...")
    return await store.get_job(job_id)


@router.get("/{job_id}/delete", response_model=JobRead)
async def delete_job(
    job_id: str,
    store: JobStore = Depends(get_job_store),
    settings_service: SettingsService = Depends(get_settings_service),
):
    """Delete a job, its queue entries and its training folder"""
    job = await store.get_job(job_id)
    if not job:
        raise not_found("Job", job_id)

    training_root = await settings_service.get_training_folder()
    training_folder = Path(training_root) / job.name
    if training_folder.exists():
        shutil.rmtree(training_folder)
        logger.info(f"Removed training folder {training_folder}")

    deleted = await store.delete_job(job_id)
    return deleted or job
