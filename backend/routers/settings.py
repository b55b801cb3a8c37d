"""
Settings routes - read and save the settings page
"""
from fastapi import APIRouter, Depends
from loguru import logger

from config import settings as app_settings
from models.setting import SettingsUpdate, JOB_QUEUEING, TRAINING_FOLDER, DATASETS_FOLDER, HF_TOKEN
from services import JobStore, SettingsService, get_job_store, get_settings_service
from exceptions import SettingsError, server_error

router = APIRouter(prefix="/settings", tags=["settings"])


@router.get("")
async def get_settings(store: JobStore = Depends(get_job_store)):
    """All stored settings, with folder defaults and JOB_QUEUEING as a boolean"""
    try:
        values = await store.list_settings()
    except SettingsError as e:
        logger.error(f"Failed to fetch settings: {e.details}")
        raise server_error("Failed to fetch settings")

    result: dict = dict(values)
    if not result.get(TRAINING_FOLDER):
        result[TRAINING_FOLDER] = app_settings.default_training_folder
    if not result.get(DATASETS_FOLDER):
        result[DATASETS_FOLDER] = app_settings.default_datasets_folder
    result[JOB_QUEUEING] = result.get(JOB_QUEUEING) == "true"
    return result


@router.post("")
async def update_settings(
    body: SettingsUpdate,
    store: JobStore = Depends(get_job_store),
    settings_service: SettingsService = Depends(get_settings_service),
):
    """Upsert the editable settings, then invalidate the settings cache"""
    try:
        await store.upsert_settings({
            HF_TOKEN: body.HF_TOKEN or "",
            TRAINING_FOLDER: body.TRAINING_FOLDER or "",
            DATASETS_FOLDER: body.DATASETS_FOLDER or "",
            JOB_QUEUEING: "true" if body.JOB_QUEUEING else "false",
        })
    except SettingsError as e:
        logger.error(f"Failed to update settings: {e.details}")
        raise server_error("Failed to update settings")

    settings_service.invalidate()
    logger.info(f"Settings updated (job queueing={'on' if body.JOB_QUEUEING else 'off'})")
    return {"success": True}
