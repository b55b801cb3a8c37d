"""
Settings model - flat key/value rows edited from the settings page
"""
from sqlmodel import SQLModel, Field
from typing import Optional


# Keys read by the backend
JOB_QUEUEING = "JOB_QUEUEING"
TRAINING_FOLDER = "TRAINING_FOLDER"
DATASETS_FOLDER = "DATASETS_FOLDER"
HF_TOKEN = "HF_TOKEN"
DATA_ROOT = "DATA_ROOT"


class Setting(SQLModel, table=True):
    __tablename__ = "settings"

    key: str = Field(primary_key=True)
    value: str = ""


class SettingsUpdate(SQLModel):
    """Body of the settings form"""
    HF_TOKEN: Optional[str] = ""
    TRAINING_FOLDER: Optional[str] = ""
    DATASETS_FOLDER: Optional[str] = ""
    JOB_QUEUEING: bool = False
