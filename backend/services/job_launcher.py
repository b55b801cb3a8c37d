"""
Job Launcher - spawns the training toolkit for a started job

The training process itself is opaque to this backend: it gets the job's
config on disk, its id in the environment, and reports progress by writing
to the jobs table on its own.
"""
import json
import os
import subprocess
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional
from loguru import logger

from config import settings
from exceptions import LaunchError
from models.job import Job


CONFIG_FILENAME = ".job_config.json"
LOG_FILENAME = "log.txt"


@dataclass
class LaunchContext:
    """Resolved runtime settings for one launch"""
    training_folder: str
    datasets_folder: str
    data_root: str
    hf_token: str = ""


class JobLauncher:
    """Writes the job config into the training folder and starts run.py"""

    def __init__(self, toolkit_root: Path = None, python_exe: str = None):
        self.toolkit_root = Path(toolkit_root or settings.TOOLKIT_ROOT)
        self.python_exe = python_exe or sys.executable

    def job_folder(self, job: Job, context: LaunchContext) -> Path:
        return Path(context.training_folder) / job.name

    def build_command(self, config_path: Path) -> list[str]:
        return [self.python_exe, str(self.toolkit_root / "run.py"), str(config_path)]

    def build_env(self, job: Job, context: LaunchContext) -> dict[str, str]:
        env = dict(os.environ)
        env["AITK_JOB_ID"] = job.id
        env["CUDA_VISIBLE_DEVICES"] = job.gpu_ids
        env["DATASETS_FOLDER"] = context.datasets_folder
        env["DATA_ROOT"] = context.data_root
        if context.hf_token:
            env["HF_TOKEN"] = context.hf_token
        return env

    def write_config(self, job: Job, context: LaunchContext) -> Path:
        """Persist the job config where the toolkit expects it"""
        try:
            config = json.loads(job.job_config)
        except (json.JSONDecodeError, TypeError) as e:
            raise LaunchError(f"Job config is not valid JSON: {e}")

        folder = self.job_folder(job, context)
        config_path = folder / CONFIG_FILENAME
        try:
            folder.mkdir(parents=True, exist_ok=True)
            config_path.write_text(json.dumps(config, indent=2))
        except OSError as e:
            raise LaunchError(f"Failed to write job config to {folder}: {e}")
        return config_path

    def launch(self, job: Job, context: LaunchContext) -> Optional[int]:
        """
        Start the training process detached from this request.

        Returns:
            Process ID of the spawned toolkit

        Raises:
            LaunchError: config could not be written or process failed to spawn
        """
        config_path = self.write_config(job, context)
        log_path = self.job_folder(job, context) / LOG_FILENAME

        try:
            with open(log_path, "a") as log_file:
                process = subprocess.Popen(
                    self.build_command(config_path),
                    cwd=str(self.toolkit_root),
                    env=self.build_env(job, context),
                    stdout=log_file,
                    stderr=subprocess.STDOUT,
                    start_new_session=True,
                )
        except OSError as e:
            raise LaunchError(f"Failed to spawn training process: {e}")

        logger.info(f"Launched job {job.name} ({job.id}) as pid {process.pid}")
        return process.pid
