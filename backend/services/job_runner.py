"""
Job Runner client - triggers "start job" on the local HTTP endpoint

The scheduler only needs to know whether the trigger was accepted. Every
failure mode (non-2xx, timeout, connection refused) is folded into a
StartResult instead of raising.
"""
import httpx
from dataclasses import dataclass
from typing import Optional
from loguru import logger

from config import settings


@dataclass
class StartResult:
    """Outcome of a start request"""
    accepted: bool
    error: Optional[str] = None
    # None when no HTTP response was received at all
    status_code: Optional[int] = None

    @property
    def responded(self) -> bool:
        return self.status_code is not None


class JobRunnerClient:
    """
    HTTP client for GET {base_url}/api/jobs/{id}/start with a hard timeout.
    """

    def __init__(
        self,
        base_url: str = None,
        timeout: float = None,
        transport: httpx.AsyncBaseTransport = None,
    ):
        self.base_url = (base_url or settings.job_runner_base_url).rstrip("/")
        self.timeout = settings.JOB_START_TIMEOUT_SECONDS if timeout is None else timeout
        self._client = httpx.AsyncClient(timeout=self.timeout, transport=transport)

    def start_url(self, job_id: str) -> str:
        return f"{self.base_url}/api/jobs/{job_id}/start"

    async def start_job(self, job_id: str) -> StartResult:
        """Ask the runner to start a job"""
        try:
            response = await self._client.get(self.start_url(job_id))
        except httpx.TimeoutException:
            logger.error(f"Start request for job {job_id} timed out after {self.timeout}s")
            return StartResult(accepted=False, error=f"request timed out after {self.timeout}s")
        except httpx.HTTPError as e:
            logger.error(f"Start request for job {job_id} failed: {e}")
            return StartResult(accepted=False, error=str(e) or e.__class__.__name__)

        if response.is_success:
            return StartResult(accepted=True, status_code=response.status_code)

        return StartResult(
            accepted=False,
            error=_describe_failure(response),
            status_code=response.status_code,
        )

    async def aclose(self) -> None:
        await self._client.aclose()


def _describe_failure(response: httpx.Response) -> str:
    """Reason phrase, plus the API's detail message when there is one"""
    reason = response.reason_phrase or f"HTTP {response.status_code}"
    try:
        detail = response.json().get("detail")
    except Exception:
        detail = None
    if isinstance(detail, str) and detail:
        return f"{reason} ({detail})"
    return reason
