# service/matrix_job_service.py
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Optional
from core.providers import EventSink
from model.analysis import MatrixAnalysisRequest
from model.job import TRANSITIONS, EventStatus, Job, JobEvent, JobStatus
from repository.job_repository import JobRepository
from service.matrix_analysis_service import MatrixAnalysisService
from util.errors import InvalidTransitionError, NotFoundError
from util.enums import ErrorMessage
from util.metrics import MetricsRegistry

logger = logging.getLogger(__name__)


class MatrixJobService:
    """
    Flow:
    - create_job persists a PENDING job and returns it.
    - process_job moves it PENDING -> PROCESSING -> COMPLETED | FAILED, emitting a
      lifecycle event at each step. A failed analysis never raises out of here:
      the error text is stored on the job.
    """

    def __init__(
        self,
        jobs: JobRepository,
        analysis: MatrixAnalysisService,
        *,
        events: Optional[EventSink] = None,
        metrics: Optional[MetricsRegistry] = None,
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._jobs = jobs
        self._analysis = analysis
        self._events = events
        self._metrics = metrics
        self._now = now
        self._active = 0

    async def create_job(self, request: MatrixAnalysisRequest) -> Job:
        job = await self._jobs.create(request)
        logger.info(
            "jobs.create job=%s asset=%s scenario=%s",
            job.id,
            request.assetId,
            request.scenarioId,
        )
        return job

    async def get_job(self, job_id: str) -> Job:
        job = await self._jobs.get(job_id)
        if job is None:
            raise NotFoundError(f"{ErrorMessage.JOB_NOT_FOUND.value.message}: {job_id}")
        return job

    async def delete_job(self, job_id: str) -> None:
        if not await self._jobs.delete(job_id):
            raise NotFoundError(f"{ErrorMessage.JOB_NOT_FOUND.value.message}: {job_id}")
        logger.info("jobs.delete job=%s", job_id)

    async def _transition(
        self,
        job: Job,
        target: JobStatus,
        *,
        error: str | None = None,
        analysis_id: str | None = None,
    ) -> Job:
        if target not in TRANSITIONS[job.status]:
            raise InvalidTransitionError(job.id, job.status.value, target.value)
        await self._jobs.set_status(job.id, target, error=error, analysis_id=analysis_id)
        logger.info("jobs.transition job=%s %s->%s", job.id, job.status.value, target.value)
        return job.model_copy(
            update={
                "status": target,
                "error": error if error is not None else job.error,
                "analysisId": analysis_id or job.analysisId,
                "updatedAt": self._now(),
            }
        )

    async def _emit(self, job_id: str, status: EventStatus, data: dict[str, Any]) -> None:
        if self._events is None:
            return
        event = JobEvent(jobId=job_id, status=status, timestamp=self._now(), data=data)
        try:
            await self._events.emit(event)
        except Exception as e:
            logger.error(
                "jobs.event.error job=%s status=%s err=%s", job_id, status, type(e).__name__
            )

    def _set_active(self, delta: int) -> None:
        self._active += delta
        if self._metrics:
            self._metrics.set("jobs_active", self._active)

    async def process_job(self, job_id: str) -> Job:
        job = await self.get_job(job_id)
        job = await self._transition(job, JobStatus.PROCESSING)
        req = job.request
        await self._emit(
            job.id, "started", {"assetId": req.assetId, "scenarioId": req.scenarioId}
        )
        self._set_active(+1)
        try:
            result = await self._analysis.analyze(req)
        except Exception as e:
            message = str(e) or type(e).__name__
            job = await self._transition(job, JobStatus.FAILED, error=message)
            if self._metrics:
                self._metrics.inc("jobs_failed_total", error_type=type(e).__name__)
            logger.warning("jobs.failed job=%s err=%s", job.id, type(e).__name__)
            await self._emit(job.id, "failed", {"error": message})
            return job
        finally:
            self._set_active(-1)

        job = await self._transition(
            job, JobStatus.COMPLETED, analysis_id=result.analysisId
        )
        if self._metrics:
            self._metrics.inc("jobs_processed_total")
        await self._emit(
            job.id,
            "completed",
            {
                "analysisId": result.analysisId,
                "impactScore": result.impactScore,
                "impactDirection": result.impactDirection,
                "confidenceLevel": result.confidenceLevel,
            },
        )
        return job

    async def run_in_background(self, job_id: str) -> None:
        """Background-task entry point; unexpected errors are logged, not raised."""
        try:
            await self.process_job(job_id)
        except Exception as e:
            logger.error("jobs.background.error job=%s err=%s", job_id, type(e).__name__)
