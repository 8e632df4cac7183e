# repository/job_repository.py
from datetime import datetime, timezone
from typing import Final, Optional
from uuid import uuid4
from pydantic import ValidationError
from redis.asyncio import Redis
from config.cache import get_redis
from config.settings import settings
from model.analysis import MatrixAnalysisRequest
from model.job import Job, JobStatus
from repository.namespaces import JOBS
import logging

logger = logging.getLogger(__name__)

KEY_PREFIX: Final[str] = JOBS


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobRepository:
    """
    One Redis hash per job: id, status, error, analysisId, request (JSON) and
    ISO timestamps. TTL is refreshed on every write.
    """

    def __init__(
        self,
        ttl_seconds: int = settings.PERSISTENCE_TTL_SECONDS,
        redis: Optional[Redis] = None,
    ) -> None:
        self._ttl = int(ttl_seconds)
        self._redis = redis

    async def _client(self) -> Redis:
        if self._redis is not None:
            return self._redis
        return await get_redis()

    @staticmethod
    def _key(job_id: str) -> str:
        return f"{KEY_PREFIX}:{job_id}"

    # ---------------- Core CRUD ----------------

    async def create(self, request: MatrixAnalysisRequest) -> Job:
        now = _utcnow()
        job = Job(
            id=str(uuid4()),
            status=JobStatus.PENDING,
            request=request,
            createdAt=now,
            updatedAt=now,
        )
        await self.put(job)
        return job

    async def put(self, job: Job) -> None:
        r = await self._client()
        mapping = {
            "id": job.id,
            "status": job.status.value,
            "error": job.error or "",
            "analysisId": job.analysisId or "",
            "request": job.request.model_dump_json(exclude_none=True),
            "createdAt": job.createdAt.isoformat(),
            "updatedAt": job.updatedAt.isoformat(),
        }
        await r.hset(self._key(job.id), mapping=mapping)
        await r.expire(self._key(job.id), self._ttl)

    async def get(self, job_id: str) -> Optional[Job]:
        if not job_id:
            return None
        r = await self._client()
        h = await r.hgetall(self._key(job_id))
        if not h:
            return None

        def _s(key: str, default: str = "") -> str:
            v = h.get(key, h.get(key.encode("utf-8")))
            if v is None:
                return default
            return v.decode("utf-8") if isinstance(v, (bytes, bytearray)) else str(v)

        try:
            return Job(
                id=_s("id"),
                status=JobStatus(_s("status") or JobStatus.PENDING.value),
                request=MatrixAnalysisRequest.model_validate_json(_s("request", "{}")),
                error=_s("error") or None,
                analysisId=_s("analysisId") or None,
                createdAt=datetime.fromisoformat(_s("createdAt")),
                updatedAt=datetime.fromisoformat(_s("updatedAt")),
            )
        except (ValidationError, ValueError):
            logger.error("jobs.decode.error job=%s", job_id)
            return None

    async def delete(self, job_id: str) -> int:
        if not job_id:
            return 0
        r = await self._client()
        return int(await r.delete(self._key(job_id)))

    # ---------------- Status helpers ----------------

    async def set_status(
        self,
        job_id: str,
        status: JobStatus,
        *,
        error: str | None = None,
        analysis_id: str | None = None,
    ) -> None:
        mapping = {"status": status.value, "updatedAt": _utcnow().isoformat()}
        if error is not None:
            mapping["error"] = error
        if analysis_id is not None:
            mapping["analysisId"] = analysis_id
        r = await self._client()
        await r.hset(self._key(job_id), mapping=mapping)
        await r.expire(self._key(job_id), self._ttl)

