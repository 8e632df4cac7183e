# repository/matrix_repository.py
from datetime import datetime, timezone
from typing import Final, Optional
from pydantic import ValidationError
from redis.asyncio import Redis
from config.cache import get_redis
from config.settings import settings
from model.analysis import MatrixAnalysisResult
from repository.namespaces import RESULTS
import logging

logger = logging.getLogger(__name__)

KEY_PREFIX: Final[str] = RESULTS


class MatrixResultRepository:
    """
    Flow:
    - Latest analysis per (assetId, scenarioId), stored as one JSON document.
    - A new analysis for the same pair replaces the old one.
    - Reads may demand a maximum age; older documents count as missing.
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
    def _key(asset_id: str, scenario_id: str) -> str:
        return f"{KEY_PREFIX}:{asset_id}:{scenario_id}"

    async def save(self, result: MatrixAnalysisResult) -> None:
        r = await self._client()
        payload = result.model_dump_json(exclude_none=True).encode("utf-8")
        await r.set(self._key(result.assetId, result.scenarioId), payload, ex=self._ttl)
        logger.info(
            "results.save asset=%s scenario=%s analysis=%s",
            result.assetId,
            result.scenarioId,
            result.analysisId,
        )

    async def get(
        self,
        asset_id: str,
        scenario_id: str,
        max_age_seconds: float | None = None,
    ) -> Optional[MatrixAnalysisResult]:
        r = await self._client()
        raw = await r.get(self._key(asset_id, scenario_id))
        if raw is None:
            return None
        try:
            result = MatrixAnalysisResult.model_validate_json(raw)
        except ValidationError:
            logger.error("results.decode.error asset=%s scenario=%s", asset_id, scenario_id)
            return None
        if max_age_seconds is not None:
            generated = result.generatedAt
            if generated.tzinfo is None:
                generated = generated.replace(tzinfo=timezone.utc)
            age = (datetime.now(timezone.utc) - generated).total_seconds()
            if age > max_age_seconds:
                logger.info(
                    "results.stale asset=%s scenario=%s age_s=%d",
                    asset_id,
                    scenario_id,
                    int(age),
                )
                return None
        return result

