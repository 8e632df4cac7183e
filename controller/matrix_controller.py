# controller/matrix_controller.py
from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from fastapi_limiter.depends import RateLimiter
from config.settings import settings
from controller.controller_dependencies import get_analysis_service, get_job_service
from model.analysis import (
    BatchAnalysisRequest,
    BatchAnalysisResult,
    MatrixAnalysisRequest,
    MatrixAnalysisResult,
)
from model.job import CreateJobResponse, Job
from service.matrix_analysis_service import MatrixAnalysisService
from service.matrix_job_service import MatrixJobService
from util.constants import InternalURIs
from util.enums import ErrorMessage
from util.errors import AppError

matrix_router = APIRouter(
    dependencies=[
        Depends(
            RateLimiter(
                times=settings.RATE_LIMIT_TIMES, seconds=settings.RATE_LIMIT_SECONDS
            )
        )
    ]
)


@matrix_router.post(
    InternalURIs.MATRIX_ANALYZE,
    response_model=MatrixAnalysisResult,
    status_code=status.HTTP_200_OK,
)
async def analyze(
    payload: MatrixAnalysisRequest,
    service: MatrixAnalysisService = Depends(get_analysis_service),
) -> MatrixAnalysisResult:
    return await service.analyze(payload)


@matrix_router.post(InternalURIs.MATRIX_BATCH, response_model=BatchAnalysisResult)
async def analyze_batch(
    payload: BatchAnalysisRequest,
    service: MatrixAnalysisService = Depends(get_analysis_service),
) -> BatchAnalysisResult:
    return await service.analyze_batch(payload)


@matrix_router.post(
    InternalURIs.MATRIX_JOBS,
    response_model=CreateJobResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def create_job(
    payload: MatrixAnalysisRequest,
    background: BackgroundTasks,
    jobs: MatrixJobService = Depends(get_job_service),
) -> CreateJobResponse:
    job = await jobs.create_job(payload)
    background.add_task(jobs.run_in_background, job.id)
    return CreateJobResponse(jobId=job.id, status=job.status)


@matrix_router.get(InternalURIs.MATRIX_JOB, response_model=Job)
async def get_job(
    job_id: str,
    jobs: MatrixJobService = Depends(get_job_service),
) -> Job:
    return await jobs.get_job(job_id)


@matrix_router.get(InternalURIs.MATRIX_RESULT, response_model=MatrixAnalysisResult)
async def get_result(
    asset_id: str,
    scenario_id: str,
    maxAgeSeconds: float | None = Query(default=None, gt=0),
    service: MatrixAnalysisService = Depends(get_analysis_service),
) -> MatrixAnalysisResult:
    result = await service.get_cached_result(asset_id, scenario_id, maxAgeSeconds)
    if result is None:
        raise AppError.of(ErrorMessage.RESULT_NOT_FOUND, f"{asset_id}/{scenario_id}")
    return result


@matrix_router.delete(InternalURIs.MATRIX_JOB, status_code=status.HTTP_204_NO_CONTENT)
async def delete_job(
    job_id: str,
    jobs: MatrixJobService = Depends(get_job_service),
) -> None:
    await jobs.delete_job(job_id)
