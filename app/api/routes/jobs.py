from typing import List

from fastapi import APIRouter, Query

from app.api.deps import BlobStoreDep, DispatcherDep, OwnerDep
from app.models import (
    CreateJobRequest,
    CreateJobResponse,
    JobResponse,
    JobType,
    PatchJobRequest,
)
from app.services.blob_store import BlobStore
from app.services.job_store import ConversionJob

router = APIRouter()


async def build_job_response(job: ConversionJob, blob_store: BlobStore) -> JobResponse:
    """
    작업 스냅샷 생성 (블롭 ID를 다운로드 URL로 변환)

    상태와 결과 파일 존재 여부를 각각 그대로 전달한다.
    """
    result_url = None
    if job.result_blob_id:
        result_url = await blob_store.get_url(job.result_blob_id, filename=job.file_name)

    source_urls = [await blob_store.get_url(blob_id) for blob_id in job.source_blob_ids]

    return JobResponse(
        job_id=job.id,
        type=job.type,
        status=job.status,
        file_name=job.file_name,
        source_blob_ids=list(job.source_blob_ids),
        source_urls=source_urls,
        result_blob_id=job.result_blob_id,
        result_url=result_url,
        has_result=result_url is not None,
        error=job.error,
        strategy=job.strategy,
        created_at=job.created_at,
        updated_at=job.updated_at,
        expires_at=job.expires_at,
        completed_at=job.completed_at,
    )


@router.post("/jobs", response_model=CreateJobResponse)
async def create_job(
    request: CreateJobRequest,
    owner: OwnerDep,
    dispatcher: DispatcherDep,
):
    """
    변환 작업 생성

    - **type**: `convert_to_editable`, `images_to_document`, `merge_documents`
    - **source_blob_ids**: 업로드한 소스 파일 ID (순서 유지)
    - **file_name**: 결과 파일명

    변환은 백그라운드에서 실행되며, 반환된 job_id로 상태를 조회할 수 있습니다.
    """
    job = await dispatcher.create_job(
        owner=owner,
        job_type=request.type,
        source_blob_ids=request.source_blob_ids,
        file_name=request.file_name,
    )

    return CreateJobResponse(job_id=job.id, type=job.type, status=job.status)


@router.get("/jobs", response_model=List[JobResponse])
async def list_jobs(
    owner: OwnerDep,
    dispatcher: DispatcherDep,
    blob_store: BlobStoreDep,
    type: JobType | None = Query(default=None, description="작업 유형 필터"),
):
    """소유자의 작업 목록 (최신순)"""
    jobs = dispatcher.store.list(owner, type)
    return [await build_job_response(job, blob_store) for job in jobs]


@router.get("/jobs/{job_id}", response_model=JobResponse)
async def get_job(
    job_id: str,
    owner: OwnerDep,
    dispatcher: DispatcherDep,
    blob_store: BlobStoreDep,
):
    """
    작업 상태 조회

    반환값:
    - `status`: processing, completed, failed
    - `result_url`: 결과 파일 다운로드 URL
    - `error`: 실패시 에러 메시지
    """
    job = dispatcher.get_owned_job(owner, job_id)
    return await build_job_response(job, blob_store)


@router.patch("/jobs/{job_id}", response_model=JobResponse)
async def patch_job(
    job_id: str,
    request: PatchJobRequest,
    owner: OwnerDep,
    dispatcher: DispatcherDep,
    blob_store: BlobStoreDep,
):
    """
    클라이언트 변환 결과로 작업 종료

    서버 변환이 늦거나 실패했을 때 클라이언트가 직접 만든 결과를 기록합니다.
    작업이 아직 processing일 때만 반영되며, 이미 종료된 작업은 409를 반환합니다.
    """
    job = await dispatcher.apply_client_patch(owner, job_id, request.supplied_fields())
    return await build_job_response(job, blob_store)
