from datetime import datetime
from typing import List

from pydantic import BaseModel, Field

from app.models.types import JobStatus, JobType


class CreateJobResponse(BaseModel):
    """작업 생성 응답"""

    job_id: str = Field(..., description="작업 ID")
    type: JobType = Field(..., description="작업 유형")
    status: JobStatus = Field(default="processing", description="작업 상태")
    message: str = Field(default="변환이 시작되었습니다", description="상태 메시지")


class JobResponse(BaseModel):
    """작업 스냅샷 응답"""

    job_id: str = Field(..., description="작업 ID")
    type: JobType = Field(..., description="작업 유형")
    status: JobStatus = Field(..., description="작업 상태")
    file_name: str = Field(..., description="결과 파일명")
    source_blob_ids: List[str] = Field(default_factory=list, description="소스 블롭 ID 목록")
    source_urls: List[str | None] = Field(default_factory=list, description="소스 다운로드 URL")
    result_blob_id: str | None = Field(default=None, description="결과 블롭 ID")
    result_url: str | None = Field(default=None, description="결과 다운로드 URL")
    has_result: bool = Field(default=False, description="결과 파일 존재 여부 (상태와 별개)")
    error: str | None = Field(default=None, description="에러 메시지")
    strategy: str | None = Field(default=None, description="결과를 만든 변환 전략")
    created_at: datetime = Field(..., description="생성 시각")
    updated_at: datetime = Field(..., description="갱신 시각")
    expires_at: datetime = Field(..., description="만료 시각")
    completed_at: datetime | None = Field(default=None, description="종료 시각")


class UploadUrlResponse(BaseModel):
    """업로드 URL 발급 응답"""

    blob_id: str = Field(..., description="업로드 후 사용할 블롭 ID")
    upload_url: str = Field(..., description="PUT 업로드 URL")


class BlobStoredResponse(BaseModel):
    """블롭 업로드 완료 응답"""

    blob_id: str = Field(..., description="블롭 ID")
    size_bytes: int = Field(..., description="파일 크기 (bytes)")


class HealthResponse(BaseModel):
    """헬스 체크 응답"""

    status: str = Field(default="healthy", description="서버 상태")
