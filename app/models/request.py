from typing import List

from pydantic import BaseModel, Field

from app.models.types import JobStatus, JobType


class CreateJobRequest(BaseModel):
    """변환 작업 생성 요청"""

    type: JobType = Field(..., description="작업 유형")
    source_blob_ids: List[str] = Field(
        ...,
        min_length=1,
        description="소스 파일 블롭 ID 목록 (순서 유지)",
    )
    file_name: str = Field(..., min_length=1, max_length=255, description="결과 파일명")


class PatchJobRequest(BaseModel):
    """작업 상태 갱신 요청 (클라이언트 폴백 경로)"""

    status: JobStatus | None = Field(default=None, description="새 상태")
    result_blob_id: str | None = Field(default=None, description="결과 파일 블롭 ID")
    error: str | None = Field(default=None, max_length=2000, description="에러 메시지")

    def supplied_fields(self) -> dict:
        """요청에 포함된 필드만 반환"""
        return self.model_dump(exclude_unset=True)
