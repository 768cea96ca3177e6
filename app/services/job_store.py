import itertools
import logging
import os
import threading
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set, Tuple

from pydantic import TypeAdapter

from app.core.config import settings
from app.core.exceptions import InvalidJobPatchException
from app.models import TERMINAL_STATUSES, JobStatus, JobType

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# patch로 변경 가능한 필드 (source_blob_ids 등은 생성 후 불변)
PATCHABLE_FIELDS = frozenset(
    {"status", "result_blob_id", "error", "completed_at", "strategy"}
)


@dataclass(frozen=True)
class ConversionJob:
    """변환 작업 레코드 (불변 스냅샷)"""

    id: str
    owner: str
    type: JobType
    file_name: str
    source_blob_ids: Tuple[str, ...] = ()
    status: JobStatus = "processing"
    result_blob_id: Optional[str] = None
    error: Optional[str] = None
    strategy: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    expires_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @classmethod
    def new(
        cls,
        owner: str,
        job_type: JobType,
        source_blob_ids: Iterable[str],
        file_name: str,
        ttl: Optional[timedelta] = None,
        now: Optional[datetime] = None,
    ) -> "ConversionJob":
        """처리 중(processing) 상태의 새 작업 생성"""
        now = now or utcnow()
        ttl = ttl or timedelta(hours=settings.JOB_TTL_HOURS)
        return cls(
            id=str(uuid.uuid4()),
            owner=owner,
            type=job_type,
            file_name=file_name,
            source_blob_ids=tuple(source_blob_ids),
            created_at=now,
            updated_at=now,
            expires_at=now + ttl,
        )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """만료 여부 확인"""
        if self.expires_at is None:
            return False
        return self.expires_at < (now or utcnow())

    @property
    def referenced_blob_ids(self) -> List[str]:
        """작업이 참조하는 모든 블롭 (결과 + 소스)"""
        blob_ids = [self.result_blob_id] if self.result_blob_id else []
        blob_ids.extend(b for b in self.source_blob_ids if b not in blob_ids)
        return blob_ids


def _check_invariants(job: ConversionJob) -> None:
    if job.status == "completed":
        if not job.result_blob_id:
            raise InvalidJobPatchException("완료 상태에는 결과 파일(result_blob_id)이 필요합니다")
        if job.error:
            raise InvalidJobPatchException("완료 상태에는 에러 메시지를 둘 수 없습니다")
    elif job.status == "failed":
        if not job.error:
            raise InvalidJobPatchException("실패 상태에는 에러 메시지가 필요합니다")
        if job.result_blob_id:
            raise InvalidJobPatchException("실패 상태에는 결과 파일을 둘 수 없습니다")
    elif job.result_blob_id or job.error:
        raise InvalidJobPatchException("처리 중인 작업에는 결과나 에러를 둘 수 없습니다")


# 스냅샷 파일 직렬화 (datetime, Literal 검증 포함)
_jobs_adapter = TypeAdapter(List[ConversionJob])


class JobStore:
    """
    변환 작업 저장소 (싱글톤)

    - 작업 생성/조회/목록
    - 부분 갱신 (조건부 갱신 지원)
    - 만료 작업 조회 및 삭제
    - 변경마다 JSON 스냅샷 파일로 저장, 시작 시 다시 로드

    레코드는 불변 스냅샷이며 갱신 시 잠금 안에서 통째로 교체되므로
    읽는 쪽은 항상 완전한 이전 값 또는 완전한 새 값만 본다.
    스냅샷은 임시 파일에 쓴 뒤 교체하므로 중간에 죽어도 이전 파일이 남는다.
    """

    _instance: Optional["JobStore"] = None
    _lock = threading.Lock()

    def __new__(cls, path: Optional[Path] = None) -> "JobStore":
        """싱글톤 패턴"""
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super().__new__(cls)
                    cls._instance._initialized = False
        return cls._instance

    def __init__(self, path: Optional[Path] = None):
        if self._initialized:
            return
        self._jobs: Dict[str, ConversionJob] = {}
        self._order: Dict[str, int] = {}
        self._sequence = itertools.count()
        self._jobs_lock = threading.Lock()
        self.path: Optional[Path] = path if path is not None else settings.JOB_STORE_PATH
        self._load()
        self._initialized = True

    # =========================================================================
    # 스냅샷 파일
    # =========================================================================

    def open(self, path: Optional[Path]) -> int:
        """
        스냅샷 파일을 바꾸고 그 내용으로 다시 로드

        Args:
            path: 스냅샷 파일 경로 (None이면 메모리에만 보관)

        Returns:
            로드된 작업 수
        """
        with self._jobs_lock:
            self.path = path
            self._jobs.clear()
            self._order.clear()
        return self._load()

    def _load(self) -> int:
        if self.path is None or not self.path.is_file():
            return 0

        jobs = _jobs_adapter.validate_json(self.path.read_bytes())

        with self._jobs_lock:
            for job in jobs:
                self._jobs[job.id] = job
                self._order[job.id] = next(self._sequence)

        logger.info(f"작업 스냅샷 로드: {len(jobs)}개 ({self.path})")
        return len(jobs)

    def _persist(self) -> None:
        """현재 레코드를 스냅샷 파일에 기록 (잠금을 쥔 상태에서 호출)"""
        if self.path is None:
            return

        jobs = sorted(self._jobs.values(), key=lambda job: self._order[job.id])
        self.path.parent.mkdir(parents=True, exist_ok=True)

        temp_path = self.path.with_name(self.path.name + ".tmp")
        temp_path.write_bytes(_jobs_adapter.dump_json(jobs))
        os.replace(temp_path, self.path)

    def _commit(self, job_id: str, job: Optional[ConversionJob]) -> None:
        """레코드 교체 후 저장, 저장 실패 시 이전 값 복구 (잠금을 쥔 상태에서 호출)"""
        previous = self._jobs.get(job_id)
        previous_order = self._order.get(job_id)

        if job is None:
            self._jobs.pop(job_id, None)
            self._order.pop(job_id, None)
        else:
            self._jobs[job_id] = job
            if previous_order is None:
                self._order[job_id] = next(self._sequence)

        try:
            self._persist()
        except Exception:
            if previous is None:
                self._jobs.pop(job_id, None)
                self._order.pop(job_id, None)
            else:
                self._jobs[job_id] = previous
                self._order[job_id] = previous_order
            raise

    # =========================================================================
    # 작업 레코드
    # =========================================================================

    def create(self, job: ConversionJob) -> str:
        """
        작업 저장

        Args:
            job: 새 작업 (processing 상태)

        Returns:
            작업 ID
        """
        _check_invariants(job)

        with self._jobs_lock:
            if job.id in self._jobs:
                raise InvalidJobPatchException(f"이미 존재하는 작업 ID입니다: {job.id}")
            self._commit(job.id, job)

        return job.id

    def get(self, job_id: str) -> Optional[ConversionJob]:
        """작업 조회 (없으면 None)"""
        with self._jobs_lock:
            return self._jobs.get(job_id)

    def list(self, owner: str, job_type: Optional[JobType] = None) -> List[ConversionJob]:
        """
        소유자/유형별 작업 목록 (최신순)

        Args:
            owner: 소유자 ID
            job_type: 작업 유형 (None이면 전체)
        """
        with self._jobs_lock:
            jobs = [
                (job, self._order[job.id])
                for job in self._jobs.values()
                if job.owner == owner and (job_type is None or job.type == job_type)
            ]

        jobs.sort(key=lambda item: (item[0].created_at, item[1]), reverse=True)
        return [job for job, _ in jobs]

    def list_by_status(self, status: JobStatus) -> List[ConversionJob]:
        """상태별 작업 목록 (생성순)"""
        with self._jobs_lock:
            jobs = [job for job in self._jobs.values() if job.status == status]
            return sorted(jobs, key=lambda job: self._order[job.id])

    def list_expired(self, now: Optional[datetime] = None) -> List[ConversionJob]:
        """만료된 작업 목록"""
        now = now or utcnow()
        with self._jobs_lock:
            return [job for job in self._jobs.values() if job.is_expired(now)]

    def referenced_blob_ids(self) -> Set[str]:
        """모든 작업이 참조하는 블롭 ID"""
        with self._jobs_lock:
            return {
                blob_id
                for job in self._jobs.values()
                for blob_id in job.referenced_blob_ids
            }

    def patch(
        self,
        job_id: str,
        fields: dict,
        expected_status: Optional[JobStatus] = None,
    ) -> bool:
        """
        작업 부분 갱신

        Args:
            job_id: 작업 ID
            fields: 갱신할 필드 (전달된 필드만 병합)
            expected_status: 지정 시 현재 상태가 같을 때만 갱신 (compare-and-swap)

        Returns:
            갱신 여부 (작업이 없거나 조건이 맞지 않으면 False)

        Raises:
            InvalidJobPatchException: 변경 불가 필드이거나 불변 조건 위반
        """
        unknown = set(fields) - PATCHABLE_FIELDS
        if unknown:
            raise InvalidJobPatchException(
                f"변경할 수 없는 필드입니다: {', '.join(sorted(unknown))}"
            )

        with self._jobs_lock:
            current = self._jobs.get(job_id)
            if current is None:
                return False

            if expected_status is not None and current.status != expected_status:
                return False

            updated = replace(current, **fields, updated_at=utcnow())
            _check_invariants(updated)
            self._commit(job_id, updated)

        return True

    def delete(self, job_id: str) -> bool:
        """작업 레코드 삭제"""
        with self._jobs_lock:
            if job_id not in self._jobs:
                return False
            self._commit(job_id, None)
        return True

    def clear(self) -> None:
        """전체 삭제 (테스트용)"""
        with self._jobs_lock:
            self._jobs.clear()
            self._order.clear()
            self._persist()


# 전역 JobStore 인스턴스
job_store = JobStore()
