import asyncio
import logging
from typing import List, Optional, Sequence, Set

from app.core.config import settings
from app.core.exceptions import (
    ConversionFailedException,
    InvalidJobPatchException,
    JobAlreadyFinalizedException,
    JobNotFoundException,
    SourceNotFoundException,
    TooManyFilesException,
    UnsupportedJobTypeException,
)
from app.models import JOB_TYPES, TERMINAL_STATUSES, JobType
from app.services.blob_store import BlobStore, get_blob_store
from app.services.chain_factory import ChainFactory, get_chain_factory
from app.services.job_store import ConversionJob, JobStore, job_store, utcnow
from app.services.strategies import ChainResult, SourceFile
from app.utils.file_validator import sanitize_filename, sniff_content_type

logger = logging.getLogger(__name__)


class Dispatcher:
    """
    변환 작업 디스패처

    - 작업 생성 (동기 검증 후 processing 상태로 저장)
    - 고정 크기 워커 풀이 큐에서 작업을 꺼내 전략 체인 실행
    - 종료 상태 기록은 processing일 때만 (compare-and-swap)
    """

    def __init__(
        self,
        store: Optional[JobStore] = None,
        blob_store: Optional[BlobStore] = None,
        chain_factory: Optional[ChainFactory] = None,
        max_workers: Optional[int] = None,
    ):
        self.store = store or job_store
        self._blob_store = blob_store
        self._chain_factory = chain_factory
        self.max_workers = max_workers or settings.MAX_CONCURRENT_JOBS

        self._queue: Optional[asyncio.Queue] = None
        self._workers: List[asyncio.Task] = []
        self._queued: Set[str] = set()
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    @property
    def blob_store(self) -> BlobStore:
        return self._blob_store or get_blob_store()

    @property
    def chain_factory(self) -> ChainFactory:
        return self._chain_factory or get_chain_factory()

    # =========================================================================
    # 작업 생성
    # =========================================================================

    async def create_job(
        self,
        owner: str,
        job_type: JobType,
        source_blob_ids: Sequence[str],
        file_name: str,
    ) -> ConversionJob:
        """
        작업 생성 후 즉시 반환 (변환은 백그라운드)

        Args:
            owner: 소유자 ID
            job_type: 작업 유형
            source_blob_ids: 소스 블롭 ID 목록 (순서 유지)
            file_name: 결과 파일명

        Returns:
            생성된 ConversionJob (processing)

        Raises:
            UnsupportedJobTypeException, InsufficientSourcesException,
            TooManyFilesException, SourceNotFoundException
        """
        if job_type not in JOB_TYPES:
            raise UnsupportedJobTypeException(str(job_type))

        if len(source_blob_ids) > settings.MAX_SOURCE_FILES:
            raise TooManyFilesException(settings.MAX_SOURCE_FILES)

        ChainFactory.validate_sources(job_type, len(source_blob_ids), settings.MAX_SOURCE_FILES)

        for blob_id in source_blob_ids:
            if not await self.blob_store.exists(blob_id):
                raise SourceNotFoundException(blob_id)

        job = ConversionJob.new(
            owner=owner,
            job_type=job_type,
            source_blob_ids=source_blob_ids,
            file_name=sanitize_filename(file_name),
        )
        self.store.create(job)
        logger.info(
            f"작업 생성: {job.id} (type={job_type}, sources={len(source_blob_ids)})"
        )

        await self.submit(job.id)
        return job

    # =========================================================================
    # 워커 풀
    # =========================================================================

    async def start(self) -> None:
        """워커 시작 (이미 실행 중이면 무시)"""
        loop = asyncio.get_running_loop()

        if self._workers and self._loop is loop:
            return

        # 이전 이벤트 루프에서 만든 큐/워커는 버린다
        self._queue = asyncio.Queue()
        self._queued.clear()
        self._loop = loop
        self._workers = [
            asyncio.create_task(self._worker_loop(f"worker-{i + 1}"))
            for i in range(self.max_workers)
        ]
        logger.info(f"디스패처 워커 {self.max_workers}개 시작")

    async def stop(self) -> None:
        """워커 중지"""
        workers, self._workers = self._workers, []
        for worker in workers:
            worker.cancel()
        if workers and self._loop is asyncio.get_running_loop():
            await asyncio.gather(*workers, return_exceptions=True)
        self._queue = None
        self._queued.clear()
        self._loop = None

    async def submit(self, job_id: str) -> None:
        """작업 ID를 큐에 추가 (이미 대기 중이면 무시)"""
        await self.start()

        if job_id in self._queued:
            return
        self._queued.add(job_id)
        self._queue.put_nowait(job_id)

    async def join(self) -> None:
        """큐가 빌 때까지 대기"""
        if self._queue is not None:
            await self._queue.join()

    async def resume_processing_jobs(self) -> int:
        """
        processing 상태로 남은 작업 재등록

        Returns:
            재등록한 작업 수
        """
        jobs = self.store.list_by_status("processing")
        for job in jobs:
            await self.submit(job.id)

        if jobs:
            logger.info(f"미완료 작업 {len(jobs)}개 재등록")
        return len(jobs)

    async def _worker_loop(self, name: str) -> None:
        queue = self._queue
        while True:
            job_id = await queue.get()
            try:
                await self.run_job(job_id)
            except Exception:
                logger.exception(f"[{name}] 작업 처리 중 예외 (job_id={job_id})")
            finally:
                self._queued.discard(job_id)
                queue.task_done()

    # =========================================================================
    # 작업 실행
    # =========================================================================

    async def run_job(self, job_id: str) -> None:
        """
        전략 체인 실행 후 종료 상태 기록

        예외는 작업 레코드에 기록되며 호출자에게 전파되지 않는다.
        """
        job = self.store.get(job_id)
        if job is None:
            logger.warning(f"변환 시작 실패: 작업을 찾을 수 없음 (job_id={job_id})")
            return

        if job.is_terminal:
            logger.info(f"이미 종료된 작업 건너뜀: {job_id} ({job.status})")
            return

        try:
            sources = await self._load_sources(job)
            chain = self.chain_factory.build(job.type)
            result = await chain.run(sources, job_id=job.id)
        except Exception as e:
            self._mark_failed(job, e)
            return

        await self._mark_completed(job, result)

    async def _load_sources(self, job: ConversionJob) -> List[SourceFile]:
        sources: List[SourceFile] = []

        for blob_id in job.source_blob_ids:
            try:
                url = await self.blob_store.get_url(blob_id)
                content = await self.blob_store.read(blob_id) if url else None
            except Exception as e:
                logger.warning(f"소스 읽기 실패: {blob_id} (job_id={job.id}): {e}")
                sources.append(SourceFile(blob_id=blob_id, error=str(e)))
                continue

            sources.append(
                SourceFile(
                    blob_id=blob_id,
                    url=url,
                    content=content,
                    content_type=sniff_content_type(content),
                    error=None if content is not None else "소스 파일을 찾을 수 없습니다",
                )
            )

        if job.type == "images_to_document":
            # URL을 얻지 못한 이미지는 제외
            sources = [source for source in sources if source.url]
            if not sources:
                raise ConversionFailedException(
                    "변환할 수 있는 이미지가 없습니다 (no valid image sources)"
                )

        return sources

    async def _mark_completed(self, job: ConversionJob, result: ChainResult) -> None:
        try:
            blob_id = await self.blob_store.store(result.data, result.content_type)
        except Exception as e:
            logger.error(f"결과 저장 실패 (job_id={job.id}): {e}")
            self._mark_failed(job, e)
            return

        written = self.store.patch(
            job.id,
            {
                "status": "completed",
                "result_blob_id": blob_id,
                "completed_at": utcnow(),
                "strategy": result.strategy,
            },
            expected_status="processing",
        )

        if written:
            logger.info(f"작업 완료: {job.id} (strategy={result.strategy})")
            return

        # 클라이언트가 먼저 종료 상태를 기록한 경우: 결과는 버린다
        logger.warning(f"작업이 이미 종료됨, 서버 결과 폐기: {job.id}")
        try:
            await self.blob_store.delete(blob_id)
        except Exception as e:
            logger.error(f"폐기 결과 삭제 실패: {blob_id}: {e}")

    def _mark_failed(self, job: ConversionJob, error: Exception) -> None:
        message = str(error) or "변환 중 오류가 발생했습니다"
        logger.error(f"변환 실패 (job_id={job.id}): {message}")

        written = self.store.patch(
            job.id,
            {"status": "failed", "error": message, "completed_at": utcnow()},
            expected_status="processing",
        )
        if not written:
            logger.warning(f"에러 상태 기록 생략: 작업이 이미 종료되었거나 삭제됨 (job_id={job.id})")

    # =========================================================================
    # 클라이언트 폴백 경로
    # =========================================================================

    def get_owned_job(self, owner: str, job_id: str) -> ConversionJob:
        """
        소유자의 작업 조회

        Raises:
            JobNotFoundException: 없거나 다른 소유자의 작업
        """
        job = self.store.get(job_id)
        if job is None or job.owner != owner:
            raise JobNotFoundException(job_id)
        return job

    async def apply_client_patch(self, owner: str, job_id: str, fields: dict) -> ConversionJob:
        """
        클라이언트가 직접 변환한 결과로 작업 종료

        processing 상태일 때만 반영된다.

        Raises:
            JobNotFoundException: 작업 없음
            InvalidJobPatchException: 잘못된 갱신 값
            JobAlreadyFinalizedException: 이미 종료된 작업
        """
        job = self.get_owned_job(owner, job_id)

        status = fields.get("status")
        if status not in TERMINAL_STATUSES:
            raise InvalidJobPatchException("status는 completed 또는 failed여야 합니다")

        result_blob_id = fields.get("result_blob_id")
        if status == "completed":
            if not result_blob_id or not await self.blob_store.exists(result_blob_id):
                raise InvalidJobPatchException("업로드된 결과 파일(result_blob_id)이 필요합니다")

        patch = {key: value for key, value in fields.items() if value is not None}
        patch["completed_at"] = utcnow()
        patch["strategy"] = "client"

        if not self.store.patch(job.id, patch, expected_status="processing"):
            current = self.store.get(job.id)
            if current is None:
                raise JobNotFoundException(job_id)
            raise JobAlreadyFinalizedException(job_id, current.status)

        logger.info(f"클라이언트 경로로 작업 종료: {job.id} ({status})")
        return self.store.get(job.id)


# 전역 Dispatcher 인스턴스
dispatcher = Dispatcher()
