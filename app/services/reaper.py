import asyncio
import logging
from datetime import datetime, timedelta
from typing import Optional

from app.core.config import settings
from app.services.blob_store import BlobStore, get_blob_store
from app.services.job_store import ConversionJob, JobStore, job_store, utcnow

logger = logging.getLogger(__name__)


class ExpiryReaper:
    """
    만료 작업 정리

    - 만료된 작업의 결과/소스 블롭 삭제 후 레코드 삭제
    - 어떤 작업도 참조하지 않는 오래된 블롭 삭제
    - 만료된 업로드 URL 발급 기록 정리
    - 한 항목의 실패가 나머지 정리를 막지 않음
    """

    def __init__(
        self,
        store: Optional[JobStore] = None,
        blob_store: Optional[BlobStore] = None,
        orphan_age: Optional[timedelta] = None,
    ):
        self.store = store or job_store
        self._blob_store = blob_store
        self.orphan_age = orphan_age or timedelta(hours=settings.JOB_TTL_HOURS)
        self._task: Optional[asyncio.Task] = None

    @property
    def blob_store(self) -> BlobStore:
        return self._blob_store or get_blob_store()

    async def sweep(self, now: Optional[datetime] = None) -> int:
        """
        만료 작업 정리

        Args:
            now: 기준 시각 (None이면 현재)

        Returns:
            정리된 작업 수
        """
        now = now or utcnow()
        expired = self.store.list_expired(now)
        reclaimed = 0

        for job in expired:
            try:
                await self._reclaim(job)
            except Exception as e:
                # 레코드를 남겨 다음 주기에 다시 시도
                logger.error(f"만료 작업 정리 실패: {job.id}: {e}")
                continue
            reclaimed += 1

        if reclaimed:
            logger.info(f"만료 작업 {reclaimed}개 정리됨")

        await self.blob_store.prune_pending_uploads(now)
        await self.sweep_orphans(now)
        return reclaimed

    async def sweep_orphans(self, now: datetime) -> int:
        """
        참조되지 않는 블롭 정리

        업로드 후 작업에 연결되지 않았거나 레코드만 먼저 사라진 블롭.
        orphan_age보다 오래된 것만 삭제한다.

        Returns:
            삭제된 블롭 수
        """
        referenced = self.store.referenced_blob_ids()
        cutoff = now - self.orphan_age
        removed = 0

        for blob_id, modified_at in await self.blob_store.list_blobs():
            if blob_id in referenced or modified_at > cutoff:
                continue
            try:
                await self.blob_store.delete(blob_id)
            except Exception as e:
                logger.error(f"미참조 블롭 삭제 실패: {blob_id}: {e}")
                continue
            removed += 1

        if removed:
            logger.info(f"미참조 블롭 {removed}개 정리됨")
        return removed

    async def _reclaim(self, job: ConversionJob) -> None:
        for blob_id in job.referenced_blob_ids:
            await self.blob_store.delete(blob_id)
        self.store.delete(job.id)

    async def start(self, interval_minutes: int = 60) -> None:
        """
        주기적 정리 스케줄러 시작

        Args:
            interval_minutes: 정리 간격 (분)
        """
        if self._task is not None:
            return

        async def reaper_loop():
            while True:
                await asyncio.sleep(interval_minutes * 60)
                try:
                    await self.sweep()
                except Exception:
                    logger.exception("만료 작업 정리 주기 실행 실패")

        self._task = asyncio.create_task(reaper_loop())
        logger.info(f"만료 작업 정리 스케줄러 시작 (간격: {interval_minutes}분)")

    def stop(self) -> None:
        """정리 스케줄러 중지"""
        if self._task:
            self._task.cancel()
            self._task = None


# 전역 ExpiryReaper 인스턴스
reaper = ExpiryReaper()
