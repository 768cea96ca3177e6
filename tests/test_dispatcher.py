"""디스패처 (작업 생성/실행/클라이언트 폴백) 테스트"""

import io

import pytest
from pypdf import PdfReader

from app.core.exceptions import (
    InsufficientSourcesException,
    InvalidJobPatchException,
    JobAlreadyFinalizedException,
    JobNotFoundException,
    SourceNotFoundException,
    TooManyFilesException,
    UnsupportedJobTypeException,
)
from app.services.dispatcher import Dispatcher
from app.services.job_store import ConversionJob, JobStore
from app.services.strategies import StrategyChain
from app.utils.file_validator import sanitize_filename

OWNER = "owner-1"


def page_count(data: bytes) -> int:
    return len(PdfReader(io.BytesIO(data)).pages)


async def store_all(blob_store, payloads):
    return [await blob_store.store(data) for data in payloads]


class RacingStrategy:
    """변환 도중 콜백을 실행하는 전략 (클라이언트 경합 재현용)"""

    name = "racing"
    output_content_type = "application/pdf"

    def __init__(self, during_attempt, result: bytes):
        self.during_attempt = during_attempt
        self.result = result

    async def attempt(self, sources):
        await self.during_attempt()
        return self.result


class RacingFactory:
    def __init__(self, during_attempt, result: bytes):
        self.strategy = RacingStrategy(during_attempt, result)

    def build(self, job_type):
        return StrategyChain(job_type, [self.strategy])


class TestSanitizeFilename:
    """결과 파일명 정제"""

    def test_path_traversal_removed(self):
        assert "/" not in sanitize_filename("../../etc/passwd")
        assert ".." not in sanitize_filename("../../etc/passwd")

    def test_empty_name(self):
        assert sanitize_filename("") == "unnamed"
        assert sanitize_filename("...") == "unnamed"

    def test_length_limit(self):
        assert len(sanitize_filename("a" * 500)) == 200


@pytest.mark.asyncio
class TestCreateJobValidation:
    """작업 생성 시 동기 검증"""

    async def test_unsupported_type(self, make_dispatcher, offline_factory, blob_store):
        dispatcher = make_dispatcher(offline_factory)
        ids = await store_all(blob_store, [b"%PDF-1.4"])

        with pytest.raises(UnsupportedJobTypeException):
            await dispatcher.create_job(OWNER, "compress_video", ids, "out.pdf")

    async def test_merge_needs_two_sources(self, make_dispatcher, offline_factory, blob_store, make_pdf):
        dispatcher = make_dispatcher(offline_factory)
        ids = await store_all(blob_store, [make_pdf(1)])

        with pytest.raises(InsufficientSourcesException):
            await dispatcher.create_job(OWNER, "merge_documents", ids, "out.pdf")

    async def test_editable_needs_exactly_one(self, make_dispatcher, offline_factory, blob_store, make_pdf):
        dispatcher = make_dispatcher(offline_factory)
        ids = await store_all(blob_store, [make_pdf(1), make_pdf(1)])

        with pytest.raises(InsufficientSourcesException):
            await dispatcher.create_job(OWNER, "convert_to_editable", ids, "out.docx")

    async def test_too_many_sources(self, make_dispatcher, offline_factory, monkeypatch):
        from app.core.config import settings

        monkeypatch.setattr(settings, "MAX_SOURCE_FILES", 2)
        dispatcher = make_dispatcher(offline_factory)

        with pytest.raises(TooManyFilesException):
            await dispatcher.create_job(OWNER, "merge_documents", ["a" * 32] * 3, "out.pdf")

    async def test_unknown_source_blob(self, make_dispatcher, offline_factory, job_store):
        dispatcher = make_dispatcher(offline_factory)

        with pytest.raises(SourceNotFoundException):
            await dispatcher.create_job(OWNER, "images_to_document", ["f" * 32], "out.pdf")

        assert job_store.list(OWNER) == []

    async def test_created_job_is_processing(self, make_dispatcher, offline_factory, blob_store, make_png, job_store):
        dispatcher = make_dispatcher(offline_factory)
        ids = await store_all(blob_store, [make_png()])

        job = await dispatcher.create_job(OWNER, "images_to_document", ids, "../photos.pdf")

        assert job.status == "processing"
        assert job.source_blob_ids == tuple(ids)
        assert "/" not in job.file_name
        assert job_store.get(job.id) is not None


@pytest.mark.asyncio
class TestRunJob:
    """백그라운드 변환 결과 기록"""

    async def test_images_without_key_use_embedded(
        self, make_dispatcher, offline_factory, blob_store, make_png, fake_api, job_store
    ):
        """API 키가 없으면 내장 생성기로 완료, 네트워크 호출 없음"""
        dispatcher = make_dispatcher(offline_factory)
        ids = await store_all(blob_store, [make_png(), make_png(80, 300), make_png()])

        job = await dispatcher.create_job(OWNER, "images_to_document", ids, "photos.pdf")
        await dispatcher.join()

        done = job_store.get(job.id)
        assert done.status == "completed"
        assert done.strategy == "embedded"
        assert done.error is None
        assert done.completed_at is not None
        assert page_count(await blob_store.read(done.result_blob_id)) == 3
        assert fake_api.calls == []

    async def test_images_with_key_use_remote_api(
        self, make_dispatcher, online_factory, blob_store, make_png, fake_api, job_store
    ):
        dispatcher = make_dispatcher(online_factory)
        ids = await store_all(blob_store, [make_png(), make_png()])

        job = await dispatcher.create_job(OWNER, "images_to_document", ids, "photos.pdf")
        await dispatcher.join()

        done = job_store.get(job.id)
        assert done.status == "completed"
        assert done.strategy == "remote_api"
        assert fake_api.merge_sizes() == [2]

    async def test_remote_failure_falls_back_to_embedded(
        self, make_dispatcher, online_factory, blob_store, make_png, fake_api, job_store
    ):
        fake_api.fail_paths.add("/convert/image/to/pdf")
        dispatcher = make_dispatcher(online_factory)
        ids = await store_all(blob_store, [make_png()])

        job = await dispatcher.create_job(OWNER, "images_to_document", ids, "photos.pdf")
        await dispatcher.join()

        assert job_store.get(job.id).strategy == "embedded"

    async def test_editable_without_key_fails(
        self, make_dispatcher, offline_factory, blob_store, make_pdf, fake_api, job_store
    ):
        """PDF → DOCX는 대체 경로 없이 설정 누락으로 실패"""
        dispatcher = make_dispatcher(offline_factory)
        ids = await store_all(blob_store, [make_pdf(1)])

        job = await dispatcher.create_job(OWNER, "convert_to_editable", ids, "doc.docx")
        await dispatcher.join()

        failed = job_store.get(job.id)
        assert failed.status == "failed"
        assert failed.result_blob_id is None
        assert "CONVERSION_API_KEY" in failed.error
        assert "missing configuration" in failed.error
        assert fake_api.calls == []

    async def test_editable_with_key(
        self, make_dispatcher, online_factory, blob_store, make_pdf, job_store
    ):
        dispatcher = make_dispatcher(online_factory)
        ids = await store_all(blob_store, [make_pdf(1)])

        job = await dispatcher.create_job(OWNER, "convert_to_editable", ids, "doc.docx")
        await dispatcher.join()

        done = job_store.get(job.id)
        assert done.status == "completed"
        assert done.strategy == "remote_docx"
        assert (await blob_store.read(done.result_blob_id)).startswith(b"PK")

    async def test_merge_documents(
        self, make_dispatcher, offline_factory, blob_store, make_pdf, job_store
    ):
        dispatcher = make_dispatcher(offline_factory)
        ids = await store_all(blob_store, [make_pdf(2), make_pdf(5)])

        job = await dispatcher.create_job(OWNER, "merge_documents", ids, "merged.pdf")
        await dispatcher.join()

        done = job_store.get(job.id)
        assert done.status == "completed"
        assert done.strategy == "pypdf_merge"
        assert page_count(await blob_store.read(done.result_blob_id)) == 7

    async def test_images_all_missing_fails(
        self, make_dispatcher, offline_factory, blob_store, make_png, job_store
    ):
        """소스 블롭이 모두 사라졌으면 실패"""
        dispatcher = make_dispatcher(offline_factory)
        ids = await store_all(blob_store, [make_png()])
        job = ConversionJob.new(OWNER, "images_to_document", ids, "photos.pdf")
        job_store.create(job)
        await blob_store.delete(ids[0])

        await dispatcher.run_job(job.id)

        failed = job_store.get(job.id)
        assert failed.status == "failed"
        assert failed.error

    async def test_run_missing_job_is_noop(self, make_dispatcher, offline_factory):
        dispatcher = make_dispatcher(offline_factory)
        await dispatcher.run_job("missing")

    async def test_resume_processing_jobs(
        self, make_dispatcher, offline_factory, blob_store, make_pdf, job_store
    ):
        """processing으로 남은 작업을 다시 실행"""
        dispatcher = make_dispatcher(offline_factory)
        ids = await store_all(blob_store, [make_pdf(1), make_pdf(1)])
        job = ConversionJob.new(OWNER, "merge_documents", ids, "merged.pdf")
        job_store.create(job)

        assert await dispatcher.resume_processing_jobs() == 1
        await dispatcher.join()

        assert job_store.get(job.id).status == "completed"

    async def test_resume_after_restart(
        self, blob_store, offline_factory, make_pdf, tmp_path, monkeypatch
    ):
        """재시작 후 스냅샷에서 읽은 processing 작업을 완료까지 실행"""
        path = tmp_path / "restart-jobs.json"
        monkeypatch.setattr(JobStore, "_instance", None)
        before = JobStore(path)
        ids = await store_all(blob_store, [make_pdf(2), make_pdf(1)])
        job = ConversionJob.new(OWNER, "merge_documents", ids, "merged.pdf")
        before.create(job)

        monkeypatch.setattr(JobStore, "_instance", None)
        after = JobStore(path)
        assert after is not before
        assert after.get(job.id) == job

        dispatcher = Dispatcher(
            store=after, blob_store=blob_store, chain_factory=offline_factory, max_workers=1
        )
        try:
            assert await dispatcher.resume_processing_jobs() == 1
            await dispatcher.join()
        finally:
            await dispatcher.stop()

        done = after.get(job.id)
        assert done.status == "completed"
        assert page_count(await blob_store.read(done.result_blob_id)) == 3

        monkeypatch.setattr(JobStore, "_instance", None)
        assert JobStore(path).get(job.id).status == "completed"


@pytest.mark.asyncio
class TestClientFallback:
    """클라이언트 결과와 서버 결과의 경합"""

    async def test_client_result_wins_when_first(
        self, make_dispatcher, blob_store, make_pdf, job_store
    ):
        """변환 중 클라이언트가 먼저 종료하면 서버 결과는 버려지고 블롭도 삭제"""
        ids = await store_all(blob_store, [make_pdf(1), make_pdf(1)])
        client_result = await blob_store.store(make_pdf(2))
        job = ConversionJob.new(OWNER, "merge_documents", ids, "merged.pdf")
        job_store.create(job)

        async def client_finishes_first():
            await dispatcher.apply_client_patch(
                OWNER, job.id, {"status": "completed", "result_blob_id": client_result}
            )

        dispatcher = make_dispatcher(RacingFactory(client_finishes_first, make_pdf(3)))
        await dispatcher.run_job(job.id)

        final = job_store.get(job.id)
        assert final.status == "completed"
        assert final.result_blob_id == client_result
        assert final.strategy == "client"
        assert sorted(p.name for p in blob_store.blob_dir.iterdir()) == sorted(ids + [client_result])

    async def test_terminal_job_not_rerun(
        self, make_dispatcher, offline_factory, blob_store, make_pdf, job_store
    ):
        dispatcher = make_dispatcher(offline_factory)
        client_result = await blob_store.store(make_pdf(2))
        job = ConversionJob.new(OWNER, "merge_documents", ["a" * 32, "b" * 32], "merged.pdf")
        job_store.create(job)
        await dispatcher.apply_client_patch(
            OWNER, job.id, {"status": "completed", "result_blob_id": client_result}
        )

        await dispatcher.run_job(job.id)

        assert job_store.get(job.id).strategy == "client"

    async def test_server_finished_first(
        self, make_dispatcher, offline_factory, blob_store, make_pdf, job_store
    ):
        """서버가 먼저 종료하면 클라이언트 갱신은 거부되고 서버 결과 유지"""
        dispatcher = make_dispatcher(offline_factory)
        ids = await store_all(blob_store, [make_pdf(1), make_pdf(1)])
        client_result = await blob_store.store(make_pdf(2))

        job = await dispatcher.create_job(OWNER, "merge_documents", ids, "merged.pdf")
        await dispatcher.join()
        server_result = job_store.get(job.id).result_blob_id

        with pytest.raises(JobAlreadyFinalizedException):
            await dispatcher.apply_client_patch(
                OWNER, job.id, {"status": "completed", "result_blob_id": client_result}
            )

        final = job_store.get(job.id)
        assert final.result_blob_id == server_result
        assert final.strategy == "pypdf_merge"

    async def test_client_failure_report(self, make_dispatcher, offline_factory, job_store):
        dispatcher = make_dispatcher(offline_factory)
        job = ConversionJob.new(OWNER, "merge_documents", ["a" * 32, "b" * 32], "merged.pdf")
        job_store.create(job)

        patched = await dispatcher.apply_client_patch(
            OWNER, job.id, {"status": "failed", "error": "browser ran out of memory"}
        )

        assert patched.status == "failed"
        assert patched.error == "browser ran out of memory"

    async def test_completed_requires_uploaded_result(self, make_dispatcher, offline_factory, job_store):
        dispatcher = make_dispatcher(offline_factory)
        job = ConversionJob.new(OWNER, "merge_documents", ["a" * 32, "b" * 32], "merged.pdf")
        job_store.create(job)

        with pytest.raises(InvalidJobPatchException):
            await dispatcher.apply_client_patch(
                OWNER, job.id, {"status": "completed", "result_blob_id": "f" * 32}
            )

        assert job_store.get(job.id).status == "processing"

    async def test_processing_status_rejected(self, make_dispatcher, offline_factory, job_store):
        dispatcher = make_dispatcher(offline_factory)
        job = ConversionJob.new(OWNER, "merge_documents", ["a" * 32, "b" * 32], "merged.pdf")
        job_store.create(job)

        with pytest.raises(InvalidJobPatchException):
            await dispatcher.apply_client_patch(OWNER, job.id, {"status": "processing"})

    async def test_other_owner_cannot_patch(self, make_dispatcher, offline_factory, job_store):
        dispatcher = make_dispatcher(offline_factory)
        job = ConversionJob.new(OWNER, "merge_documents", ["a" * 32, "b" * 32], "merged.pdf")
        job_store.create(job)

        with pytest.raises(JobNotFoundException):
            await dispatcher.apply_client_patch(
                "owner-2", job.id, {"status": "failed", "error": "x"}
            )
