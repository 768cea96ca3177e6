"""공용 테스트 픽스처"""

import io
from typing import List, Optional, Set, Tuple

import httpx
import pytest
import pytest_asyncio
from PIL import Image
from reportlab.pdfgen import canvas

from app.core.config import ConversionApiConfig
from app.services.blob_store import LocalBlobStore, set_blob_store
from app.services.chain_factory import ChainFactory, set_chain_factory
from app.services.dispatcher import Dispatcher
from app.services.job_store import job_store as global_job_store

TEST_BASE_URL = "http://test"


def render_png(width: int = 200, height: int = 100, color: str = "red") -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buffer, format="PNG")
    return buffer.getvalue()


def render_pdf(pages: int = 1, label: str = "doc") -> bytes:
    buffer = io.BytesIO()
    pdf = canvas.Canvas(buffer)
    for number in range(1, pages + 1):
        pdf.drawString(72, 720, f"{label} page {number}")
        pdf.showPage()
    pdf.save()
    return buffer.getvalue()


class FakeConversionApi:
    """
    외부 변환 API 대역 (httpx.MockTransport)

    - 호출 경로와 입력 파일 수 기록
    - fail_paths에 있는 경로는 500 반환
    """

    def __init__(self):
        self.calls: List[Tuple[str, int]] = []
        self.api_keys: List[Optional[str]] = []
        self.fail_paths: Set[str] = set()
        self.transport = httpx.MockTransport(self._handle)

    def _handle(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        inputs = request.content.count(b'name="inputFile') + request.content.count(
            b'name="imageFile'
        )
        self.calls.append((path, inputs))
        self.api_keys.append(request.headers.get("Apikey"))

        if path in self.fail_paths:
            return httpx.Response(500, content=b"internal error")

        if path == "/convert/pdf/to/docx":
            return httpx.Response(200, content=b"PK\x03\x04fake-docx")

        return httpx.Response(200, content=render_pdf(1, label=path))

    def merge_sizes(self) -> List[int]:
        return [count for path, count in self.calls if path.startswith("/convert/merge")]


@pytest.fixture
def make_png():
    return render_png


@pytest.fixture
def make_pdf():
    return render_pdf


@pytest.fixture
def job_store(tmp_path):
    """임시 스냅샷 파일을 쓰는 비어 있는 전역 JobStore"""
    global_job_store.open(tmp_path / "jobs.json")
    global_job_store.clear()
    yield global_job_store
    global_job_store.open(None)


@pytest.fixture
def blob_store(tmp_path):
    """임시 디렉토리 기반 로컬 블롭 저장소 (전역으로 등록)"""
    store = LocalBlobStore(blob_dir=tmp_path / "blobs", public_base_url=TEST_BASE_URL)
    set_blob_store(store)
    yield store
    set_blob_store(None)


@pytest.fixture
def fake_api():
    return FakeConversionApi()


def api_config(api_key: Optional[str] = None) -> ConversionApiConfig:
    return ConversionApiConfig(
        base_url="https://api.test",
        api_key=api_key,
        timeout_seconds=5.0,
    )


@pytest.fixture
def offline_factory(fake_api):
    """API 키 없는 전략 체인 팩토리 (전역으로 등록)"""
    factory = ChainFactory(api_config(None), transport=fake_api.transport)
    set_chain_factory(factory)
    yield factory
    set_chain_factory(None)


@pytest.fixture
def online_factory(fake_api):
    """API 키가 설정된 전략 체인 팩토리"""
    return ChainFactory(api_config("test-key"), transport=fake_api.transport)


@pytest_asyncio.fixture
async def make_dispatcher(job_store, blob_store):
    """테스트용 Dispatcher 생성 (종료 시 워커 정리)"""
    created: List[Dispatcher] = []

    def _make(chain_factory: ChainFactory) -> Dispatcher:
        instance = Dispatcher(
            store=job_store,
            blob_store=blob_store,
            chain_factory=chain_factory,
            max_workers=2,
        )
        created.append(instance)
        return instance

    yield _make

    for instance in created:
        await instance.stop()
