"""외부 변환 API 클라이언트 (Cloudmersive 호환 엔드포인트)"""

import logging
from typing import List, Optional, Sequence

import httpx

from app.core.config import ConversionApiConfig
from app.core.exceptions import ConversionApiError, MissingConfigurationException

logger = logging.getLogger(__name__)

PDF_TO_DOCX_PATH = "/convert/pdf/to/docx"
IMAGE_TO_PDF_PATH = "/convert/image/to/pdf"
MERGE_PDF_PATH = "/convert/merge/pdf"
MERGE_PDF_MULTI_PATH = "/convert/merge/pdf/multi"

# 다중 병합 엔드포인트의 호출당 입력 파일 상한
MAX_MERGE_INPUTS = 10


class ConversionApiClient:
    """
    외부 변환 API 호출

    - PDF → DOCX
    - 이미지 → 단일 페이지 PDF
    - PDF 병합 (2개 / 최대 10개)
    """

    def __init__(
        self,
        config: ConversionApiConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config
        self._transport = transport

    @property
    def is_configured(self) -> bool:
        return self.config.is_configured

    def require_key(self) -> str:
        if not self.config.api_key:
            raise MissingConfigurationException("CONVERSION_API_KEY")
        return self.config.api_key

    async def _post_files(self, path: str, files: List[tuple]) -> bytes:
        api_key = self.require_key()
        url = f"{self.config.base_url}{path}"

        try:
            async with httpx.AsyncClient(
                timeout=self.config.timeout_seconds,
                transport=self._transport,
            ) as client:
                response = await client.post(url, files=files, headers={"Apikey": api_key})
        except httpx.HTTPError as e:
            raise ConversionApiError(f"변환 API 연결 실패 ({path}): {e}") from e

        if response.status_code >= 400:
            raise ConversionApiError(
                f"변환 API 오류 ({path}): {response.status_code} {response.reason_phrase}",
                status_code=response.status_code,
            )

        if not response.content:
            raise ConversionApiError(f"변환 API가 빈 응답을 반환했습니다 ({path})")

        return response.content

    async def convert_pdf_to_docx(self, pdf_data: bytes, filename: str = "input.pdf") -> bytes:
        """PDF를 DOCX로 변환"""
        logger.info(f"PDF → DOCX 변환 요청: {filename} ({len(pdf_data)} bytes)")
        return await self._post_files(
            PDF_TO_DOCX_PATH,
            [("inputFile", (filename, pdf_data, "application/pdf"))],
        )

    async def convert_image_to_pdf(
        self,
        image_data: bytes,
        filename: str = "image",
        content_type: str = "application/octet-stream",
    ) -> bytes:
        """이미지 한 장을 단일 페이지 PDF로 변환"""
        return await self._post_files(
            IMAGE_TO_PDF_PATH,
            [("imageFile", (filename, image_data, content_type))],
        )

    async def merge_two(self, first: bytes, second: bytes) -> bytes:
        """PDF 2개 병합"""
        return await self._post_files(
            MERGE_PDF_PATH,
            [
                ("inputFile1", ("input1.pdf", first, "application/pdf")),
                ("inputFile2", ("input2.pdf", second, "application/pdf")),
            ],
        )

    async def merge_many(self, documents: Sequence[bytes]) -> bytes:
        """
        PDF 여러 개 병합 (2~10개)

        Raises:
            ValueError: 입력 수가 범위를 벗어난 경우
        """
        if not 2 <= len(documents) <= MAX_MERGE_INPUTS:
            raise ValueError(
                f"병합 입력은 2~{MAX_MERGE_INPUTS}개여야 합니다 (현재: {len(documents)})"
            )

        files = [
            (f"inputFile{i}", (f"input{i}.pdf", data, "application/pdf"))
            for i, data in enumerate(documents, start=1)
        ]
        return await self._post_files(MERGE_PDF_MULTI_PATH, files)
