import logging
from typing import Sequence

from app.core.exceptions import ConversionFailedException
from app.services.conversion_api import ConversionApiClient
from app.services.strategies.base import DOCX_CONTENT_TYPE, SourceFile
from app.utils.file_validator import is_pdf

logger = logging.getLogger(__name__)


class RemoteDocxStrategy:
    """외부 API PDF → DOCX 변환 (대체 경로 없음)"""

    name = "remote_docx"
    output_content_type = DOCX_CONTENT_TYPE

    def __init__(self, client: ConversionApiClient):
        self.client = client

    async def attempt(self, sources: Sequence[SourceFile]) -> bytes:
        self.client.require_key()

        if len(sources) != 1:
            raise ConversionFailedException(
                f"PDF 파일은 하나만 변환할 수 있습니다 (현재: {len(sources)}개)"
            )

        source = sources[0]
        if not source.is_readable:
            raise ConversionFailedException(
                f"PDF 파일을 찾을 수 없습니다: {source.error or source.blob_id}"
            )
        if not is_pdf(source.content):
            raise ConversionFailedException("유효한 PDF 파일이 아닙니다")

        return await self.client.convert_pdf_to_docx(source.content)
