import asyncio
import io
import logging
from typing import Sequence

from pypdf import PdfReader, PdfWriter

from app.services.strategies.base import PDF_CONTENT_TYPE, SourceFile

logger = logging.getLogger(__name__)


class PdfMergeStrategy:
    """
    pypdf PDF 병합

    소스마다 독립적으로 열고, 읽을 수 없는 소스는 건너뛴다.
    모든 소스가 실패하면 페이지가 없는 문서를 반환한다 (전략 수준에서는 성공).
    """

    name = "pypdf_merge"
    output_content_type = PDF_CONTENT_TYPE

    async def attempt(self, sources: Sequence[SourceFile]) -> bytes:
        return await asyncio.to_thread(self._merge, list(sources))

    def _merge(self, sources: Sequence[SourceFile]) -> bytes:
        writer = PdfWriter()
        merged_sources = 0

        for index, source in enumerate(sources, start=1):
            if not source.is_readable:
                logger.warning(
                    f"PDF {index}/{len(sources)} 건너뜀: {source.error or '내용 없음'}"
                )
                continue

            try:
                reader = PdfReader(io.BytesIO(source.content))
                # 일부 페이지만 복사되는 일이 없도록 먼저 전부 읽는다
                pages = [reader.pages[i] for i in range(len(reader.pages))]
            except Exception as e:
                logger.warning(f"PDF {index}/{len(sources)} 열기 실패, 건너뜀: {e}")
                continue

            for page in pages:
                writer.add_page(page)
            merged_sources += 1
            logger.info(f"PDF {index}/{len(sources)}에서 {len(pages)}페이지 추가")

        if merged_sources == 0:
            logger.warning("읽을 수 있는 PDF가 없어 빈 문서를 생성합니다")

        buffer = io.BytesIO()
        writer.write(buffer)
        return buffer.getvalue()
