"""
최후 수단 PDF 생성 (품질 저하 경로)

이미지 바이트는 넣지 않는다. 표지와 소스 URL 목록 두 페이지만 만든다.
일반적인 PDF 생성 용도로 확장하지 말 것.
"""

import asyncio
import io
import logging
from datetime import date
from typing import List, Sequence

from reportlab.lib.colors import Color
from reportlab.pdfgen import canvas

from app.services.strategies.base import PDF_CONTENT_TYPE, SourceFile
from app.services.strategies.embedded import PAGE_SIZE

logger = logging.getLogger(__name__)

MAX_LISTED_REFERENCES = 30
MAX_REFERENCE_LENGTH = 80
LINE_HEIGHT = 15


def truncate_reference(reference: str, max_length: int = MAX_REFERENCE_LENGTH) -> str:
    if len(reference) <= max_length:
        return reference
    return reference[: max_length - 3] + "..."


class MinimalFallbackStrategy:
    """표지 + 참조 목록 2페이지짜리 대체 PDF"""

    name = "minimal"
    output_content_type = PDF_CONTENT_TYPE

    async def attempt(self, sources: Sequence[SourceFile]) -> bytes:
        references = [source.url or source.blob_id for source in sources]
        logger.warning(f"대체 PDF 생성 (이미지 {len(references)}개, 이미지 미포함)")
        return await asyncio.to_thread(self._render, references)

    def _render(self, references: List[str]) -> bytes:
        width, height = PAGE_SIZE
        count = len(references)

        buffer = io.BytesIO()
        pdf = canvas.Canvas(buffer, pagesize=PAGE_SIZE)
        pdf.setTitle("PDF Document")
        pdf.setCreator("AdocsHub")

        # 표지
        pdf.setFillColor(Color(0, 0, 0))
        pdf.setFont("Helvetica", 28)
        pdf.drawString(50, height - 100, "PDF Document")

        pdf.setFillColor(Color(0.5, 0.5, 0.5))
        pdf.setFont("Helvetica", 14)
        pdf.drawString(50, height - 150, f"Contains {count} image{'' if count == 1 else 's'}")
        pdf.drawString(50, height - 180, f"Generated on {date.today().isoformat()}")

        pdf.setFont("Helvetica", 12)
        pdf.setFillColor(Color(0.8, 0.2, 0.2))
        pdf.drawString(50, height - 230, "Note: Server-side image embedding failed.")
        pdf.setFillColor(Color(0.3, 0.3, 0.3))
        pdf.drawString(50, height - 250, "Please try client-side conversion instead.")
        pdf.showPage()

        # 참조 목록
        pdf.setFillColor(Color(0, 0, 0))
        pdf.setFont("Helvetica", 14)
        pdf.drawString(50, height - 70, "Image References:")

        pdf.setFillColor(Color(0.3, 0.3, 0.3))
        pdf.setFont("Helvetica", 8)
        y = height - 100
        for index, reference in enumerate(references[:MAX_LISTED_REFERENCES], start=1):
            pdf.drawString(50, y, f"{index}. {truncate_reference(reference)}")
            y -= LINE_HEIGHT

        if count > MAX_LISTED_REFERENCES:
            pdf.setFillColor(Color(0.5, 0.5, 0.5))
            pdf.setFont("Helvetica", 10)
            pdf.drawString(50, 30, f"... and {count - MAX_LISTED_REFERENCES} more")

        pdf.showPage()
        pdf.save()
        return buffer.getvalue()
