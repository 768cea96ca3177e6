import asyncio
import io
import logging
from datetime import date
from typing import Sequence, Tuple

from reportlab.lib.colors import HexColor
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas

from app.core.exceptions import ConversionFailedException
from app.services.strategies.base import PDF_CONTENT_TYPE, SourceFile

logger = logging.getLogger(__name__)

# A4 (pt)
PAGE_SIZE: Tuple[float, float] = (595, 842)
PAGE_MARGIN = 36
FOOTER_OFFSET = 25


def fit_image(
    image_width: float,
    image_height: float,
    page_width: float = PAGE_SIZE[0],
    page_height: float = PAGE_SIZE[1],
    margin: float = PAGE_MARGIN,
) -> Tuple[float, float, float, float]:
    """
    여백 안에 비율을 유지하며 맞춘 이미지 위치/크기 계산

    Returns:
        (x, y, width, height) - 페이지 중앙 정렬
    """
    if image_width <= 0 or image_height <= 0:
        raise ValueError(f"잘못된 이미지 크기입니다: {image_width}x{image_height}")

    available_width = page_width - 2 * margin
    available_height = page_height - 2 * margin

    scale = min(available_width / image_width, available_height / image_height)
    width = image_width * scale
    height = image_height * scale

    x = margin + (available_width - width) / 2
    y = margin + (available_height - height) / 2
    return x, y, width, height


class EmbeddedPdfStrategy:
    """
    reportlab으로 이미지 → PDF 직접 생성

    이미지 한 장당 A4 한 페이지, 하단에 "Page i of N".
    배치에 실패한 이미지는 해당 페이지에 오류 문구만 넣고 계속 진행한다.
    """

    name = "embedded"
    output_content_type = PDF_CONTENT_TYPE

    async def attempt(self, sources: Sequence[SourceFile]) -> bytes:
        if not sources:
            raise ConversionFailedException("변환할 이미지가 없습니다")
        return await asyncio.to_thread(self._render, list(sources))

    def _render(self, sources: Sequence[SourceFile]) -> bytes:
        buffer = io.BytesIO()
        pdf = canvas.Canvas(buffer, pagesize=PAGE_SIZE)
        pdf.setTitle(f"Image Collection - {date.today().isoformat()}")
        pdf.setAuthor("AdocsHub")
        pdf.setSubject("Image to PDF Conversion")
        pdf.setCreator("AdocsHub Image to PDF Converter")

        total = len(sources)
        for page_number, source in enumerate(sources, start=1):
            try:
                self._draw_image(pdf, source)
            except Exception as e:
                logger.warning(f"이미지 {page_number}/{total} 배치 실패, 대체 문구 삽입: {e}")
                self._draw_placeholder(pdf, page_number)

            self._draw_footer(pdf, page_number, total)
            pdf.showPage()

        pdf.save()
        return buffer.getvalue()

    def _draw_image(self, pdf: canvas.Canvas, source: SourceFile) -> None:
        if not source.is_readable:
            raise ConversionFailedException(source.error or f"이미지 데이터 없음: {source.blob_id}")

        image = ImageReader(io.BytesIO(source.content))
        image_width, image_height = image.getSize()
        x, y, width, height = fit_image(image_width, image_height)
        pdf.drawImage(image, x, y, width=width, height=height, mask="auto")

    def _draw_placeholder(self, pdf: canvas.Canvas, page_number: int) -> None:
        page_width, page_height = PAGE_SIZE
        pdf.setFont("Helvetica", 14)
        pdf.setFillColor(HexColor("#FF0000"))
        pdf.drawCentredString(
            page_width / 2,
            page_height / 2,
            f"[Image {page_number} could not be added to the PDF]",
        )

    def _draw_footer(self, pdf: canvas.Canvas, page_number: int, total: int) -> None:
        pdf.setFont("Helvetica", 10)
        pdf.setFillColor(HexColor("#999999"))
        pdf.drawCentredString(PAGE_SIZE[0] / 2, FOOTER_OFFSET, f"Page {page_number} of {total}")
