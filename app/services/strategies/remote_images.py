import logging
from typing import List, Sequence

from app.core.exceptions import ConversionFailedException
from app.services.conversion_api import MAX_MERGE_INPUTS, ConversionApiClient
from app.services.strategies.base import PDF_CONTENT_TYPE, SourceFile

logger = logging.getLogger(__name__)


class RemoteImagesToPdfStrategy:
    """
    외부 API 이미지 → PDF 변환

    이미지마다 단일 페이지 PDF를 만든 뒤 병합 API로 합친다.
    다중 병합은 호출당 최대 10개이므로, 이전 라운드 결과를 첫 입력으로
    두고 새 입력을 최대 9개씩 붙여 반복 병합한다.
    """

    name = "remote_api"
    output_content_type = PDF_CONTENT_TYPE

    def __init__(self, client: ConversionApiClient):
        self.client = client

    async def attempt(self, sources: Sequence[SourceFile]) -> bytes:
        # 키가 없으면 네트워크 호출 없이 즉시 실패
        self.client.require_key()

        if not sources:
            raise ConversionFailedException("변환할 이미지가 없습니다")

        pages: List[bytes] = []
        for index, source in enumerate(sources, start=1):
            if not source.is_readable:
                raise ConversionFailedException(
                    f"이미지 {index}를 읽을 수 없습니다: {source.error or source.blob_id}"
                )
            logger.debug(f"이미지 {index}/{len(sources)} 변환 요청")
            pages.append(
                await self.client.convert_image_to_pdf(
                    source.content,
                    filename=f"image_{index}",
                    content_type=source.content_type or "application/octet-stream",
                )
            )

        return await self.merge(pages)

    async def merge(self, documents: Sequence[bytes]) -> bytes:
        """단일 페이지 PDF 목록을 순서대로 병합"""
        if len(documents) == 1:
            return documents[0]

        if len(documents) == 2:
            return await self.client.merge_two(documents[0], documents[1])

        merged = await self.client.merge_many(documents[:MAX_MERGE_INPUTS])

        batch_size = MAX_MERGE_INPUTS - 1
        for start in range(MAX_MERGE_INPUTS, len(documents), batch_size):
            batch = list(documents[start : start + batch_size])
            logger.debug(f"병합 라운드: {start}~{start + len(batch) - 1}")
            if len(batch) == 1:
                merged = await self.client.merge_two(merged, batch[0])
            else:
                merged = await self.client.merge_many([merged, *batch])

        return merged
