import logging
from typing import Dict, Optional, Tuple

import httpx

from app.core.config import ConversionApiConfig, settings
from app.core.exceptions import InsufficientSourcesException, UnsupportedJobTypeException
from app.models import JobType
from app.services.conversion_api import ConversionApiClient
from app.services.strategies import (
    EmbeddedPdfStrategy,
    MinimalFallbackStrategy,
    PdfMergeStrategy,
    RemoteDocxStrategy,
    RemoteImagesToPdfStrategy,
    StrategyChain,
)

logger = logging.getLogger(__name__)

# 작업 유형별 (최소, 최대) 소스 수 (None이면 MAX_SOURCE_FILES)
SOURCE_LIMITS: Dict[JobType, Tuple[int, Optional[int]]] = {
    "convert_to_editable": (1, 1),
    "images_to_document": (1, None),
    "merge_documents": (2, None),
}


class ChainFactory:
    """작업 유형별 변환 전략 체인 생성"""

    def __init__(
        self,
        api_config: ConversionApiConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_config = api_config
        self.client = ConversionApiClient(api_config, transport=transport)

    def build(self, job_type: JobType) -> StrategyChain:
        """
        작업 유형에 맞는 전략 체인 반환

        Args:
            job_type: 작업 유형

        Returns:
            선호 순서대로 정렬된 StrategyChain

        Raises:
            UnsupportedJobTypeException: 지원하지 않는 작업 유형
        """
        if job_type == "images_to_document":
            strategies = [
                RemoteImagesToPdfStrategy(self.client),
                EmbeddedPdfStrategy(),
                MinimalFallbackStrategy(),
            ]
        elif job_type == "merge_documents":
            strategies = [PdfMergeStrategy()]
        elif job_type == "convert_to_editable":
            strategies = [RemoteDocxStrategy(self.client)]
        else:
            raise UnsupportedJobTypeException(str(job_type))

        return StrategyChain(job_type, strategies)

    @staticmethod
    def validate_sources(job_type: str, source_count: int, max_files: int) -> None:
        """
        작업 유형별 소스 수 검증

        Raises:
            UnsupportedJobTypeException: 지원하지 않는 작업 유형
            InsufficientSourcesException: 소스 수가 맞지 않는 경우
        """
        if job_type not in SOURCE_LIMITS:
            raise UnsupportedJobTypeException(job_type)

        minimum, maximum = SOURCE_LIMITS[job_type]
        maximum = maximum or max_files

        if source_count < minimum:
            raise InsufficientSourcesException(
                job_type, f"소스 파일이 최소 {minimum}개 필요합니다 (현재: {source_count}개)"
            )
        if source_count > maximum:
            raise InsufficientSourcesException(
                job_type, f"소스 파일은 최대 {maximum}개까지 가능합니다 (현재: {source_count}개)"
            )


def check_api_config(api_config: ConversionApiConfig, required: bool = False) -> None:
    """
    시작 시 외부 API 설정 검증

    Args:
        api_config: 외부 API 설정
        required: True면 키 누락 시 예외

    Raises:
        RuntimeError: required=True인데 키가 없는 경우
    """
    if api_config.is_configured:
        logger.info(f"외부 변환 API 설정 확인: {api_config.base_url}")
        return

    message = (
        "CONVERSION_API_KEY가 설정되지 않았습니다. "
        "PDF → DOCX 변환은 실패하고, 이미지 변환은 내장 생성기를 사용합니다."
    )
    if required:
        raise RuntimeError(message)
    logger.warning(message)


# 싱글톤 인스턴스
_chain_factory: Optional[ChainFactory] = None


def get_chain_factory() -> ChainFactory:
    """ChainFactory 싱글톤 반환 (설정은 최초 생성 시 한 번만 읽음)"""
    global _chain_factory
    if _chain_factory is None:
        _chain_factory = ChainFactory(settings.conversion_api_config())
    return _chain_factory


def set_chain_factory(factory: Optional[ChainFactory]) -> None:
    """ChainFactory 교체 (테스트용)"""
    global _chain_factory
    _chain_factory = factory
