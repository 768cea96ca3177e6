import logging
from dataclasses import dataclass
from typing import List, Optional, Protocol, Sequence, runtime_checkable

from app.core.exceptions import ChainExhaustedException

logger = logging.getLogger(__name__)

PDF_CONTENT_TYPE = "application/pdf"
DOCX_CONTENT_TYPE = (
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
)


@dataclass(frozen=True)
class SourceFile:
    """전략에 전달되는 소스 파일"""

    blob_id: str
    url: Optional[str] = None
    content: Optional[bytes] = None
    content_type: Optional[str] = None
    error: Optional[str] = None

    @property
    def is_readable(self) -> bool:
        return self.content is not None


@runtime_checkable
class ConversionStrategy(Protocol):
    """변환 전략: 실패 시 예외를 던지고 성공 시 결과 바이트를 반환"""

    name: str
    output_content_type: str

    async def attempt(self, sources: Sequence[SourceFile]) -> bytes:
        ...


@dataclass(frozen=True)
class ChainResult:
    data: bytes
    strategy: str
    content_type: str


class StrategyChain:
    """
    순서가 있는 전략 목록

    앞에서부터 시도하고 첫 성공을 반환한다.
    모든 전략이 실패하면 마지막 실패 메시지로 ChainExhaustedException.
    """

    def __init__(self, job_type: str, strategies: Sequence[ConversionStrategy]):
        if not strategies:
            raise ValueError(f"전략이 비어 있습니다: {job_type}")
        self.job_type = job_type
        self.strategies: List[ConversionStrategy] = list(strategies)

    @property
    def names(self) -> List[str]:
        return [strategy.name for strategy in self.strategies]

    async def run(self, sources: Sequence[SourceFile], job_id: str | None = None) -> ChainResult:
        last_error = "변환 전략이 실행되지 않았습니다"

        for tier, strategy in enumerate(self.strategies, start=1):
            logger.info(
                f"전략 시도 {tier}/{len(self.strategies)}: {strategy.name} "
                f"(job_id={job_id}, type={self.job_type})"
            )
            try:
                data = await strategy.attempt(sources)
            except Exception as e:
                last_error = str(e) or type(e).__name__
                logger.warning(
                    f"전략 실패: {strategy.name} (job_id={job_id}): {last_error}"
                )
                continue

            logger.info(
                f"전략 성공: {strategy.name} (job_id={job_id}, {len(data)} bytes)"
            )
            return ChainResult(
                data=data,
                strategy=strategy.name,
                content_type=strategy.output_content_type,
            )

        raise ChainExhaustedException(self.job_type, last_error)
