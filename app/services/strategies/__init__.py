from app.services.strategies.base import (
    ChainResult,
    ConversionStrategy,
    SourceFile,
    StrategyChain,
)
from app.services.strategies.editable import RemoteDocxStrategy
from app.services.strategies.embedded import EmbeddedPdfStrategy
from app.services.strategies.merge import PdfMergeStrategy
from app.services.strategies.minimal import MinimalFallbackStrategy
from app.services.strategies.remote_images import RemoteImagesToPdfStrategy

__all__ = [
    "ChainResult",
    "ConversionStrategy",
    "SourceFile",
    "StrategyChain",
    "RemoteDocxStrategy",
    "EmbeddedPdfStrategy",
    "PdfMergeStrategy",
    "MinimalFallbackStrategy",
    "RemoteImagesToPdfStrategy",
]
