"""Agent 实现。"""

from plotline.agents.extractor import (
    ExtractionError,
    ExtractionErrorType,
    ExtractResult,
    RequestThrottle,
    TimelineExtractor,
)
from plotline.agents.utils import extract_response_text, extract_text, invoke_with_retry

__all__ = [
    "ExtractResult",
    "ExtractionError",
    "ExtractionErrorType",
    "RequestThrottle",
    "TimelineExtractor",
    "extract_response_text",
    "extract_text",
    "invoke_with_retry",
]
