"""抽取结果处理：响应清洗解析与 Story 规范化。"""

from plotline.extraction.normalizer import (
    NormalizationReport,
    convert_extraction_to_story,
    normalize_extraction,
)
from plotline.extraction.parser import (
    extract_payload,
    parse_extraction_response,
    parse_response,
    sanitize_json_text,
)

__all__ = [
    "NormalizationReport",
    "convert_extraction_to_story",
    "extract_payload",
    "normalize_extraction",
    "parse_extraction_response",
    "parse_response",
    "sanitize_json_text",
]
