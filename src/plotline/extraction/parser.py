"""模型响应清洗与 JSON 解析。

LLM 返回的文本常见问题：包在 markdown 代码块里、夹杂控制字符、
字符串里有未转义的换行/制表符、相邻属性之间漏逗号、右括号前多逗号。
清洗过程逐字符跟踪是否处于字符串内部，只改动字符串外的结构性标点与空白，
字符串内容只做等价转义，不会被改写。
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any

from plotline.models.extraction import ExtractionResult
from plotline.utils.exceptions import ResponseParseError

logger = logging.getLogger(__name__)

# 解析失败时，错误位置前后各截取的字符数
EXCERPT_WINDOW = 50

_FENCE_RE = re.compile(r"```(?:[A-Za-z0-9_-]+)?[ \t]*\r?\n?([\s\S]*?)```")

# JSON 不允许裸写的控制字符（\t \n \r 在字符串外是合法空白，DEL 在任何位置都合法）
_DISALLOWED_CONTROL = frozenset(
    chr(c) for c in [*range(0x00, 0x09), 0x0B, 0x0C, *range(0x0E, 0x20)]
)

# 字符串内部的裸空白控制字符 -> 转义序列
_STRING_ESCAPES = {"\n": "\\n", "\r": "\\r", "\t": "\\t"}

_WHITESPACE = " \t\r\n"


def extract_payload(text: str) -> str:
    """从原始响应中取出 JSON 载荷。

    优先取代码块内容，其次取第一个 '{' 到最后一个 '}' 之间的部分，
    都没有时返回原文。
    """
    match = _FENCE_RE.search(text)
    if match:
        return match.group(1).strip()

    stripped = text.strip()
    if stripped.startswith("[") and stripped.endswith("]"):
        return stripped

    return _brace_slice(text) or stripped


def _next_significant(text: str, start: int) -> tuple[int, bool]:
    """从 start 起跳过空白与非法控制字符，返回 (下一个有效字符位置, 途中是否换行)。"""
    saw_newline = False
    i = start
    while i < len(text) and (text[i] in _WHITESPACE or text[i] in _DISALLOWED_CONTROL):
        if text[i] == "\n":
            saw_newline = True
        i += 1
    return i, saw_newline


def _missing_comma_after(text: str, end: int, closer: str) -> bool:
    """值结束后隔着换行紧跟另一个属性/元素时，判定为漏了逗号。"""
    j, saw_newline = _next_significant(text, end)
    if not saw_newline or j >= len(text):
        return False
    nxt = text[j]
    if nxt == '"':
        return True
    return closer == "}" and nxt == "{"


def sanitize_json_text(text: str) -> str:
    """清洗 JSON 文本的结构性噪声。对合法 JSON 不做任何改动。"""
    out: list[str] = []
    in_string = False
    escape_next = False
    i = 0
    n = len(text)

    while i < n:
        ch = text[i]

        if in_string:
            if escape_next:
                escape_next = False
                out.append(ch)
            elif ch == "\\":
                escape_next = True
                out.append(ch)
            elif ch == '"':
                in_string = False
                out.append(ch)
                if _missing_comma_after(text, i + 1, ch):
                    out.append(",")
            elif ch in _STRING_ESCAPES:
                out.append(_STRING_ESCAPES[ch])
            elif ch in _DISALLOWED_CONTROL:
                # 转义保留，不改变字符串内容
                out.append(f"\\u{ord(ch):04x}")
            else:
                out.append(ch)
            i += 1
            continue

        if ch in _DISALLOWED_CONTROL:
            # 字符串外直接丢弃
            pass
        elif ch == '"':
            in_string = True
            out.append(ch)
        elif ch == ",":
            j, _ = _next_significant(text, i + 1)
            # 右括号前的多余逗号
            if not (j < n and text[j] in "}]"):
                out.append(ch)
        elif ch in "}]":
            out.append(ch)
            if _missing_comma_after(text, i + 1, ch):
                out.append(",")
        else:
            out.append(ch)
        i += 1

    return "".join(out)


def _brace_slice(text: str) -> str | None:
    first_brace = text.find("{")
    last_brace = text.rfind("}")
    if first_brace != -1 and last_brace > first_brace:
        return text[first_brace : last_brace + 1]
    return None


def _parse_error(e: json.JSONDecodeError, sanitized: str) -> ResponseParseError:
    start = max(0, e.pos - EXCERPT_WINDOW)
    end = min(len(sanitized), e.pos + EXCERPT_WINDOW)
    excerpt = sanitized[start:end]
    return ResponseParseError(
        f"无法解析模型响应 JSON: {e.msg} (位置 {e.pos})\n上下文: ...{excerpt}...",
        position=e.pos,
        excerpt=excerpt,
        payload_preview=sanitized[:500],
    )


def parse_response(text: str) -> Any:
    """提取、清洗并解析模型响应中的 JSON。

    代码块内容解析失败时（例如字符串值里本身含有 ```），
    再用整段响应中第一个 '{' 到最后一个 '}' 的部分重试。

    Raises:
        ResponseParseError: 清洗后仍无法解析，附带首个候选的失败位置与上下文窗口。
    """
    payload = extract_payload(text)
    sanitized = sanitize_json_text(payload)
    try:
        return json.loads(sanitized)
    except json.JSONDecodeError as e:
        error = _parse_error(e, sanitized)

    fallback = _brace_slice(text)
    if fallback is not None and fallback != payload:
        logger.debug("代码块内容解析失败，改用花括号范围重试")
        try:
            return json.loads(sanitize_json_text(fallback))
        except json.JSONDecodeError:
            pass

    logger.warning("模型响应 JSON 解析失败 (位置 %d)", error.position)
    raise error


def parse_extraction_response(text: str) -> ExtractionResult:
    """解析模型响应并转换为 ExtractionResult。"""
    return ExtractionResult.from_payload(parse_response(text))
