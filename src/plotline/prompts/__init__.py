"""提示词模板。

模板以 .txt 文件存放在本目录，{variable} 为占位符，JSON 示例中的花括号需写成 {{ }}。
"""

from __future__ import annotations

import functools
from pathlib import Path

_PROMPTS_DIR = Path(__file__).parent

SUPPORTED_LANGUAGES = ("ja", "en")


@functools.lru_cache(maxsize=16)
def load_prompt(name: str) -> str:
    """加载指定名称的提示词文件（可省略 .txt 后缀）。

    Raises:
        FileNotFoundError: 提示词文件不存在时。
    """
    filename = name if name.endswith(".txt") else f"{name}.txt"
    filepath = _PROMPTS_DIR / filename
    if not filepath.exists():
        raise FileNotFoundError(f"提示词文件不存在: {filepath}")
    return filepath.read_text(encoding="utf-8").strip()


def format_prompt(name: str, **kwargs: str) -> str:
    return load_prompt(name).format(**kwargs)


def build_extraction_prompts(text: str, language: str = "ja") -> tuple[str, str]:
    """返回时间线抽取的 (system, user) 提示词。不支持的语言回退到日语。"""
    lang = language if language in SUPPORTED_LANGUAGES else "ja"
    system = load_prompt("timeline_extraction_system")
    user = format_prompt(f"timeline_extraction_user_{lang}", text=text)
    return system, user


__all__ = ["SUPPORTED_LANGUAGES", "build_extraction_prompts", "format_prompt", "load_prompt"]
