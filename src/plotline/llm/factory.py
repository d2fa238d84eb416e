"""按配置初始化 LangChain ChatModel。"""

from __future__ import annotations

import logging
import os

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import HumanMessage

from plotline.config.settings import ModelConfig

logger = logging.getLogger(__name__)

# 各提供商读取 API key 的环境变量
_API_KEY_ENV = {
    "google": "GOOGLE_API_KEY",
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
}


def resolve_api_key(model_config: ModelConfig) -> str:
    """优先读取环境变量，其次使用配置中的 api_key。"""
    env_name = _API_KEY_ENV.get(model_config.provider.lower(), "")
    key = os.environ.get(env_name, "") if env_name else ""
    return (key or model_config.api_key).strip()


def init_chat_model(model_config: ModelConfig) -> BaseChatModel | None:
    """根据配置初始化 LLM；没有可用 API key 时返回 None。"""
    api_key = resolve_api_key(model_config)
    if not api_key:
        logger.warning("未配置 %s 的 API key", model_config.provider)
        return None

    provider = model_config.provider.lower()
    if provider == "google":
        from langchain_google_genai import ChatGoogleGenerativeAI

        return ChatGoogleGenerativeAI(
            model=model_config.model_name,
            temperature=model_config.temperature,
            max_output_tokens=model_config.max_tokens,
            google_api_key=api_key,
            response_mime_type="application/json",
        )
    elif provider == "openai":
        from langchain_openai import ChatOpenAI

        return ChatOpenAI(
            model=model_config.model_name,
            temperature=model_config.temperature,
            max_tokens=model_config.max_tokens,
            api_key=api_key,
        )
    else:
        # 通过 langchain 的通用接口
        from langchain.chat_models import init_chat_model as _init

        return _init(
            f"{provider}:{model_config.model_name}",
            temperature=model_config.temperature,
            max_tokens=model_config.max_tokens,
            api_key=api_key,
        )


# 可选的抽取模型：模型 id -> 说明
AVAILABLE_MODELS: dict[str, str] = {
    "gemini-2.5-flash": "Gemini 2.5 Flash，速度快，默认",
    "gemini-2.5-pro": "Gemini 2.5 Pro，质量高，配额较紧",
    "gemini-2.5-flash-lite": "Gemini 2.5 Flash Lite，最快最轻",
    "gemini-3-pro-preview": "Gemini 3 Pro (Preview)",
    "gemini-3-flash-preview": "Gemini 3 Flash (Preview)",
}


def check_api_key(
    model_config: ModelConfig,
    model: BaseChatModel | None = None,
) -> tuple[bool, str | None]:
    """发送一个最小请求验证 API key 与模型是否可用。

    返回 (是否可用, 错误信息)。不传 model 时按配置初始化，输出限制为 1 token。
    """
    if model is None:
        check_config = model_config.model_copy(update={"max_tokens": 1})
        model = init_chat_model(check_config)
    if model is None:
        return False, "API key not configured"

    try:
        model.invoke([HumanMessage(content="test")])
    except Exception as e:
        logger.warning("API key 验证失败: %s", e)
        return False, str(e) or type(e).__name__
    return True, None
