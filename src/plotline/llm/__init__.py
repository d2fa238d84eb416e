"""LLM 初始化。"""

from plotline.llm.factory import AVAILABLE_MODELS, check_api_key, init_chat_model, resolve_api_key

__all__ = ["AVAILABLE_MODELS", "check_api_key", "init_chat_model", "resolve_api_key"]
