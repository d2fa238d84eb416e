"""模型初始化与 API key 验证测试（不访问网络）。"""

from langchain_core.language_models.fake_chat_models import FakeListChatModel

from plotline.config.settings import ModelConfig
from plotline.llm.factory import AVAILABLE_MODELS, check_api_key, init_chat_model, resolve_api_key


class RejectingModel:
    def invoke(self, messages):
        raise ValueError("API key not valid. Please pass a valid API key.")


def test_environment_key_wins_over_config(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", " env-key ")

    config = ModelConfig(provider="openai", model_name="gpt-4o-mini", api_key="config-key")

    assert resolve_api_key(config) == "env-key"


def test_config_key_used_without_environment(monkeypatch):
    monkeypatch.delenv("GOOGLE_API_KEY", raising=False)

    assert resolve_api_key(ModelConfig(api_key="config-key")) == "config-key"


def test_missing_key_yields_no_model(monkeypatch):
    monkeypatch.delenv("GOOGLE_API_KEY", raising=False)

    assert init_chat_model(ModelConfig()) is None
    assert check_api_key(ModelConfig()) == (False, "API key not configured")


def test_check_api_key_accepts_working_model():
    assert check_api_key(ModelConfig(), FakeListChatModel(responses=["ok"])) == (True, None)


def test_check_api_key_reports_provider_error():
    valid, error = check_api_key(ModelConfig(), RejectingModel())

    assert not valid
    assert "API key not valid" in error


def test_default_model_is_selectable():
    assert ModelConfig().model_name in AVAILABLE_MODELS
