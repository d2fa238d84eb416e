"""时间线抽取 Agent 测试（不访问网络）。"""

import pytest
from langchain_core.language_models.fake_chat_models import FakeListChatModel
from langchain_core.messages import AIMessage

from plotline.agents.extractor import (
    ExtractionErrorType,
    RequestThrottle,
    TimelineExtractor,
    is_quota_error,
)
from plotline.agents.utils import backoff_delays, extract_text, invoke_with_retry
from plotline.config.settings import TimelineConfig
from plotline.prompts import build_extraction_prompts


class FakeClock:
    def __init__(self, now: float = 100.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class RecordingModel:
    """记录收到的消息，按顺序返回预设结果或抛出预设异常。"""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls = []

    def invoke(self, messages):
        self.calls.append(messages)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return AIMessage(content=outcome)


def _extractor(model, clock=None, **kwargs) -> TimelineExtractor:
    throttle = RequestThrottle(5.0, clock=clock or FakeClock())
    return TimelineExtractor(model, throttle=throttle, retry_delay=0, **kwargs)


def test_successful_extraction_returns_raw_text():
    extractor = _extractor(FakeListChatModel(responses=['{"characters": []}']))

    result = extractor.extract("Ren woke up.", "en")

    assert result.success
    assert result.text == '{"characters": []}'
    assert result.error is None


def test_prompt_embeds_narrative_in_requested_language():
    model = RecordingModel('{"events": []}')
    extractor = _extractor(model)

    extractor.extract("A {braced} story.", "en")

    system, user = model.calls[0]
    assert system.content == build_extraction_prompts("x", "en")[0]
    assert "A {braced} story." in user.content
    assert "Story Text" in user.content


def test_unsupported_language_falls_back_to_japanese():
    assert build_extraction_prompts("t", "fr") == build_extraction_prompts("t", "ja")


def test_missing_model_reports_no_api_key():
    result = _extractor(None).extract("text")

    assert not result.success
    assert result.error.type == ExtractionErrorType.NO_API_KEY


def test_second_request_inside_interval_is_rate_limited():
    clock = FakeClock()
    extractor = _extractor(FakeListChatModel(responses=["{}", "{}"]), clock=clock)

    assert extractor.extract("one").success
    clock.now += 1.2
    result = extractor.extract("two")

    assert result.error.type == ExtractionErrorType.RATE_LIMITED
    assert result.error.wait_time == 4
    assert "4 seconds" in result.error.message

    clock.now += 4
    assert extractor.extract("three").success


def test_too_long_text_is_rejected_without_calling_model():
    model = RecordingModel()
    extractor = _extractor(model, max_length=10)

    result = extractor.extract("x" * 11)

    assert result.error.type == ExtractionErrorType.TEXT_TOO_LONG
    assert "10" in result.error.message
    assert model.calls == []
    # 被拒绝的请求不占用节流窗口
    assert extractor.throttle.remaining() == 0


def test_quota_errors_are_classified():
    extractor = _extractor(RecordingModel(RuntimeError("429 RESOURCE_EXHAUSTED: quota hit")))

    result = extractor.extract("text")

    assert result.error.type == ExtractionErrorType.QUOTA_EXCEEDED


def test_other_errors_become_api_error():
    extractor = _extractor(RecordingModel(ValueError("model not found")))

    result = extractor.extract("text")

    assert result.error.type == ExtractionErrorType.API_ERROR
    assert result.error.message == "model not found"


def test_transient_errors_are_retried():
    model = RecordingModel(ConnectionError("reset"), '{"events": []}')
    extractor = _extractor(model, max_retries=2)

    result = extractor.extract("text")

    assert result.success
    assert len(model.calls) == 2


def test_is_quota_error_markers():
    assert is_quota_error("Rate limit reached")
    assert is_quota_error("You exceeded your current QUOTA")
    assert not is_quota_error("invalid argument")


def test_extract_text_joins_content_parts():
    content = [{"type": "text", "text": '{"a": '}, "1", {"type": "text", "text": "}"}]

    assert extract_text(content) == '{"a": 1}'


def test_from_config_applies_limits():
    config = TimelineConfig(min_request_interval=2.5, max_narrative_length=500)

    extractor = TimelineExtractor.from_config(config, None)

    assert extractor.throttle.min_interval == 2.5
    assert extractor.max_length == 500


def test_retry_backs_off_then_reraises():
    model = RecordingModel(TimeoutError("t1"), TimeoutError("t2"), TimeoutError("t3"))
    slept = []

    with pytest.raises(TimeoutError, match="t3"):
        invoke_with_retry(model, [], max_retries=2, base_delay=1.5, sleep=slept.append)

    assert slept == backoff_delays(1.5, 2) == [1.5, 3.0]
    assert len(model.calls) == 3
