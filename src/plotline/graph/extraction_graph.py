"""叙事 → 时间线生成流程。

extract -> parse -> normalize -> publish
任何节点记录错误后流程立即结束，不会发布半成品 Story。
"""

from __future__ import annotations

import logging
from typing import Any

from langgraph.graph import END, START, StateGraph
from pydantic import BaseModel, Field

from plotline.agents.extractor import TimelineExtractor
from plotline.extraction.normalizer import (
    DEFAULT_REF_CONFIDENCE,
    NormalizationReport,
    normalize_extraction,
)
from plotline.extraction.parser import parse_response
from plotline.graph.routing import continue_unless_error
from plotline.models.story import Story
from plotline.state.extraction_state import (
    EMPTY_NARRATIVE,
    PARSE_ERROR,
    ExtractionState,
    GenerationError,
)
from plotline.state.store import TimelineStore
from plotline.utils.exceptions import ResponseParseError

logger = logging.getLogger(__name__)


class GenerationOutcome(BaseModel):
    """一次生成的结果。"""

    success: bool = Field(description="是否成功发布新 Story")
    story: Story | None = Field(default=None, description="发布的 Story")
    report: NormalizationReport | None = Field(default=None, description="规范化统计")
    error: GenerationError | None = Field(default=None, description="失败原因")


# ────────────────────────────────────────────
# 节点
# ────────────────────────────────────────────


def _create_extract_node(extractor: TimelineExtractor | None):
    """调用抽取 Agent。状态中已有 response_text 时（离线重放）跳过模型调用。"""

    def extract_node(state: ExtractionState) -> dict[str, Any]:
        text = state.get("narrative_text", "")
        if not text.strip():
            return {"error": GenerationError(type=EMPTY_NARRATIVE, message="Narrative text is empty.")}

        if state.get("response_text"):
            logger.debug("使用已有的模型响应，跳过抽取调用")
            return {}

        if extractor is None:
            return {"error": GenerationError(type="NO_API_KEY", message="No extractor configured.")}

        result = extractor.extract(text, state.get("language", "ja"))
        if not result.success or result.error is not None:
            err = result.error
            return {
                "error": GenerationError(
                    type=err.type.value if err else "API_ERROR",
                    message=err.message if err else "Unknown error",
                    wait_time=err.wait_time if err else None,
                )
            }
        return {"response_text": result.text}

    return extract_node


def _parse_node(state: ExtractionState) -> dict[str, Any]:
    try:
        payload = parse_response(state.get("response_text", ""))
    except ResponseParseError as e:
        logger.error("模型响应解析失败: %s", e)
        return {"error": GenerationError(type=PARSE_ERROR, message=str(e))}
    return {"payload": payload}


def _create_normalize_node(ref_confidence: float):
    def normalize_node(state: ExtractionState) -> dict[str, Any]:
        story, report = normalize_extraction(
            state.get("payload"),
            state.get("narrative_text", ""),
            state.get("existing_story") or Story(),
            ref_confidence=ref_confidence,
        )
        if report.has_losses:
            logger.warning(
                "规范化丢弃: 连接 %d 条, 未匹配行动者 %s, 未定位摘录 %s",
                report.dropped_connections,
                report.unresolved_actors,
                report.unlocated_excerpts,
            )
        return {"story": story, "report": report}

    return normalize_node


def _create_publish_node(store: TimelineStore | None):
    def publish_node(state: ExtractionState) -> dict[str, Any]:
        story = state.get("story")
        if store is None or story is None:
            return {"published": False}
        store.set_story(story)
        logger.info(
            "新时间线已发布: %d 个角色, %d 个事件",
            len(story.characters),
            len(story.events),
        )
        return {"story": store.story, "published": True}

    return publish_node


# ────────────────────────────────────────────
# 图构建
# ────────────────────────────────────────────


def build_extraction_graph(
    extractor: TimelineExtractor | None,
    store: TimelineStore | None = None,
    ref_confidence: float = DEFAULT_REF_CONFIDENCE,
) -> StateGraph:
    workflow = StateGraph(ExtractionState)

    workflow.add_node("extract", _create_extract_node(extractor))
    workflow.add_node("parse", _parse_node)
    workflow.add_node("normalize", _create_normalize_node(ref_confidence))
    workflow.add_node("publish", _create_publish_node(store))

    workflow.add_edge(START, "extract")
    workflow.add_conditional_edges("extract", continue_unless_error("parse"), ["parse", END])
    workflow.add_conditional_edges("parse", continue_unless_error("normalize"), ["normalize", END])
    workflow.add_edge("normalize", "publish")
    workflow.add_edge("publish", END)
    return workflow


def compile_extraction_graph(
    extractor: TimelineExtractor | None,
    store: TimelineStore | None = None,
    ref_confidence: float = DEFAULT_REF_CONFIDENCE,
):
    return build_extraction_graph(extractor, store, ref_confidence).compile()


def generate_story(
    store: TimelineStore,
    extractor: TimelineExtractor | None,
    *,
    narrative_text: str | None = None,
    language: str = "ja",
    response_text: str | None = None,
    ref_confidence: float = DEFAULT_REF_CONFIDENCE,
) -> GenerationOutcome:
    """从叙事文本生成时间线并替换 store 中的 Story。

    narrative_text 缺省时使用 store 当前 Story 的叙事原文；
    给出 response_text 时直接解析该响应，不调用模型。
    """
    if narrative_text is None:
        narrative = store.story.narrative
        narrative_text = narrative.text if narrative else ""

    initial: ExtractionState = {
        "narrative_text": narrative_text,
        "language": language,
        "existing_story": store.story,
        "error": None,
    }
    if response_text is not None:
        initial["response_text"] = response_text

    graph = compile_extraction_graph(extractor, store, ref_confidence)
    final = graph.invoke(initial)

    error = final.get("error")
    if error is not None:
        logger.warning("时间线生成失败 [%s]: %s", error.type, error.message)
        return GenerationOutcome(success=False, error=error)

    return GenerationOutcome(
        success=bool(final.get("published")),
        story=final.get("story"),
        report=final.get("report"),
    )
