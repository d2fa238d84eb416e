"""LangGraph 生成流程定义。"""

from plotline.graph.extraction_graph import (
    GenerationOutcome,
    build_extraction_graph,
    compile_extraction_graph,
    generate_story,
)

__all__ = [
    "GenerationOutcome",
    "build_extraction_graph",
    "compile_extraction_graph",
    "generate_story",
]
