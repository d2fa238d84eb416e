"""条件路由逻辑。"""

from __future__ import annotations

from collections.abc import Callable

from langgraph.graph import END

from plotline.state.extraction_state import ExtractionState


def continue_unless_error(next_node: str) -> Callable[[ExtractionState], str]:
    """节点记录了错误时结束流程，否则进入 next_node。"""

    def route(state: ExtractionState) -> str:
        if state.get("error") is not None:
            return END
        return next_node

    return route
