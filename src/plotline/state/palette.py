"""角色配色分配。

全局只有一套调色板；取色位置（cursor）由调用方显式持有，
不存在隐藏的全局计数器。
"""

from __future__ import annotations

# 高对比度、易区分的轨道配色
CHARACTER_COLORS: tuple[str, ...] = (
    "#ef4444",  # red
    "#f97316",  # orange
    "#eab308",  # yellow
    "#22c55e",  # green
    "#14b8a6",  # teal
    "#3b82f6",  # blue
    "#8b5cf6",  # violet
    "#ec4899",  # pink
    "#06b6d4",  # cyan
    "#84cc16",  # lime
)


def color_at(cursor: int, palette: tuple[str, ...] = CHARACTER_COLORS) -> str:
    """返回调色板中第 cursor 个颜色（循环）。"""
    return palette[cursor % len(palette)]


class ColorAllocator:
    """按调用次数循环取色，游标由持有者（通常是 TimelineStore）管理。"""

    def __init__(self, palette: tuple[str, ...] = CHARACTER_COLORS, cursor: int = 0):
        if not palette:
            raise ValueError("调色板不能为空")
        self.palette = palette
        self.cursor = cursor

    def next_color(self) -> str:
        color = color_at(self.cursor, self.palette)
        self.cursor += 1
        return color

    def reset(self) -> None:
        self.cursor = 0
