"""Plotline：叙事文本 → 角色时间线的状态重建与对齐引擎。"""

__version__ = "0.1.0"
