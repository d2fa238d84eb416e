"""通用工具。"""

from plotline.utils.exceptions import PlotlineError, ResponseParseError

__all__ = ["PlotlineError", "ResponseParseError"]
