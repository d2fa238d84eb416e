"""持久化模块：故事与新手引导标记的本地键值存储。

目录结构：
<storage_dir>/
├── plotline-storage.json              # 当前故事
└── plotline_tutorial_completed.json   # 新手引导完成标记
"""

from plotline.output.manager import StorageManager

__all__ = ["StorageManager"]
