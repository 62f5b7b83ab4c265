"""
工具函数模块 - 提供 deskpilot 项目全局通用的辅助函数。
"""

from deskpilot.utils.helpers import ensure_dir, get_data_path, get_workspace_path, to_iso, utc_now

__all__ = ["ensure_dir", "get_data_path", "get_workspace_path", "to_iso", "utc_now"]
