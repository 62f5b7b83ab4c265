"""
配置模块 (config)
================
1. schema.py —— 使用 Pydantic 定义所有配置项的结构和默认值
2. loader.py —— 从 JSON 文件读取配置，支持 camelCase ↔ snake_case 自动转换
"""

from deskpilot.config.loader import get_config_path, load_config
from deskpilot.config.schema import Config

__all__ = ["Config", "load_config", "get_config_path"]
