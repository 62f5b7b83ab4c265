"""
配置加载工具模块 (config/loader.py)
=================================
负责 deskpilot 配置文件的加载、保存和格式转换：
- 配置文件默认路径: ~/.deskpilot/config.json
- 文件中使用 camelCase，Python 内部使用 snake_case，加载/保存时自动互转

对于 Java 开发者：
- 类似于 Spring Boot 的 application.yml 加载机制
- camelCase ↔ snake_case 转换类似于 Jackson 的 @JsonNaming 注解功能
"""

import json
from pathlib import Path
from typing import Any

from loguru import logger

from deskpilot.config.schema import Config


def get_config_path() -> Path:
    """获取默认配置文件路径: ~/.deskpilot/config.json"""
    return Path.home() / ".deskpilot" / "config.json"


def load_config(config_path: Path | None = None) -> Config:
    """
    从 JSON 文件加载配置，若文件不存在则返回默认配置。

    加载流程：
    1. 读取 JSON 文件内容
    2. camelCase → snake_case（convert_keys）
    3. Pydantic model_validate 做类型校验

    配置文件损坏时记录警告并降级为默认配置，而不是直接退出。
    """
    path = config_path or get_config_path()

    if path.exists():
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
            return Config.model_validate(convert_keys(data))
        except (json.JSONDecodeError, ValueError) as e:
            logger.warning(f"Failed to load config from {path}: {e}; using defaults")

    return Config()


def save_config(config: Config, config_path: Path | None = None) -> None:
    """将配置对象以 camelCase JSON 保存到磁盘（自动创建父目录）。"""
    path = config_path or get_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)

    data = convert_to_camel(config.model_dump())

    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)


def convert_keys(data: Any) -> Any:
    """递归地把 dict 键从 camelCase 转为 snake_case。例: {"hotTurns": 3} → {"hot_turns": 3}"""
    if isinstance(data, dict):
        return {camel_to_snake(k): convert_keys(v) for k, v in data.items()}
    if isinstance(data, list):
        return [convert_keys(item) for item in data]
    return data


def convert_to_camel(data: Any) -> Any:
    """递归地把 dict 键从 snake_case 转为 camelCase。"""
    if isinstance(data, dict):
        return {snake_to_camel(k): convert_to_camel(v) for k, v in data.items()}
    if isinstance(data, list):
        return [convert_to_camel(item) for item in data]
    return data


def camel_to_snake(name: str) -> str:
    """"warmChunks" → "warm_chunks"：遇到大写字母时在其前面插入下划线。"""
    result = []
    for i, char in enumerate(name):
        if char.isupper() and i > 0:
            result.append("_")
        result.append(char.lower())
    return "".join(result)


def snake_to_camel(name: str) -> str:
    """"warm_chunks" → "warmChunks"：第一段保持小写，后续每段首字母大写。"""
    components = name.split("_")
    return components[0] + "".join(x.title() for x in components[1:])
