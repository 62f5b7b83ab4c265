"""
推理提供者抽象层模块（providers 包）。

模块组成：
- base.py             : InferenceProvider 抽象基类和 InferenceResponse 数据结构
- litellm_provider.py : 基于 LiteLLM 的实现，对接 Anthropic / OpenAI / OpenRouter / Ollama
- registry.py         : 服务商元数据表（环境变量名、模型前缀、默认地址）
"""

from deskpilot.providers.base import InferenceProvider, InferenceResponse
from deskpilot.providers.litellm_provider import LiteLLMProvider

__all__ = ["InferenceProvider", "InferenceResponse", "LiteLLMProvider"]
