"""
LiteLLM 提供者实现模块 —— 多推理服务商的统一调用层。

LiteLLM 是一个 Python 库，它将 100+ 家 LLM 服务商（Anthropic、OpenAI、OpenRouter、
Ollama 本地模型等）的 API 统一为 OpenAI 兼容格式。
类比 Java 世界：LiteLLM 类似于 JDBC —— 一套接口，多种数据库驱动。

核心设计：
  1. 模型名称解析：根据 registry.py 中的元数据，为模型名补上 LiteLLM 路由前缀
     例如 "llama3.2" → "ollama/llama3.2"
  2. 网关检测：识别 OpenRouter 网关，统一加 "openrouter/" 前缀
  3. 错误语义：调用失败抛出 InferenceFailure，由回合执行器决定终止回合还是重试

数据流：
  TurnExecutor → LiteLLMProvider.infer() → _resolve_model() → litellm.acompletion() → LLM API
"""

import os
from typing import Any

import litellm
from litellm import acompletion
from loguru import logger

from deskpilot.errors import InferenceFailure
from deskpilot.providers.base import InferenceProvider, InferenceResponse
from deskpilot.providers.registry import find_by_model, find_gateway


class LiteLLMProvider(InferenceProvider):
    """
    基于 LiteLLM 的推理提供者实现类。

    构造参数：
        api_key: API 密钥
        api_base: 自定义 API 基础 URL（代理、网关或本地 Ollama）
        default_model: 默认模型名称
        extra_headers: 额外的 HTTP 请求头
        provider_name: 配置文件中的提供者名称（如 "openrouter"），用于网关检测
    """

    def __init__(
        self,
        api_key: str | None = None,
        api_base: str | None = None,
        default_model: str = "anthropic/claude-sonnet-4-5",
        extra_headers: dict[str, str] | None = None,
        provider_name: str | None = None,
    ):
        super().__init__(api_key, api_base)
        self.default_model = default_model
        self.extra_headers = extra_headers or {}
        self._gateway = find_gateway(provider_name, api_key)

        if api_key:
            self._setup_env(api_key, default_model)

        # 关闭 LiteLLM 啰嗦的调试输出，并自动丢弃服务商不支持的参数（如部分模型不支持 stop）
        litellm.suppress_debug_info = True
        litellm.drop_params = True

    def _setup_env(self, api_key: str, model: str) -> None:
        """
        LiteLLM 内部通过环境变量查找 API Key，这里按服务商元数据设置对应变量。
        网关强制覆盖，标准服务商不覆盖用户已有的环境变量。
        """
        spec = self._gateway or find_by_model(model)
        if not spec:
            return
        if self._gateway:
            os.environ[spec.env_key] = api_key
        else:
            os.environ.setdefault(spec.env_key, api_key)

    def _resolve_model(self, model: str) -> str:
        """
        解析模型名称，添加 LiteLLM 所需的服务商前缀。

        - 网关模式："anthropic/claude-3" → "openrouter/anthropic/claude-3"
        - 标准模式："llama3.2" → "ollama/llama3.2"；已有前缀则不变
        """
        if self._gateway:
            prefix = self._gateway.litellm_prefix
            if prefix and not model.startswith(f"{prefix}/"):
                model = f"{prefix}/{model}"
            return model

        spec = find_by_model(model)
        if spec and spec.litellm_prefix:
            if not any(model.startswith(s) for s in spec.skip_prefixes):
                model = f"{spec.litellm_prefix}/{model}"
        return model

    async def infer(
        self,
        messages: list[dict[str, Any]],
        model: str | None = None,
        max_tokens: int = 2048,
        temperature: float = 0.7,
        stop: list[str] | None = None,
    ) -> InferenceResponse:
        """
        发送对话补全请求。

        注意：这里只捕获 Exception。asyncio 的取消（CancelledError）继承自 BaseException，
        会原样向上传播，回合执行器据此把回合判定为"已取消"。
        """
        model = self._resolve_model(model or self.default_model)

        kwargs: dict[str, Any] = {
            "model": model,
            "messages": messages,
            "max_tokens": max_tokens,
            "temperature": temperature,
        }
        if stop:
            kwargs["stop"] = stop
        if self.api_key:
            kwargs["api_key"] = self.api_key
        if self.api_base:
            kwargs["api_base"] = self.api_base
        if self.extra_headers:
            kwargs["extra_headers"] = self.extra_headers

        try:
            response = await acompletion(**kwargs)
        except Exception as e:
            logger.error(f"Inference call to {model} failed: {e}")
            raise InferenceFailure(f"inference call failed: {e}") from e
        return self._parse_response(response, model)

    def _parse_response(self, response: Any, model: str) -> InferenceResponse:
        """
        将 LiteLLM 的 OpenAI 格式响应解析为 InferenceResponse。

        response.choices[0].message.content 为回复文本；没有 choices 视为格式错误。
        """
        choices = getattr(response, "choices", None)
        if not choices:
            raise InferenceFailure("malformed reply: no choices returned")
        choice = choices[0]

        input_tokens = output_tokens = 0
        usage = getattr(response, "usage", None)
        if usage:
            input_tokens = getattr(usage, "prompt_tokens", 0) or 0
            output_tokens = getattr(usage, "completion_tokens", 0) or 0

        return InferenceResponse(
            content=choice.message.content or "",
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            stop_reason=choice.finish_reason or "stop",
            model=getattr(response, "model", None) or model,
        )

    def get_default_model(self) -> str:
        """获取默认模型名称。"""
        return self.default_model
