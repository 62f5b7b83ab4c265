"""
推理提供者基类定义模块。

本模块定义了回合执行器所依赖的"推理协作者"接口，类似于 Java 中的 Interface + DTO 模式：
- InferenceResponse : 一次推理调用的统一结果（文本、输入/输出 token 数、结束原因）
- InferenceProvider : 抽象基类，所有推理后端（LiteLLM、测试桩等）都必须实现 infer()

架构角色：
  TurnExecutor → InferenceProvider.infer() → LLM API → InferenceResponse → TurnExecutor

约定：
  - messages 中的 role 只允许 system / user / assistant；
    tool 角色必须由调用方在提交前展平（见 agent/context.py 的 flatten_roles）
  - 失败时抛出 deskpilot.errors.InferenceFailure，而不是把错误文本当作回复返回，
    否则回合执行器无法区分"模型说了一句话"和"调用失败"
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any


@dataclass
class InferenceResponse:
    """
    推理调用的统一响应数据结构。

    属性：
        content: 模型返回的文本
        input_tokens: 输入（提示词）token 数
        output_tokens: 输出 token 数
        stop_reason: 结束原因（"stop" / "length" 等）
        model: 实际使用的模型名称
    """
    content: str
    input_tokens: int = 0
    output_tokens: int = 0
    stop_reason: str = "stop"
    model: str | None = None


class InferenceProvider(ABC):
    """
    推理提供者抽象基类（类似 Java 的 interface）。

    属性：
        api_key: API 密钥
        api_base: API 基础 URL（用于本地部署或代理）
    """

    def __init__(self, api_key: str | None = None, api_base: str | None = None):
        self.api_key = api_key
        self.api_base = api_base

    @abstractmethod
    async def infer(
        self,
        messages: list[dict[str, Any]],
        model: str | None = None,
        max_tokens: int = 2048,
        temperature: float = 0.7,
        stop: list[str] | None = None,
    ) -> InferenceResponse:
        """
        提交一段对话，获取模型回复。

        参数：
            messages: [{"role": "system/user/assistant", "content": "..."}] 格式的消息列表
            model: 模型标识符，为空时使用默认模型
            max_tokens: 响应的最大 token 数
            temperature: 采样温度
            stop: 可选的停止序列

        返回：
            InferenceResponse

        异常：
            InferenceFailure: 调用失败或回复格式错误
        """

    @abstractmethod
    def get_default_model(self) -> str:
        """获取该提供者的默认模型名称。"""
