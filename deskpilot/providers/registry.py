"""
LLM 提供者注册表 —— 所有推理服务商元数据的唯一真相来源。

采用"数据驱动"的设计：服务商之间的差异（环境变量名、模型前缀、默认地址）
集中声明在 PROVIDERS 元组中，而不是散落在代码各处的 if-elif 分支里。

添加新的服务商只需两步：
  1. 在下方 PROVIDERS 元组中新增一条 ProviderSpec
  2. 在 config/schema.py 的 ProvidersConfig 中新增一个同名字段

PROVIDERS 中的顺序决定匹配优先级和回退顺序，网关类型排在最前面。
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class ProviderSpec:
    """
    单个推理服务商的元数据规格。

    属性：
        name: 配置字段名（如 "ollama"），对应 config.json 中 providers 下的 key
        keywords: 模型名关键词（全小写），用于根据模型名匹配服务商
        env_key: LiteLLM 读取 API Key 的环境变量名
        display_name: `deskpilot status` 中显示的名称
        litellm_prefix: LiteLLM 路由前缀（如 "ollama" → "ollama/{model}"）
        skip_prefixes: 模型名已有这些前缀时不再添加
        is_gateway: 是否是可路由任意模型的网关（如 OpenRouter）
        is_local: 是否是本地部署（只需 api_base，不需要 api_key）
        detect_by_key_prefix: 通过 API Key 前缀自动识别网关（如 "sk-or-"）
        default_api_base: 默认 API 基础 URL
    """

    name: str
    keywords: tuple[str, ...]
    env_key: str
    display_name: str = ""
    litellm_prefix: str = ""
    skip_prefixes: tuple[str, ...] = ()
    is_gateway: bool = False
    is_local: bool = False
    detect_by_key_prefix: str = ""
    default_api_base: str = ""

    @property
    def label(self) -> str:
        """显示标签，优先使用 display_name。"""
        return self.display_name or self.name.title()


PROVIDERS: tuple[ProviderSpec, ...] = (

    # OpenRouter：全球 API 网关，Key 以 "sk-or-" 开头
    ProviderSpec(
        name="openrouter",
        keywords=("openrouter",),
        env_key="OPENROUTER_API_KEY",
        display_name="OpenRouter",
        litellm_prefix="openrouter",
        is_gateway=True,
        detect_by_key_prefix="sk-or-",
        default_api_base="https://openrouter.ai/api/v1",
    ),

    # Anthropic：LiteLLM 原生识别 "claude-*"，无需前缀
    ProviderSpec(
        name="anthropic",
        keywords=("anthropic", "claude"),
        env_key="ANTHROPIC_API_KEY",
        display_name="Anthropic",
    ),

    # OpenAI：LiteLLM 原生识别 "gpt-*"，无需前缀
    ProviderSpec(
        name="openai",
        keywords=("openai", "gpt"),
        env_key="OPENAI_API_KEY",
        display_name="OpenAI",
    ),

    # Ollama：本地推理服务，llama3.2 → ollama/llama3.2
    ProviderSpec(
        name="ollama",
        keywords=("ollama", "llama", "qwen", "mistral", "phi"),
        env_key="OLLAMA_API_KEY",
        display_name="Ollama",
        litellm_prefix="ollama",
        skip_prefixes=("ollama/", "ollama_chat/"),
        is_local=True,
        default_api_base="http://localhost:11434",
    ),
)


def find_by_model(model: str) -> ProviderSpec | None:
    """根据模型名关键词匹配标准服务商（跳过网关，大小写不敏感）。"""
    model_lower = model.lower()
    for spec in PROVIDERS:
        if spec.is_gateway:
            continue
        if any(kw in model_lower for kw in spec.keywords):
            return spec
    return None


def find_gateway(provider_name: str | None = None, api_key: str | None = None) -> ProviderSpec | None:
    """
    检测当前是否通过网关访问模型。

    检测优先级：
      1. provider_name —— 配置 key 名直接对应网关 spec
      2. api_key 前缀 —— 如 "sk-or-" 开头 → OpenRouter
    """
    if provider_name:
        spec = find_by_name(provider_name)
        if spec and spec.is_gateway:
            return spec

    for spec in PROVIDERS:
        if spec.detect_by_key_prefix and api_key and api_key.startswith(spec.detect_by_key_prefix):
            return spec

    return None


def find_by_name(name: str) -> ProviderSpec | None:
    """根据配置字段名查找 ProviderSpec。"""
    for spec in PROVIDERS:
        if spec.name == name:
            return spec
    return None
