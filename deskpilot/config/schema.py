"""
deskpilot 配置模型 (config/schema.py)

config.json 的全部字段都在这里用 Pydantic 声明，并且都带默认值；
用户文件里只需写出想覆盖的键。

字段分组：
    agents     回合执行：模型、温度、推理重试、兜底处理器、/new 时是否生成摘要
    memory     分层记忆：热窗口回合数、温检索条数与阈值、SQLite 文件位置
    providers  推理后端：各家的 api_key / api_base / 额外请求头
    tools      工具：Shell 超时、工作区及其沙箱开关

MemoryStore、ContextManager、TurnExecutor 都不读取 Config；
CLI 负责把这里的值拆成构造参数，组件因此可以脱离配置单独测试。

【Java 类比】BaseModel ≈ 带校验的 Record；BaseSettings ≈ @ConfigurationProperties（外加环境变量覆盖）。
"""

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings


# ==============================================================================
# 回合执行配置
# ==============================================================================


class AgentDefaults(BaseModel):
    """
    回合执行器的默认参数。

    - inference_retries: 首次推理失败后的额外重试次数（取消永远不重试）
    - default_handler: 没有任何处理器得分时的兜底处理器
    - summarize_on_new: /new 时是否先让模型为当前会话生成摘要
    """
    model: str = "anthropic/claude-sonnet-4-5"  # 默认使用的 LLM 模型（格式: provider/model）
    max_tokens: int = 2048  # 单次 LLM 调用的最大输出 token 数
    temperature: float = 0.7  # 生成温度
    stop_sequences: list[str] = Field(default_factory=list)  # 停止序列，空表示不设置
    inference_retries: int = 1
    default_handler: str = "general"
    summarize_on_new: bool = True


class AgentsConfig(BaseModel):
    """Agent 配置容器。"""
    defaults: AgentDefaults = Field(default_factory=AgentDefaults)


# ==============================================================================
# 分层记忆配置
# ==============================================================================


class MemoryConfig(BaseModel):
    """
    分层记忆配置。

    热窗口上限 = hot_turns * 2（每回合一条用户消息 + 一条助手消息）。
    """
    hot_turns: int = 3  # 热窗口保留的最近回合数
    warm_chunks: int = 10  # 温检索最多注入的历史消息条数
    similarity_threshold: float = 0.7  # 温检索结果的最低相关度
    warm_retrieval: bool = True  # 是否启用温检索
    restore_hot: bool = True  # 启动时是否从当天会话恢复热窗口
    db_path: str = "~/.deskpilot/memory.db"  # SQLite 数据库文件

    @property
    def database_path(self) -> Path:
        """展开 ~ 后的数据库路径。"""
        return Path(self.db_path).expanduser()


# ==============================================================================
# LLM 提供商配置
# ==============================================================================


class ProviderConfig(BaseModel):
    """单个 LLM 提供商的配置。"""
    api_key: str = ""  # API 密钥（留空表示未配置该提供商）
    api_base: str | None = None  # 自定义 API 基础 URL（用于本地部署或代理）
    extra_headers: dict[str, str] | None = None  # 额外请求头


class ProvidersConfig(BaseModel):
    """
    所有 LLM 提供商的聚合配置。

    - anthropic: Anthropic Claude 系列
    - openai: OpenAI GPT 系列
    - openrouter: OpenRouter 聚合网关
    - ollama: 本地 Ollama 服务（无需 api_key，只需 api_base）
    """
    anthropic: ProviderConfig = Field(default_factory=ProviderConfig)
    openai: ProviderConfig = Field(default_factory=ProviderConfig)
    openrouter: ProviderConfig = Field(default_factory=ProviderConfig)
    ollama: ProviderConfig = Field(default_factory=ProviderConfig)


# ==============================================================================
# 工具配置
# ==============================================================================


class ExecToolConfig(BaseModel):
    """Shell 命令执行工具配置。"""
    timeout: int = 60  # 命令执行超时时间（秒）


class ToolsConfig(BaseModel):
    """
    工具总配置。

    restrict_to_workspace: 安全沙箱开关
    - True: 文件/Shell 操作都限制在 workspace 目录内
    - False: 允许访问整个文件系统（桌面助手默认）
    """
    exec: ExecToolConfig = Field(default_factory=ExecToolConfig)
    workspace: str = "~/.deskpilot/workspace"
    restrict_to_workspace: bool = False


# ==============================================================================
# 根配置类
# ==============================================================================


class Config(BaseSettings):
    """
    根配置。

    环境变量同样可以覆盖字段：前缀 DESKPILOT_，层级之间用双下划线连接，
    例如 DESKPILOT_MEMORY__HOT_TURNS=5 对应 memory.hot_turns。
    """
    agents: AgentsConfig = Field(default_factory=AgentsConfig)
    memory: MemoryConfig = Field(default_factory=MemoryConfig)
    providers: ProvidersConfig = Field(default_factory=ProvidersConfig)
    tools: ToolsConfig = Field(default_factory=ToolsConfig)

    @property
    def workspace_path(self) -> Path:
        """展开 ~ 后的工作区路径。"""
        return Path(self.tools.workspace).expanduser()

    def _match_provider(self, model: str | None = None) -> tuple["ProviderConfig | None", str | None]:
        """
        为模型挑选提供商，返回 (配置, 名称)，找不到时两者都是 None。

        先找模型名里带关键词且已配置的提供商（"claude" 对应 anthropic），
        再退而求其次取注册表中第一个已配置的。本地提供商只要求 api_base。
        """
        from deskpilot.providers.registry import PROVIDERS
        model_lower = (model or self.agents.defaults.model).lower()

        def configured(spec, p) -> bool:
            return bool(p.api_base) if spec.is_local else bool(p.api_key)

        for spec in PROVIDERS:
            p = getattr(self.providers, spec.name, None)
            if p and any(kw in model_lower for kw in spec.keywords) and configured(spec, p):
                return p, spec.name

        for spec in PROVIDERS:
            p = getattr(self.providers, spec.name, None)
            if p and configured(spec, p):
                return p, spec.name
        return None, None

    def get_provider(self, model: str | None = None) -> ProviderConfig | None:
        """获取匹配的提供商配置。"""
        p, _ = self._match_provider(model)
        return p

    def get_provider_name(self, model: str | None = None) -> str | None:
        """获取匹配的提供商注册名称（如 "ollama"、"openrouter"）。"""
        _, name = self._match_provider(model)
        return name

    def get_api_base(self, model: str | None = None) -> str | None:
        """
        模型对应的 API Base URL：显式配置优先，其次是网关或本地提供商的默认地址。
        """
        from deskpilot.providers.registry import find_by_name
        p, name = self._match_provider(model)
        if p and p.api_base:
            return p.api_base
        if name:
            spec = find_by_name(name)
            if spec and (spec.is_gateway or spec.is_local) and spec.default_api_base:
                return spec.default_api_base
        return None

    model_config = ConfigDict(
        env_prefix="DESKPILOT_",
        env_nested_delimiter="__"
    )
