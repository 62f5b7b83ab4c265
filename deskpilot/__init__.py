"""
deskpilot - 桌面自动化 AI 助手

模块概述：
    本文件是 deskpilot 包的入口文件（__init__.py），定义了包的元信息。
    deskpilot 接收自然语言请求，路由给专门的处理器（Handler），
    让处理器请求执行本地工具（文件、Shell、进程、剪贴板），
    并把整轮对话写入分层记忆（热 / 温 / 冷）供后续请求检索。

    核心功能包括：
    - 意图路由（HandlerRegistry）
    - 回合执行状态机（TurnExecutor）：推理 → 解析工具指令 → 执行工具 → 二次推理 → 提交
    - 分层记忆（ContextManager + MemoryStore，SQLite 持久化）
"""

# 版本号，遵循语义化版本规范（主版本.次版本.修订号）
__version__ = "0.1.0"

# 项目 logo 表情符号，用于 CLI 输出等场景的品牌标识
__logo__ = "🧭"
