"""
异常层次定义模块 (errors.py)

模块职责：
    定义 deskpilot 所有可预期的错误种类。每种错误对应回合执行中的一个失败面：

    - InferenceFailure:    推理服务不可达、请求被拒或回复格式错误
    - ToolUnknown:         请求了未注册的工具
    - ToolArgumentMissing: 工具缺少必填参数
    - ToolExecutionFailed: 工具执行过程中失败
    - PersistenceFailure:  持久化存储读写失败
    - TurnCancelled:       用户主动取消了正在进行的回合

传播策略：
    - 工具类错误（ToolUnknown / ToolArgumentMissing / ToolExecutionFailed）在工具注册表中
      被就地转换为 ToolResult(success=False)，不会中断回合
    - InferenceFailure 只终止当前回合，会话与热窗口保持回合开始前的状态
    - PersistenceFailure 在读路径上降级处理，在提交回合的写路径上终止回合
    - TurnCancelled 是正常结果，不按错误记录日志

【Java 开发者类比】
    相当于定义一组继承自同一个 RuntimeException 基类的业务异常，
    调用方可以 catch 基类统一处理，也可以 catch 子类区别对待。
"""


class DeskpilotError(Exception):
    """所有 deskpilot 业务异常的基类。"""


class InferenceFailure(DeskpilotError):
    """推理调用失败（网络、鉴权、限流或回复无法解析）。"""


class ToolError(DeskpilotError):
    """工具相关错误的公共基类，注册表据此把异常转换为失败的 ToolResult。"""


class ToolUnknown(ToolError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"unknown tool: {name}")


class ToolArgumentMissing(ToolError):
    def __init__(self, tool: str, argument: str):
        self.tool = tool
        self.argument = argument
        super().__init__(f"missing required argument: {argument}")


class ToolExecutionFailed(ToolError):
    """工具执行失败。具体工具直接抛出它，携带面向用户的错误描述。"""


class PersistenceFailure(DeskpilotError):
    """持久化层错误（SQLite 读写失败、会话不存在等）。"""


class TurnCancelled(DeskpilotError):
    """回合被用户取消。"""

    def __init__(self, reason: str = "cancelled"):
        self.reason = reason
        super().__init__(reason)
