"""
处理器描述模块 (agent/handlers/base.py)

Handler 是一个注册后不可变的能力描述：名称、说明、系统提示词、
打分函数（请求文本 -> [0.0, 1.0]）以及允许请求的工具列表。

打分是可插拔的策略：默认的 KeywordScorer 只做大小写不敏感的关键词包含判断，
任何满足 text -> score 约定的可调用对象（比如一次分类模型调用的同步包装）都可以替换它。
"""

from collections.abc import Callable
from dataclasses import dataclass, field

Scorer = Callable[[str], float]


class KeywordScorer:
    """
    关键词打分器。

    没有任何关键词出现时得 0；否则得 min(1.0, base + step * 命中数)，
    命中越多分越高，便于多个处理器之间比较。
    """

    def __init__(self, keywords: tuple[str, ...], base: float = 0.5, step: float = 0.1):
        self.keywords = tuple(k.lower() for k in keywords)
        self.base = base
        self.step = step

    def __call__(self, text: str) -> float:
        lowered = text.lower()
        hits = sum(1 for k in self.keywords if k in lowered)
        if hits == 0:
            return 0.0
        return min(1.0, self.base + self.step * hits)


@dataclass(frozen=True)
class Handler:
    """
    一个可被路由选中的处理器。

    属性:
        name: 处理器名称（路由结果、CLI 的 @name 前缀都用它）
        description: 一句话说明
        system_prompt: 追加在基础系统提示词之后的专用提示
        tools: 允许使用的工具名；None 表示允许全部工具
        keywords: 默认打分器使用的关键词
        scorer: 自定义打分函数，为 None 时按 keywords 打分
    """
    name: str
    description: str
    system_prompt: str
    tools: tuple[str, ...] | None = None
    keywords: tuple[str, ...] = ()
    scorer: Scorer | None = field(default=None, compare=False, repr=False)

    def score(self, text: str) -> float:
        """给请求文本打分，结果钳制到 [0.0, 1.0]。"""
        fn = self.scorer or KeywordScorer(self.keywords)
        return max(0.0, min(1.0, float(fn(text))))

    def allows(self, tool_name: str) -> bool:
        return self.tools is None or tool_name in self.tools
