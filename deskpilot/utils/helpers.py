"""
工具函数集合 - deskpilot 项目全局通用的辅助函数。

函数分类：
- 路径管理：ensure_dir, get_data_path, get_workspace_path
- 字符串工具：truncate_string, preview
- 时间工具：utc_now, to_iso
"""

from datetime import datetime, timezone
from pathlib import Path


def ensure_dir(path: Path) -> Path:
    """
    确保目录存在，不存在则递归创建。

    参数:
        path: 目标目录路径

    返回:
        创建后的目录路径（原样返回）
    """
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_path() -> Path:
    """获取 deskpilot 数据目录（~/.deskpilot）。自动创建不存在的目录。"""
    return ensure_dir(Path.home() / ".deskpilot")


def get_workspace_path(workspace: str | None = None) -> Path:
    """
    获取工作空间路径（文件工具和 Shell 工具的默认工作目录）。

    参数:
        workspace: 自定义工作空间路径。为 None 时使用默认路径 ~/.deskpilot/workspace
    """
    if workspace:
        path = Path(workspace).expanduser()
    else:
        path = get_data_path() / "workspace"
    return ensure_dir(path)


def utc_now() -> datetime:
    """获取当前 UTC 时间（带时区信息）。"""
    return datetime.now(timezone.utc)


def to_iso(moment: datetime) -> str:
    """
    将时间转换为统一格式的 UTC ISO-8601 字符串。

    固定微秒精度和 +00:00 后缀，保证同一格式的字符串按字典序比较即按时间先后比较，
    数据库中的排序和"同一天"判断都依赖这一点。
    """
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).isoformat(timespec="microseconds")


def truncate_string(s: str, max_len: int = 100, suffix: str = "...") -> str:
    """
    截断字符串到指定最大长度，超出时添加后缀。

    参数:
        s: 原始字符串
        max_len: 最大长度（包含后缀），默认 100
        suffix: 截断后缀，默认 "..."
    """
    if len(s) <= max_len:
        return s
    return s[: max_len - len(suffix)] + suffix


def preview(s: str, max_len: int = 80) -> str:
    """日志预览用：压成单行再截断。"""
    return truncate_string(" ".join(s.split()), max_len)
