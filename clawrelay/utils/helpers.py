"""
通用辅助函数 (utils/helpers.py)

- ensure_dir：保存配置前创建父目录
- truncate_string：日志里展示消息/帧内容的单行预览
- safe_filename：把会话 ID、附件名变成可放进对象存储键的片段
"""

import re
from pathlib import Path

_UNSAFE_KEY_CHARS = re.compile(r"[^\w.\-]")
_DOT_RUNS = re.compile(r"\.{2,}")


def ensure_dir(path: Path) -> Path:
    path.mkdir(parents=True, exist_ok=True)
    return path


def truncate_string(text: str, limit: int = 100, marker: str = "...") -> str:
    """
    生成单行预览：换行折叠为空格，超过 limit 个字符时截断并以 marker 结尾。

    参数:
        text: 原始文本
        limit: 结果的最大长度（含 marker）
        marker: 截断标记
    """
    flat = " ".join(text.split())
    if len(flat) <= limit:
        return flat
    keep = max(limit - len(marker), 0)
    return flat[:keep] + marker


def safe_filename(name: str) -> str:
    """
    把任意名字转成对象存储键片段。

    只保留字母数字、下划线、点和横线，连续的点折叠为下划线（防止 ".." 路径段），
    去掉开头的点和下划线；什么都不剩时返回 "file"。
    """
    cleaned = _DOT_RUNS.sub("_", _UNSAFE_KEY_CHARS.sub("_", name.strip()))
    return cleaned.lstrip("._") or "file"
