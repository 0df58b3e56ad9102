"""
配置文件读写 (config/loader.py)

磁盘上的 ~/.clawrelay/config.json 使用 camelCase 键名（与控制台导出的格式一致），
Python 里的 Config 模型使用 snake_case。读入时先做旧格式迁移再转换键名，
写出时反向转换。

【Java 开发者类比】
相当于一个手写的 Jackson ObjectMapper，配置了 PropertyNamingStrategies.LOWER_CAMEL_CASE，
再加上 Flyway 风格的"配置迁移"步骤。
"""

import json
import re
from pathlib import Path
from typing import Any, Callable

from loguru import logger

from clawrelay.config.schema import Config
from clawrelay.utils.helpers import ensure_dir

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


def get_config_path() -> Path:
    return Path.home() / ".clawrelay" / "config.json"


def load_config(config_path: Path | None = None) -> Config:
    """
    读取配置文件并校验为 Config。

    文件不存在、不是合法 JSON 或校验失败时都回退到默认配置（记录一条警告），
    这样 `clawrelay status` 之类的命令在配置损坏时仍能运行。

    参数:
        config_path: 配置文件路径，默认 ~/.clawrelay/config.json

    返回:
        Config 实例
    """
    path = config_path or get_config_path()
    if not path.exists():
        return Config()

    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
        return Config.model_validate(convert_keys(_migrate_config(raw)))
    except (json.JSONDecodeError, ValueError) as e:
        logger.warning(f"Ignoring unreadable config {path}: {e}")
        return Config()


def save_config(config: Config, config_path: Path | None = None) -> None:
    """以 camelCase 键名、两空格缩进写出配置。"""
    path = config_path or get_config_path()
    ensure_dir(path.parent)
    payload = _rename_keys(config.model_dump(), snake_to_camel)
    path.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")


def _migrate_config(data: dict) -> dict:
    # 早期版本 channels.feishu 是单个连接对象，现在是连接列表
    channels = data.get("channels")
    if isinstance(channels, dict) and isinstance(channels.get("feishu"), dict):
        channels["feishu"] = [channels["feishu"]]
    return data


def _rename_keys(data: Any, rename: Callable[[str], str]) -> Any:
    if isinstance(data, dict):
        return {rename(key): _rename_keys(value, rename) for key, value in data.items()}
    if isinstance(data, list):
        return [_rename_keys(item, rename) for item in data]
    return data


def convert_keys(data: Any) -> Any:
    """递归地把 dict 键名从 camelCase 转成 snake_case，例如 {"botId": ...} → {"bot_id": ...}。"""
    return _rename_keys(data, camel_to_snake)


def camel_to_snake(name: str) -> str:
    return _CAMEL_BOUNDARY.sub("_", name).lower()


def snake_to_camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)
