"""
Bot 目录 - 根据 bot_id 查询 Bot 的运行状态、网关地址与能力。

流水线只关心三件事：
1. Bot 是否存在（不存在说明已被删除，需要拆除对应的渠道连接）
2. Bot 是否在运行、网关地址和令牌是否齐全
3. Bot 是否具备视觉能力、视觉代理地址是什么

【Java 开发者类比】
- BotDirectory 相当于一个 Repository 接口
- ConfigBotDirectory 是基于配置文件的内存实现（类似 InMemoryRepository）
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass

from clawrelay.config.schema import BotConfig


@dataclass(frozen=True)
class BotDescriptor:
    """Bot 描述信息（流水线所需字段的只读快照）。"""

    id: str
    name: str = ""
    status: str = "running"
    gateway_url: str = ""
    gateway_token: str = ""
    has_vision_capability: bool = False
    vision_proxy_url: str = ""

    @property
    def is_running(self) -> bool:
        return self.status == "running"

    @property
    def has_gateway(self) -> bool:
        return bool(self.gateway_url and self.gateway_token)

    @classmethod
    def from_config(cls, bot: BotConfig) -> "BotDescriptor":
        return cls(
            id=bot.id,
            name=bot.name,
            status=bot.status,
            gateway_url=bot.gateway_url,
            gateway_token=bot.gateway_token,
            # 没有视觉代理地址的 Bot 不可能走视觉路径
            has_vision_capability=bot.vision_capable and bool(bot.vision_proxy_url),
            vision_proxy_url=bot.vision_proxy_url,
        )


class BotDirectory(ABC):
    """Bot 目录接口。"""

    @abstractmethod
    async def get(self, bot_id: str) -> BotDescriptor | None:
        """查询 Bot，不存在时返回 None。"""
        pass


class ConfigBotDirectory(BotDirectory):
    """基于配置文件 bots 段的 Bot 目录。"""

    def __init__(self, bots: list[BotConfig]):
        self._bots = {bot.id: BotDescriptor.from_config(bot) for bot in bots}

    async def get(self, bot_id: str) -> BotDescriptor | None:
        return self._bots.get(bot_id)

    def __len__(self) -> int:
        return len(self._bots)
