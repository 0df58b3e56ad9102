"""
投递路由模块 - 在纯文本路径与多模态路径之间做选择，并实现"视觉 → 文本"的单级降级。

投递计划是一个有序的策略列表：
  TextOnly                    → [TextGatewayStrategy]
  MultiModal（无二进制片段）    → [TextGatewayStrategy(拼接文本)]
  MultiModal（Bot 不支持视觉）  → [TextGatewayStrategy(拼接文本 或 占位文本)]
  MultiModal（Bot 支持视觉）    → [VisionProxyStrategy, TextGatewayStrategy(拼接文本 或 占位文本)]

每个策略返回 DeliveryAttempt（成功时带回复文本，失败时带异常），不向外抛出。
路由器按顺序尝试，返回第一个成功结果；全部失败时抛出 DeliveryError。
视觉代理最多只会被调用一次（单级降级，不是重试循环）。

【Java 开发者类比】
- DeliveryStrategy 相当于策略模式（Strategy Pattern）中的策略接口
- DeliveryAttempt 相当于 Result<String, Exception>
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass

from loguru import logger

from clawrelay.bots.directory import BotDescriptor
from clawrelay.errors import DeliveryError
from clawrelay.pipeline.content import (
    BuiltContent,
    ContentPart,
    FilePart,
    ImagePart,
    TextOnly,
    TextPart,
)
from clawrelay.providers.base import TextBackend, VisionBackend

ATTACHMENT_PLACEHOLDER = "The user sent an attachment that cannot currently be processed."


@dataclass
class DeliveryAttempt:
    """单个策略的执行结果：response 与 error 二者取其一。"""

    strategy: str
    response: str | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class DeliveryStrategy(ABC):
    """投递策略基类。"""

    name: str = "strategy"

    async def attempt(self, target: BotDescriptor) -> DeliveryAttempt:
        try:
            response = await self.send(target)
        except Exception as e:
            logger.warning(f"Delivery via {self.name} to bot {target.id} failed: {e}")
            return DeliveryAttempt(self.name, error=e)
        return DeliveryAttempt(self.name, response=response)

    @abstractmethod
    async def send(self, target: BotDescriptor) -> str:
        pass


class TextGatewayStrategy(DeliveryStrategy):
    """通过 Bot 的 OpenClaw 网关发送纯文本。"""

    name = "text_gateway"

    def __init__(self, backend: TextBackend, text: str):
        self.backend = backend
        self.text = text

    async def send(self, target: BotDescriptor) -> str:
        return await self.backend.chat(target.gateway_url, target.gateway_token, self.text)


class VisionProxyStrategy(DeliveryStrategy):
    """通过视觉代理发送完整的多模态内容。"""

    name = "vision_proxy"

    def __init__(self, backend: VisionBackend, parts: list[ContentPart], model: str):
        self.backend = backend
        self.parts = parts
        self.model = model

    async def send(self, target: BotDescriptor) -> str:
        return await self.backend.chat(
            target.vision_proxy_url, self.model, self.parts, api_key=target.gateway_token or None
        )


class DeliveryRouter:
    """
    投递路由器。

    参数:
        text_backend: 纯文本网关客户端
        vision_backend: 视觉代理客户端
        vision_model: 视觉路径使用的默认模型
    """

    def __init__(self, text_backend: TextBackend, vision_backend: VisionBackend, vision_model: str):
        self.text_backend = text_backend
        self.vision_backend = vision_backend
        self.vision_model = vision_model

    def plan(self, built: BuiltContent, target: BotDescriptor) -> list[DeliveryStrategy]:
        """生成有序的投递策略列表；空列表表示消息为空，应当丢弃。"""
        if isinstance(built, TextOnly):
            if not built.text.strip():
                return []
            return [TextGatewayStrategy(self.text_backend, built.text)]

        texts = [p.text for p in built.parts if isinstance(p, TextPart) and p.text.strip()]
        binary = sum(1 for p in built.parts if isinstance(p, (ImagePart, FilePart)))
        joined = "\n\n".join(texts)

        if binary == 0:
            return [TextGatewayStrategy(self.text_backend, joined)] if joined.strip() else []

        fallback = TextGatewayStrategy(self.text_backend, joined or ATTACHMENT_PLACEHOLDER)
        if not target.has_vision_capability:
            logger.info(f"Bot {target.id} has no vision capability, sending {binary} attachment(s) as text")
            return [fallback]
        return [VisionProxyStrategy(self.vision_backend, built.parts, self.vision_model), fallback]

    async def deliver(self, built: BuiltContent, target: BotDescriptor) -> str | None:
        """
        按计划依次尝试投递。

        返回:
            第一个成功策略的回复文本；消息为空时返回 None

        异常:
            DeliveryError: 所有策略都失败（__cause__ 为最后一次失败的异常）
        """
        strategies = self.plan(built, target)
        if not strategies:
            logger.info("Empty message, skipped")
            return None

        last: DeliveryAttempt | None = None
        for strategy in strategies:
            last = await strategy.attempt(target)
            if last.ok:
                if strategy is not strategies[0]:
                    logger.info(f"Delivered to bot {target.id} via fallback {strategy.name}")
                return last.response

        raise DeliveryError(f"all delivery strategies failed for bot {target.id}") from last.error
