"""
流水线编排模块 - 为每个入站事件串联整个处理流程，并作为唯一的错误边界。

处理顺序：
  去重 → 标准化 → 空消息短路 → 查询 Bot → 构建内容 → 投递 → 回复

状态机：
  RECEIVED → NORMALIZED → CONTENT_BUILT → DELIVERED → REPLIED → DONE
  终止态：SKIPPED_DUPLICATE / SKIPPED_UNSUPPORTED_TYPE / SKIPPED_EMPTY /
         SKIPPED_BOT_UNAVAILABLE / FAILED_LOGGED

任何异常都在 handle() 中被捕获并记录（带消息 ID 与会话 ID），
返回 FAILED_LOGGED，绝不抛回渠道层，保证单条消息的失败不影响其他消息。
"""

from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from loguru import logger

from clawrelay.bots.directory import BotDescriptor, BotDirectory
from clawrelay.bus.events import InboundEvent
from clawrelay.pipeline.content import (
    BackendHints,
    ContentPartBuilder,
    MessageOrigin,
    ResourceFetcher,
    TextOnly,
)
from clawrelay.pipeline.dedup import DedupCache
from clawrelay.pipeline.normalizer import MessageNormalizer
from clawrelay.pipeline.reply import ReplyDispatcher
from clawrelay.pipeline.router import DeliveryRouter


class PipelineState(str, Enum):
    RECEIVED = "received"
    NORMALIZED = "normalized"
    CONTENT_BUILT = "content_built"
    DELIVERED = "delivered"
    REPLIED = "replied"
    DONE = "done"
    SKIPPED_DUPLICATE = "skipped_duplicate"
    SKIPPED_UNSUPPORTED_TYPE = "skipped_unsupported_type"
    SKIPPED_EMPTY = "skipped_empty"
    SKIPPED_BOT_UNAVAILABLE = "skipped_bot_unavailable"
    FAILED_LOGGED = "failed_logged"


@dataclass(frozen=True)
class ChannelConnection:
    """事件来源的渠道连接：连接 ID 与其绑定的 Bot。"""

    id: str
    bot_id: str


class ConnectionHost(Protocol):
    """编排器需要的渠道管理能力（由 ChannelManager 实现）。"""

    def get_api_client(self, connection_id: str) -> ResourceFetcher | None: ...

    async def destroy_connection(self, connection_id: str, reason: str) -> None: ...


class PipelineOrchestrator:
    """
    流水线编排器。

    参数:
        dedup: 去重缓存
        normalizer: 消息标准化器
        builder: 内容片段构建器
        router: 投递路由器
        replier: 回复分发器
        bots: Bot 目录
        connections: 渠道管理器
    """

    def __init__(
        self,
        dedup: DedupCache,
        normalizer: MessageNormalizer,
        builder: ContentPartBuilder,
        router: DeliveryRouter,
        replier: ReplyDispatcher,
        bots: BotDirectory,
        connections: ConnectionHost,
    ):
        self.dedup = dedup
        self.normalizer = normalizer
        self.builder = builder
        self.router = router
        self.replier = replier
        self.bots = bots
        self.connections = connections

    async def handle(self, connection: ChannelConnection, event: InboundEvent) -> PipelineState:
        """处理一条入站事件，返回终止状态。"""
        try:
            return await self._run(connection, event)
        except Exception as e:
            logger.exception(
                f"Pipeline failed for message {event.message_id} "
                f"in conversation {event.conversation_id} (connection {connection.id}): {e}"
            )
            return PipelineState.FAILED_LOGGED

    def _advance(self, event: InboundEvent, state: PipelineState) -> PipelineState:
        logger.debug(f"Message {event.message_id}: {state.value}")
        return state

    async def _run(self, connection: ChannelConnection, event: InboundEvent) -> PipelineState:
        self._advance(event, PipelineState.RECEIVED)

        if not self.dedup.should_process(event.message_id):
            logger.debug(f"Duplicate message {event.message_id}, skipped")
            return PipelineState.SKIPPED_DUPLICATE

        parsed = self.normalizer.normalize(event.message_type, event.raw_content)
        if parsed is None:
            logger.info(f"Unsupported message type {event.message_type!r} for message {event.message_id}, skipped")
            return PipelineState.SKIPPED_UNSUPPORTED_TYPE
        self._advance(event, PipelineState.NORMALIZED)

        if parsed.is_empty:
            logger.info(f"Empty message {event.message_id}, skipped")
            return PipelineState.SKIPPED_EMPTY

        bot = await self._resolve_bot(connection)
        if bot is None:
            return PipelineState.SKIPPED_BOT_UNAVAILABLE

        # 只有带附件的消息在投递前需要下载客户端，回复阶段缺失客户端由 ReplyDispatcher 记录
        fetcher = self.connections.get_api_client(connection.id)
        if fetcher is None and (parsed.images or parsed.files):
            logger.error(
                f"No API client registered for connection {connection.id}, "
                f"attachments of message {event.message_id} cannot be downloaded"
            )
            return PipelineState.FAILED_LOGGED

        origin = MessageOrigin(event.message_id, event.conversation_id, fetcher)
        built = await self.builder.build(parsed, origin, BackendHints(bot.has_vision_capability))
        self._advance(event, PipelineState.CONTENT_BUILT)

        if isinstance(built, TextOnly) and not built.text.strip():
            logger.info(f"Message {event.message_id} has no deliverable content, skipped")
            return PipelineState.SKIPPED_EMPTY

        response = await self.router.deliver(built, bot)
        if response is None:
            return PipelineState.SKIPPED_EMPTY
        self._advance(event, PipelineState.DELIVERED)

        if response.strip():
            if await self.replier.reply(connection.id, event.message_id, response):
                self._advance(event, PipelineState.REPLIED)
        else:
            logger.info(f"Bot {bot.id} returned an empty response for message {event.message_id}")

        return self._advance(event, PipelineState.DONE)

    async def _resolve_bot(self, connection: ChannelConnection) -> BotDescriptor | None:
        bot = await self.bots.get(connection.bot_id)
        if bot is None:
            reason = f"Bot {connection.bot_id} not found"
            logger.warning(f"{reason}, tearing down connection {connection.id}")
            await self.connections.destroy_connection(connection.id, reason)
            return None

        if not bot.is_running:
            logger.warning(f"Bot {bot.id} is not running (status={bot.status}), message skipped")
            return None
        if not bot.has_gateway:
            logger.warning(f"Bot {bot.id} has no gateway URL or token, message skipped")
            return None
        return bot
