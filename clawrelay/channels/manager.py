"""
渠道管理器模块 - 统一管理所有渠道连接的生命周期。

负责：
1. 根据配置为每个已启用的飞书连接创建一个 FeishuChannel
2. 统一启动 / 停止所有连接
3. 按连接 ID 提供 API 客户端（下载附件、回复消息）
4. 拆除连接：Bot 被删除时由流水线调用，标记 DISCONNECTED 并记录原因

【Java 开发者类比】
- ChannelManager 相当于 Spring 的 ApplicationContext，管理所有渠道 Bean 的生命周期
- destroy_connection() 相当于 Bean 的 destroy 回调 + 状态落库
"""

from __future__ import annotations

import asyncio
from typing import Any

from loguru import logger

from clawrelay.bus.events import InboundEvent
from clawrelay.channels.base import BaseChannel, ConnectionStatus, EventHandler
from clawrelay.channels.feishu import FeishuChannel
from clawrelay.config.schema import Config
from clawrelay.pipeline.orchestrator import ChannelConnection


class ChannelManager:
    """
    渠道管理器。

    属性:
        config: 全局配置对象
        handler: 入站事件处理器（通常是 PipelineOrchestrator.handle，可在构造后绑定）
        channels: 渠道连接字典 {连接 ID: 渠道实例}
    """

    def __init__(self, config: Config, handler: EventHandler | None = None):
        self.config = config
        self.handler = handler
        self.channels: dict[str, BaseChannel] = {}
        self._tasks: dict[str, asyncio.Task] = {}

        self._init_channels()

    def _init_channels(self) -> None:
        for conn in self.config.channels.feishu:
            if not conn.enabled:
                continue
            if not conn.id:
                logger.warning(f"Feishu connection for app {conn.app_id or '?'} has no id, skipped")
                continue
            if conn.id in self.channels:
                logger.warning(f"Duplicate connection id {conn.id}, skipped")
                continue
            self.channels[conn.id] = FeishuChannel(conn, self._dispatch)
            logger.info(f"Feishu connection {conn.id} enabled (bot {conn.bot_id})")

    async def _dispatch(self, connection: ChannelConnection, event: InboundEvent) -> Any:
        if self.handler is None:
            logger.warning(f"No event handler bound, dropping message {event.message_id}")
            return None
        return await self.handler(connection, event)

    async def _start_channel(self, connection_id: str, channel: BaseChannel) -> None:
        try:
            await channel.start()
        except Exception as e:
            channel.status = ConnectionStatus.ERROR
            channel.last_error = str(e)
            logger.error(f"Failed to start connection {connection_id}: {e}")

    async def start_all(self) -> None:
        """
        并行启动所有连接，并等待它们结束（正常情况下一直运行直到被停止）。
        """
        if not self.channels:
            logger.warning("No channels enabled")
            return

        for connection_id, channel in self.channels.items():
            logger.info(f"Starting connection {connection_id}...")
            self._tasks[connection_id] = asyncio.create_task(self._start_channel(connection_id, channel))

        await asyncio.gather(*self._tasks.values(), return_exceptions=True)

    async def stop_all(self) -> None:
        logger.info("Stopping all channels...")
        for connection_id, channel in self.channels.items():
            try:
                await channel.stop()
                logger.info(f"Stopped connection {connection_id}")
            except Exception as e:
                logger.error(f"Error stopping {connection_id}: {e}")

    def get_channel(self, connection_id: str) -> BaseChannel | None:
        return self.channels.get(connection_id)

    def get_api_client(self, connection_id: str) -> Any:
        """
        获取连接的 API 客户端。

        连接不存在或已断开时返回 None。
        """
        channel = self.channels.get(connection_id)
        if channel is None or channel.status == ConnectionStatus.DISCONNECTED:
            return None
        return channel.api_client

    async def destroy_connection(self, connection_id: str, reason: str) -> None:
        """
        拆除连接：停止渠道，状态标记为 DISCONNECTED 并记录原因。

        参数:
            connection_id: 连接 ID
            reason: 拆除原因（写入 last_error）
        """
        channel = self.channels.get(connection_id)
        if channel is None:
            logger.warning(f"Cannot destroy unknown connection {connection_id}")
            return

        try:
            await channel.stop()
        except Exception as e:
            logger.error(f"Error stopping {connection_id} during teardown: {e}")

        channel.status = ConnectionStatus.DISCONNECTED
        channel.last_error = reason
        logger.warning(f"Connection {connection_id} destroyed: {reason}")

    def get_status(self) -> dict[str, Any]:
        """
        获取所有连接的状态。

        返回:
            {连接 ID: {"bot_id", "status", "running", "last_error"}}
        """
        return {
            connection_id: {
                "bot_id": channel.connection.bot_id,
                "status": channel.status.value,
                "running": channel.is_running,
                "last_error": channel.last_error,
            }
            for connection_id, channel in self.channels.items()
        }

    @property
    def enabled_channels(self) -> list[str]:
        return list(self.channels.keys())
