"""
回复分发模块 - 把后端的回复文本发回原始渠道。

只做一次尝试：失败时记录日志并返回 False，不重试，也不向上抛出。
"""

from typing import Protocol

from loguru import logger

from clawrelay.utils.helpers import truncate_string


class ReplyClient(Protocol):
    """能够回复消息的渠道 API 客户端。"""

    async def reply_message(self, message_id: str, text: str) -> None: ...


class ApiClientRegistry(Protocol):
    """按连接 ID 查询 API 客户端（由 ChannelManager 实现）。"""

    def get_api_client(self, connection_id: str) -> ReplyClient | None: ...


class ReplyDispatcher:
    """回复分发器。"""

    def __init__(self, clients: ApiClientRegistry):
        self.clients = clients

    async def reply(self, connection_id: str, origin_message_id: str, text: str) -> bool:
        """
        回复原始消息。

        参数:
            connection_id: 渠道连接 ID
            origin_message_id: 被回复的原始消息 ID
            text: 回复内容（为空时不发送）

        返回:
            是否发送成功
        """
        if not text or not text.strip():
            logger.debug(f"Blank response for message {origin_message_id}, nothing to reply")
            return False

        client = self.clients.get_api_client(connection_id)
        if client is None:
            logger.error(f"No API client registered for connection {connection_id}, reply dropped")
            return False

        try:
            await client.reply_message(origin_message_id, text)
        except Exception as e:
            logger.error(f"Failed to reply to message {origin_message_id} on connection {connection_id}: {e}")
            return False

        logger.info(f"Replied to message {origin_message_id}: {truncate_string(text, 80)}")
        return True
