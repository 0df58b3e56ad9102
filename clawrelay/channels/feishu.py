"""
飞书/Lark 渠道实现 - 基于 lark-oapi SDK 的 WebSocket 长连接接收事件。

- 入站：lark-oapi 的 WebSocket 长连接（无需公网 IP 或 Webhook）
- 出站与附件下载：FeishuApiClient（lark-oapi 的 Open API 调用，放在线程池执行）

线程模型：
- lark SDK 的 WebSocket 客户端是同步的，运行在独立 daemon 线程中
- 收到事件后通过 asyncio.run_coroutine_threadsafe 调度到主事件循环
- 每条事件在主循环中作为一个独立的协程任务运行，彼此之间没有顺序保证

依赖：
- lark-oapi：飞书官方 SDK
"""

import asyncio
import threading
import time
from typing import Any

import lark_oapi as lark
from lark_oapi.api.im.v1 import P2ImMessageReceiveV1
from loguru import logger

from clawrelay.bus.events import InboundEvent
from clawrelay.channels.base import BaseChannel, ConnectionStatus, EventHandler
from clawrelay.channels.feishu_api import FeishuApiClient
from clawrelay.config.schema import FeishuConnectionConfig

# 断线后重连等待时间（秒）
RECONNECT_DELAY = 5


class FeishuChannel(BaseChannel):
    """
    飞书/Lark 渠道连接。

    前置要求：
    - 在飞书开放平台创建应用，获取 App ID 和 App Secret
    - 启用机器人能力
    - 订阅 im.message.receive_v1 事件
    """

    name = "feishu"

    def __init__(
        self,
        config: FeishuConnectionConfig,
        handler: EventHandler,
        api_client: FeishuApiClient | None = None,
    ):
        super().__init__(config, handler)
        self.config: FeishuConnectionConfig = config
        self._api_client = api_client
        self._ws_client: Any = None
        self._ws_thread: threading.Thread | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._stopped = asyncio.Event()

    @property
    def api_client(self) -> FeishuApiClient | None:
        return self._api_client

    async def start(self) -> None:
        """
        启动飞书长连接。

        流程：
        1. 检查配置是否完整
        2. 创建 API 客户端（回复消息、下载附件）
        3. 注册消息接收回调，在独立线程中启动 WebSocket 客户端
        4. 阻塞直到 stop() 被调用
        """
        if not self.config.app_id or not self.config.app_secret:
            self.status = ConnectionStatus.ERROR
            self.last_error = "app_id and app_secret not configured"
            logger.error(f"Feishu connection {self.connection.id}: app_id and app_secret not configured")
            return

        self._running = True
        self._stopped.clear()
        self.status = ConnectionStatus.CONNECTING
        self._loop = asyncio.get_running_loop()

        if self._api_client is None:
            self._api_client = FeishuApiClient(
                self.config.app_id, self.config.app_secret, domain=self.config.domain
            )

        event_handler = lark.EventDispatcherHandler.builder(
            self.config.encrypt_key or "",
            self.config.verification_token or "",
        ).register_p2_im_message_receive_v1(
            self._on_message_sync
        ).build()

        domain = lark.LARK_DOMAIN if self.config.domain == "lark" else lark.FEISHU_DOMAIN
        self._ws_client = lark.ws.Client(
            self.config.app_id,
            self.config.app_secret,
            event_handler=event_handler,
            log_level=lark.LogLevel.INFO,
            domain=domain,
        )

        def run_ws():
            while self._running:
                try:
                    self._ws_client.start()
                except Exception as e:
                    logger.warning(f"Feishu WebSocket error on {self.connection.id}: {e}")
                    self.last_error = str(e)
                if self._running:
                    time.sleep(RECONNECT_DELAY)

        self._ws_thread = threading.Thread(target=run_ws, daemon=True)
        self._ws_thread.start()
        self.status = ConnectionStatus.CONNECTED
        logger.info(f"Feishu connection {self.connection.id} started for bot {self.connection.bot_id}")

        await self._stopped.wait()

    async def stop(self) -> None:
        self._running = False
        self._stopped.set()
        if self._ws_client:
            try:
                self._ws_client.stop()
            except Exception as e:
                logger.warning(f"Error stopping WebSocket client: {e}")
        self._api_client = None
        self.status = ConnectionStatus.DISCONNECTED
        logger.info(f"Feishu connection {self.connection.id} stopped")

    def _on_message_sync(self, data: P2ImMessageReceiveV1) -> None:
        """同步回调（WebSocket 线程），把事件调度到主事件循环。"""
        if self._loop and self._loop.is_running():
            asyncio.run_coroutine_threadsafe(self._on_message(data), self._loop)

    async def _on_message(self, data: P2ImMessageReceiveV1) -> None:
        try:
            event = to_inbound_event(data)
        except AttributeError as e:
            logger.error(f"Malformed Feishu event on {self.connection.id}: {e}")
            return
        await self._handle_event(event)


def to_inbound_event(data: P2ImMessageReceiveV1) -> InboundEvent:
    """把 lark SDK 的消息接收事件转换为 InboundEvent。"""
    message = data.event.message
    sender = data.event.sender
    sender_id = ""
    if sender and sender.sender_id:
        sender_id = sender.sender_id.open_id or ""

    return InboundEvent(
        message_id=message.message_id,
        conversation_id=message.chat_id,
        message_type=message.message_type,
        raw_content=message.content or "",
        sender_id=sender_id,
        sender_type=(sender.sender_type if sender else None) or "user",
        chat_type=message.chat_type or "p2p",
    )
