"""
渠道基类模块 - 定义所有渠道连接的统一接口。

每个渠道连接（ChannelConnection）绑定一个 Bot，负责：
1. 从聊天平台接收消息事件
2. 过滤机器人自身消息、执行白名单校验
3. 把 InboundEvent 交给流水线处理器（PipelineOrchestrator.handle）
4. 提供能够下载资源、回复消息的 API 客户端

【核心抽象方法】
- start(): 启动渠道，开始监听消息（长期运行的异步任务）
- stop(): 停止渠道，释放资源
- api_client: 该连接的 API 客户端

【Java 开发者类比】
- BaseChannel 相当于 Java 的 abstract class
- _handle_event() 相当于 Template Method 模式中的模板方法
- is_allowed() 相当于 Spring Security 的 AccessDecisionVoter
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Awaitable, Callable

from loguru import logger

from clawrelay.bus.events import InboundEvent
from clawrelay.pipeline.orchestrator import ChannelConnection

# 事件处理器签名：(连接, 事件) -> 任意结果（通常是 PipelineState）
EventHandler = Callable[[ChannelConnection, InboundEvent], Awaitable[Any]]


class ConnectionStatus(str, Enum):
    CONNECTING = "CONNECTING"
    CONNECTED = "CONNECTED"
    DISCONNECTED = "DISCONNECTED"
    ERROR = "ERROR"


class BaseChannel(ABC):
    """
    渠道连接抽象基类。

    属性:
        name: 渠道类型名（如 "feishu"）
        config: 连接配置（必须包含 id、bot_id，可包含 allow_from）
        handler: 入站事件处理器
        status: 连接状态
        last_error: 最近一次错误（连接被拆除时记录原因）
    """

    name: str = "base"

    def __init__(self, config: Any, handler: EventHandler):
        self.config = config
        self.handler = handler
        self.connection = ChannelConnection(id=config.id, bot_id=config.bot_id)
        self.status = ConnectionStatus.DISCONNECTED
        self.last_error: str | None = None
        self._running = False

    @abstractmethod
    async def start(self) -> None:
        """
        启动渠道并开始监听消息。

        这应该是一个长期运行的异步任务，直到 stop() 被调用才返回。
        """
        pass

    @abstractmethod
    async def stop(self) -> None:
        """停止渠道，断开与平台的连接。"""
        pass

    @property
    @abstractmethod
    def api_client(self) -> Any:
        """该连接的 API 客户端（下载资源、回复消息），未初始化时为 None。"""
        pass

    def is_allowed(self, sender_id: str) -> bool:
        """
        检查发送者是否在白名单中。

        - 白名单为空 → 允许所有人
        - 白名单非空 → 只允许名单中的用户
        """
        allow_list = getattr(self.config, "allow_from", [])
        if not allow_list:
            return True
        return str(sender_id) in allow_list

    async def _handle_event(self, event: InboundEvent) -> Any:
        """
        入站事件预处理（模板方法）：过滤机器人消息 → 白名单校验 → 交给处理器。

        处理器本身保证不会抛出异常；这里不再额外捕获。
        """
        if event.sender_type == "bot":
            logger.debug(f"Ignoring bot-authored message {event.message_id} on {self.connection.id}")
            return None

        if not self.is_allowed(event.sender_id):
            logger.warning(
                f"Access denied for sender {event.sender_id} on connection {self.connection.id}. "
                f"Add them to allowFrom list in config to grant access."
            )
            return None

        return await self.handler(self.connection, event)

    @property
    def is_running(self) -> bool:
        return self._running
