"""
AI 后端抽象基类定义模块。

流水线面对两类后端：
- TextBackend   : 纯文本网关（OpenClaw Gateway），简单的请求 / 响应
- VisionBackend : 视觉代理，绕过普通网关，直接携带多模态内容调用视觉模型

架构角色：
  DeliveryRouter → TextBackend.chat() / VisionBackend.chat() → 回复文本 → ReplyDispatcher

类比 Java：
  - TextBackend / VisionBackend 相当于两个 interface
  - OpenClawGatewayClient / VisionProxyClient 是它们的实现类
"""

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from clawrelay.pipeline.content import ContentPart


class TextBackend(ABC):
    """纯文本后端接口。"""

    @abstractmethod
    async def chat(self, gateway_url: str, token: str, text: str) -> str:
        """
        发送一条文本消息并等待完整回复。

        参数：
            gateway_url: 网关地址（如 ws://localhost:18789）
            token: 网关认证令牌
            text: 用户消息文本

        返回：
            后端回复文本（可能为空字符串）

        异常：
            任何失败都以异常形式抛出，由调用方决定如何处理
        """
        pass


class VisionBackend(ABC):
    """视觉后端接口。"""

    @abstractmethod
    async def chat(
        self,
        proxy_url: str,
        model: str,
        parts: list["ContentPart"],
        api_key: str | None = None,
    ) -> str:
        """
        携带多模态内容调用视觉模型。

        参数：
            proxy_url: 视觉代理地址（OpenAI 兼容接口）
            model: 视觉模型标识（LiteLLM 格式，如 "openai/gpt-4o"）
            parts: 有序的内容片段
            api_key: 代理认证密钥（可选）

        返回：
            模型回复文本
        """
        pass
