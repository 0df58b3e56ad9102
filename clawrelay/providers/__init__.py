"""AI 后端模块：纯文本网关与视觉代理。"""

from clawrelay.providers.base import TextBackend, VisionBackend
from clawrelay.providers.openclaw import OpenClawGatewayClient
from clawrelay.providers.vision import VisionProxyClient

__all__ = ["TextBackend", "VisionBackend", "OpenClawGatewayClient", "VisionProxyClient"]
