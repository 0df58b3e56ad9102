"""
渠道连接模块 - 接入飞书 / Lark 并把入站事件交给流水线。

【架构定位】
渠道层负责"收"和"回"：
  飞书事件 → FeishuChannel → PipelineOrchestrator.handle()
  回复 / 附件下载 → FeishuApiClient（由 ChannelManager 按连接 ID 提供）
"""

from clawrelay.channels.base import BaseChannel, ConnectionStatus
from clawrelay.channels.manager import ChannelManager

__all__ = ["BaseChannel", "ChannelManager", "ConnectionStatus"]
