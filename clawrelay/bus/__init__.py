"""
事件模型模块 - 渠道层与流水线之间传递的数据结构。

消息流向：
  飞书事件 → 渠道(Channel) → InboundEvent → PipelineOrchestrator
  → ParsedMessage → ContentPart 列表 → 后端 → 回复
"""

from clawrelay.bus.events import (
    DownloadedResource,
    FileRef,
    ImageRef,
    InboundEvent,
    MessageType,
    ParsedMessage,
)

__all__ = [
    "InboundEvent",
    "MessageType",
    "ParsedMessage",
    "ImageRef",
    "FileRef",
    "DownloadedResource",
]
