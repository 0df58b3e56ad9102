"""
入站消息流水线模块 - clawrelay 的核心。

一条飞书消息从进入到回复，依次经过：
- DedupCache: 去重缓存，过滤飞书的重复投递
- MessageNormalizer: 将 text / post / image / file 四种消息统一为 ParsedMessage
- ContentPartBuilder: 下载附件、提取文本、上传对象存储，产出 TextOnly 或 MultiModal
- DeliveryRouter: 选择纯文本网关或视觉代理，视觉失败时降级为文本
- ReplyDispatcher: 把回复发回原始会话
- PipelineOrchestrator: 串联以上组件，并作为唯一的错误边界

【Java 开发者类比】
整体相当于一条责任链（Chain of Responsibility），
PipelineOrchestrator 相当于 Controller 层的全局异常处理器 + Service 编排。
"""

from clawrelay.pipeline.content import ContentPartBuilder, MultiModal, TextOnly
from clawrelay.pipeline.dedup import DedupCache
from clawrelay.pipeline.normalizer import MessageNormalizer
from clawrelay.pipeline.orchestrator import ChannelConnection, PipelineOrchestrator, PipelineState
from clawrelay.pipeline.reply import ReplyDispatcher
from clawrelay.pipeline.router import DeliveryRouter

__all__ = [
    "DedupCache",
    "MessageNormalizer",
    "ContentPartBuilder",
    "TextOnly",
    "MultiModal",
    "DeliveryRouter",
    "ReplyDispatcher",
    "PipelineOrchestrator",
    "PipelineState",
    "ChannelConnection",
]
