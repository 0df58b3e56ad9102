"""
消息事件类型定义模块 - 定义流水线中传输的数据结构。

本模块定义了入站消息在各阶段的"货币"：
- InboundEvent：渠道收到的原始事件（只抽取流水线关心的字段）
- MessageType：支持的消息类型（其余类型一律视为不支持）
- ImageRef / FileRef：渠道侧资源句柄，足以在之后下载二进制内容
- ParsedMessage：标准化后的消息（文本 + 图片引用 + 文件引用）

【设计要点】
- 所有结构都是封闭的 dataclass / Enum，而不是到处传递的 dict，
  标准化器和路由器只面对经过校验的形状
- InboundEvent 和 ParsedMessage 都是一次性的，在单次流水线调用内创建并丢弃，不做持久化
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import PurePosixPath


class MessageType(str, Enum):
    """流水线支持的入站消息类型。值与飞书的 message_type 保持一致。"""

    TEXT = "text"
    POST = "post"    # 富文本
    IMAGE = "image"
    FILE = "file"

    @classmethod
    def parse(cls, value: str | None) -> "MessageType | None":
        """将原始类型字符串映射为 MessageType，不支持的类型返回 None。"""
        try:
            return cls(value)
        except ValueError:
            return None


@dataclass
class InboundEvent:
    """
    入站事件 - 从聊天渠道收到的一条消息。

    属性:
        message_id: 渠道内唯一的消息 ID（重复投递时会重复出现）
        conversation_id: 会话 ID（飞书 chat_id）
        message_type: 原始消息类型字符串（如 "text"、"post"、"sticker"）
        raw_content: 原始消息内容（按类型编码，飞书为 JSON 字符串）
        sender_id: 发送者 ID
        sender_type: 发送者类型（"user" / "bot"）
        chat_type: 会话类型（"p2p" / "group"）
        timestamp: 接收时间戳
    """

    message_id: str
    conversation_id: str
    message_type: str
    raw_content: str
    sender_id: str = ""
    sender_type: str = "user"
    chat_type: str = "p2p"
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class ImageRef:
    """图片资源句柄（飞书 image_key）。"""

    key: str


@dataclass(frozen=True)
class FileRef:
    """文件资源句柄（飞书 file_key + 文件名）。"""

    key: str
    file_name: str

    @property
    def extension(self) -> str:
        """小写扩展名，不含点号；无扩展名时为空字符串。"""
        return PurePosixPath(self.file_name).suffix.lstrip(".").lower()


@dataclass
class ParsedMessage:
    """
    标准化后的消息。

    不变式：text（去除首尾空白后非空）、images、files 至少一项非空，
    消息才会继续向下游流转；否则消息被丢弃（这不是错误）。
    """

    text: str = ""
    images: list[ImageRef] = field(default_factory=list)
    files: list[FileRef] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.text.strip() and not self.images and not self.files


@dataclass
class DownloadedResource:
    """从渠道下载到的二进制资源。"""

    data: bytes
    mime_type: str = "application/octet-stream"

    @property
    def size(self) -> int:
        return len(self.data)
