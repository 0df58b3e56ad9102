"""
消息标准化模块 - 将渠道原始消息内容转换为统一的 ParsedMessage。

支持的消息类型（飞书 content 均为 JSON 字符串）：
- text:  {"text": "hello"}
- post:  富文本，{"zh_cn": {"title": "...", "content": [[{"tag": "text", ...}, {"tag": "img", ...}]]}}
         也接受不带语言层的 {"title": ..., "content": [...]}
- image: {"image_key": "img_xxx"}
- file:  {"file_key": "file_xxx", "file_name": "a.pdf"}，
         或 {"files": [{"file_key": ..., "file_name": ...}, ...], "text": "说明文字"}

其余类型返回 None（不支持），由编排器静默跳过。
内容无法按类型解析时，整段原始内容按纯文本处理，而不是中止。
"""

import json
from typing import Any

from loguru import logger

from clawrelay.bus.events import FileRef, ImageRef, MessageType, ParsedMessage

# 富文本中可能出现的语言块，按优先级排列
POST_LOCALES = ("zh_cn", "en_us", "ja_jp")


class MalformedContentError(ValueError):
    """原始内容结构与消息类型不符。仅在本模块内部使用。"""


class MessageNormalizer:
    """
    消息标准化器。

    无状态，可以在所有连接之间共享同一个实例。
    """

    def normalize(self, message_type: str, raw_content: str | None) -> ParsedMessage | None:
        """
        将原始消息内容转换为 ParsedMessage。

        参数:
            message_type: 原始消息类型字符串
            raw_content: 原始消息内容

        返回:
            ParsedMessage；消息类型不受支持时返回 None
        """
        kind = MessageType.parse(message_type)
        if kind is None:
            return None

        raw = raw_content or ""
        try:
            data = json.loads(raw) if raw else {}
            if not isinstance(data, dict):
                raise MalformedContentError(f"expected JSON object, got {type(data).__name__}")
            if kind is MessageType.TEXT:
                return self._parse_text(data)
            if kind is MessageType.POST:
                return self._parse_post(data)
            if kind is MessageType.IMAGE:
                return self._parse_image(data)
            return self._parse_file(data)
        except (json.JSONDecodeError, MalformedContentError) as e:
            logger.debug(f"Malformed {kind.value} content, treating as plain text: {e}")
            return ParsedMessage(text=raw)

    @staticmethod
    def _parse_text(data: dict[str, Any]) -> ParsedMessage:
        text = data.get("text", "")
        if not isinstance(text, str):
            raise MalformedContentError("text is not a string")
        return ParsedMessage(text=text)

    def _parse_post(self, data: dict[str, Any]) -> ParsedMessage:
        block = self._locate_post_block(data)
        if block is None:
            raise MalformedContentError("no post content block")

        lines: list[str] = []
        images: list[ImageRef] = []

        title = block.get("title")
        if isinstance(title, str) and title.strip():
            lines.append(title)

        paragraphs = block.get("content") or []
        if not isinstance(paragraphs, list):
            raise MalformedContentError("post content is not a list")

        for para in paragraphs:
            if not isinstance(para, list):
                continue
            segments: list[str] = []
            for elem in para:
                if not isinstance(elem, dict):
                    continue
                tag = elem.get("tag")
                if tag == "text":
                    segments.append(str(elem.get("text", "")))
                elif tag == "a":
                    segments.append(str(elem.get("text") or elem.get("href", "")))
                elif tag == "at":
                    name = elem.get("user_name") or elem.get("user_id")
                    if name:
                        segments.append(f"@{name}")
                elif tag == "img":
                    key = elem.get("image_key")
                    if key:
                        images.append(ImageRef(key=key))
            line = "".join(segments).strip()
            if line:
                lines.append(line)

        return ParsedMessage(text="\n".join(lines), images=images)

    @staticmethod
    def _locate_post_block(data: dict[str, Any]) -> dict[str, Any] | None:
        if "content" in data:
            return data
        for locale in POST_LOCALES:
            block = data.get(locale)
            if isinstance(block, dict):
                return block
        # 兜底：取第一个带 content 的语言块
        for value in data.values():
            if isinstance(value, dict) and "content" in value:
                return value
        return None

    @staticmethod
    def _parse_image(data: dict[str, Any]) -> ParsedMessage:
        key = data.get("image_key")
        if not key:
            raise MalformedContentError("image_key missing")
        return ParsedMessage(images=[ImageRef(key=key)])

    @staticmethod
    def _parse_file(data: dict[str, Any]) -> ParsedMessage:
        entries = data.get("files")
        if entries is None:
            entries = [data]
        if not isinstance(entries, list):
            raise MalformedContentError("files is not a list")

        files: list[FileRef] = []
        for entry in entries:
            if not isinstance(entry, dict) or not entry.get("file_key"):
                continue
            files.append(FileRef(key=entry["file_key"], file_name=entry.get("file_name") or entry["file_key"]))
        if not files:
            raise MalformedContentError("no file_key found")

        caption = data.get("text", "")
        return ParsedMessage(text=caption if isinstance(caption, str) else "", files=files)
