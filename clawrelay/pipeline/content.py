"""
内容构建模块 - 将 ParsedMessage 解析为有序的内容片段（ContentPart）列表。

本模块是流水线中最"重"的一环，负责所有与附件相关的远程操作：
- 图片：下载后转为 base64 内联到 ImagePart
- 文本类文件：下载、按 UTF-8 解码、超长截断后作为 TextPart
- 视觉类文件（图片 / PDF / Office 文档）：下载 → 上传对象存储 → 生成 5 分钟预签名 URL，
  作为 ImagePart / FilePart，并在前面附带一段说明性 TextPart
- 其余文件：生成占位 TextPart，说明无法处理的原因

降级规则：
- 单张图片下载失败只丢弃该图片；全部失败时整体退化为纯文本
- 单个文件下载 / 上传失败转为占位 TextPart，不影响其余文件
- 最终若全部片段都是文本，折叠为 TextOnly（只有存在二进制片段时才走多模态投递）

【Java 开发者类比】
- TextOnly / MultiModal 相当于 sealed interface 的两个实现（代数数据类型）
- ContentPart 的三个 dataclass 相当于带类型标签的 DTO
"""

import base64
import mimetypes
import uuid
from dataclasses import dataclass, field
from typing import Literal, Protocol, Union

from loguru import logger

from clawrelay.bus.events import DownloadedResource, FileRef, ImageRef, ParsedMessage
from clawrelay.storage.blob import BlobStorage
from clawrelay.utils.helpers import safe_filename

# ==============================================================================
# 扩展名分桶（默认值，而非固定协议）
# ==============================================================================

TEXT_EXTENSIONS = frozenset({
    "txt", "md", "markdown", "rst", "log", "csv", "tsv",
    "json", "jsonl", "yaml", "yml", "toml", "ini", "cfg", "conf", "env", "properties",
    "xml", "html", "htm", "css", "scss", "less", "svg",
    "py", "js", "mjs", "cjs", "ts", "jsx", "tsx", "vue",
    "java", "kt", "scala", "go", "rs", "c", "h", "cpp", "hpp", "cc", "cs",
    "rb", "php", "swift", "m", "r", "lua", "pl", "dart",
    "sh", "bash", "zsh", "ps1", "bat", "sql", "graphql", "proto",
})

# 没有扩展名、按完整文件名（小写）识别的文本文件
TEXT_FILE_NAMES = frozenset({
    "dockerfile", "makefile", "jenkinsfile", "procfile", "license", "readme",
    ".env", ".gitignore", ".dockerignore", ".editorconfig",
})

VISION_IMAGE_EXTENSIONS = frozenset({"png", "jpg", "jpeg", "gif", "webp", "bmp"})

VISION_DOCUMENT_EXTENSIONS = frozenset({"pdf", "doc", "docx", "xls", "xlsx", "ppt", "pptx"})

DEFAULT_MAX_TEXT_CHARS = 15000

ResourceKind = Literal["image", "file"]


# ==============================================================================
# 内容片段
# ==============================================================================


@dataclass
class TextPart:
    text: str


@dataclass
class ImagePart:
    """图片片段。data 为 base64 内联数据，url 为预签名地址，二者取其一。"""

    mime_type: str
    data: str | None = None
    url: str | None = None


@dataclass
class FilePart:
    url: str
    name: str


ContentPart = Union[TextPart, ImagePart, FilePart]


@dataclass
class TextOnly:
    """构建结果：只有纯文本，走文本网关。"""

    text: str


@dataclass
class MultiModal:
    """构建结果：至少包含一个二进制片段，优先走视觉代理。"""

    parts: list[ContentPart] = field(default_factory=list)


BuiltContent = Union[TextOnly, MultiModal]


# ==============================================================================
# 协作方接口
# ==============================================================================


class ResourceFetcher(Protocol):
    """能够下载消息中资源的渠道 API 客户端（如 FeishuApiClient）。"""

    async def download_resource(
        self, message_id: str, key: str, kind: ResourceKind
    ) -> DownloadedResource: ...


@dataclass
class MessageOrigin:
    """消息来源：下载附件时需要原始消息 ID 和能够下载的客户端（纯文本消息可以没有）。"""

    message_id: str
    conversation_id: str
    fetcher: ResourceFetcher | None = None


@dataclass
class BackendHints:
    """后端能力提示。"""

    has_vision_capability: bool = False


# ==============================================================================
# 构建器
# ==============================================================================


class ContentPartBuilder:
    """
    内容片段构建器。

    参数:
        storage: 对象存储（未配置时，视觉类附件会转为占位文本）
        max_text_chars: 单个文本文件提取的最大字符数
        presign_ttl: 预签名 URL 有效期（秒）
        key_prefix: 上传对象键的命名空间前缀
    """

    def __init__(
        self,
        storage: BlobStorage | None = None,
        max_text_chars: int = DEFAULT_MAX_TEXT_CHARS,
        presign_ttl: int = 300,
        key_prefix: str = "bot-attachments",
    ):
        self.storage = storage
        self.max_text_chars = max_text_chars
        self.presign_ttl = presign_ttl
        self.key_prefix = key_prefix.strip("/")

    async def build(
        self,
        parsed: ParsedMessage,
        origin: MessageOrigin,
        hints: BackendHints,
    ) -> BuiltContent:
        """
        按优先级构建内容：有图片走图片分支，否则有文件走文件分支，否则直接返回纯文本。

        参数:
            parsed: 标准化后的消息
            origin: 消息来源（用于下载附件）
            hints: 后端能力提示

        返回:
            TextOnly 或 MultiModal
        """
        if parsed.images:
            return await self._build_images(parsed, origin)
        if parsed.files:
            return await self._build_files(parsed, origin, hints)
        return TextOnly(parsed.text)

    # ---------- 图片 ----------

    async def _build_images(self, parsed: ParsedMessage, origin: MessageOrigin) -> BuiltContent:
        parts: list[ContentPart] = []
        if parsed.text.strip():
            parts.append(TextPart(parsed.text))

        fetched = 0
        for image in parsed.images:
            part = await self._fetch_inline_image(image, origin)
            if part:
                parts.append(part)
                fetched += 1

        if fetched == 0:
            logger.warning(
                f"All {len(parsed.images)} image(s) failed to download for message {origin.message_id}, "
                f"falling back to text"
            )
            return TextOnly(parsed.text)
        return MultiModal(parts)

    async def _fetch_inline_image(self, image: ImageRef, origin: MessageOrigin) -> ImagePart | None:
        try:
            resource = await origin.fetcher.download_resource(origin.message_id, image.key, "image")
        except Exception as e:
            logger.warning(f"Failed to download image {image.key} of message {origin.message_id}: {e}")
            return None

        mime_type = resource.mime_type
        if not mime_type.startswith("image/"):
            mime_type = sniff_image_mime(resource.data)
        logger.debug(f"Image {image.key} downloaded ({resource.size} bytes, {mime_type})")
        return ImagePart(mime_type=mime_type, data=base64.b64encode(resource.data).decode("ascii"))

    # ---------- 文件 ----------

    async def _build_files(
        self, parsed: ParsedMessage, origin: MessageOrigin, hints: BackendHints
    ) -> BuiltContent:
        parts: list[ContentPart] = []
        if parsed.text.strip():
            parts.append(TextPart(parsed.text))

        for file in parsed.files:
            try:
                parts.extend(await self._build_file(file, origin, hints))
            except Exception as e:
                logger.warning(f"Failed to process file {file.file_name!r} of message {origin.message_id}: {e}")
                parts.append(TextPart(failed_placeholder(file.file_name, str(e))))

        if all(isinstance(p, TextPart) for p in parts):
            return TextOnly("\n\n".join(p.text for p in parts))
        return MultiModal(parts)

    async def _build_file(
        self, file: FileRef, origin: MessageOrigin, hints: BackendHints
    ) -> list[ContentPart]:
        ext = file.extension

        if ext in TEXT_EXTENSIONS or file.file_name.strip().lower() in TEXT_FILE_NAMES:
            resource = await origin.fetcher.download_resource(origin.message_id, file.key, "file")
            return [TextPart(self._extract_text(file.file_name, resource.data))]

        is_image = ext in VISION_IMAGE_EXTENSIONS
        if not is_image and ext not in VISION_DOCUMENT_EXTENSIONS:
            return [TextPart(unsupported_placeholder(file.file_name, ext))]
        if not hints.has_vision_capability:
            return [TextPart(no_vision_placeholder(file.file_name))]
        if self.storage is None:
            return [TextPart(failed_placeholder(file.file_name, "attachment storage is not configured"))]

        resource = await origin.fetcher.download_resource(origin.message_id, file.key, "file")
        content_type = mimetypes.guess_type(file.file_name)[0] or resource.mime_type
        key = self._object_key(origin.conversation_id, file.file_name)

        await self.storage.upload(key, resource.data, content_type)
        url = await self.storage.presign(key, self.presign_ttl)
        logger.info(f"Uploaded attachment {file.file_name!r} ({resource.size} bytes) as {key}")

        if is_image:
            return [
                TextPart(f'The user sent an image "{file.file_name}". Please analyze this image.'),
                ImagePart(mime_type=content_type, url=url),
            ]
        return [
            TextPart(f'The user sent a document "{file.file_name}". Please summarize this document.'),
            FilePart(url=url, name=file.file_name),
        ]

    def _extract_text(self, file_name: str, data: bytes) -> str:
        # 按码点截断，截断后的内容不保证仍是合法的 JSON / XML 等格式
        text = data.decode("utf-8", errors="replace")
        total = len(text)
        if total > self.max_text_chars:
            text = (
                text[: self.max_text_chars]
                + f"\n\n[Truncated: showing the first {self.max_text_chars} of {total} characters]"
            )
        return f"[File: {file_name}]\n{text}"

    def _object_key(self, conversation_id: str, file_name: str) -> str:
        return f"{self.key_prefix}/{safe_filename(conversation_id)}/{uuid.uuid4().hex}/{safe_filename(file_name)}"


# ==============================================================================
# 占位文本
# ==============================================================================


def unsupported_placeholder(file_name: str, ext: str) -> str:
    kind = f".{ext}" if ext else "without extension"
    return f'[Attachment "{file_name}" could not be processed: unsupported file type ({kind})]'


def no_vision_placeholder(file_name: str) -> str:
    return (
        f'[Attachment "{file_name}" could not be processed: '
        f"the current model does not support image or document input]"
    )


def failed_placeholder(file_name: str, reason: str) -> str:
    return f'[Attachment "{file_name}" could not be processed: {reason}]'


# ==============================================================================
# 图片格式识别
# ==============================================================================

_IMAGE_SIGNATURES = (
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"GIF87a", "image/gif"),
    (b"GIF89a", "image/gif"),
    (b"BM", "image/bmp"),
)


def sniff_image_mime(data: bytes) -> str:
    """
    按文件头识别图片 MIME 类型，用于下载响应没有给出 image/* Content-Type 的情况。

    无法识别时返回通用的 "image/*"，不猜测具体格式。
    """
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    for signature, mime_type in _IMAGE_SIGNATURES:
        if data.startswith(signature):
            return mime_type
    return "image/*"
