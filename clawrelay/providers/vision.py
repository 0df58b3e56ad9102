"""
视觉代理客户端 - 多模态投递路径。

支持视觉的 Bot 配置了一个 OpenAI 兼容的视觉代理地址（vision_proxy_url）。
多模态内容绕过普通的 OpenClaw 网关，直接通过 LiteLLM 发送给视觉模型。

LiteLLM 是什么？
  LiteLLM 将 100+ 家 LLM 服务商的 API 统一为 OpenAI 兼容格式。
  这里只用它的 acompletion() + api_base，把请求打到 Bot 自己的视觉代理上。

内容片段到 OpenAI 消息格式的映射：
  TextPart   → {"type": "text", "text": ...}
  ImagePart  → {"type": "image_url", "image_url": {"url": "data:<mime>;base64,..." 或 预签名 URL}}
  FilePart   → {"type": "file", "file": {"file_id": 预签名 URL, "filename": ..., "format": ...}}
"""

import mimetypes
from typing import Any

import litellm
from litellm import acompletion
from loguru import logger

from clawrelay.errors import VisionProxyError
from clawrelay.pipeline.content import ContentPart, FilePart, ImagePart, TextPart
from clawrelay.providers.base import VisionBackend


class VisionProxyClient(VisionBackend):
    """
    基于 LiteLLM 的视觉代理客户端。

    构造参数：
        api_key: 全局代理认证密钥（配置后优先于调用时传入的 Bot 令牌）
        max_tokens: 响应的最大 token 数
        timeout: 单次请求超时（秒）
    """

    def __init__(self, api_key: str | None = None, max_tokens: int = 4096, timeout: float = 120.0):
        self.api_key = api_key
        self.max_tokens = max_tokens
        self.timeout = timeout

        # 禁用 LiteLLM 的调试日志输出，并丢弃代理不支持的参数
        litellm.suppress_debug_info = True
        litellm.drop_params = True

    async def chat(
        self,
        proxy_url: str,
        model: str,
        parts: list[ContentPart],
        api_key: str | None = None,
    ) -> str:
        kwargs: dict[str, Any] = {
            "model": model,
            "messages": [{"role": "user", "content": to_openai_content(parts)}],
            "max_tokens": self.max_tokens,
            "api_base": proxy_url,
            "timeout": self.timeout,
        }
        key = self.api_key or api_key
        if key:
            kwargs["api_key"] = key

        logger.info(f"Sending {len(parts)} content part(s) to vision proxy {proxy_url} (model={model})")
        try:
            response = await acompletion(**kwargs)
        except Exception as e:
            raise VisionProxyError(f"vision proxy {proxy_url} failed: {e}") from e

        try:
            content = response.choices[0].message.content
        except (AttributeError, IndexError) as e:
            raise VisionProxyError(f"malformed vision proxy response: {e}") from e

        if not content:
            raise VisionProxyError("vision proxy returned an empty reply")
        return content


def to_openai_content(parts: list[ContentPart]) -> list[dict[str, Any]]:
    """将内容片段转换为 OpenAI 多模态消息的 content 数组。"""
    content: list[dict[str, Any]] = []
    for part in parts:
        if isinstance(part, TextPart):
            content.append({"type": "text", "text": part.text})
        elif isinstance(part, ImagePart):
            url = part.url if part.url else f"data:{part.mime_type};base64,{part.data}"
            content.append({"type": "image_url", "image_url": {"url": url}})
        elif isinstance(part, FilePart):
            file_obj = {"file_id": part.url, "filename": part.name}
            mime_type = mimetypes.guess_type(part.name)[0]
            if mime_type:
                file_obj["format"] = mime_type
            content.append({"type": "file", "file": file_obj})
    return content
