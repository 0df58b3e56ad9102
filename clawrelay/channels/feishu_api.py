"""
飞书 / Lark Open API 客户端 - 基于 lark-oapi SDK。

每个渠道连接持有一个实例，负责两件事：
- reply_message：以纯文本回复指定消息（im.v1.message.reply）
- download_resource：下载消息中的图片 / 文件（im.v1.message_resource.get）

tenant_access_token 由 SDK 自行获取和刷新。SDK 的调用是同步阻塞的，
这里统一放进线程池执行（loop.run_in_executor），不阻塞事件循环。

失败的响应（response.success() 为 False）统一转换为 FeishuApiError，
携带飞书业务错误码和 HTTP 状态码。

【Java 开发者类比】
相当于把同步的 Feign Client 包一层 CompletableFuture.supplyAsync(...)。
"""

import asyncio
import json
import mimetypes
from typing import Any

import lark_oapi as lark
from lark_oapi.api.im.v1 import (
    GetMessageResourceRequest,
    ReplyMessageRequest,
    ReplyMessageRequestBody,
)
from loguru import logger

from clawrelay.bus.events import DownloadedResource
from clawrelay.errors import FeishuApiError


class FeishuApiClient:
    """
    飞书 Open API 客户端（每个渠道连接一个实例）。

    参数:
        app_id: 飞书应用 App ID
        app_secret: 飞书应用 App Secret
        domain: "feishu"（国内版）或 "lark"（国际版）
        client: 可选的 lark.Client（测试时注入替身）
    """

    def __init__(
        self,
        app_id: str,
        app_secret: str,
        domain: str = "feishu",
        client: Any = None,
    ):
        self.app_id = app_id
        self.domain = lark.LARK_DOMAIN if domain == "lark" else lark.FEISHU_DOMAIN
        self._client = client or lark.Client.builder() \
            .app_id(app_id) \
            .app_secret(app_secret) \
            .domain(self.domain) \
            .log_level(lark.LogLevel.INFO) \
            .build()

    async def reply_message(self, message_id: str, text: str) -> None:
        """以纯文本回复指定消息。"""
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._reply_sync, message_id, text)
        logger.debug(f"Feishu reply sent to message {message_id}")

    def _reply_sync(self, message_id: str, text: str) -> None:
        request = ReplyMessageRequest.builder() \
            .message_id(message_id) \
            .request_body(
                ReplyMessageRequestBody.builder()
                .msg_type("text")
                .content(json.dumps({"text": text}, ensure_ascii=False))
                .build()
            ).build()

        response = self._client.im.v1.message.reply(request)
        _raise_for_response(response, f"reply to message {message_id}")

    async def download_resource(self, message_id: str, key: str, kind: str) -> DownloadedResource:
        """
        下载消息中的图片或文件。

        参数:
            message_id: 资源所属的消息 ID
            key: image_key 或 file_key
            kind: "image" 或 "file"

        返回:
            DownloadedResource（二进制数据 + MIME 类型）
        """
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._download_sync, message_id, key, kind)

    def _download_sync(self, message_id: str, key: str, kind: str) -> DownloadedResource:
        request = GetMessageResourceRequest.builder() \
            .message_id(message_id) \
            .file_key(key) \
            .type(kind) \
            .build()

        response = self._client.im.v1.message_resource.get(request)
        _raise_for_response(response, f"download {kind} {key}")

        if not getattr(response, "file", None):
            raise FeishuApiError(f"empty body when downloading {kind} {key}")

        data = response.file.read()
        logger.debug(f"Downloaded {kind} {key} from message {message_id} ({len(data)} bytes)")
        return DownloadedResource(data=data, mime_type=_resource_mime_type(response))


def _raise_for_response(response: Any, action: str) -> None:
    """SDK 响应失败时抛出 FeishuApiError。"""
    if response.success():
        return
    raw = getattr(response, "raw", None)
    status = getattr(raw, "status_code", None)
    raise FeishuApiError(
        f"Failed to {action}: code={response.code}, msg={response.msg}, log_id={response.get_log_id()}",
        code=response.code,
        status=status,
    )


def _resource_mime_type(response: Any) -> str:
    # 优先用响应头的 Content-Type，其次按文件名猜测
    raw = getattr(response, "raw", None)
    headers = getattr(raw, "headers", None) or {}
    for name, value in headers.items():
        if name.lower() == "content-type" and value:
            mime = value.split(";")[0].strip()
            if mime and mime != "application/octet-stream":
                return mime

    file_name = getattr(response, "file_name", None)
    if file_name:
        guessed, _ = mimetypes.guess_type(file_name)
        if guessed:
            return guessed
    return "application/octet-stream"
