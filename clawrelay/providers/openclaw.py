"""
OpenClaw 网关客户端 - 纯文本投递路径。

每个 Bot 容器内运行一个 OpenClaw Gateway，通过 WebSocket 帧协议通信：
1. 建立连接（需要 Origin 和 User-Agent 头）
2. 发送 connect 请求进行认证（minProtocol / maxProtocol = 3，携带网关令牌）
3. 收到 hello-ok 帧或 connect 的成功 res 帧后，发送 chat.send 请求
4. 监听事件帧：
   - agent 事件（stream=assistant）：累积的流式文本，只保留最新的完整文本
   - chat 事件（state=final）：最终结果，从 message.content 中拼接 text 片段
5. 收到最终结果后关闭连接

帧格式：
    {"type": "req", "id": "req-1-ab12cd34", "method": "chat.send", "params": {...}}
    {"type": "res", "id": "...", "ok": true | false, "error": {...}}
    {"type": "event", "event": "chat", "payload": {...}}

依赖：
- websockets：Python WebSocket 客户端库
"""

import asyncio
import json
import uuid
from typing import Any

import websockets
from loguru import logger
from websockets.exceptions import ConnectionClosed

from clawrelay.errors import GatewayError
from clawrelay.providers.base import TextBackend
from clawrelay.utils.helpers import truncate_string

PROTOCOL_VERSION = 3
USER_AGENT = "ClawRelay/1.0"


class OpenClawGatewayClient(TextBackend):
    """
    OpenClaw 网关 WebSocket 客户端。

    参数:
        timeout: 等待最终回复的超时时间（秒）
        client_version: connect 请求中上报的客户端版本
        session_key: chat.send 使用的会话键
    """

    def __init__(self, timeout: float = 120.0, client_version: str = "1.0.0", session_key: str = "main"):
        self.timeout = timeout
        self.client_version = client_version
        self.session_key = session_key

    async def chat(self, gateway_url: str, token: str, text: str) -> str:
        logger.info(f"Sending message to OpenClaw gateway {gateway_url} ({len(text)} chars)")
        try:
            response = await asyncio.wait_for(
                self._converse(gateway_url, token, text), timeout=self.timeout
            )
        except asyncio.TimeoutError as e:
            raise GatewayError(f"gateway {gateway_url} did not answer within {self.timeout}s") from e
        except OSError as e:
            raise GatewayError(f"cannot connect to gateway {gateway_url}: {e}") from e

        logger.info(f"OpenClaw gateway replied ({len(response)} chars)")
        return response

    async def _converse(self, gateway_url: str, token: str, text: str) -> str:
        origin = gateway_url.replace("wss://", "https://", 1).replace("ws://", "http://", 1)
        conversation = _Conversation(self, token, text)

        async with websockets.connect(
            gateway_url,
            origin=origin,
            additional_headers={"User-Agent": USER_AGENT},
        ) as ws:
            await ws.send(conversation.connect_frame())
            try:
                async for raw in ws:
                    reply = conversation.on_frame(raw)
                    if reply is not None:
                        await ws.send(reply)
                    if conversation.done:
                        return conversation.response_text
            except ConnectionClosed as e:
                return conversation.on_closed(e)

        # 服务端正常关闭但没有给出 final 事件
        return conversation.on_closed(None)


class _Conversation:
    """单次对话的帧处理状态机。"""

    def __init__(self, client: OpenClawGatewayClient, token: str, text: str):
        self.client = client
        self.token = token
        self.text = text
        self.response_text = ""
        self.done = False
        self.connected = False
        self._seq = 0
        self._connect_id = ""
        self._chat_id = ""

    def _request(self, method: str, params: dict[str, Any]) -> tuple[str, str]:
        self._seq += 1
        frame_id = f"req-{self._seq}-{uuid.uuid4().hex[:8]}"
        logger.debug(f"OpenClaw request {method} ({frame_id})")
        return frame_id, json.dumps({"type": "req", "id": frame_id, "method": method, "params": params})

    def connect_frame(self) -> str:
        self._connect_id, frame = self._request("connect", {
            "minProtocol": PROTOCOL_VERSION,
            "maxProtocol": PROTOCOL_VERSION,
            "client": {
                "id": "gateway-client",
                "version": self.client.client_version,
                "platform": "python",
                "mode": "backend",
            },
            "auth": {"token": self.token},
        })
        return frame

    def _chat_frame(self) -> str:
        self.connected = True
        self._chat_id, frame = self._request("chat.send", {
            "sessionKey": self.client.session_key,
            "message": self.text,
            "idempotencyKey": str(uuid.uuid4()),
        })
        return frame

    def on_frame(self, raw: str | bytes) -> str | None:
        """处理一帧，返回需要回发的帧（如 chat.send）或 None。"""
        try:
            frame = json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            logger.warning(f"Unparseable gateway frame: {truncate_string(str(raw), 200)}")
            return None
        if not isinstance(frame, dict):
            return None

        frame_type = frame.get("type")

        # 旧协议：connect 成功后直接返回 hello-ok
        if frame_type == "hello-ok" and not self.connected:
            return self._chat_frame()

        if frame_type == "res":
            if frame.get("id") == self._connect_id and frame.get("ok") and not self.connected:
                return self._chat_frame()
            if not frame.get("ok"):
                error = frame.get("error") or {}
                message = error.get("message") if isinstance(error, dict) else str(error)
                raise GatewayError(message or "gateway request failed")
            return None

        if frame_type == "event":
            self._on_event(frame.get("event"), frame.get("payload"))
        return None

    def _on_event(self, event: str | None, payload: Any) -> None:
        if isinstance(payload, str):
            try:
                payload = json.loads(payload)
            except json.JSONDecodeError:
                logger.warning(f"Unparseable gateway payload: {truncate_string(payload, 200)}")
                return
        if not isinstance(payload, dict):
            return

        if event == "agent":
            data = payload.get("data") or {}
            # agent 流式事件给出的是累积文本而不是增量
            if payload.get("stream") == "assistant" and data.get("text"):
                self.response_text = data["text"]
            return

        if event != "chat":
            return

        if payload.get("state") == "final":
            message = payload.get("message") or {}
            content = message.get("content") if isinstance(message, dict) else None
            if isinstance(content, list):
                final = "".join(
                    item.get("text", "") for item in content
                    if isinstance(item, dict) and item.get("type") == "text"
                )
                if final:
                    self.response_text = final
            self.done = True
            return

        # 兼容旧格式：type = text / result / error
        kind = payload.get("type")
        if kind == "text" and payload.get("text"):
            self.response_text += str(payload["text"])
        elif kind == "result":
            self.done = True
        elif kind == "error":
            raise GatewayError(str(payload.get("message") or "chat error"))

    def on_closed(self, exc: ConnectionClosed | None) -> str:
        """连接关闭时：有文本则返回，否则按关闭码抛出错误。"""
        if self.response_text:
            return self.response_text
        rcvd = exc.rcvd if exc is not None else None
        code = rcvd.code if rcvd else None
        reason = rcvd.reason if rcvd else ""
        if code == 1008:
            raise GatewayError(f"gateway authentication failed: {reason or 'gateway token missing'}")
        raise GatewayError(f"gateway connection closed unexpectedly: code={code}, reason={reason}")
