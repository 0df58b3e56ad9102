"""
Unit tests for the Feishu Open API client. The lark.Client is replaced with a MagicMock,
so these tests check the request objects we build and how SDK responses are mapped.
"""

import io
import json
from types import SimpleNamespace
from unittest.mock import MagicMock

import lark_oapi as lark
import pytest

from clawrelay.channels.feishu_api import FeishuApiClient
from clawrelay.errors import FeishuApiError


def sdk_response(ok=True, code=0, msg="success", status=200, headers=None, file=None, file_name=None):
    response = MagicMock()
    response.success.return_value = ok
    response.code = code
    response.msg = msg
    response.get_log_id.return_value = "log-1"
    response.raw = SimpleNamespace(status_code=status, headers=headers or {})
    response.file = file
    response.file_name = file_name
    return response


@pytest.fixture
def lark_client():
    return MagicMock()


@pytest.fixture
def api(lark_client):
    return FeishuApiClient("cli_app", "secret", client=lark_client)


class TestDomain:
    def test_domain_selects_open_platform_host(self, lark_client):
        assert FeishuApiClient("a", "b", client=lark_client).domain == lark.FEISHU_DOMAIN
        assert FeishuApiClient("a", "b", domain="lark", client=lark_client).domain == lark.LARK_DOMAIN


class TestReplyMessage:
    @pytest.mark.asyncio
    async def test_reply_builds_text_request(self, api, lark_client):
        lark_client.im.v1.message.reply.return_value = sdk_response()

        await api.reply_message("om_1", "你好")

        request = lark_client.im.v1.message.reply.call_args.args[0]
        assert request.message_id == "om_1"
        assert request.request_body.msg_type == "text"
        assert json.loads(request.request_body.content) == {"text": "你好"}

    @pytest.mark.asyncio
    async def test_failed_reply_raises_with_code(self, api, lark_client):
        lark_client.im.v1.message.reply.return_value = sdk_response(
            ok=False, code=230011, msg="message recalled", status=400
        )

        with pytest.raises(FeishuApiError) as exc_info:
            await api.reply_message("om_1", "hi")

        assert exc_info.value.code == 230011
        assert exc_info.value.status == 400
        assert "message recalled" in str(exc_info.value)


class TestDownloadResource:
    @pytest.mark.asyncio
    async def test_download_returns_bytes_and_header_mime(self, api, lark_client):
        lark_client.im.v1.message_resource.get.return_value = sdk_response(
            headers={"Content-Type": "image/png; charset=binary"}, file=io.BytesIO(b"\x89PNG")
        )

        resource = await api.download_resource("om_1", "img_1", "image")

        assert resource.data == b"\x89PNG"
        assert resource.mime_type == "image/png"
        request = lark_client.im.v1.message_resource.get.call_args.args[0]
        assert request.message_id == "om_1"
        assert request.file_key == "img_1"
        assert request.type == "image"

    @pytest.mark.asyncio
    async def test_mime_guessed_from_file_name_when_header_is_generic(self, api, lark_client):
        lark_client.im.v1.message_resource.get.return_value = sdk_response(
            headers={"content-type": "application/octet-stream"},
            file=io.BytesIO(b"%PDF-1.7"),
            file_name="report.pdf",
        )

        resource = await api.download_resource("om_1", "file_1", "file")

        assert resource.mime_type == "application/pdf"

    @pytest.mark.asyncio
    async def test_failed_download_raises(self, api, lark_client):
        lark_client.im.v1.message_resource.get.return_value = sdk_response(
            ok=False, code=234003, msg="File not in msg.", status=400
        )

        with pytest.raises(FeishuApiError) as exc_info:
            await api.download_resource("om_1", "file_1", "file")

        assert exc_info.value.code == 234003

    @pytest.mark.asyncio
    async def test_empty_body_raises(self, api, lark_client):
        lark_client.im.v1.message_resource.get.return_value = sdk_response(file=None)

        with pytest.raises(FeishuApiError, match="empty body"):
            await api.download_resource("om_1", "file_1", "file")
