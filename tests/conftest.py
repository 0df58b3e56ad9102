"""
Shared fixtures for clawrelay tests.
"""

import os

# Use litellm's bundled model cost map; its network fetch fails offline at import.
os.environ.setdefault("LITELLM_LOCAL_MODEL_COST_MAP", "True")

from unittest.mock import AsyncMock

import pytest

from clawrelay.bots.directory import BotDescriptor
from clawrelay.bus.events import DownloadedResource, InboundEvent
from clawrelay.errors import FeishuApiError


class FakeFetcher:
    """In-memory resource fetcher keyed by resource key; unknown keys fail like a Feishu 404."""

    def __init__(self, resources: dict[str, DownloadedResource] | None = None):
        self.resources = resources or {}
        self.calls: list[tuple[str, str, str]] = []

    async def download_resource(self, message_id: str, key: str, kind: str) -> DownloadedResource:
        self.calls.append((message_id, key, kind))
        if key not in self.resources:
            raise FeishuApiError(f"resource {key} not found", code=234003, status=404)
        return self.resources[key]


@pytest.fixture
def fetcher():
    return FakeFetcher()


@pytest.fixture
def text_bot():
    return BotDescriptor(
        id="bot-1",
        name="Helper",
        gateway_url="ws://gateway.local:18789",
        gateway_token="gw-token",
    )


@pytest.fixture
def vision_bot():
    return BotDescriptor(
        id="bot-2",
        name="Seer",
        gateway_url="ws://gateway.local:18790",
        gateway_token="gw-token-2",
        has_vision_capability=True,
        vision_proxy_url="http://proxy.local/v1",
    )


@pytest.fixture
def storage():
    blob = AsyncMock()
    blob.upload.return_value = None
    blob.presign.return_value = "https://blob.local/signed?sig=abc"
    return blob


def make_event(
    message_type: str = "text",
    content: str = '{"text": "hello"}',
    message_id: str = "om_1",
    conversation_id: str = "oc_chat",
    **kwargs,
) -> InboundEvent:
    return InboundEvent(
        message_id=message_id,
        conversation_id=conversation_id,
        message_type=message_type,
        raw_content=content,
        **kwargs,
    )
