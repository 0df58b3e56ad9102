"""
End-to-end tests for the pipeline orchestrator with real pipeline components
and mocked backends, channel API client and blob storage.
"""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from clawrelay.bots.directory import BotDescriptor, BotDirectory, ConfigBotDirectory
from clawrelay.bus.events import DownloadedResource
from clawrelay.config.schema import BotConfig
from clawrelay.errors import VisionProxyError
from clawrelay.pipeline.content import ContentPartBuilder, FilePart, MultiModal, TextPart
from clawrelay.pipeline.dedup import DedupCache
from clawrelay.pipeline.normalizer import MessageNormalizer
from clawrelay.pipeline.orchestrator import ChannelConnection, PipelineOrchestrator, PipelineState
from clawrelay.pipeline.reply import ReplyDispatcher
from clawrelay.pipeline.router import DeliveryRouter
from conftest import FakeFetcher, make_event

CONNECTION = ChannelConnection(id="conn-1", bot_id="bot-1")


class FakeApiClient(FakeFetcher):
    def __init__(self, resources=None):
        super().__init__(resources)
        self.reply_message = AsyncMock(return_value=None)


class FakeHost:
    def __init__(self, client):
        self.client = client
        self.destroyed: list[tuple[str, str]] = []

    def get_api_client(self, connection_id):
        return self.client

    async def destroy_connection(self, connection_id, reason):
        self.destroyed.append((connection_id, reason))


def build_pipeline(bots, client=None, storage=None):
    text_backend = AsyncMock()
    text_backend.chat.return_value = "gateway says hi"
    vision_backend = AsyncMock()
    vision_backend.chat.return_value = "vision says hi"
    host = FakeHost(client or FakeApiClient())
    router = DeliveryRouter(text_backend, vision_backend, "openai/gpt-4o")
    orchestrator = PipelineOrchestrator(
        dedup=DedupCache(),
        normalizer=MessageNormalizer(),
        builder=ContentPartBuilder(storage=storage),
        router=router,
        replier=ReplyDispatcher(host),
        bots=bots,
        connections=host,
    )
    return orchestrator, text_backend, vision_backend, host


def directory(**overrides) -> ConfigBotDirectory:
    fields = dict(
        id="bot-1",
        gateway_url="ws://gateway.local:18789",
        gateway_token="gw-token",
        vision_capable=True,
        vision_proxy_url="http://proxy.local/v1",
    )
    fields.update(overrides)
    return ConfigBotDirectory([BotConfig(**fields)])


class TestScenarios:
    @pytest.mark.asyncio
    async def test_a_text_message_round_trip(self):
        """text → TextOnly → text gateway → reply to origin message."""
        orchestrator, text_backend, vision_backend, host = build_pipeline(directory())

        state = await orchestrator.handle(CONNECTION, make_event("text", json.dumps({"text": "hello"})))

        assert state is PipelineState.DONE
        text_backend.chat.assert_awaited_once_with("ws://gateway.local:18789", "gw-token", "hello")
        vision_backend.chat.assert_not_called()
        host.client.reply_message.assert_awaited_once_with("om_1", "gateway says hi")

    @pytest.mark.asyncio
    async def test_b_failed_image_is_dropped(self):
        """The only image fails to download: nothing is delivered."""
        orchestrator, text_backend, vision_backend, host = build_pipeline(directory())

        state = await orchestrator.handle(CONNECTION, make_event("image", json.dumps({"image_key": "img_gone"})))

        assert state is PipelineState.SKIPPED_EMPTY
        text_backend.chat.assert_not_called()
        vision_backend.chat.assert_not_called()
        host.client.reply_message.assert_not_called()

    @pytest.mark.asyncio
    async def test_c_pdf_goes_to_vision_proxy(self, storage):
        client = FakeApiClient({"file_pdf": DownloadedResource(b"%PDF", "application/pdf")})
        orchestrator, text_backend, vision_backend, host = build_pipeline(directory(), client, storage)

        state = await orchestrator.handle(
            CONNECTION, make_event("file", json.dumps({"file_key": "file_pdf", "file_name": "plan.pdf"}))
        )

        assert state is PipelineState.DONE
        proxy_url, model, parts = vision_backend.chat.await_args.args
        assert proxy_url == "http://proxy.local/v1"
        assert model == "openai/gpt-4o"
        assert parts == [
            TextPart('The user sent a document "plan.pdf". Please summarize this document.'),
            FilePart(url="https://blob.local/signed?sig=abc", name="plan.pdf"),
        ]
        text_backend.chat.assert_not_called()
        client.reply_message.assert_awaited_once_with("om_1", "vision says hi")

    @pytest.mark.asyncio
    async def test_d_vision_failure_falls_back_to_instruction_text(self, storage):
        client = FakeApiClient({"file_pdf": DownloadedResource(b"%PDF", "application/pdf")})
        orchestrator, text_backend, vision_backend, host = build_pipeline(directory(), client, storage)
        vision_backend.chat.side_effect = VisionProxyError("proxy down")

        state = await orchestrator.handle(
            CONNECTION, make_event("file", json.dumps({"file_key": "file_pdf", "file_name": "plan.pdf"}))
        )

        assert state is PipelineState.DONE
        assert vision_backend.chat.await_count == 1
        text_backend.chat.assert_awaited_once_with(
            "ws://gateway.local:18789",
            "gw-token",
            'The user sent a document "plan.pdf". Please summarize this document.',
        )
        client.reply_message.assert_awaited_once_with("om_1", "gateway says hi")

    @pytest.mark.asyncio
    async def test_e_duplicate_is_dropped_before_normalization(self):
        orchestrator, text_backend, _, _ = build_pipeline(directory())
        event = make_event("text", json.dumps({"text": "hello"}))

        first = await orchestrator.handle(CONNECTION, event)
        with patch.object(orchestrator.normalizer, "normalize", wraps=orchestrator.normalizer.normalize) as spy:
            second = await orchestrator.handle(CONNECTION, event)

        assert first is PipelineState.DONE
        assert second is PipelineState.SKIPPED_DUPLICATE
        spy.assert_not_called()
        assert text_backend.chat.await_count == 1


class TestShortCircuits:
    @pytest.mark.asyncio
    async def test_empty_message_never_reaches_router(self):
        orchestrator, _, _, _ = build_pipeline(directory())
        orchestrator.router = MagicMock()
        orchestrator.router.deliver = AsyncMock()

        state = await orchestrator.handle(CONNECTION, make_event("text", json.dumps({"text": "   "})))

        assert state is PipelineState.SKIPPED_EMPTY
        orchestrator.router.deliver.assert_not_called()

    @pytest.mark.asyncio
    async def test_unsupported_type_is_skipped(self):
        orchestrator, text_backend, _, _ = build_pipeline(directory())

        state = await orchestrator.handle(CONNECTION, make_event("sticker", json.dumps({"file_key": "s"})))

        assert state is PipelineState.SKIPPED_UNSUPPORTED_TYPE
        text_backend.chat.assert_not_called()

    @pytest.mark.asyncio
    async def test_empty_gateway_response_is_not_replied(self):
        orchestrator, text_backend, _, host = build_pipeline(directory())
        text_backend.chat.return_value = ""

        state = await orchestrator.handle(CONNECTION, make_event())

        assert state is PipelineState.DONE
        host.client.reply_message.assert_not_called()


class TestBotResolution:
    @pytest.mark.asyncio
    async def test_missing_bot_tears_down_connection(self):
        orchestrator, text_backend, _, host = build_pipeline(ConfigBotDirectory([]))

        state = await orchestrator.handle(CONNECTION, make_event())

        assert state is PipelineState.SKIPPED_BOT_UNAVAILABLE
        assert host.destroyed == [("conn-1", "Bot bot-1 not found")]
        text_backend.chat.assert_not_called()

    @pytest.mark.asyncio
    async def test_stopped_bot_is_skipped_without_teardown(self):
        orchestrator, text_backend, _, host = build_pipeline(directory(status="stopped"))

        state = await orchestrator.handle(CONNECTION, make_event())

        assert state is PipelineState.SKIPPED_BOT_UNAVAILABLE
        assert host.destroyed == []
        text_backend.chat.assert_not_called()

    @pytest.mark.asyncio
    async def test_bot_without_gateway_token_is_skipped(self):
        orchestrator, _, _, _ = build_pipeline(directory(gateway_token=""))

        state = await orchestrator.handle(CONNECTION, make_event())

        assert state is PipelineState.SKIPPED_BOT_UNAVAILABLE

    def test_vision_requires_proxy_url(self):
        bot = BotDescriptor.from_config(BotConfig(id="b", vision_capable=True, vision_proxy_url=""))
        assert bot.has_vision_capability is False


class TestErrorBoundary:
    @pytest.mark.asyncio
    async def test_unexpected_exception_is_contained(self):
        """Nothing propagates to the channel layer."""
        bots = MagicMock(spec=BotDirectory)
        bots.get = AsyncMock(side_effect=RuntimeError("database gone"))
        orchestrator, _, _, _ = build_pipeline(bots)

        state = await orchestrator.handle(CONNECTION, make_event())

        assert state is PipelineState.FAILED_LOGGED

    @pytest.mark.asyncio
    async def test_all_delivery_paths_failing_is_contained(self):
        orchestrator, text_backend, _, host = build_pipeline(directory())
        text_backend.chat.side_effect = ConnectionResetError("reset")

        state = await orchestrator.handle(CONNECTION, make_event())

        assert state is PipelineState.FAILED_LOGGED
        host.client.reply_message.assert_not_called()

    @pytest.mark.asyncio
    async def test_reply_failure_still_completes(self):
        orchestrator, _, _, host = build_pipeline(directory())
        host.client.reply_message.side_effect = RuntimeError("recalled")

        state = await orchestrator.handle(CONNECTION, make_event())

        assert state is PipelineState.DONE


class TestMissingApiClient:
    @pytest.mark.asyncio
    async def test_text_message_is_still_delivered(self):
        """Without an API client a text message reaches the gateway; only the reply is lost."""
        orchestrator, text_backend, _, host = build_pipeline(directory())
        host.client = None

        state = await orchestrator.handle(CONNECTION, make_event("text", json.dumps({"text": "hello"})))

        assert state is PipelineState.DONE
        assert text_backend.chat.await_count == 1

    @pytest.mark.asyncio
    async def test_attachment_message_cannot_be_built(self):
        orchestrator, text_backend, vision_backend, host = build_pipeline(directory())
        host.client = None

        state = await orchestrator.handle(CONNECTION, make_event("image", json.dumps({"image_key": "img_1"})))

        assert state is PipelineState.FAILED_LOGGED
        text_backend.chat.assert_not_called()
        vision_backend.chat.assert_not_called()
