"""
Unit tests for config loading, saving and key conversion.
"""

import json

from clawrelay.config.loader import (
    camel_to_snake,
    convert_keys,
    load_config,
    save_config,
    snake_to_camel,
)
from clawrelay.config.schema import BotConfig, Config


class TestKeyConversion:
    def test_camel_to_snake(self):
        assert camel_to_snake("presignTtlSeconds") == "presign_ttl_seconds"
        assert camel_to_snake("botId") == "bot_id"

    def test_snake_to_camel(self):
        assert snake_to_camel("max_file_text_chars") == "maxFileTextChars"

    def test_convert_keys_recurses_into_lists(self):
        assert convert_keys({"bots": [{"gatewayUrl": "ws://x"}]}) == {"bots": [{"gateway_url": "ws://x"}]}


class TestLoadConfig:
    def test_missing_file_gives_defaults(self, tmp_path):
        config = load_config(tmp_path / "nope.json")

        assert config.pipeline.dedup_ttl_seconds == 60.0
        assert config.pipeline.max_file_text_chars == 15000
        assert config.storage.presign_ttl_seconds == 300
        assert config.channels.feishu == []

    def test_camel_case_file_is_loaded(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({
            "channels": {"feishu": [{"id": "conn-1", "botId": "bot-1", "appId": "cli_a", "domain": "lark"}]},
            "bots": [{"id": "bot-1", "gatewayUrl": "ws://gw", "gatewayToken": "t", "visionCapable": True}],
            "pipeline": {"maxFileTextChars": 500},
            "vision": {"defaultModel": "openai/gpt-4.1"},
        }))

        config = load_config(path)

        assert config.channels.feishu[0].bot_id == "bot-1"
        assert config.channels.feishu[0].domain == "lark"
        assert config.get_bot("bot-1").vision_capable is True
        assert config.get_bot("missing") is None
        assert config.pipeline.max_file_text_chars == 500
        assert config.vision.default_model == "openai/gpt-4.1"

    def test_legacy_single_feishu_object_is_migrated(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"channels": {"feishu": {"id": "only", "botId": "b"}}}))

        config = load_config(path)

        assert [c.id for c in config.channels.feishu] == ["only"]

    def test_corrupt_file_falls_back_to_defaults(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("{broken")

        assert load_config(path).bots == []


class TestSaveConfig:
    def test_round_trip_writes_camel_case(self, tmp_path):
        path = tmp_path / "sub" / "config.json"
        config = Config(bots=[BotConfig(id="bot-1", gateway_url="ws://gw")])

        save_config(config, path)

        data = json.loads(path.read_text())
        assert data["bots"][0]["gatewayUrl"] == "ws://gw"
        assert "dedupTtlSeconds" in data["pipeline"]
        assert load_config(path).bots[0].gateway_url == "ws://gw"
