"""
配置数据模型定义 (config/schema.py)
=================================
本模块使用 Pydantic 定义 clawrelay 的完整配置结构。
所有配置项都有默认值，用户只需在 config.json 中覆盖需要修改的部分。

整体配置结构（树形）：
Config (根配置)
├── channels      - 渠道连接配置（每个飞书连接绑定一个 Bot）
├── bots          - Bot 目录（网关地址、令牌、是否具备视觉能力）
├── pipeline      - 流水线参数（去重 TTL、文件文本最大长度等）
├── vision        - 视觉代理配置（默认视觉模型等）
├── gateway       - OpenClaw 网关客户端配置
└── storage       - 对象存储配置（上传附件并生成预签名 URL）
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings


# ==============================================================================
# 渠道配置
# ==============================================================================


class FeishuConnectionConfig(BaseModel):
    """单个飞书/Lark 渠道连接。使用 WebSocket 长连接接收事件。"""
    id: str = ""  # 渠道连接 ID（回复时按此 ID 查找 API 客户端）
    bot_id: str = ""  # 该连接绑定的 Bot ID
    enabled: bool = True
    app_id: str = ""  # 飞书开放平台的 App ID
    app_secret: str = ""  # 飞书开放平台的 App Secret
    encrypt_key: str = ""  # 事件订阅的加密密钥（可选）
    verification_token: str = ""  # 事件订阅的验证令牌（可选）
    domain: Literal["feishu", "lark"] = "feishu"  # 飞书或 Lark 国际版
    allow_from: list[str] = Field(default_factory=list)  # 允许的用户 open_id 白名单


class ChannelsConfig(BaseModel):
    """所有渠道连接的聚合配置。"""
    feishu: list[FeishuConnectionConfig] = Field(default_factory=list)


# ==============================================================================
# Bot 目录
# ==============================================================================


class BotConfig(BaseModel):
    """
    Bot 记录。

    真实部署中 Bot 记录由管理后台维护，这里只保留流水线需要的字段。
    """
    id: str = ""
    name: str = ""
    status: str = "running"  # running | stopped | starting | error
    gateway_url: str = ""  # OpenClaw 网关 WebSocket 地址，如 ws://localhost:18789
    gateway_token: str = ""  # 网关认证令牌
    vision_capable: bool = False  # 后端是否能直接接收图片/文档
    vision_proxy_url: str = ""  # 视觉代理地址（OpenAI 兼容接口）


# ==============================================================================
# 流水线与后端
# ==============================================================================


class PipelineConfig(BaseModel):
    """消息处理流水线参数。"""
    dedup_ttl_seconds: float = 60.0  # 消息 ID 去重窗口
    dedup_sweep_interval_seconds: float = 10.0  # 过期条目清理间隔
    max_file_text_chars: int = 15000  # 单个文本文件提取的最大字符数


class VisionConfig(BaseModel):
    """视觉代理配置。"""
    default_model: str = "openai/gpt-4o"  # 默认视觉模型（LiteLLM 格式: provider/model）
    api_key: str = ""  # 代理认证密钥（留空时使用 Bot 的网关令牌）
    max_tokens: int = 4096
    timeout_seconds: float = 120.0


class GatewayConfig(BaseModel):
    """OpenClaw 网关客户端配置。"""
    timeout_seconds: float = 120.0  # 等待最终回复的超时时间
    client_version: str = "1.0.0"
    session_key: str = "main"  # chat.send 使用的会话键


class StorageConfig(BaseModel):
    """对象存储配置（S3 兼容）。"""
    bucket: str = ""
    region: str = "us-east-1"
    endpoint_url: str | None = None  # 自建 MinIO / OSS 等 S3 兼容服务
    access_key_id: str = ""
    secret_access_key: str = ""
    key_prefix: str = "bot-attachments"  # 上传对象键的命名空间前缀
    presign_ttl_seconds: int = 300  # 预签名下载 URL 有效期（5 分钟）


# ==============================================================================
# 根配置类
# ==============================================================================


class Config(BaseSettings):
    """
    clawrelay 根配置类。

    继承自 Pydantic 的 BaseSettings，除了支持从 JSON 文件加载外，
    还支持从环境变量读取配置：
    - 环境变量前缀: CLAWRELAY_
    - 嵌套分隔符: __ (双下划线)
    - 示例: CLAWRELAY_PIPELINE__DEDUP_TTL_SECONDS=120 可覆盖 pipeline.dedup_ttl_seconds
    """
    channels: ChannelsConfig = Field(default_factory=ChannelsConfig)
    bots: list[BotConfig] = Field(default_factory=list)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    vision: VisionConfig = Field(default_factory=VisionConfig)
    gateway: GatewayConfig = Field(default_factory=GatewayConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)

    def get_bot(self, bot_id: str) -> BotConfig | None:
        """按 ID 查找 Bot 配置。"""
        for bot in self.bots:
            if bot.id == bot_id:
                return bot
        return None

    model_config = ConfigDict(
        env_prefix="CLAWRELAY_",
        env_nested_delimiter="__"
    )
