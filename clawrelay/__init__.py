"""
clawrelay - 聊天渠道与 OpenClaw Bot 之间的消息中继

模块概述：
    本文件是 clawrelay 包的入口文件（__init__.py），定义了包的元信息。
    clawrelay 负责把外部聊天渠道（飞书 / Lark）收到的消息转发给 Bot 的 AI 后端，
    并把后端的回复送回原渠道。

    核心能力：
    - 消息去重（同一条消息在重复投递时只处理一次）
    - 消息标准化（文本、富文本、图片、文件 → 统一的 ParsedMessage）
    - 多模态内容构建（图片内联、文本文件提取、文档上传并预签名）
    - 投递路径选择（纯文本网关 / 视觉代理）与失败降级
    - 回复分发（尽力而为，失败仅记录日志）
"""

# 版本号，遵循语义化版本规范（主版本.次版本.修订号）
__version__ = "0.1.0"

# 项目 logo 表情符号，用于 CLI 输出
__logo__ = "🦀"
