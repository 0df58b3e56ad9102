"""Bot 目录模块。"""

from clawrelay.bots.directory import BotDescriptor, BotDirectory, ConfigBotDirectory

__all__ = ["BotDescriptor", "BotDirectory", "ConfigBotDirectory"]
