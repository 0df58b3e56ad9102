"""
CLI 命令模块 - clawrelay 的所有命令行命令定义。

本模块使用 Typer 框架定义 clawrelay 的 CLI 命令体系：
- onboard：初始化默认配置文件
- gateway：启动中继服务（飞书渠道 + 入站消息流水线）
- channels status：查看渠道连接配置
- status：查看系统状态（配置、Bot 目录、对象存储）

技术栈：
- Typer：CLI 框架（基于 Click，支持类型注解自动生成帮助文档）
- Rich：终端美化输出（表格等）
- Loguru：运行日志
"""

import asyncio
import sys

import typer
from loguru import logger
from rich.console import Console
from rich.table import Table

from clawrelay import __logo__, __version__

app = typer.Typer(
    name="clawrelay",
    help=f"{__logo__} clawrelay - Feishu to OpenClaw bot relay",
    no_args_is_help=True,
)

console = Console()


def version_callback(value: bool):
    if value:
        console.print(f"{__logo__} clawrelay v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None, "--version", "-v", callback=version_callback, is_eager=True
    ),
):
    """clawrelay CLI 根命令回调。处理全局选项（如 --version）。"""
    pass


def _setup_logging(verbose: bool) -> None:
    """配置 loguru：默认 INFO，--verbose 时输出 DEBUG。"""
    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if verbose else "INFO")
    logger.enable("clawrelay")


# ============================================================================
# Onboard / Setup
# ============================================================================


@app.command()
def onboard():
    """
    初始化 clawrelay 配置。

    在 ~/.clawrelay/ 下创建默认配置文件 config.json，并打印后续操作指引。
    """
    from clawrelay.config.loader import get_config_path, save_config
    from clawrelay.config.schema import Config

    config_path = get_config_path()

    if config_path.exists():
        console.print(f"[yellow]Config already exists at {config_path}[/yellow]")
        if not typer.confirm("Overwrite?"):
            raise typer.Exit()

    save_config(Config())
    console.print(f"[green]✓[/green] Created config at {config_path}")

    console.print(f"\n{__logo__} clawrelay is ready!")
    console.print("\nNext steps:")
    console.print("  1. Add your bots under [cyan]bots[/cyan] in [cyan]~/.clawrelay/config.json[/cyan]")
    console.print("  2. Add a Feishu app under [cyan]channels.feishu[/cyan] with its botId")
    console.print("  3. Run: [cyan]clawrelay gateway[/cyan]")


# ============================================================================
# Gateway
# ============================================================================


def _make_orchestrator(config, channels):
    """按配置组装流水线的全部协作方。"""
    from clawrelay.bots.directory import ConfigBotDirectory
    from clawrelay.pipeline.content import ContentPartBuilder
    from clawrelay.pipeline.dedup import DedupCache
    from clawrelay.pipeline.normalizer import MessageNormalizer
    from clawrelay.pipeline.orchestrator import PipelineOrchestrator
    from clawrelay.pipeline.reply import ReplyDispatcher
    from clawrelay.pipeline.router import DeliveryRouter
    from clawrelay.providers.openclaw import OpenClawGatewayClient
    from clawrelay.providers.vision import VisionProxyClient
    from clawrelay.storage.blob import make_blob_storage

    builder = ContentPartBuilder(
        storage=make_blob_storage(config.storage),
        max_text_chars=config.pipeline.max_file_text_chars,
        presign_ttl=config.storage.presign_ttl_seconds,
        key_prefix=config.storage.key_prefix,
    )
    router = DeliveryRouter(
        text_backend=OpenClawGatewayClient(
            timeout=config.gateway.timeout_seconds,
            client_version=config.gateway.client_version,
            session_key=config.gateway.session_key,
        ),
        vision_backend=VisionProxyClient(
            api_key=config.vision.api_key or None,
            max_tokens=config.vision.max_tokens,
            timeout=config.vision.timeout_seconds,
        ),
        vision_model=config.vision.default_model,
    )
    dedup = DedupCache(
        ttl=config.pipeline.dedup_ttl_seconds,
        sweep_interval=config.pipeline.dedup_sweep_interval_seconds,
    )
    return PipelineOrchestrator(
        dedup=dedup,
        normalizer=MessageNormalizer(),
        builder=builder,
        router=router,
        replier=ReplyDispatcher(channels),
        bots=ConfigBotDirectory(config.bots),
        connections=channels,
    )


@app.command()
def gateway(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """
    启动 clawrelay 中继服务（核心启动命令）。

    1. 加载配置
    2. 创建渠道管理器（每个飞书连接一个 FeishuChannel）
    3. 组装流水线并绑定为渠道的事件处理器
    4. 启动去重缓存的清理任务和所有渠道，运行直到被中断
    """
    from clawrelay.channels.manager import ChannelManager
    from clawrelay.config.loader import load_config

    _setup_logging(verbose)
    console.print(f"{__logo__} Starting clawrelay gateway...")

    config = load_config()
    channels = ChannelManager(config)
    orchestrator = _make_orchestrator(config, channels)
    channels.handler = orchestrator.handle

    if channels.enabled_channels:
        console.print(f"[green]✓[/green] Connections enabled: {', '.join(channels.enabled_channels)}")
    else:
        console.print("[yellow]Warning: No channels enabled[/yellow]")
    console.print(f"[green]✓[/green] Bots: {len(config.bots)}")

    async def run():
        orchestrator.dedup.start()
        try:
            await channels.start_all()
        finally:
            await orchestrator.dedup.stop()
            await channels.stop_all()

    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        console.print("\nShutting down...")


# ============================================================================
# Channel Commands
# ============================================================================


channels_app = typer.Typer(help="Manage channels")
app.add_typer(channels_app, name="channels")


@channels_app.command("status")
def channels_status():
    """以表格形式展示每个飞书连接的配置摘要。"""
    from clawrelay.config.loader import load_config

    config = load_config()

    table = Table(title="Channel Status")
    table.add_column("Connection", style="cyan")
    table.add_column("Bot", style="magenta")
    table.add_column("Enabled", style="green")
    table.add_column("Configuration", style="yellow")

    for conn in config.channels.feishu:
        summary = f"{conn.domain} app_id: {conn.app_id[:10]}..." if conn.app_id else "[dim]not configured[/dim]"
        table.add_row(conn.id or "[dim]?[/dim]", conn.bot_id or "[dim]-[/dim]", "✓" if conn.enabled else "✗", summary)

    if not config.channels.feishu:
        console.print("[dim]No Feishu connections configured[/dim]")
    console.print(table)


# ============================================================================
# Status Commands
# ============================================================================


@app.command()
def status():
    """显示配置文件路径、Bot 目录和对象存储状态。"""
    from clawrelay.config.loader import get_config_path, load_config

    config_path = get_config_path()
    config = load_config()

    console.print(f"{__logo__} clawrelay Status\n")
    console.print(f"Config: {config_path} {'[green]✓[/green]' if config_path.exists() else '[red]✗[/red]'}")
    console.print(f"Vision model: {config.vision.default_model}")
    bucket = config.storage.bucket
    console.print(f"Storage: {'[green]✓ ' + bucket + '[/green]' if bucket else '[dim]not set[/dim]'}")

    table = Table(title="Bots")
    table.add_column("Bot", style="cyan")
    table.add_column("Status")
    table.add_column("Gateway", style="yellow")
    table.add_column("Vision", style="green")
    for bot in config.bots:
        table.add_row(
            bot.id,
            bot.status,
            bot.gateway_url or "[dim]not set[/dim]",
            "✓" if bot.vision_capable and bot.vision_proxy_url else "✗",
        )
    console.print(table)


if __name__ == "__main__":
    app()
