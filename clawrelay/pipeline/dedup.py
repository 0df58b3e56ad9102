"""
消息去重模块 - 保证同一条消息在重复投递时最多被处理一次。

飞书在网络抖动、超时未确认等情况下会重复推送同一个 message_id。
DedupCache 是进程内唯一的共享可变状态，所有渠道连接共用一个实例。

【设计要点】
- 检查与插入在同一把锁内完成（原子操作），两个几乎同时到达的相同 ID 不会都被放行
- 不为每个 ID 单独设置定时器：过期条目在查询时即视为不存在，
  另有一个周期性清理任务统一回收内存
- 使用 threading.Lock 而不是 asyncio.Lock：飞书 SDK 的回调运行在独立线程中，
  锁需要同时对线程和事件循环安全
"""

import asyncio
import threading
import time
from typing import Callable

from loguru import logger


class DedupCache:
    """
    带 TTL 的消息 ID 去重缓存。

    属性:
        ttl: 条目存活时间（秒），从插入时刻开始计算
        sweep_interval: 周期清理间隔（秒）
    """

    def __init__(
        self,
        ttl: float = 60.0,
        sweep_interval: float = 10.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl = ttl
        self.sweep_interval = sweep_interval
        self._clock = clock
        self._entries: dict[str, float] = {}  # message_id -> 插入时刻
        self._lock = threading.Lock()
        self._sweep_task: asyncio.Task | None = None

    def should_process(self, message_id: str) -> bool:
        """
        去重闸门：首次见到某个 ID 时返回 True 并记录，TTL 内再次见到返回 False。

        空 ID 不参与去重，总是返回 True。

        参数:
            message_id: 渠道内的消息 ID

        返回:
            True 表示应当处理该消息
        """
        if not message_id:
            return True

        now = self._clock()
        with self._lock:
            inserted_at = self._entries.get(message_id)
            if inserted_at is not None and now - inserted_at < self.ttl:
                return False
            self._entries[message_id] = now
            return True

    def sweep(self) -> int:
        """清除所有已过期的条目，返回清除数量。"""
        now = self._clock()
        with self._lock:
            expired = [mid for mid, ts in self._entries.items() if now - ts >= self.ttl]
            for mid in expired:
                del self._entries[mid]
        if expired:
            logger.debug(f"Dedup sweep removed {len(expired)} expired message ids")
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval)
            self.sweep()

    def start(self) -> None:
        """在当前事件循环中启动周期清理任务（重复调用无副作用）。"""
        if self._sweep_task and not self._sweep_task.done():
            return
        self._sweep_task = asyncio.get_running_loop().create_task(self._sweep_loop())
        logger.debug(f"Dedup sweeper started (ttl={self.ttl}s, interval={self.sweep_interval}s)")

    async def stop(self) -> None:
        """停止周期清理任务。"""
        if self._sweep_task:
            self._sweep_task.cancel()
            try:
                await self._sweep_task
            except asyncio.CancelledError:
                pass
            self._sweep_task = None
