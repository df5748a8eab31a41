"""
Order Service / 期限切れスイーパー

支払い期限 (expires_at) を過ぎても waiting_payment のままの注文を
定期的にキャンセルする。shutdown_event がセットされるまでループする。

複数プロセスで同時に動いても、ステータス更新が条件付きなので
同じ注文が二重にキャンセルされることはない。
"""

import asyncio
import logging

from .orchestrator import OrderOrchestrator

logger = logging.getLogger(__name__)


async def run_expiry_sweeper(
    orchestrator: OrderOrchestrator,
    interval: float,
    shutdown_event: asyncio.Event,
) -> None:
    logger.info("Expiry sweeper started (interval=%ss)", interval)
    while not shutdown_event.is_set():
        try:
            await orchestrator.cancel_expired()
        except Exception:
            logger.exception("Expiry sweep failed")
        try:
            await asyncio.wait_for(shutdown_event.wait(), timeout=interval)
        except asyncio.TimeoutError:
            pass
    logger.info("Expiry sweeper stopped")
