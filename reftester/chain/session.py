"""
Fork sessions.

A ``ForkSession`` bundles one fork with the chain client connected to it.
Governance operations receive the session explicitly for every call.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..config.loader import PollingSettings
from ..exceptions import ForkTimeoutError
from ..logger import get_logger
from .client import ChainClient
from .fork import Fork

logger = get_logger(__name__)


@dataclass
class ForkSession:
    label: str
    fork: Fork
    client: ChainClient
    polling: PollingSettings = field(default_factory=PollingSettings)

    async def set_storage(self, updates: Dict[str, Any]) -> None:
        for pallet, items in updates.items():
            for item, entries in items.items():
                logger.debug(f"[{self.label}] set_storage {pallet}.{item}: {len(entries)} entr(ies)")
        await self.fork.set_storage(updates)

    async def new_block(self, transactions: Optional[List[str]] = None) -> int:
        """
        Builds one block and waits until it is the head.

        The engine may answer before the block is imported, so the head is
        polled until it strictly increases. Returns the new head number.
        """
        before = await self.fork.head_number()
        await self.fork.new_block(transactions)

        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.polling.block_timeout
        while True:
            head = await self.fork.head_number()
            if head > before:
                logger.debug(f"[{self.label}] produced block #{head}")
                return head
            if loop.time() >= deadline:
                raise ForkTimeoutError(
                    f"[{self.label}] head stuck at #{before} {self.polling.block_timeout:.1f}s after dev_newBlock"
                )
            await asyncio.sleep(self.polling.block_poll_interval)
