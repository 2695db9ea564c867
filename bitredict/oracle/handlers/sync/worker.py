"""Chain event sync.

Each tick scans `[cursor - reorg_depth + 1, head]` in chunks of at most
`max_block_range` blocks, mirrors every decoded event, and advances the
persisted cursor after each chunk. Re-reading the tail absorbs shallow
reorgs; the mirror writers are idempotent so the overlap is harmless.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import text

from bitredict.chain.client import ChainClient
from bitredict.oracle.config.params import SyncParams

from .decoder import EventDecoder
from .mirror import EventMirror

logger = logging.getLogger(__name__)

CURSOR_NAME = "chain_events"

_SELECT_CURSOR = text("SELECT last_block FROM chain_sync_cursor WHERE name = :name")

_UPSERT_CURSOR = text(
    """
    INSERT INTO chain_sync_cursor (name, last_block, updated_at)
    VALUES (:name, :last_block, now())
    ON CONFLICT (name) DO UPDATE SET last_block = EXCLUDED.last_block, updated_at = now()
    """
)


@dataclass
class SyncReport:
    from_block: Optional[int] = None
    to_block: Optional[int] = None
    logs: int = 0
    events: Dict[str, int] = field(default_factory=dict)

    @property
    def mirrored(self) -> int:
        return sum(self.events.values())

    def as_dict(self) -> Dict[str, Any]:
        return {
            "from_block": self.from_block,
            "to_block": self.to_block,
            "logs": self.logs,
            "mirrored": self.mirrored,
            **self.events,
        }


class ChainEventSync:
    def __init__(
        self,
        *,
        database: Any,
        client: ChainClient,
        decoder: EventDecoder,
        mirror: EventMirror,
        start_block: int = 0,
        params: Optional[SyncParams] = None,
        cursor_name: str = CURSOR_NAME,
    ) -> None:
        self.database = database
        self.client = client
        self.decoder = decoder
        self.mirror = mirror
        self.start_block = start_block
        self.params = params or SyncParams()
        self.cursor_name = cursor_name
        self._block_times: Dict[int, datetime] = {}

    async def block_time(self, block_number: int) -> datetime:
        if block_number not in self._block_times:
            ts = await self.client.block_timestamp(block_number)
            self._block_times[block_number] = datetime.fromtimestamp(ts, tz=timezone.utc)
        return self._block_times[block_number]

    async def load_cursor(self) -> Optional[int]:
        rows = await self.database.read(_SELECT_CURSOR, params={"name": self.cursor_name}, mappings=True)
        return int(rows[0]["last_block"]) if rows else None

    async def save_cursor(self, block: int) -> None:
        await self.database.write(_UPSERT_CURSOR, params={"name": self.cursor_name, "last_block": block})

    def scan_start(self, cursor: Optional[int]) -> int:
        if cursor is None:
            return self.start_block
        return max(self.start_block, cursor - self.params.reorg_depth + 1)

    async def run_once(self) -> SyncReport:
        report = SyncReport()
        head = await self.client.block_number()
        start = self.scan_start(await self.load_cursor())
        if start > head:
            return report

        report.from_block = start
        # block times are only reused within one tick
        self._block_times.clear()
        addresses = self.decoder.addresses
        chunk_start = start
        while chunk_start <= head:
            chunk_end = min(head, chunk_start + self.params.max_block_range - 1)
            logs = await self.client.get_logs(chunk_start, chunk_end, addresses)
            report.logs += len(logs)
            for event in self.decoder.decode_all(logs):
                await self.mirror.apply(event)
                report.events[event.name] = report.events.get(event.name, 0) + 1
            await self.save_cursor(chunk_end)
            report.to_block = chunk_end
            chunk_start = chunk_end + 1

        if report.mirrored:
            logger.info({"chain_sync": report.as_dict()})
        return report


__all__ = ["ChainEventSync", "SyncReport", "CURSOR_NAME"]
