# dexarb/audit.py
import asyncio
import os
import sys
from datetime import datetime, timezone
from typing import Any, List, Optional, Sequence

import aiofiles
from aiocsv import AsyncWriter

from .models import AnalysisResult

SLOTS = ("raydium", "orca", "phoenix", "jupiter")

SCAN_HEADER = [
    "Timestamp", "Scan Number", "Trading Pair", "Opportunities Found", "Viable Opportunities",
    "Best Spread (%)", "Best Buy DEX", "Best Sell DEX", "Best Net Profit",
    "Market Efficiency", "Data Quality", "Price Collection (ms)", "Analysis Time (ms)", "Total Time (ms)",
    *[col for slot in SLOTS for col in (f"{slot.capitalize()} Price", f"{slot.capitalize()} Response (ms)")],
    "Warnings", "Recommendations",
]


def scan_record(scan_number: int, result: AnalysisResult, collection_ms: float, analysis_ms: float,
                pair_label: Optional[str] = None) -> List[Any]:
    """Flattens one AnalysisResult into a row matching SCAN_HEADER."""
    best = result.best
    metrics = result.metrics
    row: List[Any] = [
        datetime.now(timezone.utc).isoformat(),
        scan_number,
        pair_label or (best.pair if best else ""),
        metrics.total_opportunities,
        metrics.viable_opportunities,
        f"{best.spread_percentage * 100:.4f}" if best else 0,
        best.buy_source if best else "",
        best.sell_source if best else "",
        f"{best.net_profit:.6f}" if best else 0,
        f"{metrics.market_efficiency:.4f}",
        f"{metrics.data_quality:.4f}",
        f"{collection_ms:.1f}",
        f"{analysis_ms:.1f}",
        f"{collection_ms + analysis_ms:.1f}",
    ]
    for slot in SLOTS:
        quote = result.snapshot.quotes.get(slot)
        row.append(f"{quote.price:.8f}" if quote is not None else 0)
        row.append(f"{quote.response_time_ms:.0f}" if quote is not None else 0)
    row.append("; ".join(result.warnings))
    row.append("; ".join(result.recommendations))
    return row


class AsyncAuditLogger:
    """
    Non-blocking CSV log of scan results.
    Decouples disk I/O from the scan loop using an asyncio Queue.
    """
    def __init__(self, filepath: str, header: Sequence[str] = SCAN_HEADER):
        self.filepath = filepath
        self.header = list(header)
        self._queue: asyncio.Queue = asyncio.Queue()
        self._worker_task: Optional[asyncio.Task] = None

    async def start(self):
        """
        Creates the directory and header if missing, then starts the background writer.
        """
        directory = os.path.dirname(self.filepath)
        if directory and not os.path.exists(directory):
            os.makedirs(directory, exist_ok=True)

        if not os.path.exists(self.filepath) or os.path.getsize(self.filepath) == 0:
            async with aiofiles.open(self.filepath, mode='w', newline='') as f:
                writer = AsyncWriter(f, dialect='unix')
                await writer.writerow(self.header)

        self._worker_task = asyncio.create_task(self._writer_worker())

    async def log_scan(self, row: List[Any]):
        await self._queue.put(row)

    async def flush(self):
        await self._queue.join()

    async def stop(self):
        await self.flush()
        if self._worker_task is not None:
            self._worker_task.cancel()
            await asyncio.gather(self._worker_task, return_exceptions=True)
            self._worker_task = None

    async def _writer_worker(self):
        while True:
            row = await self._queue.get()
            try:
                async with aiofiles.open(self.filepath, mode='a', newline='') as f:
                    writer = AsyncWriter(f, dialect='unix')
                    await writer.writerow(row)
            except Exception as e:
                # stderr fallback, the scan loop keeps running
                print(f"AUDIT LOG FAILURE: {e}", file=sys.stderr)
            finally:
                self._queue.task_done()
