# main.py
import asyncio
import sys
import time
from decimal import Decimal
from typing import Dict, List

import aiohttp
import questionary
from rich.console import Console
from rich.layout import Layout
from rich.live import Live
from rich.panel import Panel
from rich.table import Table

from dexarb.analyzer import ArbitrageAnalyzer
from dexarb.audit import AsyncAuditLogger, scan_record
from dexarb.collector import PriceCollector
from dexarb.config import (analysis_options_from_config, collection_options_from_config,
                           extra_tokens_from_config, load_config)
from dexarb.errors import ResolutionError
from dexarb.logger import setup_console_logger
from dexarb.models import AnalysisResult, TokenPair
from dexarb.providers import build_sources
from dexarb.tokens import StaticTokenRegistry

# --- UI HELPER FUNCTIONS ---

def startup_selection(config) -> List[str]:
    """Interactive CLI to select the pairs to scan."""
    print("\n🔎 SOLANA DEX ARBITRAGE SCANNER \n")
    pairs = questionary.checkbox("Select Pairs to Scan:", choices=config['scanner']['pairs']).ask()
    if not pairs:
        print("No pairs selected. Exiting.")
        sys.exit()
    return pairs


def generate_dashboard(results: Dict[str, AnalysisResult], scan_number: int, stats):
    """
    Creates the Rich Console Dashboard layout.
    Shows per-pair source prices and the best opportunity found.
    """
    price_table = Table(title=f"📡 Scan #{scan_number}")
    price_table.add_column("Pair", style="cyan")
    price_table.add_column("Sources", justify="right")
    price_table.add_column("Best Route", style="magenta")
    price_table.add_column("Spread %", justify="right", style="green")
    price_table.add_column("Net Profit", justify="right", style="green")
    price_table.add_column("Risk", justify="right")
    price_table.add_column("Collect (ms)", justify="right")

    for label, res in results.items():
        meta = res.snapshot.metadata
        best = res.best
        price_table.add_row(
            label,
            f"{meta.successful_sources}/{meta.attempted_sources}",
            f"{best.buy_source} → {best.sell_source}" if best else "[dim]efficient[/dim]",
            f"{best.spread_percentage * 100:.3f}" if best else "-",
            f"{best.net_profit:.6f}" if best else "-",
            f"{best.risk_score:.2f}" if best else "-",
            f"{meta.total_response_time_ms:.0f}",
        )

    warn_table = Table(title="⚠️ Warnings")
    warn_table.add_column("Pair", style="cyan")
    warn_table.add_column("Message", style="yellow")
    for label, res in results.items():
        for w in res.warnings[:3]:
            warn_table.add_row(label, w)

    layout = Layout()
    layout.split_column(Layout(name="top"), Layout(name="bottom"))
    layout["top"].split_row(Layout(Panel(price_table)), Layout(Panel(warn_table)))

    footer = Panel(
        f"[bold gold1]HISTORY: {stats.total_opportunities_analyzed} opportunities | "
        f"avg spread {stats.average_spread * 100:.3f}% | max {stats.max_spread_seen * 100:.3f}%[/bold gold1]",
        style="white on blue",
    )
    layout["bottom"].update(footer)
    layout["bottom"].size = 3
    return layout

# --- MAIN CONTROLLER ---

class ArbitrageScanner:
    def __init__(self, selected_pairs: List[str], config_path: str = "config.yaml"):
        self.config = load_config(config_path)
        self.pair_labels = selected_pairs
        self.logger = setup_console_logger("dexarb", self.config['system']['log_level'])
        self.audit_log = AsyncAuditLogger(self.config['audit']['scan_log'])
        self.resolver = StaticTokenRegistry(extra_tokens_from_config(self.config))
        self.collection_options = collection_options_from_config(self.config)
        self.analysis_options = analysis_options_from_config(self.config)
        self.amount = Decimal(str(self.config['scanner']['amount']))

    def _pairs(self) -> List[TokenPair]:
        pairs = []
        for label in self.pair_labels:
            base, quote = label.split('/')
            pairs.append(TokenPair(base, quote, self.amount))
        return pairs

    async def scan_pair(self, analyzer: ArbitrageAnalyzer, collector: PriceCollector, pair: TokenPair,
                        scan_number: int):
        t0 = time.perf_counter()
        snapshot = await collector.collect(pair, self.collection_options)
        t1 = time.perf_counter()
        result = analyzer.evaluate(pair, snapshot, self.analysis_options)
        t2 = time.perf_counter()
        await self.audit_log.log_scan(scan_record(scan_number, result, (t1 - t0) * 1000, (t2 - t1) * 1000, pair.label))
        return result

    async def run(self):
        scan_interval = self.config['scanner']['scan_interval_s']
        max_scans = self.config['scanner']['max_scans']
        await self.audit_log.start()

        async with aiohttp.ClientSession() as session:
            collector = PriceCollector(build_sources(self.config, session, self.logger),
                                       resolver=self.resolver, logger=self.logger)
            analyzer = ArbitrageAnalyzer(collector, logger=self.logger)
            pairs = self._pairs()
            results: Dict[str, AnalysisResult] = {}

            console = Console()
            scan_number = 0
            try:
                with Live(console=console, refresh_per_second=4) as live:
                    while not max_scans or scan_number < max_scans:
                        scan_number += 1
                        start_tick = time.time()

                        for pair in list(pairs):
                            try:
                                results[pair.label] = await self.scan_pair(analyzer, collector, pair, scan_number)
                            except ResolutionError as e:
                                self.logger.error(f"❌ {pair.label}: {e}. Removing from scan list.")
                                pairs.remove(pair)

                        if not pairs:
                            self.logger.error("No resolvable pairs left. Stopping.")
                            break

                        collector.clear_expired_cache()
                        live.update(generate_dashboard(results, scan_number, analyzer.statistics()))

                        elapsed = time.time() - start_tick
                        await asyncio.sleep(max(0, scan_interval - elapsed))
            finally:
                print("Shutting down resources...")
                await self.audit_log.stop()
                await collector.close()


if __name__ == "__main__":
    raw_conf = load_config("config.yaml")
    try:
        selected = startup_selection(raw_conf)
        scanner = ArbitrageScanner(selected)
        asyncio.run(scanner.run())
    except KeyboardInterrupt:
        print("\n🛑 Scanner Stopped by User.")
        sys.exit()
