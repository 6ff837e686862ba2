"""
Shared fixtures and fakes for the dexarb test suite.

No test touches the network: quote sources are deterministic fakes.
"""

import asyncio
import time
from decimal import Decimal
from typing import Dict, Optional

import pytest

from dexarb.models import (ArbitrageOpportunity, PriceQuote, PriceSnapshot, QuoteStatus, RawQuote,
                           SnapshotMetadata, SourceKind, TokenPair)
from dexarb.providers import QuoteProvider
from dexarb.tokens import to_raw_amount


class FakeProvider(QuoteProvider):
    """Quotes a fixed price after an optional delay, or raises `error`."""

    def __init__(self, name: str, price, kind: SourceKind = SourceKind.DIRECT, delay: float = 0.0,
                 liquidity: Optional[Decimal] = Decimal("5000000"), impact: Decimal = Decimal("0"),
                 error: Optional[Exception] = None, default_confidence: float = 0.95):
        super().__init__(name)
        self.kind = kind
        self.default_confidence = default_confidence
        self.price = Decimal(str(price))
        self.delay = delay
        self.liquidity = liquidity
        self.impact = impact
        self.error = error
        self.calls = 0
        self.finished = False

    async def get_quote(self, pair: TokenPair, slippage_bps: int = 50) -> RawQuote:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        self.finished = True
        return RawQuote(
            in_amount_raw=to_raw_amount(pair.amount, pair.from_decimals),
            out_amount_raw=to_raw_amount(pair.amount * self.price, pair.to_decimals),
            price_impact=self.impact,
            liquidity=self.liquidity,
        )


def make_quote(name: str, price, kind: SourceKind = SourceKind.DIRECT, confidence: float = 0.9,
               response_ms: float = 100.0, impact: str = "0", liquid: bool = True) -> PriceQuote:
    price = Decimal(str(price))
    return PriceQuote(
        source_name=name,
        price=price,
        output_amount=price,
        input_amount=Decimal(1),
        price_impact=Decimal(impact),
        liquidity_available=liquid,
        source_kind=kind,
        response_time_ms=response_ms,
        confidence=confidence,
        timestamp=time.time(),
    )


def make_failed(name: str, pair: TokenPair, status: QuoteStatus = QuoteStatus.TIMEOUT) -> PriceQuote:
    return PriceQuote.failed(name, pair, SourceKind.DIRECT, status, "Timeout after 5000ms", 5000.0)


def make_snapshot(quotes: Dict[str, PriceQuote], total_ms: float = 200.0, request_id: str = "req_1_0") -> PriceSnapshot:
    successful = sum(1 for q in quotes.values() if q is not None and q.is_valid)
    return PriceSnapshot(
        quotes=quotes,
        metadata=SnapshotMetadata(
            total_response_time_ms=total_ms,
            successful_sources=successful,
            failed_sources=len(quotes) - successful,
            timestamp_ms=int(time.time() * 1000),
            request_id=request_id,
        ),
    )


def make_opportunity(spread_pct: str, confidence: float, buy: str = "raydium", sell: str = "orca",
                     net: str = "1") -> ArbitrageOpportunity:
    spread_pct = Decimal(spread_pct)
    return ArbitrageOpportunity(
        pair="SOL/USDC",
        buy_source=buy,
        sell_source=sell,
        buy_price=Decimal(100),
        sell_price=Decimal(100) * (1 + spread_pct),
        spread=Decimal(100) * spread_pct,
        spread_percentage=spread_pct,
        estimated_gross_profit=Decimal(net),
        estimated_profit=Decimal(net),
        estimated_gas_cost=Decimal(0),
        net_profit=Decimal(net),
        confidence=confidence,
        risk_score=0.3,
        liquidity_score=1.0,
        price_impact_total=Decimal(0),
        response_time_advantage_ms=1900.0,
        market_efficiency=0.5,
        timestamp=time.time(),
        request_id="req_1_0",
    )


@pytest.fixture
def sol_usdc():
    return TokenPair("SOL", "USDC", Decimal("1"))


@pytest.fixture
def four_sources():
    return {
        "raydium": FakeProvider("Raydium", "100.00"),
        "orca": FakeProvider("Orca", "100.10"),
        "phoenix": FakeProvider("Phoenix", "99.95"),
        "jupiter": FakeProvider("Jupiter", "100.05", kind=SourceKind.AGGREGATOR, liquidity=None),
    }
