# dexarb/collector.py
import asyncio
import itertools
import logging
import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Mapping, Optional

from .cache import QuoteCache
from .errors import SourceError, SourceParseError, SourceTimeoutError
from .models import (PriceQuote, PriceSnapshot, QuoteStatus, RawQuote, SnapshotMetadata,
                     SourceKind, TokenPair, now_ms)
from .providers import QuoteProvider
from .tokens import StaticTokenRegistry, TokenResolver, from_raw_amount, resolve_pair

LIQUIDITY_NORMALIZER = 10_000_000


@dataclass(slots=True)
class CollectionOptions:
    timeout_ms: float = 5000
    include_aggregator: bool = True
    enable_caching: bool = False
    cache_ttl_ms: float = 10000
    slippage_bps: int = 50


def quote_confidence(price: Decimal, liquidity: Optional[Decimal], default: float) -> float:
    """
    Deeper pools -> confidence approaching 1. No depth or a broken price -> 0.
    Sources without a depth hint (aggregators) fall back to `default`.
    """
    if not price.is_finite() or price <= 0:
        return 0.0
    if liquidity is None:
        return default
    if liquidity <= 0:
        return 0.0
    liquidity_score = min(float(liquidity) / LIQUIDITY_NORMALIZER, 1.0)
    return liquidity_score * 0.7 + 0.3


class PriceCollector:
    """
    Fans out one quote request per configured source and waits for every one
    of them to settle. A failing source becomes an error quote in the
    snapshot; only an unresolvable pair raises.
    """
    def __init__(self, sources: Mapping[str, QuoteProvider], resolver: Optional[TokenResolver] = None,
                 cache: Optional[QuoteCache] = None, logger: Optional[logging.Logger] = None):
        self.sources: Dict[str, QuoteProvider] = dict(sources)
        self.resolver = resolver or StaticTokenRegistry()
        self.cache = cache or QuoteCache()
        self.logger = logger or logging.getLogger("dexarb")
        self._request_counter = itertools.count(1)

    async def collect(self, pair: TokenPair, options: Optional[CollectionOptions] = None,
                      cancel_event: Optional[asyncio.Event] = None) -> PriceSnapshot:
        opts = options or CollectionOptions()
        started = time.perf_counter()
        request_id = f"req_{next(self._request_counter)}_{now_ms()}"

        # Raises ResolutionError before any network call is made
        resolved = resolve_pair(pair, self.resolver)

        active = {
            slot: provider for slot, provider in self.sources.items()
            if opts.include_aggregator or provider.kind is not SourceKind.AGGREGATOR
        }
        tasks = {
            slot: asyncio.create_task(self._fetch(slot, provider, resolved, opts))
            for slot, provider in active.items()
        }

        cancelled = await self._settle(tasks, cancel_event)
        elapsed_ms = (time.perf_counter() - started) * 1000

        quotes: Dict[str, Optional[PriceQuote]] = {}
        for slot, task in tasks.items():
            if task.cancelled():
                provider = active[slot]
                quotes[slot] = PriceQuote.failed(provider.name, resolved, provider.kind, QuoteStatus.CANCELLED,
                                                 "Cancelled before completion", elapsed_ms)
            else:
                quotes[slot] = task.result()

        successful = sum(1 for q in quotes.values() if q.is_valid)
        metadata = SnapshotMetadata(
            total_response_time_ms=elapsed_ms,
            successful_sources=successful,
            failed_sources=len(quotes) - successful,
            timestamp_ms=now_ms(),
            request_id=request_id,
            cancelled=cancelled,
        )
        self.logger.info(f"📊 {resolved.label}: {successful}/{len(quotes)} sources OK in {elapsed_ms:.0f}ms [{request_id}]")
        return PriceSnapshot(quotes=quotes, metadata=metadata)

    async def _settle(self, tasks: Dict[str, asyncio.Task], cancel_event: Optional[asyncio.Event]) -> bool:
        """
        Waits for every task. Returns True if the cancel signal fired first,
        in which case still-running tasks are cancelled.
        """
        if not tasks:
            return False
        if cancel_event is None:
            await asyncio.gather(*tasks.values(), return_exceptions=True)
            return False

        everything = asyncio.gather(*tasks.values(), return_exceptions=True)
        waiter = asyncio.ensure_future(cancel_event.wait())
        try:
            done, _ = await asyncio.wait({everything, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            # caller gave up: take the source tasks down with us
            for task in tasks.values():
                task.cancel()
            await asyncio.gather(*tasks.values(), return_exceptions=True)
            raise
        finally:
            waiter.cancel()

        if everything in done:
            return False

        pending = [t for t in tasks.values() if not t.done()]
        self.logger.warning(f"⛔ Collection cancelled with {len(pending)} source(s) outstanding")
        for task in pending:
            task.cancel()
        await asyncio.gather(*tasks.values(), return_exceptions=True)
        return True

    async def _fetch(self, slot: str, provider: QuoteProvider, pair: TokenPair,
                     opts: CollectionOptions) -> PriceQuote:
        started = time.perf_counter()

        if opts.enable_caching:
            cached = self.cache.get(slot, pair)
            if cached is not None:
                self.logger.debug(f"Cache hit: {slot} {pair.label} {pair.amount}")
                return cached

        try:
            raw = await asyncio.wait_for(provider.get_quote(pair, opts.slippage_bps),
                                         timeout=opts.timeout_ms / 1000)
            quote = self._normalize(provider, pair, raw, (time.perf_counter() - started) * 1000)
        except asyncio.TimeoutError:
            err = SourceTimeoutError(provider.name, f"Timeout after {opts.timeout_ms:g}ms")
            return self._failed(provider, pair, err, started)
        except SourceError as e:
            return self._failed(provider, pair, e, started)
        except Exception as e:
            self.logger.exception(f"Unexpected error from {provider.name}")
            return self._failed(provider, pair, SourceError(provider.name, str(e) or type(e).__name__), started)

        if opts.enable_caching:
            self.cache.put(slot, pair, quote, opts.cache_ttl_ms)
        return quote

    def _normalize(self, provider: QuoteProvider, pair: TokenPair, raw: RawQuote, response_ms: float) -> PriceQuote:
        input_amount = from_raw_amount(raw.in_amount_raw, pair.from_decimals)
        output_amount = from_raw_amount(raw.out_amount_raw, pair.to_decimals)
        if input_amount <= 0:
            raise SourceParseError(provider.name, "Quote has a zero input amount")

        price = output_amount / input_amount
        if not price.is_finite() or price <= 0:
            raise SourceParseError(provider.name, f"Quote produced unusable price {price}")

        if raw.liquidity is None:
            liquidity_available = True
        else:
            liquidity_available = raw.liquidity > 0 and raw.liquidity >= output_amount

        return PriceQuote(
            source_name=provider.name,
            price=price,
            output_amount=output_amount,
            input_amount=input_amount,
            price_impact=raw.price_impact,
            liquidity_available=liquidity_available,
            source_kind=provider.kind,
            response_time_ms=response_ms,
            confidence=quote_confidence(price, raw.liquidity, provider.default_confidence),
            timestamp=time.time(),
            liquidity=raw.liquidity,
        )

    def _failed(self, provider: QuoteProvider, pair: TokenPair, error: SourceError, started: float) -> PriceQuote:
        self.logger.warning(f"⚠️ {provider.name} failed for {pair.label}: {error}")
        return PriceQuote.failed(provider.name, pair, provider.kind, error.status, str(error),
                                 (time.perf_counter() - started) * 1000)

    def clear_expired_cache(self) -> int:
        return self.cache.clear_expired()

    def cache_stats(self) -> Dict[str, int]:
        return self.cache.stats()

    async def close(self):
        await asyncio.gather(*(p.close() for p in self.sources.values()), return_exceptions=True)
