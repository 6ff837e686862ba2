# dexarb/providers.py
import asyncio
import json
import logging
import random
from decimal import Decimal, InvalidOperation
from typing import Dict, Mapping, Optional, Tuple

import aiohttp

from .errors import SourceNetworkError, SourceParseError, SourceTimeoutError
from .models import RawQuote, SourceKind, TokenPair
from .tokens import to_raw_amount

JUPITER_API = "https://quote-api.jup.ag/v6"


class QuoteProvider:
    """
    One price source. Implementations return a RawQuote or raise a SourceError.
    `default_confidence` is used when the source gives no liquidity hint.
    """
    kind = SourceKind.DIRECT
    default_confidence = 0.5

    def __init__(self, name: str):
        self.name = name

    async def get_quote(self, pair: TokenPair, slippage_bps: int = 50) -> RawQuote:
        raise NotImplementedError

    async def close(self):
        pass


class JupiterProvider(QuoteProvider):
    """
    Aggregated quotes from the Jupiter v6 quote API.
    The session is borrowed if given, otherwise one is opened lazily and owned.
    """
    kind = SourceKind.AGGREGATOR
    default_confidence = 0.95

    def __init__(self, name: str = "Jupiter", api_endpoint: str = JUPITER_API,
                 session: Optional[aiohttp.ClientSession] = None, request_timeout_s: float = 10.0):
        super().__init__(name)
        self.api_endpoint = api_endpoint.rstrip("/")
        self.request_timeout_s = request_timeout_s
        self._session = session
        self._owns_session = session is None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def get_quote(self, pair: TokenPair, slippage_bps: int = 50) -> RawQuote:
        if not pair.resolved:
            raise SourceParseError(self.name, "Missing token information for Jupiter call")

        params = {
            "inputMint": pair.from_mint,
            "outputMint": pair.to_mint,
            "amount": str(to_raw_amount(pair.amount, pair.from_decimals)),
            "slippageBps": str(slippage_bps),
            "onlyDirectRoutes": "false",
            "asLegacyTransaction": "false",
        }
        session = await self._get_session()
        try:
            async with session.get(f"{self.api_endpoint}/quote", params=params,
                                   timeout=aiohttp.ClientTimeout(total=self.request_timeout_s)) as response:
                if response.status != 200:
                    raise SourceNetworkError(self.name, f"HTTP {response.status} from Jupiter quote API")
                payload = await response.json(content_type=None)
        except asyncio.TimeoutError as e:
            raise SourceTimeoutError(self.name, f"Jupiter request exceeded {self.request_timeout_s}s") from e
        except aiohttp.ClientError as e:
            raise SourceNetworkError(self.name, f"Jupiter request failed: {e}") from e
        except json.JSONDecodeError as e:
            raise SourceParseError(self.name, f"Jupiter returned invalid JSON: {e}") from e

        return self.parse_quote(payload)

    def parse_quote(self, payload) -> RawQuote:
        if not isinstance(payload, dict):
            raise SourceParseError(self.name, "Unexpected Jupiter payload type")
        if "error" in payload:
            raise SourceNetworkError(self.name, f"Jupiter error: {payload['error']}")
        if not payload.get("routePlan"):
            raise SourceParseError(self.name, "Jupiter quote has no route plan")
        try:
            return RawQuote(
                in_amount_raw=int(payload["inAmount"]),
                out_amount_raw=int(payload["outAmount"]),
                price_impact=Decimal(str(payload.get("priceImpactPct") or 0)),
                liquidity=None,
            )
        except (KeyError, ValueError, TypeError, InvalidOperation) as e:
            raise SourceParseError(self.name, f"Malformed Jupiter quote: {e}") from e

    async def close(self):
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()


class SimulatedVenueProvider(QuoteProvider):
    """
    Stand-in for a direct DEX integration (Raydium, Orca, Phoenix).
    Randomized latency, price jitter, impact and pool depth around a
    per-pair reference price. Swap for a real client without touching callers.
    """
    kind = SourceKind.DIRECT

    def __init__(self, name: str, reference_prices: Mapping[str, float],
                 latency_ms: Tuple[float, float] = (50, 150), variation: float = 0.01,
                 liquidity_range: Tuple[float, float] = (1_000_000, 10_000_000),
                 max_price_impact: float = 0.005, rng: Optional[random.Random] = None):
        super().__init__(name)
        self.reference_prices = {k.upper(): v for k, v in reference_prices.items()}
        self.latency_ms = latency_ms
        self.variation = variation
        self.liquidity_range = liquidity_range
        self.max_price_impact = max_price_impact
        self.rng = rng or random.Random()

    async def get_quote(self, pair: TokenPair, slippage_bps: int = 50) -> RawQuote:
        await asyncio.sleep(self.rng.uniform(*self.latency_ms) / 1000)

        reference = self.reference_prices.get(pair.label.upper())
        if reference is None:
            raise SourceNetworkError(self.name, f"{self.name} has no market for {pair.label}")
        if not pair.resolved:
            raise SourceParseError(self.name, "Pair is missing decimals")

        jitter = (self.rng.random() - 0.5) * self.variation
        output = pair.amount * Decimal(str(reference * (1 + jitter)))
        return RawQuote(
            in_amount_raw=to_raw_amount(pair.amount, pair.from_decimals),
            out_amount_raw=to_raw_amount(output, pair.to_decimals),
            price_impact=Decimal(str(round(self.rng.random() * self.max_price_impact, 8))),
            liquidity=Decimal(str(round(self.rng.uniform(*self.liquidity_range), 2))),
        )


DEFAULT_VENUES = ("raydium", "orca", "phoenix")


def build_sources(config: dict, session: Optional[aiohttp.ClientSession] = None,
                  logger: Optional[logging.Logger] = None) -> Dict[str, QuoteProvider]:
    """
    Builds the slot -> provider map from the `sources` and `jupiter` config sections.
    """
    logger = logger or logging.getLogger("dexarb")
    sources: Dict[str, QuoteProvider] = {}
    reference_prices = config.get("reference_prices", {})

    for slot, cfg in config.get("sources", {}).items():
        if not cfg.get("enabled", True):
            logger.info(f"Source {slot} disabled in config")
            continue

        if cfg.get("kind", "direct") == "aggregator":
            jup = config.get("jupiter", {})
            sources[slot] = JupiterProvider(
                name=cfg.get("name", slot.capitalize()),
                api_endpoint=jup.get("api_endpoint", JUPITER_API),
                session=session,
                request_timeout_s=jup.get("request_timeout_s", 10.0),
            )
        else:
            sources[slot] = SimulatedVenueProvider(
                name=cfg.get("name", slot.capitalize()),
                reference_prices=reference_prices,
                latency_ms=tuple(cfg.get("latency_ms", (50, 150))),
                variation=cfg.get("variation", 0.01),
                liquidity_range=tuple(cfg.get("liquidity_range", (1_000_000, 10_000_000))),
                max_price_impact=cfg.get("max_price_impact", 0.005),
            )

    logger.info(f"Configured {len(sources)} quote sources: {', '.join(sources)}")
    return sources
