import random
from decimal import Decimal

import pytest

from dexarb.config import DEFAULT_CONFIG, load_config
from dexarb.errors import SourceNetworkError, SourceParseError
from dexarb.models import SourceKind, TokenPair
from dexarb.providers import JupiterProvider, SimulatedVenueProvider, build_sources
from dexarb.tokens import StaticTokenRegistry, resolve_pair

JUPITER_QUOTE = {
    "inputMint": "So11111111111111111111111111111111111111112",
    "inAmount": "1000000000",
    "outputMint": "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v",
    "outAmount": "185512345",
    "priceImpactPct": "0.0012",
    "routePlan": [{"swapInfo": {"label": "Whirlpool"}, "percent": 100}],
}


class TestJupiterParsing:

    def test_parses_amounts_and_impact(self):
        raw = JupiterProvider().parse_quote(JUPITER_QUOTE)
        assert raw.in_amount_raw == 1_000_000_000
        assert raw.out_amount_raw == 185_512_345
        assert raw.price_impact == Decimal("0.0012")
        assert raw.liquidity is None

    def test_missing_route_plan(self):
        payload = dict(JUPITER_QUOTE, routePlan=[])
        with pytest.raises(SourceParseError):
            JupiterProvider().parse_quote(payload)

    def test_error_payload(self):
        with pytest.raises(SourceNetworkError):
            JupiterProvider().parse_quote({"error": "Could not find any route"})

    @pytest.mark.parametrize("payload", [
        None,
        ["not", "a", "dict"],
        dict(JUPITER_QUOTE, outAmount="lots"),
        {k: v for k, v in JUPITER_QUOTE.items() if k != "inAmount"},
    ])
    def test_malformed_payload(self, payload):
        with pytest.raises(SourceParseError):
            JupiterProvider().parse_quote(payload)

    @pytest.mark.asyncio
    async def test_unresolved_pair_is_rejected_before_any_request(self, sol_usdc):
        provider = JupiterProvider()
        with pytest.raises(SourceParseError):
            await provider.get_quote(sol_usdc)
        await provider.close()


class TestSimulatedVenue:

    def _venue(self, **kwargs):
        return SimulatedVenueProvider("Raydium", {"SOL/USDC": 185.5}, latency_ms=(0, 0),
                                      rng=random.Random(7), **kwargs)

    @pytest.mark.asyncio
    async def test_quote_stays_near_reference(self, sol_usdc):
        pair = resolve_pair(sol_usdc, StaticTokenRegistry())
        raw = await self._venue(variation=0.01).get_quote(pair)

        assert raw.in_amount_raw == 1_000_000_000
        price = Decimal(raw.out_amount_raw) / Decimal(10 ** 6)
        assert Decimal("184.5") < price < Decimal("186.5")
        assert Decimal(0) <= raw.price_impact <= Decimal("0.005")
        assert Decimal(1_000_000) <= raw.liquidity <= Decimal(10_000_000)

    @pytest.mark.asyncio
    async def test_unlisted_market(self):
        pair = resolve_pair(TokenPair("BONK", "USDC", Decimal(1)),
                            StaticTokenRegistry())
        with pytest.raises(SourceNetworkError):
            await self._venue().get_quote(pair)

    @pytest.mark.asyncio
    async def test_unresolved_pair(self, sol_usdc):
        with pytest.raises(SourceParseError):
            await self._venue().get_quote(sol_usdc)


class TestBuildSources:

    def test_default_slots(self):
        sources = build_sources(load_config("does-not-exist.yaml"))
        assert list(sources) == ["raydium", "orca", "phoenix", "jupiter"]
        assert isinstance(sources["jupiter"], JupiterProvider)
        assert sources["jupiter"].kind is SourceKind.AGGREGATOR
        assert all(isinstance(sources[s], SimulatedVenueProvider) for s in ("raydium", "orca", "phoenix"))
        assert sources["orca"].name == "Orca"

    def test_disabled_source_is_skipped(self):
        config = load_config("does-not-exist.yaml")
        config["sources"]["phoenix"]["enabled"] = False
        assert "phoenix" not in build_sources(config)

    def test_defaults_are_not_mutated(self):
        config = load_config("does-not-exist.yaml")
        config["sources"]["orca"]["enabled"] = False
        assert "enabled" not in DEFAULT_CONFIG["sources"]["orca"]
