from decimal import Decimal

import pytest

from dexarb.errors import ResolutionError
from dexarb.models import PriceQuote, QuoteStatus, SourceKind, TokenInfo, TokenPair
from dexarb.tokens import KNOWN_TOKENS, StaticTokenRegistry, from_raw_amount, resolve_pair, to_raw_amount


class TestTokenPair:

    def test_amount_is_decimal(self):
        pair = TokenPair("SOL", "USDC", 1.5)
        assert pair.amount == Decimal("1.5")
        assert pair.label == "SOL/USDC"
        assert not pair.resolved

    @pytest.mark.parametrize("amount", ["0", "-1", "NaN", "Infinity"])
    def test_bad_amount_is_rejected(self, amount):
        with pytest.raises(ValueError):
            TokenPair("SOL", "USDC", Decimal(amount))


class TestRegistry:

    def test_lookup_is_case_insensitive(self):
        registry = StaticTokenRegistry()
        assert registry.resolve_symbol("sol") is KNOWN_TOKENS["SOL"]
        assert "usdc" in registry
        assert registry.resolve_symbol("NOPE") is None

    def test_extra_tokens(self):
        pyth = TokenInfo("HZ1JovNiVvGrGNiiYvEozEVgZ58xaU3RKwX8eACQBCt3", "PYTH", 6, "Pyth")
        registry = StaticTokenRegistry([pyth])
        assert registry.resolve_symbol("pyth") == pyth

    def test_resolve_pair_fills_both_legs(self, sol_usdc):
        resolved = resolve_pair(sol_usdc, StaticTokenRegistry())
        assert resolved.resolved
        assert resolved.from_mint == KNOWN_TOKENS["SOL"].mint
        assert resolved.from_decimals == 9
        assert resolved.to_decimals == 6
        assert resolved.amount == sol_usdc.amount

    @pytest.mark.parametrize("pair, missing", [
        (TokenPair("XXX", "USDC", Decimal(1)), "XXX"),
        (TokenPair("SOL", "YYY", Decimal(1)), "YYY"),
        (TokenPair("XXX", "YYY", Decimal(1)), "XXX"),
    ])
    def test_unknown_symbol(self, pair, missing):
        with pytest.raises(ResolutionError) as exc:
            resolve_pair(pair, StaticTokenRegistry())
        assert exc.value.symbol == missing
        assert str(exc.value) == f"Unknown token symbol: {missing}"


class TestRawAmounts:

    def test_to_raw_floors(self):
        assert to_raw_amount(Decimal("1"), 9) == 1_000_000_000
        assert to_raw_amount(Decimal("0.1234567"), 6) == 123456

    def test_from_raw(self):
        assert from_raw_amount(185_500_000, 6) == Decimal("185.5")
        assert from_raw_amount("1", 9) == Decimal("0.000000001")


def test_failed_quote_is_invalid(sol_usdc):
    quote = PriceQuote.failed("Orca", sol_usdc, SourceKind.DIRECT, QuoteStatus.TIMEOUT, "Timeout after 5000ms", 5000.0)
    assert not quote.is_valid
    assert quote.price == 0
    assert quote.confidence == 0
    assert quote.status is QuoteStatus.TIMEOUT
