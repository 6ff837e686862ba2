# dexarb/tokens.py
from dataclasses import replace
from decimal import Decimal, ROUND_FLOOR
from typing import Dict, Iterable, Optional, Protocol

from .errors import ResolutionError
from .models import TokenInfo, TokenPair

# Well-known SPL mints. Extend through the `tokens` section of config.yaml.
KNOWN_TOKENS: Dict[str, TokenInfo] = {
    t.symbol: t for t in [
        TokenInfo("So11111111111111111111111111111111111111112", "SOL", 9, "Solana"),
        TokenInfo("EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v", "USDC", 6, "USD Coin"),
        TokenInfo("Es9vMFrzaCERmJfrF4H2FYD4KCoNkY11McCe8BenwNYB", "USDT", 6, "Tether USD"),
        TokenInfo("4k3Dyjzvzp8eMZWUXbBCjEvwSkkk59S5iCNLY3QrkX6R", "RAY", 6, "Raydium"),
        TokenInfo("orcaEKTdK7LKz57vaAYr9QeNsVEPfiu6QeMU1kektZE", "ORCA", 6, "Orca"),
        TokenInfo("JUPyiwrYJFskUPiHa7hkeR8VUtAeFoSYbKedZNsDvCN", "JUP", 6, "Jupiter"),
        TokenInfo("DezXAZ8z7PnrnRJjz3wXBoRgixCa6xjnB7YaB1pPB263", "BONK", 5, "Bonk"),
        TokenInfo("EKpQGSJtjMFqKZ9KQanSqYXRcF8fBopzLHYxdM65zcjm", "WIF", 6, "dogwifhat"),
        TokenInfo("7GCihgDB8fe6KNjn2MYtkzZcRjQy3t9GHdC8uHYmW2hr", "POPCAT", 9, "Popcat"),
        TokenInfo("7xKXtg2CW87d97TXJSDpbD5jBkheTqA83TZRuJosgAsU", "SAMO", 9, "Samoyed Coin"),
        TokenInfo("9n4nbM75f5Ui33ZbPYXn59EwSgE8CGsHtAeTH5YFeJ9E", "BTC", 6, "Bitcoin (Portal)"),
        TokenInfo("7vfCXTUXx5WJV5JADk17DUJ4ksgau7utNKj4b963voxs", "ETH", 8, "Ethereum (Portal)"),
        TokenInfo("MangoCzJ36AjZyKwVj3VnYU4GTonjfVEnJmvvWaxLac", "MNGO", 6, "Mango"),
        TokenInfo("SLNDpmoWTVADgEdndyvWzroNL7zSi1dF9PC3xHGtPwp", "SLND", 6, "Solend"),
    ]
}


class TokenResolver(Protocol):
    def resolve_symbol(self, symbol: str) -> Optional[TokenInfo]:
        ...


class StaticTokenRegistry:
    """In-memory symbol -> TokenInfo table. Lookups are case-insensitive."""

    def __init__(self, extra: Optional[Iterable[TokenInfo]] = None):
        self._tokens: Dict[str, TokenInfo] = dict(KNOWN_TOKENS)
        for token in extra or ():
            self.register(token)

    def register(self, token: TokenInfo):
        self._tokens[token.symbol.upper()] = token

    def resolve_symbol(self, symbol: str) -> Optional[TokenInfo]:
        return self._tokens.get(symbol.upper())

    def __contains__(self, symbol: str) -> bool:
        return symbol.upper() in self._tokens


def resolve_pair(pair: TokenPair, resolver: TokenResolver) -> TokenPair:
    """
    Fill in mint addresses and decimals for both legs.
    Raises ResolutionError on the first unknown symbol.
    """
    from_token = resolver.resolve_symbol(pair.from_symbol)
    if from_token is None:
        raise ResolutionError(pair.from_symbol)
    to_token = resolver.resolve_symbol(pair.to_symbol)
    if to_token is None:
        raise ResolutionError(pair.to_symbol)

    return replace(
        pair,
        from_mint=from_token.mint,
        to_mint=to_token.mint,
        from_decimals=from_token.decimals,
        to_decimals=to_token.decimals,
    )


def to_raw_amount(amount: Decimal, decimals: int) -> int:
    return int((amount * (Decimal(10) ** decimals)).to_integral_value(rounding=ROUND_FLOOR))


def from_raw_amount(raw, decimals: int) -> Decimal:
    return Decimal(str(raw)) / (Decimal(10) ** decimals)
