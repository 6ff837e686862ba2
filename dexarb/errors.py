# dexarb/errors.py
from .models import QuoteStatus


class ArbitrageError(Exception):
    """Base class for everything this package raises."""


class ResolutionError(ArbitrageError):
    """
    A token symbol could not be mapped to a mint address.
    Fatal for the current collect/analyze call and never retried.
    """
    def __init__(self, symbol: str):
        self.symbol = symbol
        super().__init__(f"Unknown token symbol: {symbol}")


class SourceError(ArbitrageError):
    """
    A single quote source failed. The collector turns these into
    PriceQuote.error values; they never escape `collect`.
    """
    status = QuoteStatus.NETWORK_ERROR

    def __init__(self, source: str, message: str):
        self.source = source
        super().__init__(message)


class SourceTimeoutError(SourceError):
    status = QuoteStatus.TIMEOUT


class SourceNetworkError(SourceError):
    status = QuoteStatus.NETWORK_ERROR


class SourceParseError(SourceError):
    status = QuoteStatus.PARSE_ERROR


class InsufficientDataWarning(UserWarning):
    """
    Advisory only: fewer than two comparable prices were collected.
    Reported through AnalysisResult.warnings, never raised.
    """
    MESSAGE = "Insufficient valid price data for arbitrage analysis"
