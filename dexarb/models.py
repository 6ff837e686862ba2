# dexarb/models.py
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional
import time


class SourceKind(Enum):
    """Where a quote comes from: a single venue or a routing aggregator."""
    DIRECT = "direct"
    AGGREGATOR = "aggregator"


class QuoteStatus(Enum):
    """
    Result tag for a PriceQuote.
    Only OK quotes carry a comparable price.
    """
    OK = "OK"
    TIMEOUT = "TIMEOUT"
    NETWORK_ERROR = "NETWORK_ERROR"
    PARSE_ERROR = "PARSE_ERROR"
    CANCELLED = "CANCELLED"


class OutlierPolicy(Enum):
    KEEP_HIGH_CONFIDENCE = "keep_high_confidence"
    DROP = "drop"


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True, slots=True)
class TokenInfo:
    mint: str
    symbol: str
    decimals: int
    name: str = ""


@dataclass(frozen=True, slots=True)
class TokenPair:
    """
    A request to price `amount` of `from_symbol` in `to_symbol`.
    Mint/decimals fields are filled in by the resolver before quoting.
    """
    from_symbol: str
    to_symbol: str
    amount: Decimal
    from_mint: Optional[str] = None
    to_mint: Optional[str] = None
    from_decimals: Optional[int] = None
    to_decimals: Optional[int] = None

    def __post_init__(self):
        if not isinstance(self.amount, Decimal):
            object.__setattr__(self, "amount", Decimal(str(self.amount)))
        if not self.amount.is_finite() or self.amount <= 0:
            raise ValueError(f"Trade amount must be > 0, got {self.amount}")

    @property
    def label(self) -> str:
        return f"{self.from_symbol}/{self.to_symbol}"

    @property
    def resolved(self) -> bool:
        return None not in (self.from_mint, self.to_mint, self.from_decimals, self.to_decimals)


@dataclass(frozen=True, slots=True)
class RawQuote:
    """What a QuoteProvider hands back before the collector normalizes it."""
    in_amount_raw: int
    out_amount_raw: int
    price_impact: Decimal
    liquidity: Optional[Decimal] = None  # None = provider gives no depth hint


@dataclass(frozen=True, slots=True)
class PriceQuote:
    source_name: str
    price: Decimal
    output_amount: Decimal
    input_amount: Decimal
    price_impact: Decimal
    liquidity_available: bool
    source_kind: SourceKind
    response_time_ms: float
    confidence: float
    timestamp: float
    status: QuoteStatus = QuoteStatus.OK
    error: Optional[str] = None
    liquidity: Optional[Decimal] = None

    @property
    def is_valid(self) -> bool:
        return self.status is QuoteStatus.OK and self.error is None and self.price > 0

    @classmethod
    def failed(cls, source_name: str, pair: TokenPair, source_kind: SourceKind,
               status: QuoteStatus, error: str, response_time_ms: float) -> "PriceQuote":
        return cls(
            source_name=source_name,
            price=Decimal(0),
            output_amount=Decimal(0),
            input_amount=pair.amount,
            price_impact=Decimal(0),
            liquidity_available=False,
            source_kind=source_kind,
            response_time_ms=response_time_ms,
            confidence=0.0,
            timestamp=time.time(),
            status=status,
            error=error,
        )


@dataclass(frozen=True, slots=True)
class SnapshotMetadata:
    total_response_time_ms: float
    successful_sources: int
    failed_sources: int
    timestamp_ms: int
    request_id: str
    cancelled: bool = False

    @property
    def attempted_sources(self) -> int:
        return self.successful_sources + self.failed_sources


@dataclass(frozen=True, slots=True)
class PriceSnapshot:
    """
    Consolidated result of one parallel collection call.
    `quotes` maps a source slot ('raydium', 'jupiter', ...) to its quote.
    """
    quotes: Mapping[str, Optional[PriceQuote]]
    metadata: SnapshotMetadata

    def __post_init__(self):
        if not isinstance(self.quotes, MappingProxyType):
            object.__setattr__(self, "quotes", MappingProxyType(dict(self.quotes)))

    def valid_quotes(self) -> Dict[str, PriceQuote]:
        return {slot: q for slot, q in self.quotes.items() if q is not None and q.is_valid}


@dataclass(frozen=True, slots=True)
class ArbitrageOpportunity:
    """
    A buy-low / sell-high signal between two quote sources for the same pair.
    """
    pair: str
    buy_source: str
    sell_source: str
    buy_price: Decimal
    sell_price: Decimal
    spread: Decimal
    spread_percentage: Decimal
    estimated_gross_profit: Decimal
    estimated_profit: Decimal
    estimated_gas_cost: Decimal
    net_profit: Decimal
    confidence: float
    risk_score: float
    liquidity_score: float
    price_impact_total: Decimal
    response_time_advantage_ms: float
    market_efficiency: float
    timestamp: float
    request_id: str
    strategy: str = "direct_arbitrage"


@dataclass(slots=True)
class AnalysisMetrics:
    candidates_evaluated: int = 0
    viable_opportunities: int = 0
    outliers_removed: int = 0
    total_opportunities: int = 0
    average_spread: Decimal = Decimal(0)
    max_spread: Decimal = Decimal(0)
    market_efficiency: float = 1.0
    data_quality: float = 0.0
    analysis_time_ms: float = 0.0


@dataclass(slots=True)
class AnalysisResult:
    opportunities: List[ArbitrageOpportunity]
    snapshot: PriceSnapshot
    metrics: AnalysisMetrics
    warnings: List[str] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)

    @property
    def best(self) -> Optional[ArbitrageOpportunity]:
        return self.opportunities[0] if self.opportunities else None


@dataclass(slots=True)
class ArbitrageStatistics:
    total_opportunities_analyzed: int
    average_spread: Decimal
    max_spread_seen: Decimal
    success_rate: float
