# dexarb/analyzer.py
import logging
import math
import threading
import time
from collections import deque
from dataclasses import dataclass
from decimal import Decimal
from typing import Deque, List, Optional, Tuple

from .collector import CollectionOptions, PriceCollector
from .errors import InsufficientDataWarning
from .models import (AnalysisMetrics, AnalysisResult, ArbitrageOpportunity, ArbitrageStatistics,
                     OutlierPolicy, PriceQuote, PriceSnapshot, SourceKind, TokenPair)
from .tokens import StaticTokenRegistry, TokenResolver, resolve_pair

OUTLIER_WARNING = "large spread likely due to low liquidity or API delay"


@dataclass(slots=True)
class AnalysisOptions:
    min_profit_threshold: Decimal = Decimal("0.001")  # 0.1% spread
    max_risk_score: float = 0.7
    include_gas_costs: bool = True
    estimated_gas_price: Decimal = Decimal("0.005")   # SOL per round trip
    max_price_impact: Decimal = Decimal("0.02")
    require_liquidity: bool = True
    enable_statistical_filtering: bool = True
    outlier_policy: OutlierPolicy = OutlierPolicy.KEEP_HIGH_CONFIDENCE


@dataclass(frozen=True, slots=True)
class ScoringWeights:
    """
    Hand-tuned heuristics for confidence, risk and liquidity scoring.
    Defaults reproduce the scanner's historical behaviour.
    """
    # confidence
    reliability_weight: float = 0.4
    aggregator_reliability: float = 0.95
    direct_reliability: float = 0.8
    latency_weight: float = 0.2
    latency_baseline_ms: float = 2000.0
    quote_confidence_weight: float = 0.4
    # risk
    risky_spread: float = 0.005
    spread_risk_scale: float = 40.0
    spread_risk_cap: float = 0.4
    impact_risk_scale: float = 15.0
    impact_risk_cap: float = 0.3
    latency_risk_per_second: float = 0.2
    latency_risk_cap: float = 0.2
    low_confidence_risk: float = 0.1
    # liquidity
    both_liquid_score: float = 0.6
    both_confident_score: float = 0.4
    confident_quote: float = 0.7
    required_liquidity_score: float = 0.5
    # outliers / history
    outlier_sigma: float = 2.0
    outlier_keep_confidence: float = 0.8
    history_size: int = 500
    history_min_samples: int = 50
    history_factor: float = 3.0
    # reporting
    slow_collection_ms: float = 3000.0
    slow_response_recommendation_ms: float = 2000.0
    high_risk_recommendation: float = 0.5
    thin_liquidity_recommendation: float = 0.7


def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return min(high, max(low, value))


class ArbitrageAnalyzer:
    """
    Pairwise comparison of collected quotes into ranked arbitrage opportunities.

    Each call is independent except for a bounded history of surviving
    opportunities, used only for advisory warnings.
    """
    def __init__(self, collector: Optional[PriceCollector] = None, resolver: Optional[TokenResolver] = None,
                 weights: Optional[ScoringWeights] = None, logger: Optional[logging.Logger] = None):
        self.collector = collector
        self.resolver = resolver or (collector.resolver if collector else StaticTokenRegistry())
        self.weights = weights or ScoringWeights()
        self.logger = logger or logging.getLogger("dexarb")
        self._history: Deque[ArbitrageOpportunity] = deque(maxlen=self.weights.history_size)
        self._history_lock = threading.Lock()

    async def analyze(self, pair: TokenPair, snapshot: Optional[PriceSnapshot] = None,
                      options: Optional[AnalysisOptions] = None,
                      collection_options: Optional[CollectionOptions] = None) -> AnalysisResult:
        """
        Collects a fresh snapshot unless one is given, then evaluates it.
        Collection defaults to live quotes (caching off).
        """
        if snapshot is None:
            if self.collector is None:
                raise ValueError("analyze() needs either a snapshot or a collector")
            snapshot = await self.collector.collect(pair, collection_options or CollectionOptions(enable_caching=False))
        return self.evaluate(pair, snapshot, options)

    def evaluate(self, pair: TokenPair, snapshot: PriceSnapshot,
                 options: Optional[AnalysisOptions] = None) -> AnalysisResult:
        opts = options or AnalysisOptions()
        started = time.perf_counter()
        pair = resolve_pair(pair, self.resolver)
        warnings: List[str] = []
        recommendations: List[str] = []

        self._validate_snapshot(snapshot, warnings)

        candidates = self._find_candidates(pair, snapshot, opts, warnings)
        viable = [opp for opp in candidates if self._is_viable(opp, opts)]

        if opts.enable_statistical_filtering:
            survivors = self._filter_outliers(viable, opts.outlier_policy, warnings)
            self._compare_with_history(survivors, warnings)
        else:
            survivors = list(viable)

        survivors.sort(key=lambda o: o.net_profit, reverse=True)

        metrics = self._metrics(candidates, viable, survivors, snapshot, started)
        self._recommend(survivors, snapshot, recommendations)
        self._remember(survivors)

        if survivors:
            best = survivors[0]
            self.logger.info(
                f"✨ {pair.label}: {len(survivors)} opportunity(ies), best "
                f"{best.spread_percentage * 100:.3f}% {best.buy_source} -> {best.sell_source} | Net: {best.net_profit:.6f}"
            )
        else:
            self.logger.debug(f"{pair.label}: no viable opportunities ({len(candidates)} candidates)")

        return AnalysisResult(
            opportunities=survivors,
            snapshot=snapshot,
            metrics=metrics,
            warnings=warnings,
            recommendations=recommendations,
        )

    # --- Opportunity construction -------------------------------------------

    def _find_candidates(self, pair: TokenPair, snapshot: PriceSnapshot, opts: AnalysisOptions,
                         warnings: List[str]) -> List[ArbitrageOpportunity]:
        valid = list(snapshot.valid_quotes().items())
        if len(valid) < 2:
            warnings.append(InsufficientDataWarning.MESSAGE)
            return []

        candidates = []
        for buy_slot, buy in valid:
            for sell_slot, sell in valid:
                if buy_slot == sell_slot:
                    continue
                opp = self._build_opportunity(pair, (buy_slot, buy), (sell_slot, sell), opts,
                                              snapshot.metadata.request_id)
                if opp is not None:
                    candidates.append(opp)
        return candidates

    def _build_opportunity(self, pair: TokenPair, buy_side: Tuple[str, PriceQuote], sell_side: Tuple[str, PriceQuote],
                           opts: AnalysisOptions, request_id: str) -> Optional[ArbitrageOpportunity]:
        buy_slot, buy = buy_side
        sell_slot, sell = sell_side
        if sell.price <= buy.price:
            return None

        spread = sell.price - buy.price
        spread_pct = spread / buy.price

        impact_total = buy.price_impact + sell.price_impact
        gross = pair.amount * spread
        estimated = gross - gross * impact_total
        gas = opts.estimated_gas_price if opts.include_gas_costs else Decimal(0)

        return ArbitrageOpportunity(
            pair=pair.label,
            buy_source=buy_slot,
            sell_source=sell_slot,
            buy_price=buy.price,
            sell_price=sell.price,
            spread=spread,
            spread_percentage=spread_pct,
            estimated_gross_profit=gross,
            estimated_profit=estimated,
            estimated_gas_cost=gas,
            net_profit=estimated - gas,
            confidence=self.confidence(buy, sell),
            risk_score=self.risk_score(spread_pct, impact_total, buy, sell),
            liquidity_score=self.liquidity_score(buy, sell),
            price_impact_total=impact_total,
            response_time_advantage_ms=max(0.0, self.weights.latency_baseline_ms
                                            - max(buy.response_time_ms, sell.response_time_ms)),
            market_efficiency=self.market_efficiency(spread_pct),
            timestamp=time.time(),
            request_id=request_id,
        )

    # --- Scores ---------------------------------------------------------------

    def _reliability(self, quote: PriceQuote) -> float:
        w = self.weights
        return w.aggregator_reliability if quote.source_kind is SourceKind.AGGREGATOR else w.direct_reliability

    def confidence(self, buy: PriceQuote, sell: PriceQuote) -> float:
        w = self.weights
        reliability = (self._reliability(buy) + self._reliability(sell)) / 2
        avg_latency = (buy.response_time_ms + sell.response_time_ms) / 2
        latency_score = max(0.0, 1 - avg_latency / w.latency_baseline_ms)
        quote_conf = (buy.confidence + sell.confidence) / 2
        return _clamp(reliability * w.reliability_weight
                      + latency_score * w.latency_weight
                      + quote_conf * w.quote_confidence_weight)

    def risk_score(self, spread_pct: Decimal, impact_total: Decimal, buy: PriceQuote, sell: PriceQuote) -> float:
        """0 = low risk, 1 = high risk."""
        w = self.weights
        risk = 0.0
        if spread_pct > Decimal(str(w.risky_spread)):
            risk += min(w.spread_risk_cap, float(spread_pct) * w.spread_risk_scale)
        risk += min(w.impact_risk_cap, float(impact_total) * w.impact_risk_scale)
        latency_gap_s = abs(buy.response_time_ms - sell.response_time_ms) / 1000
        risk += min(w.latency_risk_cap, latency_gap_s * w.latency_risk_per_second)
        risk += (1 - (buy.confidence + sell.confidence) / 2) * w.low_confidence_risk
        return _clamp(risk)

    def liquidity_score(self, buy: PriceQuote, sell: PriceQuote) -> float:
        w = self.weights
        score = 0.0
        if buy.liquidity_available and sell.liquidity_available:
            score += w.both_liquid_score
        if buy.confidence > w.confident_quote and sell.confidence > w.confident_quote:
            score += w.both_confident_score
        return _clamp(score)

    @staticmethod
    def market_efficiency(spread_pct: Decimal) -> float:
        return _clamp(1 - float(spread_pct) * 100)

    def _is_viable(self, opp: ArbitrageOpportunity, opts: AnalysisOptions) -> bool:
        if opp.spread_percentage < opts.min_profit_threshold:
            return False
        if opp.risk_score > opts.max_risk_score:
            return False
        if opp.price_impact_total > opts.max_price_impact:
            return False
        if opp.net_profit <= 0:
            return False
        if opts.require_liquidity and opp.liquidity_score < self.weights.required_liquidity_score:
            return False
        return True

    # --- Statistical filtering -------------------------------------------------

    def _filter_outliers(self, opportunities: List[ArbitrageOpportunity], policy: OutlierPolicy,
                         warnings: List[str]) -> List[ArbitrageOpportunity]:
        """
        Drops spreads above mean + k*sigma of this call's viable set.
        With KEEP_HIGH_CONFIDENCE, confident outliers survive with a warning.
        """
        if not opportunities:
            return []

        w = self.weights
        spreads = [o.spread_percentage for o in opportunities]
        mean = sum(spreads, Decimal(0)) / len(spreads)
        variance = sum(((s - mean) ** 2 for s in spreads), Decimal(0)) / len(spreads)
        threshold = mean + Decimal(str(math.sqrt(float(variance)))) * Decimal(str(w.outlier_sigma))

        kept = []
        for opp in opportunities:
            if opp.spread_percentage <= threshold:
                kept.append(opp)
                continue
            if policy is OutlierPolicy.KEEP_HIGH_CONFIDENCE and opp.confidence > w.outlier_keep_confidence:
                warnings.append(
                    f"Large spread detected ({opp.spread_percentage * 100:.3f}%, "
                    f"{opp.buy_source} -> {opp.sell_source}) - {OUTLIER_WARNING}"
                )
                kept.append(opp)
            else:
                self.logger.info(
                    f"Dropped outlier {opp.buy_source} -> {opp.sell_source}: "
                    f"{opp.spread_percentage * 100:.3f}% (confidence {opp.confidence:.2f})"
                )
        return kept

    def _compare_with_history(self, opportunities: List[ArbitrageOpportunity], warnings: List[str]):
        w = self.weights
        with self._history_lock:
            if len(self._history) <= w.history_min_samples:
                return
            historical_mean = sum((o.spread_percentage for o in self._history), Decimal(0)) / len(self._history)

        limit = historical_mean * Decimal(str(w.history_factor))
        for opp in opportunities:
            if opp.spread_percentage > limit:
                warnings.append(
                    f"Opportunity {opp.buy_source} -> {opp.sell_source} significantly above "
                    f"historical average - verify data quality"
                )

    def _remember(self, opportunities: List[ArbitrageOpportunity]):
        with self._history_lock:
            self._history.extend(opportunities)

    # --- Reporting ---------------------------------------------------------------

    def _validate_snapshot(self, snapshot: PriceSnapshot, warnings: List[str]):
        meta = snapshot.metadata
        if meta.successful_sources < 2:
            warnings.append("Insufficient price sources for reliable arbitrage analysis")
        if meta.total_response_time_ms > self.weights.slow_collection_ms:
            warnings.append("Slow response times may affect arbitrage viability")
        if meta.failed_sources > meta.successful_sources:
            warnings.append("More failed sources than successful - data quality concerns")
        if meta.cancelled:
            warnings.append("Price collection was cancelled - snapshot is partial")

    def _metrics(self, candidates, viable, survivors, snapshot: PriceSnapshot, started: float) -> AnalysisMetrics:
        spreads = [o.spread_percentage for o in survivors]
        meta = snapshot.metadata
        attempted = meta.successful_sources + meta.failed_sources
        return AnalysisMetrics(
            candidates_evaluated=len(candidates),
            viable_opportunities=len(viable),
            outliers_removed=len(viable) - len(survivors),
            total_opportunities=len(survivors),
            average_spread=sum(spreads, Decimal(0)) / len(spreads) if spreads else Decimal(0),
            max_spread=max(spreads) if spreads else Decimal(0),
            market_efficiency=(sum(o.market_efficiency for o in survivors) / len(survivors)) if survivors else 1.0,
            data_quality=meta.successful_sources / attempted if attempted else 0.0,
            analysis_time_ms=(time.perf_counter() - started) * 1000,
        )

    def _recommend(self, opportunities: List[ArbitrageOpportunity], snapshot: PriceSnapshot,
                   recommendations: List[str]):
        w = self.weights
        if not opportunities:
            recommendations.append("No arbitrage opportunities found - market appears efficient")
            recommendations.append("Consider monitoring during high volatility periods")
            return

        best = opportunities[0]
        recommendations.append(
            f"Best opportunity: {best.spread_percentage * 100:.3f}% spread "
            f"({best.buy_source} -> {best.sell_source}), net {best.net_profit:.6f}"
        )
        if best.risk_score > w.high_risk_recommendation:
            recommendations.append("High risk detected - verify liquidity and price impact")
        if snapshot.metadata.total_response_time_ms > w.slow_response_recommendation_ms:
            recommendations.append("Consider optimizing API response times for better arbitrage detection")
        if all(o.liquidity_score < w.thin_liquidity_recommendation for o in opportunities):
            recommendations.append("Monitor liquidity conditions - current opportunities may be difficult to execute")

    def statistics(self) -> ArbitrageStatistics:
        with self._history_lock:
            history = list(self._history)
        if not history:
            return ArbitrageStatistics(0, Decimal(0), Decimal(0), 0.0)
        spreads = [o.spread_percentage for o in history]
        return ArbitrageStatistics(
            total_opportunities_analyzed=len(history),
            average_spread=sum(spreads, Decimal(0)) / len(spreads),
            max_spread_seen=max(spreads),
            success_rate=sum(1 for o in history if o.net_profit > 0) / len(history),
        )

    @property
    def history_size(self) -> int:
        with self._history_lock:
            return len(self._history)
