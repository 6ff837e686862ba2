# dexarb/__init__.py
from .analyzer import AnalysisOptions, ArbitrageAnalyzer, ScoringWeights
from .collector import CollectionOptions, PriceCollector
from .errors import ResolutionError
from .models import (AnalysisResult, ArbitrageOpportunity, OutlierPolicy, PriceQuote, PriceSnapshot,
                     SourceKind, TokenPair)

__all__ = [
    "AnalysisOptions", "ArbitrageAnalyzer", "ScoringWeights",
    "CollectionOptions", "PriceCollector", "ResolutionError",
    "AnalysisResult", "ArbitrageOpportunity", "OutlierPolicy", "PriceQuote", "PriceSnapshot",
    "SourceKind", "TokenPair",
]
