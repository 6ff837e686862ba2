# dexarb/config.py
import copy
import os
from decimal import Decimal
from typing import Any, Dict, List

import yaml

from .analyzer import AnalysisOptions
from .collector import CollectionOptions
from .models import OutlierPolicy, TokenInfo

DEFAULT_CONFIG: Dict[str, Any] = {
    "system": {
        "log_level": "INFO",
        "environment": "simulation",
    },
    "collection": {
        "timeout_ms": 5000,
        "include_aggregator": True,
        "enable_caching": False,
        "cache_ttl_ms": 10000,
        "slippage_bps": 50,
    },
    "analysis": {
        "min_profit_threshold": "0.001",
        "max_risk_score": 0.7,
        "include_gas_costs": True,
        "estimated_gas_price": "0.005",
        "max_price_impact": "0.02",
        "require_liquidity": True,
        "enable_statistical_filtering": True,
        "outlier_policy": "keep_high_confidence",
    },
    "sources": {
        "raydium": {"name": "Raydium", "kind": "direct", "latency_ms": [50, 150], "variation": 0.01,
                    "liquidity_range": [1_000_000, 10_000_000], "max_price_impact": 0.005},
        "orca": {"name": "Orca", "kind": "direct", "latency_ms": [40, 120], "variation": 0.008,
                 "liquidity_range": [800_000, 7_800_000], "max_price_impact": 0.004},
        "phoenix": {"name": "Phoenix", "kind": "direct", "latency_ms": [60, 180], "variation": 0.012,
                    "liquidity_range": [500_000, 5_500_000], "max_price_impact": 0.008},
        "jupiter": {"name": "Jupiter", "kind": "aggregator"},
    },
    "reference_prices": {
        "SOL/USDC": 185.5,
        "SOL/USDT": 185.4,
        "RAY/SOL": 0.0135,
        "ORCA/SOL": 0.0185,
        "JUP/SOL": 0.0048,
    },
    "jupiter": {
        "api_endpoint": "https://quote-api.jup.ag/v6",
        "request_timeout_s": 10.0,
    },
    "tokens": [],
    "scanner": {
        "pairs": ["SOL/USDC", "SOL/USDT", "RAY/SOL", "ORCA/SOL", "JUP/SOL"],
        "amount": "1",
        "scan_interval_s": 5,
        "max_scans": 0,
    },
    "audit": {
        "scan_log": "data/scan_log.csv",
    },
}


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in (override or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(path: str = "config.yaml") -> Dict[str, Any]:
    """
    Loads config.yaml over DEFAULT_CONFIG. A missing file yields the defaults.
    """
    if not os.path.exists(path):
        return copy.deepcopy(DEFAULT_CONFIG)
    with open(path, "r") as f:
        raw = yaml.safe_load(f) or {}
    if not isinstance(raw, dict):
        raise ValueError(f"{path} must contain a YAML mapping at the top level")
    return _merge(DEFAULT_CONFIG, raw)


def collection_options_from_config(config: Dict[str, Any]) -> CollectionOptions:
    c = config.get("collection", {})
    return CollectionOptions(
        timeout_ms=float(c.get("timeout_ms", 5000)),
        include_aggregator=bool(c.get("include_aggregator", True)),
        enable_caching=bool(c.get("enable_caching", False)),
        cache_ttl_ms=float(c.get("cache_ttl_ms", 10000)),
        slippage_bps=int(c.get("slippage_bps", 50)),
    )


def analysis_options_from_config(config: Dict[str, Any]) -> AnalysisOptions:
    a = config.get("analysis", {})
    defaults = AnalysisOptions()
    return AnalysisOptions(
        min_profit_threshold=Decimal(str(a.get("min_profit_threshold", defaults.min_profit_threshold))),
        max_risk_score=float(a.get("max_risk_score", defaults.max_risk_score)),
        include_gas_costs=bool(a.get("include_gas_costs", defaults.include_gas_costs)),
        estimated_gas_price=Decimal(str(a.get("estimated_gas_price", defaults.estimated_gas_price))),
        max_price_impact=Decimal(str(a.get("max_price_impact", defaults.max_price_impact))),
        require_liquidity=bool(a.get("require_liquidity", defaults.require_liquidity)),
        enable_statistical_filtering=bool(a.get("enable_statistical_filtering",
                                                defaults.enable_statistical_filtering)),
        outlier_policy=OutlierPolicy(a.get("outlier_policy", defaults.outlier_policy.value)),
    )


def extra_tokens_from_config(config: Dict[str, Any]) -> List[TokenInfo]:
    return [
        TokenInfo(mint=t["mint"], symbol=t["symbol"].upper(), decimals=int(t["decimals"]), name=t.get("name", ""))
        for t in config.get("tokens") or []
    ]
