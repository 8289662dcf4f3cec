"""
Collateral Oracle - Valuation and Broadcast Pipeline

This module provides collateral valuations for fractionalized domain tokens:
- AssetRecord: Consolidated per-asset record built each cycle
- Collector: Discovery, detail and pool data merged into AssetRecords
- PoolPriceReader: Spot price from a pool's on-chain state
- ScoringEngine: Composite rank and quality-adjusted valuation
- Broadcaster: Smart-update submission to the oracle contract
- CryptoPriceSource: Fungible-token prices from CoinGecko
- Orchestrator: Scheduled domain and crypto pipelines
- clients: HTTP and GraphQL client implementations
"""

from .AssetRecord import AssetRecord, LifecycleStatus
from .Broadcaster import Broadcaster, BroadcastSummary, PriceUpdate, UpdateOutcome
from .Collector import Collector
from .CryptoPriceSource import CryptoPriceSource
from .Orchestrator import OracleOrchestrator
from .PoolPriceReader import PoolPrice, PoolPriceReader
from .Scheduler import CycleReport, CycleScheduler, RunStatistics
from .ScoringEngine import ScoringEngine, ValuationResult

__all__ = [
    "AssetRecord",
    "Broadcaster",
    "BroadcastSummary",
    "Collector",
    "CryptoPriceSource",
    "CycleReport",
    "CycleScheduler",
    "LifecycleStatus",
    "OracleOrchestrator",
    "PoolPrice",
    "PoolPriceReader",
    "PriceUpdate",
    "RunStatistics",
    "ScoringEngine",
    "UpdateOutcome",
    "ValuationResult",
]
