"""Orchestrator: Drives the domain and crypto pipelines on separate timers.

Architecture:
    - Domain pipeline: Collector -> ScoringEngine -> Broadcaster
    - Crypto pipeline: CryptoPriceSource -> Broadcaster
    - Each pipeline has its own CycleScheduler and RunStatistics
    - Both pipelines share one Broadcaster, whose lock serializes signer use
    - SIGINT/SIGTERM stop both timers; in-flight cycles run to completion
"""

from __future__ import annotations

import asyncio
import logging
import signal
import time
from decimal import Decimal

from web3 import Web3

from .Broadcaster import Broadcaster, PriceUpdate
from .clients.base import BaseClient
from .Collector import Collector
from .CryptoPriceSource import CryptoPriceSource
from .Scheduler import CycleError, CycleObserver, CycleReport, CycleScheduler
from .ScoringEngine import ScoringEngine, ScoringError

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL = 600.0
DEFAULT_CRYPTO_INTERVAL = 1800.0
DEFAULT_MAX_TOKENS = 50

# Below this signer balance (in ether) a warning is logged at startup.
MIN_BALANCE_ETHER = Decimal("0.01")


class OracleOrchestrator:
    """Wires the pipelines to their schedulers.

    :ivar collector: Domain asset collector.
    :ivar engine: Scoring engine.
    :ivar broadcaster: Shared broadcaster.
    :ivar crypto_source: Optional fungible-token price source.
    :ivar max_tokens: Maximum assets per domain cycle.
    :ivar domain_scheduler: Scheduler of the domain pipeline.
    :ivar crypto_scheduler: Scheduler of the crypto pipeline, if enabled.
    """

    def __init__(
        self,
        collector: Collector,
        engine: ScoringEngine,
        broadcaster: Broadcaster,
        crypto_source: CryptoPriceSource | None = None,
        interval: float = DEFAULT_INTERVAL,
        crypto_interval: float = DEFAULT_CRYPTO_INTERVAL,
        max_tokens: int | None = DEFAULT_MAX_TOKENS,
        observer: CycleObserver | None = None,
    ) -> None:
        """Initialize the orchestrator.

        :param collector: Domain asset collector.
        :param engine: Scoring engine.
        :param broadcaster: Broadcaster shared by both pipelines.
        :param crypto_source: Optional crypto price source (None disables the
            crypto pipeline).
        :param interval: Seconds between domain cycles (default: 600).
        :param crypto_interval: Seconds between crypto cycles (default: 1800).
        :param max_tokens: Maximum assets per domain cycle (default: 50).
        :param observer: Optional cycle lifecycle observer.
        """
        self.collector = collector
        self.engine = engine
        self.broadcaster = broadcaster
        self.crypto_source = crypto_source
        self.max_tokens = max_tokens

        self.domain_scheduler = CycleScheduler(
            "domain", self.run_domain_cycle, interval, observer
        )
        self.crypto_scheduler: CycleScheduler | None = None
        if crypto_source is not None:
            self.crypto_scheduler = CycleScheduler(
                "crypto", self.run_crypto_cycle, crypto_interval, observer
            )

        logger.info(
            f"OracleOrchestrator initialized: interval={interval}s, "
            f"crypto_interval={crypto_interval if crypto_source else 'disabled'}, "
            f"max_tokens={max_tokens}, "
            f"delay_between_updates={broadcaster.delay_between_updates}s"
        )

    @property
    def schedulers(self) -> list[CycleScheduler]:
        return [
            s for s in (self.domain_scheduler, self.crypto_scheduler) if s is not None
        ]

    async def initialize(self) -> bool:
        """Check signer authority and balance.

        Failures are logged as warnings only; the pipelines still start.

        :returns: True if both checks passed.
        """
        healthy = True
        address = self.broadcaster.signer.address

        if not await self.broadcaster.is_authorized():
            logger.warning(
                f"Signer {address} is not the owner of the oracle contract, "
                "updates may fail"
            )
            healthy = False

        try:
            balance = Web3.from_wei(await self.broadcaster.get_balance(), "ether")
        except Exception as e:
            logger.warning(f"Could not read balance of {address}: {e}")
            return False

        logger.info(f"Signer {address} balance: {balance} ETH")
        if balance < MIN_BALANCE_ETHER:
            logger.warning(
                f"Low signer balance ({balance} < {MIN_BALANCE_ETHER} ETH), "
                "add funds for gas"
            )
            healthy = False
        return healthy

    async def run_domain_cycle(self) -> CycleReport:
        """Collect, score and broadcast all eligible assets once.

        :returns: Report of the cycle.
        :raises DiscoveryError: If discovery fails (the cycle is aborted).
        """
        start = time.monotonic()
        report = CycleReport()

        records = await self.collector.collect(limit=self.max_tokens)
        report.tokens_found = len(records)

        updates: list[PriceUpdate] = []
        for record in records:
            report.tokens_processed += 1
            try:
                valuation = self.engine.score(record)
            except ScoringError as e:
                logger.error(f"Scoring failed for {record.token_address}: {e}")
                report.valuations_failed += 1
                report.errors.append(CycleError("scoring", str(e), record.token_address))
                continue

            report.valuations_calculated += 1
            logger.info(
                f"{record.display_name}: rank {valuation.composite_rank:.2f} "
                f"({valuation.quality_rating}), "
                f"value ${valuation.final_valuation_usd:.6f}"
            )
            updates.append(
                PriceUpdate(
                    token_address=record.token_address,
                    valuation_fixed_point=valuation.final_valuation_fixed_point,
                    label=record.display_name,
                )
            )

        if updates:
            report.record_broadcast(await self.broadcaster.broadcast(updates))
        else:
            logger.info("No prices to update, skipping oracle updates")

        report.duration = time.monotonic() - start
        report.log_summary("DOMAIN UPDATE CYCLE SUMMARY")
        return report

    async def run_crypto_cycle(self) -> CycleReport:
        """Fetch and broadcast fungible-token prices once.

        :returns: Report of the cycle.
        :raises RuntimeError: If the crypto pipeline is disabled.
        :raises ClientError: If the price request fails.
        """
        if self.crypto_source is None:
            raise RuntimeError("Crypto pipeline is disabled")

        start = time.monotonic()
        report = CycleReport()

        updates = await self.crypto_source.collect()
        report.tokens_found = len(self.crypto_source.token_addresses)
        report.tokens_processed = len(updates)
        report.valuations_calculated = len(updates)
        report.valuations_failed = len(self.crypto_source.last_errors)
        for symbol, error in self.crypto_source.last_errors.items():
            report.errors.append(
                CycleError("fetch", error, self.crypto_source.token_addresses.get(symbol))
            )

        if updates:
            report.record_broadcast(await self.broadcaster.broadcast(updates))

        report.duration = time.monotonic() - start
        report.log_summary("CRYPTO UPDATE CYCLE SUMMARY")
        return report

    async def run_once(self) -> dict:
        """Run every enabled pipeline once and return the statistics."""
        await self.initialize()
        try:
            for scheduler in self.schedulers:
                await scheduler.run_cycle()
        finally:
            await BaseClient.close_shared_client()
        return self.get_stats()

    async def run(self) -> None:
        """Run both pipelines until a termination signal arrives."""
        await self.initialize()

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, self._handle_signal, sig)

        try:
            await asyncio.gather(*(s.start() for s in self.schedulers))
        finally:
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.remove_signal_handler(sig)
            logger.info(f"Final statistics: {self.get_stats()}")
            await BaseClient.close_shared_client()

    def _handle_signal(self, sig: signal.Signals) -> None:
        logger.info(f"Received {sig.name}, shutting down...")
        self.stop()

    def stop(self) -> None:
        """Stop scheduling new cycles."""
        for scheduler in self.schedulers:
            scheduler.stop()

    def get_stats(self) -> dict:
        """Statistics of each pipeline as plain dicts."""
        return {
            s.name: {**s.stats.as_dict(), "is_running": s.running, "scheduler_active": s.active}
            for s in self.schedulers
        }
