"""Collector: Builds one AssetRecord per eligible asset.

Combines three sources for every cycle:

    1. DiscoveryClient: the asset universe and launch parameters.
    2. DetailClient: expiry and outstanding offers per name (best effort).
    3. PoolPriceReader: live market price from the asset's pool.

The live price follows a fallback chain where the first success wins: the
pool price, then ``initial_valuation / total_supply``, then 0.
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from datetime import datetime

from .AssetRecord import (
    DEFAULT_EXPIRY_YEARS,
    DEFAULT_OUTSTANDING_INTEREST,
    DEFAULT_TOKEN_DECIMALS,
    AssetRecord,
    LifecycleStatus,
)
from .clients.base import ClientError
from .clients.detail import AssetDetails, DetailClient
from .clients.discovery import DiscoveredAsset, DiscoveryClient
from .PoolPriceReader import PoolPriceReader, PoolReadError

logger = logging.getLogger(__name__)

SECONDS_PER_YEAR = 365.25 * 24 * 60 * 60

# Epoch values above this are milliseconds (year 5138 in seconds).
EPOCH_MS_THRESHOLD = 1e11

# Politeness delay between assets (seconds).
DEFAULT_REQUEST_DELAY = 0.1


def parse_timestamp(value: str | float | None) -> float | None:
    """Parse an ISO-8601 timestamp or an epoch number into epoch seconds.

    Numbers above ``EPOCH_MS_THRESHOLD`` are taken as milliseconds.

    :param value: Timestamp string (a trailing "Z" is accepted), epoch
        number, or None.
    :returns: Epoch seconds, or None if missing or unparseable.
    """
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        if isinstance(value, (int, float)):
            seconds = float(value)
            if seconds > EPOCH_MS_THRESHOLD:
                seconds /= 1000
            return seconds if math.isfinite(seconds) else None
        return datetime.fromisoformat(value.replace("Z", "+00:00")).timestamp()
    except (ValueError, TypeError, AttributeError, OverflowError):
        logger.debug(f"Unparseable timestamp: {value!r}")
        return None


def years_since(timestamp: str | float | None, now: float) -> float:
    start = parse_timestamp(timestamp)
    if start is None:
        return 0.0
    return round(max(0.0, (now - start) / SECONDS_PER_YEAR), 2)


def years_until(timestamp: str | float | None, now: float) -> float:
    """Years until ``timestamp``; the default estimate if unknown or past."""
    end = parse_timestamp(timestamp)
    if end is None or end <= now:
        return DEFAULT_EXPIRY_YEARS
    return round((end - now) / SECONDS_PER_YEAR, 2)


def initial_price(asset: DiscoveredAsset) -> float:
    if asset.total_supply > 0 and asset.initial_valuation > 0:
        return asset.initial_valuation / asset.total_supply
    return 0.0


class Collector:
    """Aggregates discovery, detail and pool data into AssetRecords.

    :ivar discovery: Discovery index client.
    :ivar detail: Per-name detail client.
    :ivar pool_reader: On-chain pool price reader.
    :ivar request_delay: Seconds to sleep between assets.
    """

    def __init__(
        self,
        discovery: DiscoveryClient,
        detail: DetailClient,
        pool_reader: PoolPriceReader,
        request_delay: float = DEFAULT_REQUEST_DELAY,
    ) -> None:
        self.discovery = discovery
        self.detail = detail
        self.pool_reader = pool_reader
        self.request_delay = request_delay

    async def collect(self, limit: int | None = None) -> list[AssetRecord]:
        """Collect consolidated records for every eligible asset.

        :param limit: Optional maximum number of records to produce.
        :returns: Records in discovery order.
        :raises DiscoveryError: If the discovery query fails.
        """
        assets = await self.discovery.discover()
        logger.info(f"Collecting data for {len(assets)} discovered assets")

        records: list[AssetRecord] = []
        for i, asset in enumerate(assets):
            if limit is not None and len(records) >= limit:
                logger.info(f"Reached limit of {limit} assets per cycle")
                break

            status = LifecycleStatus.from_discovery(asset.status, asset.bought_out_at)
            if status is LifecycleStatus.BOUGHT_OUT:
                logger.info(
                    f"Skipping {asset.name or asset.address}: bought out "
                    f"at {asset.bought_out_at or 'unknown time'}"
                )
                continue

            if not asset.name:
                logger.warning(f"Skipping {asset.address}: no display name")
                continue

            record = await self._build_record(asset, status)
            records.append(record)
            logger.info(
                f"[{i + 1}/{len(assets)}] {record.display_name} - "
                f"Price: ${record.live_price_usd:.6f} ({record.price_source}), "
                f"Offers: {record.outstanding_interest_count}"
            )

            if i < len(assets) - 1 and self.request_delay > 0:
                await asyncio.sleep(self.request_delay)

        logger.info(f"Consolidated data for {len(records)} assets")
        return records

    async def _build_record(
        self, asset: DiscoveredAsset, status: LifecycleStatus
    ) -> AssetRecord:
        now = time.time()
        details = await self._fetch_details(asset)
        price, source = await self._resolve_price(asset)

        return AssetRecord.from_name(
            asset.address,
            asset.name,
            age_in_years=years_since(asset.fractionalized_at, now),
            time_to_expiry_years=years_until(
                details.expires_at if details else None, now
            ),
            outstanding_interest_count=(
                details.active_offers_count
                if details
                else DEFAULT_OUTSTANDING_INTEREST
            ),
            live_price_usd=price,
            price_source=source,
            total_supply=asset.total_supply,
            decimals=(
                asset.decimals
                if asset.decimals is not None
                else DEFAULT_TOKEN_DECIMALS
            ),
            symbol=asset.symbol,
            lifecycle_status=status,
            pool_address=asset.pool_address,
        )

    async def _fetch_details(self, asset: DiscoveredAsset) -> AssetDetails | None:
        try:
            return await self.detail.fetch_details(asset.name)
        except ClientError as e:
            logger.warning(
                f"Detail query failed for {asset.name} ({asset.address}), "
                f"using defaults: {e}"
            )
            return None

    async def _resolve_price(self, asset: DiscoveredAsset) -> tuple[float, str]:
        """Resolve the live price and the name of the step that produced it."""
        if asset.pool_address:
            try:
                price = await self.pool_reader.token_price_usd(
                    asset.address, asset.pool_address
                )
            except PoolReadError as e:
                logger.warning(f"Pool price unavailable for {asset.address}: {e}")
                price = None
            if price:
                return price, "pool"

        price = initial_price(asset)
        if price > 0:
            return price, "initial_valuation"
        return 0.0, "none"
