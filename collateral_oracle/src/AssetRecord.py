"""AssetRecord: Consolidated per-asset record produced by the Collector.

A record is built fresh on every collection cycle from the discovery index,
the per-name detail query and the asset's liquidity pool, and is discarded
once the cycle's valuations are computed.

.. code-block:: python

    >>> parse_display_name("Crypto.COM")
    ('crypto', 'com')
    >>> parse_display_name("localhost")
    ('localhost', 'unknown')
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum

# Defaults applied when the detail query has no data for an asset.
DEFAULT_EXPIRY_YEARS = 1.0
DEFAULT_OUTSTANDING_INTEREST = 0

# Fallback when discovery omits the token decimals.
DEFAULT_TOKEN_DECIMALS = 6

UNKNOWN_SUFFIX = "unknown"

ADDRESS_PATTERN = re.compile(r"^0x[a-fA-F0-9]{40}$")
ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


class LifecycleStatus(str, Enum):
    """Lifecycle of a fractionalized asset as reported by discovery."""

    ACTIVE = "active"
    BOUGHT_OUT = "boughtOut"
    OTHER = "other"

    @classmethod
    def from_discovery(
        cls, status: str | None, bought_out_at: str | None
    ) -> LifecycleStatus:
        """Derive the lifecycle status from discovery fields.

        A non-null buyout timestamp is terminal regardless of the status
        string.

        :param status: Raw status string (e.g., "ACTIVE", "BOUGHT_OUT").
        :param bought_out_at: Buyout timestamp, or None.
        :returns: Normalized lifecycle status.
        """
        if bought_out_at:
            return cls.BOUGHT_OUT
        if not status:
            return cls.ACTIVE

        normalized = status.replace("_", "").replace("-", "").lower()
        if normalized == "boughtout":
            return cls.BOUGHT_OUT
        if normalized == "active":
            return cls.ACTIVE
        return cls.OTHER


def is_valid_address(address: str | None) -> bool:
    """Check for a syntactically valid 20-byte hex address."""
    return bool(address) and ADDRESS_PATTERN.match(address) is not None


def parse_display_name(name: str) -> tuple[str, str]:
    """Split a display name into (label, suffix) on the last ``.``.

    :param name: Display name (e.g., "example.com").
    :returns: Lower-cased label and suffix; suffix is "unknown" when absent.
    """
    normalized = name.strip().lower()
    label, dot, suffix = normalized.rpartition(".")
    if not dot or not label or not suffix:
        return normalized, UNKNOWN_SUFFIX
    return label, suffix


@dataclass
class AssetRecord:
    """One tokenized asset under valuation.

    :ivar token_address: Fractional token address (lower-cased).
    :ivar display_name: Full display name (e.g., "crypto.com").
    :ivar label: Name without the suffix.
    :ivar top_level_label: Suffix of the name ("unknown" if none).
    :ivar name_length: Length of ``label``.
    :ivar age_in_years: Time since fractionalization.
    :ivar time_to_expiry_years: Estimated remaining registration time.
    :ivar outstanding_interest_count: Active purchase offers.
    :ivar live_price_usd: Market price per token in USD.
    :ivar price_source: Which step of the price chain produced the price.
    :ivar total_supply: Raw total supply.
    :ivar decimals: Token decimals.
    :ivar symbol: Token symbol.
    :ivar lifecycle_status: Lifecycle status from discovery.
    :ivar pool_address: Liquidity pool address, if any.
    """

    token_address: str
    display_name: str
    label: str
    top_level_label: str
    name_length: int
    age_in_years: float = 0.0
    time_to_expiry_years: float = DEFAULT_EXPIRY_YEARS
    outstanding_interest_count: int = DEFAULT_OUTSTANDING_INTEREST
    live_price_usd: float = 0.0
    price_source: str = "none"
    total_supply: float = 0.0
    decimals: int = DEFAULT_TOKEN_DECIMALS
    symbol: str = ""
    lifecycle_status: LifecycleStatus = LifecycleStatus.ACTIVE
    pool_address: str | None = None

    def __post_init__(self) -> None:
        self.token_address = self.token_address.lower()
        if self.name_length < 0:
            raise ValueError("name_length must be non-negative")
        if self.live_price_usd < 0:
            raise ValueError("live_price_usd must be non-negative")

    @classmethod
    def from_name(cls, token_address: str, display_name: str, **kwargs) -> AssetRecord:
        """Build a record, deriving label fields from the display name.

        :param token_address: Fractional token address.
        :param display_name: Full display name.
        :returns: New AssetRecord instance.

        .. code-block:: python

            >>> record = AssetRecord.from_name("0x" + "ab" * 20, "nft.com")
            >>> record.label, record.top_level_label, record.name_length
            ('nft', 'com', 3)
        """
        label, suffix = parse_display_name(display_name)
        return cls(
            token_address=token_address,
            display_name=display_name,
            label=label,
            top_level_label=suffix,
            name_length=len(label),
            **kwargs,
        )
