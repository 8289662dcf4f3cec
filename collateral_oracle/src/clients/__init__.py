"""
HTTP and GraphQL clients for off-chain data sources.

Usage:
    from collateral_oracle.src.clients import DiscoveryClient, DetailClient

    discovery = DiscoveryClient(url, api_key="...")
    assets = await discovery.discover()

    detail = DetailClient(url, api_key="...")
    details = await detail.fetch_details("crypto.com")
"""

from .base import (
    BaseClient,
    ClientConfigError,
    ClientError,
    ClientHTTPError,
    GraphQLClient,
    GraphQLError,
)
from .coingecko import CoinGeckoClient
from .detail import AssetDetails, DetailClient
from .discovery import DiscoveredAsset, DiscoveryClient, DiscoveryError

__all__ = [
    # Base classes
    "BaseClient",
    "GraphQLClient",
    "ClientError",
    "ClientConfigError",
    "ClientHTTPError",
    "GraphQLError",
    # Discovery / detail
    "DiscoveryClient",
    "DiscoveredAsset",
    "DiscoveryError",
    "DetailClient",
    "AssetDetails",
    # Price index
    "CoinGeckoClient",
]
