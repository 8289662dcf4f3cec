"""Discovery client.

Endpoint: Doma GraphQL API (``fractionalTokens`` query)
Auth: ``API-KEY`` header

Returns the full universe of fractionalized assets with their launch
parameters, pool address and buyout state in a single page.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from .base import ClientError, GraphQLClient

logger = logging.getLogger(__name__)


class DiscoveryError(ClientError):
    """Raised when the discovery query cannot produce an asset list."""

    pass


@dataclass
class DiscoveredAsset:
    """Static and semi-static parameters of one fractionalized asset.

    :ivar address: Fractional token address.
    :ivar name: Display name (token name, else launch-params name).
    :ivar fractionalized_at: ISO timestamp of fractionalization.
    :ivar bought_out_at: ISO timestamp of buyout, or None.
    :ivar status: Raw status string.
    :ivar pool_address: Liquidity pool address, or None.
    :ivar initial_valuation: Launch valuation from the params.
    :ivar total_supply: Total token supply from the params.
    :ivar symbol: Token symbol.
    :ivar decimals: Token decimals, or None if not reported.
    """

    address: str
    name: str | None
    fractionalized_at: str | None = None
    bought_out_at: str | None = None
    status: str | None = None
    pool_address: str | None = None
    initial_valuation: float = 0.0
    total_supply: float = 0.0
    symbol: str = ""
    decimals: int | None = None

    @classmethod
    def from_item(cls, item: dict) -> DiscoveredAsset:
        """Build from one ``fractionalTokens.items`` entry.

        :param item: Raw item from the discovery response.
        :returns: New DiscoveredAsset instance.
        :raises KeyError: If the item has no address.
        """
        params = item.get("params") or {}
        decimals = params.get("decimals")
        return cls(
            address=item["address"].lower(),
            name=item.get("name") or params.get("name"),
            fractionalized_at=item.get("fractionalizedAt"),
            bought_out_at=item.get("boughtOutAt"),
            status=item.get("status"),
            pool_address=item.get("poolAddress"),
            initial_valuation=_to_float(params.get("initialValuation")),
            total_supply=_to_float(params.get("totalSupply")),
            symbol=params.get("symbol") or "",
            decimals=int(decimals) if decimals not in (None, "") else None,
        )


def _to_float(value: object) -> float:
    if value in (None, ""):
        return 0.0
    return float(value)


class DiscoveryClient(GraphQLClient):
    """Client for the fractional token discovery query."""

    FRACTIONAL_TOKENS_QUERY = """
    query FractionalTokens {
        fractionalTokens {
            items {
                id
                name
                address
                fractionalizedAt
                boughtOutAt
                buyoutPrice
                status
                poolAddress
                chain {
                    name
                    networkId
                }
                params {
                    initialValuation
                    name
                    symbol
                    decimals
                    totalSupply
                }
            }
            totalCount
            hasNextPage
        }
    }
    """

    async def discover(self) -> list[DiscoveredAsset]:
        """Fetch every known fractionalized asset.

        Items that cannot be parsed are logged and skipped.

        :returns: List of discovered assets (possibly empty).
        :raises DiscoveryError: If the query fails or the response is malformed.
        """
        try:
            data = await self.query(self.FRACTIONAL_TOKENS_QUERY)
        except ClientError as e:
            raise DiscoveryError(f"Discovery query failed: {e}") from e

        page = data.get("fractionalTokens")
        if page and not isinstance(page, dict):
            raise DiscoveryError(f"Malformed discovery page: {page!r}")
        if not page or page.get("items") is None:
            logger.info("No fractional tokens found in discovery response")
            return []

        items = page["items"]
        if not isinstance(items, list):
            raise DiscoveryError(f"Malformed discovery items: {items!r}")

        if page.get("hasNextPage"):
            logger.warning(
                f"Discovery returned a partial page "
                f"({len(items)} of {page.get('totalCount')} assets)"
            )

        assets: list[DiscoveredAsset] = []
        for item in items:
            try:
                assets.append(DiscoveredAsset.from_item(item))
            except (KeyError, ValueError, TypeError, AttributeError) as e:
                logger.warning(f"Skipping malformed discovery item {item!r}: {e}")

        if items and not assets:
            raise DiscoveryError(f"All {len(items)} discovery items were malformed")

        logger.info(f"Discovered {len(assets)} fractional tokens")
        return assets
