"""Detail client.

Endpoint: Doma GraphQL API (``names`` query)
Auth: ``API-KEY`` header

Per-name demand signals that discovery does not carry: registration expiry
and the number of active purchase offers.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from .base import ClientError, GraphQLClient

logger = logging.getLogger(__name__)


@dataclass
class AssetDetails:
    """Dynamic demand signals for one name.

    :ivar name: Name as returned by the index.
    :ivar expires_at: ISO expiry timestamp, or None.
    :ivar active_offers_count: Open purchase offers.
    """

    name: str
    expires_at: str | None = None
    active_offers_count: int = 0


class DetailClient(GraphQLClient):
    """Client for the per-name detail query."""

    NAME_DETAILS_QUERY = """
    query NameDetails($name: String!) {
        names(name: $name) {
            items {
                name
                expiresAt
                activeOffersCount
            }
        }
    }
    """

    async def fetch_details(self, name: str) -> AssetDetails | None:
        """Fetch expiry and offer count for a display name.

        :param name: Full display name (e.g., "crypto.com").
        :returns: AssetDetails, or None if the index has no entry.
        :raises ClientError: On transport, GraphQL or parse failures.
        """
        data = await self.query(self.NAME_DETAILS_QUERY, {"name": name})

        try:
            items = (data.get("names") or {}).get("items") or []
            if not items:
                return None

            item = items[0]
            if not isinstance(item, dict):
                raise TypeError(f"expected an object, got {type(item).__name__}")
            return AssetDetails(
                name=item.get("name") or name,
                expires_at=item.get("expiresAt"),
                active_offers_count=int(item.get("activeOffersCount") or 0),
            )
        except (AttributeError, KeyError, ValueError, TypeError) as e:
            raise ClientError(f"Failed to parse details for {name}: {e}") from e
