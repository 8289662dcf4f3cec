"""CoinGecko client.

Endpoint: https://api.coingecko.com/api/v3/simple/price?ids={ids}&vs_currencies=usd
Rate Limit: 30 calls/min (free), higher with API key
"""

import logging

from .base import BaseClient, ClientError

logger = logging.getLogger(__name__)


class CoinGeckoClient(BaseClient):
    """Client for the CoinGecko simple price API.

    Maps the oracle's token symbols to CoinGecko coin IDs and fetches USD
    prices for all of them in one request.

    API tiers:
        - Free: api.coingecko.com (no key, 30 calls/min)
        - Demo: api.coingecko.com + x-cg-demo-api-key header
        - Pro: pro-api.coingecko.com + x-cg-pro-api-key header

    Demo keys are recognized by a "demo:" prefix (stripped) or by
    CoinGecko's "CG-" key prefix. Any other key is treated as pro.
    """

    BASE_URL_FREE = "https://api.coingecko.com/api/v3"
    BASE_URL_PRO = "https://pro-api.coingecko.com/api/v3"

    # Oracle token symbols to CoinGecko IDs
    DEFAULT_TOKEN_MAPPING = {
        "MWBTC": "bitcoin",
        "MARB": "arbitrum",
        "MSOL": "solana",
        "USDTEST": "tether",
        "MUSDC": "usd-coin",
    }

    def __init__(
        self,
        api_key: str | None = None,
        timeout: float | None = None,
        base_url: str | None = None,
        token_mapping: dict[str, str] | None = None,
    ):
        """Initialize with optional demo key handling.

        :param api_key: Optional CoinGecko API key.
        :param timeout: Request timeout in seconds.
        :param base_url: Optional endpoint override.
        :param token_mapping: Optional symbol to coin ID mapping.
        """
        self._is_demo = False
        if api_key and api_key.lower().startswith("demo:"):
            self._is_demo = True
            api_key = api_key[5:]  # Strip "demo:" prefix
        elif api_key and api_key.startswith("CG-"):
            self._is_demo = True
        super().__init__(api_key=api_key, timeout=timeout)
        self._base_url = base_url
        self.token_mapping = dict(
            token_mapping if token_mapping is not None else self.DEFAULT_TOKEN_MAPPING
        )

    @property
    def base_url(self) -> str:
        """Return appropriate base URL based on API key type."""
        if self._base_url:
            return self._base_url.rstrip("/")
        if not self.has_api_key:
            return self.BASE_URL_FREE
        # Demo keys use free URL, pro keys use pro URL
        return self.BASE_URL_FREE if self._is_demo else self.BASE_URL_PRO

    @property
    def api_header(self) -> tuple[str, str] | None:
        """Return appropriate header name and value for API key."""
        if not self.api_key:
            return None
        header_name = "x-cg-demo-api-key" if self._is_demo else "x-cg-pro-api-key"
        return (header_name, self.api_key)

    @property
    def tier(self) -> str:
        if not self.has_api_key:
            return "free"
        return "demo" if self._is_demo else "pro"

    def _headers(self) -> dict[str, str]:
        headers = {"accept": "application/json"}
        if self.api_header:
            header_name, header_value = self.api_header
            headers[header_name] = header_value
        return headers

    def add_token_mapping(self, symbol: str, coin_id: str) -> None:
        """Add or update a symbol to coin ID mapping."""
        self.token_mapping[symbol] = coin_id
        logger.info(f"[coingecko] Added mapping: {symbol} -> {coin_id}")

    async def fetch_prices(
        self, symbols: list[str]
    ) -> tuple[dict[str, float], dict[str, str]]:
        """Fetch USD prices for multiple symbols in a single API call.

        :param symbols: Oracle token symbols (e.g., ["MWBTC", "MSOL"]).
        :returns: Tuple of (symbol -> USD price, symbol -> error message).
        :raises ClientError: If the request fails or no symbol is mapped.
        """
        prices: dict[str, float] = {}
        errors: dict[str, str] = {}

        coin_ids: list[str] = []
        for symbol in symbols:
            coin_id = self.token_mapping.get(symbol)
            if not coin_id:
                errors[symbol] = "No CoinGecko mapping"
            elif coin_id not in coin_ids:
                coin_ids.append(coin_id)

        if not coin_ids:
            raise ClientError("No valid token mappings found")

        response = await self._get(
            f"{self.base_url}/simple/price",
            params={
                "ids": ",".join(coin_ids),
                "vs_currencies": "usd",
                "precision": "18",
            },
            headers=self._headers(),
        )
        try:
            data = response.json()
        except ValueError as e:
            raise ClientError(f"Invalid JSON response: {e}") from e

        for symbol in symbols:
            if symbol in errors:
                continue
            coin_id = self.token_mapping[symbol]
            try:
                price = float(data[coin_id]["usd"])
            except (KeyError, ValueError, TypeError):
                errors[symbol] = f"No USD price for {coin_id} in response"
                continue
            if price <= 0:
                errors[symbol] = f"Non-positive USD price for {coin_id}: {price}"
                continue
            prices[symbol] = price

        if errors:
            logger.warning(f"[coingecko] {len(errors)} price fetch errors: {errors}")
        return prices, errors

    async def ping(self) -> bool:
        """Check that the API is reachable.

        :returns: True if the ping endpoint answered successfully.
        """
        try:
            await self._get(f"{self.base_url}/ping", headers=self._headers())
        except ClientError as e:
            logger.warning(f"[coingecko] Connection test failed: {e}")
            return False
        return True
