"""CryptoPriceSource: PriceUpdates for fungible tokens from a public price index."""

from __future__ import annotations

import logging

from .AssetRecord import is_valid_address
from .Broadcaster import PriceUpdate
from .clients.coingecko import CoinGeckoClient
from .ScoringEngine import ScoringError, to_fixed_point

logger = logging.getLogger(__name__)

# Deployed token addresses per symbol.
DEFAULT_TOKEN_ADDRESSES: dict[str, str] = {
    "USDTEST": "0x8725f6FDF6E240C303B4e7A60AD13267Fa04d55C",
    "MUSDC": "0x87c20443Ba0480677842851CB27a5b1D38C91639",
    "MWBTC": "0x02BFF1B39378aCCB20b8870863f30D48b4Dc1DE4",
    "MARB": "0x6E1f4b629Ea42Db26E2970aEcE38A61BB50a029f",
    "MSOL": "0x457Ebd6E5ad62dF0fde31a1a144a9Ed1f1d2E38B",
}


class CryptoPriceSource:
    """Maps a fixed symbol set to the price index.

    :ivar client: Price index client; holds the symbol to coin ID map.
    :ivar token_addresses: Symbol to token address map.
    :ivar last_errors: Symbol to error message from the last collect().
    """

    def __init__(
        self,
        client: CoinGeckoClient,
        token_addresses: dict[str, str] | None = None,
    ) -> None:
        self.client = client
        self.token_addresses = dict(
            token_addresses if token_addresses is not None else DEFAULT_TOKEN_ADDRESSES
        )
        self.last_errors: dict[str, str] = {}

    def add_token(self, symbol: str, address: str, coin_id: str) -> None:
        """Track an additional token.

        :param symbol: Oracle token symbol.
        :param address: Token address the price is published for.
        :param coin_id: Price index coin ID.
        :raises ValueError: If the address is malformed.
        """
        if not is_valid_address(address):
            raise ValueError(f"Invalid token address for {symbol}: {address!r}")
        self.token_addresses[symbol] = address
        self.client.add_token_mapping(symbol, coin_id)

    async def collect(self) -> list[PriceUpdate]:
        """Fetch prices for all tracked symbols in one request.

        Symbols missing from the response are logged and left out.

        :returns: One PriceUpdate per priced symbol.
        :raises ClientError: If the price request fails as a whole.
        """
        symbols = list(self.token_addresses)
        prices, errors = await self.client.fetch_prices(symbols)

        updates: list[PriceUpdate] = []
        for symbol in symbols:
            if symbol not in prices:
                continue
            price = prices[symbol]
            try:
                fixed = to_fixed_point(price)
            except ScoringError as e:
                errors[symbol] = str(e)
                continue
            updates.append(
                PriceUpdate(
                    token_address=self.token_addresses[symbol],
                    valuation_fixed_point=fixed,
                    label=symbol,
                )
            )
            logger.info(f"{symbol}: ${price:,.6f}")

        for symbol, error in errors.items():
            logger.warning(
                f"No price for {symbol} ({self.token_addresses.get(symbol)}): {error}"
            )
        self.last_errors = errors
        return updates
