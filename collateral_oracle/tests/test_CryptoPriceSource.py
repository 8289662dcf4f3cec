"""Unit tests for CryptoPriceSource."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from collateral_oracle.src.clients.base import ClientError
from collateral_oracle.src.CryptoPriceSource import (
    DEFAULT_TOKEN_ADDRESSES,
    CryptoPriceSource,
)


def make_source(prices: dict, errors: dict | None = None, **kwargs) -> CryptoPriceSource:
    client = MagicMock()
    client.fetch_prices = AsyncMock(return_value=(prices, dict(errors or {})))
    return CryptoPriceSource(client, **kwargs)


class TestCryptoPriceSource:
    """Test price collection for fungible tokens."""

    def test_default_addresses(self) -> None:
        """The deployed token set is tracked by default."""
        source = make_source({})
        assert set(source.token_addresses) == {"USDTEST", "MUSDC", "MWBTC", "MARB", "MSOL"}

    @pytest.mark.asyncio
    async def test_collect(self) -> None:
        """Prices become fixed-point PriceUpdates keyed by token address."""
        source = make_source({"MWBTC": 65000.5, "MUSDC": 1.0})
        updates = await source.collect()

        by_label = {u.label: u for u in updates}
        assert set(by_label) == {"MWBTC", "MUSDC"}
        assert by_label["MWBTC"].token_address == DEFAULT_TOKEN_ADDRESSES["MWBTC"]
        assert by_label["MWBTC"].valuation_fixed_point == "65000500000000000000000"
        assert by_label["MUSDC"].valuation_fixed_point == "1000000000000000000"
        source.client.fetch_prices.assert_awaited_once_with(list(DEFAULT_TOKEN_ADDRESSES))

    @pytest.mark.asyncio
    async def test_missing_symbols_dropped(self) -> None:
        """Symbols the index did not price are logged and left out."""
        source = make_source({"MSOL": 150.0}, errors={"MARB": "No USD price"})
        updates = await source.collect()

        assert [u.label for u in updates] == ["MSOL"]
        assert source.last_errors == {"MARB": "No USD price"}

    @pytest.mark.asyncio
    async def test_request_failure_propagates(self) -> None:
        """A failed request aborts the crypto cycle."""
        source = make_source({})
        source.client.fetch_prices.side_effect = ClientError("HTTP 429: slow down")
        with pytest.raises(ClientError):
            await source.collect()

    def test_add_token(self) -> None:
        """New tokens extend both the address and coin ID maps."""
        source = make_source({}, token_addresses={})
        source.add_token("METH", "0x" + "ee" * 20, "ethereum")

        assert source.token_addresses == {"METH": "0x" + "ee" * 20}
        source.client.add_token_mapping.assert_called_once_with("METH", "ethereum")

    def test_add_token_invalid_address(self) -> None:
        source = make_source({})
        with pytest.raises(ValueError):
            source.add_token("BAD", "0x12", "bad")
