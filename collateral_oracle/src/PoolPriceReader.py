"""PoolPriceReader: Spot price of a concentrated-liquidity pool from chain state.

The pool stores its price as ``sqrtPriceX96`` in ``slot0()``. The raw ratio
``(sqrtPriceX96 / 2**96) ** 2`` is the price of token0 (the base) in units of
token1 (the quote), scaled by the decimal difference of the two tokens.

.. code-block:: python

    reader = PoolPriceReader(w3)
    pool = await reader.read_price("0x...")
    if pool is not None:
        print(f"{pool.base_symbol}/{pool.quote_symbol} = {pool.price}")
"""

from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass

from web3 import Web3

from .AssetRecord import ZERO_ADDRESS
from .ContractUtility import ContractUtility

logger = logging.getLogger(__name__)

Q96 = 2**96

# Prices above this are treated as corrupted state or an empty pool.
PRICE_SANITY_CEILING = 1e15


class PoolReadError(Exception):
    """Raised when the pool or one of its tokens cannot be read."""

    pass


@dataclass
class PoolPrice:
    """Decoded pool price.

    :ivar price: Price of the base token (token0) in quote token (token1).
    :ivar inverse_price: Price of the quote token in base token.
    :ivar base_token: token0 address.
    :ivar quote_token: token1 address.
    :ivar base_decimals: token0 decimals.
    :ivar quote_decimals: token1 decimals.
    :ivar base_symbol: token0 symbol.
    :ivar quote_symbol: token1 symbol.
    """

    price: float
    inverse_price: float
    base_token: str
    quote_token: str
    base_decimals: int
    quote_decimals: int
    base_symbol: str = ""
    quote_symbol: str = ""


def price_from_sqrt(
    sqrt_price_x96: int, base_decimals: int, quote_decimals: int
) -> tuple[float, float]:
    """Convert ``sqrtPriceX96`` into (price, inverse_price).

    :param sqrt_price_x96: Value of ``slot0().sqrtPriceX96``.
    :param base_decimals: token0 decimals.
    :param quote_decimals: token1 decimals.
    :returns: Human-scale price and its inverse (inf if price is 0).
    """
    raw = (sqrt_price_x96 / Q96) ** 2
    price = raw * 10 ** (quote_decimals - base_decimals)
    inverse = 1 / price if price > 0 else math.inf
    return price, inverse


def is_sane_price(value: float) -> bool:
    return math.isfinite(value) and 0 < value <= PRICE_SANITY_CEILING


class PoolPriceReader:
    """Read-only access to pool prices.

    All RPC calls are blocking web3 calls and are run in a worker thread.

    :ivar w3: Web3 instance used for reads.
    """

    def __init__(self, w3: Web3) -> None:
        self.w3 = w3
        self._pool_abi = ContractUtility.get_abi("UniswapV3Pool")
        self._erc20_abi = ContractUtility.get_abi("ERC20")

    async def read_price(self, pool_address: str | None) -> PoolPrice | None:
        """Read and decode the current price of a pool.

        :param pool_address: Pool address.
        :returns: PoolPrice, or None if the address is empty or the price fails
            the sanity checks.
        :raises PoolReadError: If any RPC read fails.
        """
        if not pool_address or pool_address.lower() == ZERO_ADDRESS:
            return None

        try:
            pool = await asyncio.to_thread(self._read_pool, pool_address)
        except Exception as e:
            raise PoolReadError(f"Failed to read pool {pool_address}: {e}") from e

        if not (is_sane_price(pool.price) and is_sane_price(pool.inverse_price)):
            logger.warning(
                f"Invalid price for pool {pool_address}: "
                f"{pool.price} / {pool.inverse_price}"
            )
            return None

        logger.debug(
            f"Pool {pool_address}: {pool.base_symbol}/{pool.quote_symbol} = "
            f"{pool.price:.6f} ({pool.quote_symbol}/{pool.base_symbol} = "
            f"{pool.inverse_price:.6f})"
        )
        return pool

    async def token_price_usd(
        self, token_address: str, pool_address: str | None
    ) -> float | None:
        """Price of ``token_address`` in the pool's other (USD-pegged) token.

        :param token_address: Token to price.
        :param pool_address: Pool holding the token.
        :returns: Price, or None if the pool is unusable or does not hold
            the token.
        :raises PoolReadError: If any RPC read fails.
        """
        pool = await self.read_price(pool_address)
        if pool is None:
            return None

        token = token_address.lower()
        if token == pool.base_token.lower():
            return pool.price
        if token == pool.quote_token.lower():
            return pool.inverse_price

        logger.warning(f"Token {token_address} not found in pool {pool_address}")
        return None

    def _read_pool(self, pool_address: str) -> PoolPrice:
        pool = self.w3.eth.contract(
            address=Web3.to_checksum_address(pool_address), abi=self._pool_abi
        )
        slot0 = pool.functions.slot0().call()
        base_token = pool.functions.token0().call()
        quote_token = pool.functions.token1().call()

        base = self.w3.eth.contract(address=base_token, abi=self._erc20_abi)
        quote = self.w3.eth.contract(address=quote_token, abi=self._erc20_abi)
        base_decimals = int(base.functions.decimals().call())
        quote_decimals = int(quote.functions.decimals().call())

        price, inverse = price_from_sqrt(int(slot0[0]), base_decimals, quote_decimals)
        return PoolPrice(
            price=price,
            inverse_price=inverse,
            base_token=base_token,
            quote_token=quote_token,
            base_decimals=base_decimals,
            quote_decimals=quote_decimals,
            base_symbol=base.functions.symbol().call(),
            quote_symbol=quote.functions.symbol().call(),
        )
