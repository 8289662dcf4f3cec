"""Broadcaster: Publishes token valuations to the on-chain oracle contract.

Every update is diffed against the price currently stored on-chain and only
submitted when the change is material. This smart-update rule is what keeps
the gas bill bounded:

.. code-block:: python

    >>> percent_change(100 * 10**18, 101 * 10**18)
    Decimal('1')
    >>> should_skip(100 * 10**18, 101 * 10**18, Decimal("1.0"))
    False
    >>> should_skip(0, 5, Decimal("1.0"))
    False

Updates within a batch are strictly sequential. All signer use goes through
a single lock so that independently scheduled pipelines sharing one
Broadcaster never race on the account nonce.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum

from web3 import Web3
from web3.contract import Contract
from web3.exceptions import ContractLogicError

from .AssetRecord import is_valid_address
from .Signer import TransactionSigner

logger = logging.getLogger(__name__)

DEFAULT_MIN_CHANGE_PERCENT = 1.0
DEFAULT_UPDATE_DELAY = 2.0

MAX_UINT256 = 2**256 - 1


class BroadcastError(Exception):
    """Base exception for broadcast failures."""

    pass


class ValidationError(BroadcastError):
    """Raised when an update is malformed; no network call is made."""

    pass


class TransactionRevertedError(BroadcastError):
    """Raised when an update transaction is mined with status 0.

    :ivar tx_hash: Hash of the reverted transaction.
    """

    def __init__(self, tx_hash: str, block_number: int | None = None):
        self.tx_hash = tx_hash
        self.block_number = block_number
        super().__init__(f"Transaction {tx_hash} reverted in block {block_number}")


@dataclass
class PriceUpdate:
    """A valuation ready to publish.

    :ivar token_address: Token the price is for.
    :ivar valuation_fixed_point: Price as an 18-decimal integer string.
    :ivar label: Human-readable name for log lines.
    """

    token_address: str
    valuation_fixed_point: str
    label: str = ""


class UpdateStatus(str, Enum):
    SUCCESSFUL = "successful"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class UpdateOutcome:
    """Result of processing one PriceUpdate.

    :ivar token_address: Token the update was for.
    :ivar status: Final status of the item.
    :ivar new_price: Requested fixed-point price.
    :ivar previous_price: On-chain price before the update, if read.
    :ivar percent_change: Change relative to the on-chain price.
    :ivar submitted: Whether a transaction was handed to the signer.
    :ivar tx_hash: Transaction hash, if known.
    :ivar block_number: Block the transaction was mined in.
    :ivar gas_used: Gas used by the transaction.
    :ivar reason: Reason for skipping.
    :ivar error: Error message for failed items.
    """

    token_address: str
    status: UpdateStatus
    new_price: str | None = None
    previous_price: int | None = None
    percent_change: float | None = None
    submitted: bool = False
    tx_hash: str | None = None
    block_number: int | None = None
    gas_used: int | None = None
    reason: str | None = None
    error: str | None = None


@dataclass
class BroadcastSummary:
    """Per-batch counts and item details.

    :ivar error: Set when the batch was aborted before any item was attempted.
    """

    total: int = 0
    successful: int = 0
    skipped: int = 0
    failed: int = 0
    transactions: list[UpdateOutcome] = field(default_factory=list)
    error: str | None = None

    def add(self, outcome: UpdateOutcome) -> None:
        self.transactions.append(outcome)
        if outcome.status is UpdateStatus.SUCCESSFUL:
            self.successful += 1
        elif outcome.status is UpdateStatus.SKIPPED:
            self.skipped += 1
        else:
            self.failed += 1


@dataclass
class GasEstimate:
    """Estimated cost of one update transaction (all amounts in wei)."""

    gas_limit: int
    gas_price: int

    @property
    def estimated_cost(self) -> int:
        return self.gas_limit * self.gas_price

    @property
    def gas_price_gwei(self) -> Decimal:
        return Web3.from_wei(self.gas_price, "gwei")

    @property
    def estimated_cost_ether(self) -> Decimal:
        return Web3.from_wei(self.estimated_cost, "ether")


def parse_fixed_point(value: str | int) -> int:
    """Validate an 18-decimal fixed-point value.

    :param value: Non-negative integer or decimal integer string.
    :returns: Value as int.
    :raises ValidationError: If the value is not a uint256.
    """
    if isinstance(value, bool):
        raise ValidationError(f"Invalid price: {value!r}")
    if isinstance(value, int):
        parsed = value
    elif isinstance(value, str) and value.isdigit():
        parsed = int(value)
    else:
        raise ValidationError(f"Invalid price: {value!r}")
    if not 0 <= parsed <= MAX_UINT256:
        raise ValidationError(f"Price out of uint256 range: {value!r}")
    return parsed


def percent_change(old: int, new: int) -> Decimal:
    """Exact percent change from ``old`` to ``new``.

    An unset price (0) counts as a 100% change for any positive new price.
    """
    if old == 0:
        return Decimal(100) if new > 0 else Decimal(0)
    return Decimal(new - old) * 100 / Decimal(old)


def should_skip(old: int, new: int, min_change_percent: Decimal) -> bool:
    return old != 0 and abs(percent_change(old, new)) < min_change_percent


class Broadcaster:
    """Diffs valuations against the oracle and submits material changes.

    :ivar w3: Web3 instance.
    :ivar contract: Oracle contract.
    :ivar signer: Transaction signer with update authority.
    :ivar delay_between_updates: Seconds to wait after each submitted item.
    :ivar min_change_percent: Smallest percent change that is submitted.
    """

    def __init__(
        self,
        w3: Web3,
        contract: Contract,
        signer: TransactionSigner,
        delay_between_updates: float = DEFAULT_UPDATE_DELAY,
        min_change_percent: float = DEFAULT_MIN_CHANGE_PERCENT,
    ) -> None:
        """Initialize the broadcaster.

        :param w3: Web3 instance.
        :param contract: Oracle contract bound to its ABI.
        :param signer: Signer used for all update transactions.
        :param delay_between_updates: Delay in seconds between submitted items
            (default: 2.0).
        :param min_change_percent: Skip threshold in percent (default: 1.0).
        :raises ValueError: If a parameter is negative.
        """
        if delay_between_updates < 0:
            raise ValueError("delay_between_updates must be non-negative")
        if min_change_percent < 0:
            raise ValueError("min_change_percent must be non-negative")

        self.w3 = w3
        self.contract = contract
        self.signer = signer
        self.delay_between_updates = delay_between_updates
        self.min_change_percent = min_change_percent
        self._min_change = Decimal(str(min_change_percent))
        self._lock = asyncio.Lock()

    async def broadcast(self, batch: list[PriceUpdate]) -> BroadcastSummary:
        """Process a batch of updates in order.

        A failure on one item is recorded and never aborts the batch. A
        signer with zero balance aborts the batch before any item.

        :param batch: Updates to process.
        :returns: Summary of the batch.
        """
        summary = BroadcastSummary(total=len(batch))
        if not batch:
            return summary

        async with self._lock:
            balance = await self.get_balance()
            if balance == 0:
                summary.error = f"Signer {self.signer.address} has zero balance"
                logger.error(f"{summary.error}, skipping {len(batch)} updates")
                return summary

            logger.info(f"Starting batch update for {len(batch)} tokens")
            for i, update in enumerate(batch):
                logger.info(
                    f"[{i + 1}/{len(batch)}] Processing "
                    f"{update.label or update.token_address}"
                )
                outcome = await self._update_price(
                    update.token_address, update.valuation_fixed_point
                )
                summary.add(outcome)

                if (
                    outcome.submitted
                    and i < len(batch) - 1
                    and self.delay_between_updates > 0
                ):
                    await asyncio.sleep(self.delay_between_updates)

        logger.info("=" * 60)
        logger.info("BATCH UPDATE SUMMARY")
        logger.info(
            f"Total: {summary.total}, Successful: {summary.successful}, "
            f"Skipped: {summary.skipped}, Failed: {summary.failed}"
        )
        logger.info("=" * 60)
        return summary

    async def update_price(self, token_address: str, price: str | int) -> UpdateOutcome:
        """Diff and, if material, submit a single update.

        :param token_address: Token address.
        :param price: 18-decimal fixed-point price.
        :returns: Outcome of the update; errors are captured, not raised.
        """
        async with self._lock:
            return await self._update_price(token_address, price)

    async def _update_price(self, token_address: str, price: str | int) -> UpdateOutcome:
        outcome = UpdateOutcome(
            token_address=token_address,
            status=UpdateStatus.FAILED,
            new_price=str(price),
        )
        try:
            if not is_valid_address(token_address):
                raise ValidationError(f"Invalid token address: {token_address!r}")
            new = parse_fixed_point(price)

            old = await self.get_current_price(token_address)
            change = percent_change(old, new)
            outcome.previous_price = old
            outcome.percent_change = float(change)

            if should_skip(old, new, self._min_change):
                outcome.status = UpdateStatus.SKIPPED
                outcome.reason = "Insignificant price change"
                logger.info(
                    f"Skipping {token_address} (price change: {change:.2f}%)"
                )
                return outcome

            outcome.submitted = True
            receipt = await asyncio.to_thread(self._submit, token_address, new)
            outcome.tx_hash = Web3.to_hex(receipt["transactionHash"])
            outcome.block_number = receipt["blockNumber"]
            outcome.gas_used = receipt["gasUsed"]
            if receipt["status"] == 0:
                raise TransactionRevertedError(outcome.tx_hash, outcome.block_number)

            outcome.status = UpdateStatus.SUCCESSFUL
            logger.info(
                f"Updated {token_address} in block {outcome.block_number} "
                f"(gas used: {outcome.gas_used}, change: {change:+.2f}%)"
            )
        except Exception as e:
            outcome.status = UpdateStatus.FAILED
            outcome.error = str(e)
            logger.error(f"Error updating price for {token_address}: {e}")
        return outcome

    def _submit(self, token_address: str, price: int):
        tx_params = self.contract.functions.updateTokenValue(
            Web3.to_checksum_address(token_address), price
        ).build_transaction(
            {"from": self.signer.address, "gasPrice": self.w3.eth.gas_price}
        )
        return self.signer.submit_tx(tx_params)

    async def get_current_price(self, token_address: str) -> int:
        """Read the stored price for a token.

        :param token_address: Token address.
        :returns: Fixed-point price, 0 if the oracle has no price for it.
        :raises ValidationError: If the address is malformed.
        """
        if not is_valid_address(token_address):
            raise ValidationError(f"Invalid token address: {token_address!r}")

        fn = self.contract.functions.getTokenValue(
            Web3.to_checksum_address(token_address)
        )
        try:
            return int(await asyncio.to_thread(fn.call))
        except ContractLogicError as e:
            logger.debug(f"No on-chain price for {token_address}: {e}")
            return 0

    async def get_balance(self) -> int:
        """Signer balance in wei."""
        return int(await asyncio.to_thread(self.w3.eth.get_balance, self.signer.address))

    async def is_authorized(self) -> bool:
        """Check whether the signer owns the oracle contract."""
        try:
            owner = await asyncio.to_thread(self.contract.functions.owner().call)
        except Exception as e:
            logger.error(f"Error checking oracle owner: {e}")
            return False
        return owner.lower() == self.signer.address.lower()

    async def estimate_gas_cost(
        self, token_address: str, price: str | int
    ) -> GasEstimate | None:
        """Estimate the cost of one update transaction.

        :param token_address: Token address.
        :param price: 18-decimal fixed-point price.
        :returns: GasEstimate, or None if estimation fails.
        :raises ValidationError: If the inputs are malformed.
        """
        if not is_valid_address(token_address):
            raise ValidationError(f"Invalid token address: {token_address!r}")
        value = parse_fixed_point(price)

        def estimate() -> GasEstimate:
            fn = self.contract.functions.updateTokenValue(
                Web3.to_checksum_address(token_address), value
            )
            return GasEstimate(
                gas_limit=int(fn.estimate_gas({"from": self.signer.address})),
                gas_price=int(self.w3.eth.gas_price),
            )

        try:
            return await asyncio.to_thread(estimate)
        except Exception as e:
            logger.error(f"Error estimating gas for {token_address}: {e}")
            return None
