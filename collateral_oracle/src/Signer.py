"""Signer: Transaction submission for the single oracle updater account."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

from web3 import Web3
from web3.types import TxParams, TxReceipt

logger = logging.getLogger(__name__)

# Bounded wait for a transaction receipt (seconds).
DEFAULT_RECEIPT_TIMEOUT = 120.0


class TransactionSigner(ABC):
    """Abstract base class for transaction signers.

    Provides the interface the Broadcaster uses to submit transactions
    on behalf of the oracle updater account.
    """

    @property
    @abstractmethod
    def address(self) -> str:
        """Checksummed address of the signing account."""
        pass

    @abstractmethod
    def submit_tx(self, tx: TxParams) -> TxReceipt:
        """Sign, send and wait for a transaction.

        :param tx: Transaction parameters.
        :returns: Transaction receipt once mined.
        """
        pass


class LocalAccountSigner(TransactionSigner):
    """Signer backed by a local private key.

    Relies on the signing middleware installed by ContractUtility: the
    transaction is handed to ``eth_sendTransaction`` and signed locally
    before being forwarded as a raw transaction.

    :ivar w3: Web3 instance with signing middleware.
    :ivar receipt_timeout: Seconds to wait for a receipt.
    """

    def __init__(
        self,
        w3: Web3,
        address: str,
        receipt_timeout: float = DEFAULT_RECEIPT_TIMEOUT,
    ) -> None:
        """Initialize the local signer.

        :param w3: Web3 instance with the signing middleware configured.
        :param address: Address of the account registered in the middleware.
        :param receipt_timeout: Seconds to wait for confirmation (default: 120).
        """
        self.w3 = w3
        self._address = Web3.to_checksum_address(address)
        self.receipt_timeout = receipt_timeout

    @property
    def address(self) -> str:
        return self._address

    def submit_tx(self, tx: TxParams) -> TxReceipt:
        """Submit a transaction and wait for its receipt.

        :param tx: Transaction parameters (``from`` defaults to the signer).
        :returns: Transaction receipt.
        :raises web3.exceptions.TimeExhausted: If no receipt arrives in time.
        """
        tx.setdefault("from", self._address)

        tx_hash = self.w3.eth.send_transaction(tx)
        logger.info(
            f"Transaction sent: {Web3.to_hex(tx_hash)}, waiting for confirmation"
        )

        return self.w3.eth.wait_for_transaction_receipt(
            tx_hash, timeout=self.receipt_timeout
        )
