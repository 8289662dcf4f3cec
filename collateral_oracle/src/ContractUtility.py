"""ContractUtility: Web3 initialization, signer wiring and contract ABI loading."""

import json
import os
from pathlib import Path

from eth_account import Account
from eth_account.signers.local import LocalAccount
from web3 import Web3
from web3.contract import Contract
from web3.middleware import SignAndSendRawMiddlewareBuilder

# Default JSON-RPC endpoints per network name.
NETWORKS: dict[str, str] = {
    "doma-testnet": "https://rpc-testnet.doma.xyz",
    "localnet": "http://localhost:8545",
}


class ContractUtility:
    """Utility for Web3 connection, signer setup and ABI loading.

    The signer account is attached to the Web3 instance as a signing
    middleware so that ``eth_sendTransaction`` calls originating from the
    account address are signed locally and sent as raw transactions.

    :ivar network: Network RPC URL.
    :ivar w3: Configured Web3 instance.
    :ivar account: Local signer account, or None for read-only use.
    """

    def __init__(
        self,
        network_name: str,
        private_key: str | None = None,
        rpc_url: str | None = None,
    ) -> None:
        """Initialize the contract utility.

        :param network_name: Name of the network to connect to, or an RPC URL.
        :param private_key: Optional hex private key of the updater account.
        :param rpc_url: Optional RPC URL overriding the network default.
        """
        # RPC_URL env var overrides the default for the network
        self.network = (
            rpc_url
            or os.environ.get("RPC_URL")
            or NETWORKS.get(network_name, network_name)
        )

        self.w3 = Web3(Web3.HTTPProvider(self.network))
        self.account: LocalAccount | None = None
        if private_key:
            self.account = Account.from_key(private_key)
            self.w3.middleware_onion.add(
                SignAndSendRawMiddlewareBuilder.build(self.account)
            )
            self.w3.eth.default_account = self.account.address

    def contract(self, address: str, contract_name: str) -> Contract:
        """Bind a contract at ``address`` using a bundled ABI.

        :param address: Contract address (any case).
        :param contract_name: ABI name (e.g., "DomaRankOracle").
        :returns: Web3 contract instance.
        """
        return self.w3.eth.contract(
            address=Web3.to_checksum_address(address),
            abi=ContractUtility.get_abi(contract_name),
        )

    @staticmethod
    def get_abi(contract_name: str) -> list:
        """Fetch the ABI of a contract from the bundled abi folder.

        :param contract_name: Name of the contract (e.g., "UniswapV3Pool").
        :returns: ABI list.
        """
        output_path = (
            Path(__file__).parent.parent / "abi" / f"{contract_name}.json"
        ).resolve()

        with open(output_path, "r") as file:
            contract_data = json.load(file)

        return contract_data["abi"]
