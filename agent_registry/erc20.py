"""
ERC-20 funding source.

Settles registry deposits and releases against a token contract: stakes are
pulled into the custody account with ``transferFrom`` (principals approve
the custody account first) and paid out with ``transfer``. Every transaction
is signed by the custody account.
"""
import logging
from typing import Any, Dict, Optional

from eth_account import Account
from eth_account.signers.base import BaseAccount
from web3 import Web3
from web3.exceptions import ContractLogicError, Web3Exception

from .config import NetworkConfig
from .exceptions import TransferFailedError
from .utils import normalize_address

logger = logging.getLogger(__name__)

DEFAULT_GAS_LIMIT = 100000


class ERC20FundingSource:
    """
    Funding source backed by an ERC-20 token contract.

    The custody account must hold gas funds on the target chain.
    """

    ERC20_ABI = [
        {
            "inputs": [
                {"internalType": "address", "name": "to", "type": "address"},
                {"internalType": "uint256", "name": "amount", "type": "uint256"}
            ],
            "name": "transfer",
            "outputs": [{"internalType": "bool", "name": "", "type": "bool"}],
            "stateMutability": "nonpayable",
            "type": "function"
        },
        {
            "inputs": [
                {"internalType": "address", "name": "from", "type": "address"},
                {"internalType": "address", "name": "to", "type": "address"},
                {"internalType": "uint256", "name": "amount", "type": "uint256"}
            ],
            "name": "transferFrom",
            "outputs": [{"internalType": "bool", "name": "", "type": "bool"}],
            "stateMutability": "nonpayable",
            "type": "function"
        },
        {
            "inputs": [{"internalType": "address", "name": "account", "type": "address"}],
            "name": "balanceOf",
            "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
            "stateMutability": "view",
            "type": "function"
        },
        {
            "inputs": [
                {"internalType": "address", "name": "owner", "type": "address"},
                {"internalType": "address", "name": "spender", "type": "address"}
            ],
            "name": "allowance",
            "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
            "stateMutability": "view",
            "type": "function"
        }
    ]

    def __init__(
        self,
        w3: Web3,
        token_address: str,
        custody_account: BaseAccount,
        receipt_timeout: int = 120,
        poll_interval: float = 0.1,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize the funding source

        Args:
            w3: Connected Web3 instance
            token_address: ERC-20 contract address
            custody_account: Account that holds custodied stake and signs transfers
            receipt_timeout: Seconds to wait for each transaction receipt
            poll_interval: Receipt polling interval in seconds
            logger: Optional logger instance
        """
        self.w3 = w3
        self.token_address = normalize_address(token_address)
        self.account = custody_account
        self.custody_address = normalize_address(custody_account.address)
        self.receipt_timeout = receipt_timeout
        self.poll_interval = poll_interval
        self.logger = logger or logging.getLogger(__name__)
        self.token = self.w3.eth.contract(address=self.token_address, abi=self.ERC20_ABI)

    @classmethod
    def from_network(
        cls,
        network: str,
        custody_key: str,
        rpc_url: Optional[str] = None,
        **kwargs: Any
    ) -> "ERC20FundingSource":
        """
        Build a funding source for a network listed in networks.json.

        Args:
            network: Network name (e.g. "baseSepolia")
            custody_key: Private key of the custody account
            rpc_url: Optional RPC override
        """
        w3 = Web3(Web3.HTTPProvider(NetworkConfig.get_rpc_url(network, rpc_url)))
        account = Account.from_key(custody_key)
        return cls(w3, NetworkConfig.get_token_address(network), account, **kwargs)

    def balance_of(self, address: str) -> int:
        return self.token.functions.balanceOf(normalize_address(address)).call()

    def allowance(self, owner: str) -> int:
        return self.token.functions.allowance(normalize_address(owner), self.custody_address).call()

    def pull(self, principal: str, amount: int) -> None:
        principal = normalize_address(principal)
        try:
            allowed = self.allowance(principal)
            balance = self.balance_of(principal)
        except (ContractLogicError, Web3Exception) as e:
            raise TransferFailedError(f"Could not read token state for {principal}: {e}")

        if allowed < amount:
            raise TransferFailedError(
                f"Insufficient allowance: {principal} approved {allowed}, needs {amount}"
            )
        if balance < amount:
            raise TransferFailedError(
                f"Insufficient balance: {principal} holds {balance}, needs {amount}"
            )

        self._send(
            self.token.functions.transferFrom(principal, self.custody_address, amount),
            f"transferFrom {principal} -> custody ({amount})"
        )

    def push(self, principal: str, amount: int) -> None:
        principal = normalize_address(principal)
        self._send(
            self.token.functions.transfer(principal, amount),
            f"transfer custody -> {principal} ({amount})"
        )

    def _send(self, fn: Any, label: str) -> str:
        """
        Build, sign and submit a token call, then wait for a successful receipt.

        Returns:
            Transaction hash as hex string

        Raises:
            TransferFailedError: On revert, send failure or failed receipt
        """
        try:
            nonce = self.w3.eth.get_transaction_count(self.custody_address)

            try:
                gas = int(fn.estimate_gas({"from": self.custody_address}) * 1.1)
            except ContractLogicError as e:
                raise TransferFailedError(f"{label} would revert: {e}")
            except Exception as e:
                gas = DEFAULT_GAS_LIMIT
                self.logger.warning(f"Gas estimation failed, using default: {gas}. Error: {e}")

            tx: Dict[str, Any] = fn.build_transaction({
                "from": self.custody_address,
                "nonce": nonce,
                "gas": gas,
                "gasPrice": self.w3.eth.gas_price,
            })
            signed_tx = self.account.sign_transaction(tx)
            tx_hash = self.w3.eth.send_raw_transaction(signed_tx.raw_transaction)
            tx_hex = Web3.to_hex(tx_hash)
            self.logger.info(f"Token transaction sent: {label} [{tx_hex}]")

            receipt = self.w3.eth.wait_for_transaction_receipt(
                tx_hash,
                timeout=self.receipt_timeout,
                poll_latency=self.poll_interval
            )
        except TransferFailedError:
            raise
        except (ContractLogicError, Web3Exception) as e:
            self.logger.error(f"Token transaction failed: {label}: {e}")
            raise TransferFailedError(f"{label} failed: {e}")
        except Exception as e:
            self.logger.error(f"Unexpected error during {label}: {e}")
            raise TransferFailedError(f"{label} failed: {e}")

        if receipt["status"] != 1:
            raise TransferFailedError(f"{label} reverted in transaction {tx_hex}")
        return tx_hex
