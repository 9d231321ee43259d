"""On-chain token ledger — TokenLedger over a mintable ERC-20 contract.

The engine's custody is an Ethereum account: config.sale_address must be
that account's address. Every mint, transfer and ownership hand-off is a
signed transaction that must be mined with status 1 before the call
returns. Anything else surfaces as TokenLedgerError, so the engine never
commits state for a movement that did not happen.

Amounts are Decimal token units; the contract works in integer base
units (10 ** decimals per token). Conversion rounds down, so the engine's
token_precision must not be finer than one base unit.
"""

from __future__ import annotations

from decimal import ROUND_DOWN, Decimal
from typing import Any, Optional, Tuple, Type

from web3.exceptions import Web3Exception

from crowdsale.errors import SaleError, TokenLedgerError



MINTABLE_TOKEN_ABI: list[dict[str, Any]] = [
    {
        "name": "owner", "type": "function", "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "", "type": "address"}],
    },
    {
        "name": "balanceOf", "type": "function", "stateMutability": "view",
        "inputs": [{"name": "account", "type": "address"}],
        "outputs": [{"name": "", "type": "uint256"}],
    },
    {
        "name": "mint", "type": "function", "stateMutability": "nonpayable",
        "inputs": [
            {"name": "to", "type": "address"},
            {"name": "amount", "type": "uint256"},
        ],
        "outputs": [{"name": "", "type": "bool"}],
    },
    {
        "name": "transfer", "type": "function", "stateMutability": "nonpayable",
        "inputs": [
            {"name": "to", "type": "address"},
            {"name": "amount", "type": "uint256"},
        ],
        "outputs": [{"name": "", "type": "bool"}],
    },
    {
        "name": "transferOwnership", "type": "function", "stateMutability": "nonpayable",
        "inputs": [{"name": "newOwner", "type": "address"}],
        "outputs": [],
    },
]



def gas_price_wei(w3: Any, gas_price_gwei: Optional[str]) -> int:
    """Fixed gas price when configured, else the node's current quote."""
    if gas_price_gwei is not None:
        return w3.to_wei(gas_price_gwei, "gwei")
    return w3.eth.gas_price


def submit_transaction(
    w3: Any,
    account: Any,
    tx: dict[str, Any],
    timeout: int = 300,
    error_cls: Type[SaleError] = TokenLedgerError,
) -> Tuple[str, dict[str, Any]]:
    """Sign tx as account, broadcast it and wait for the receipt.

    Returns (tx_hash_hex, receipt). Any RPC failure or a receipt with
    status != 1 raises error_cls.
    """
    try:
        signed = account.sign_transaction(tx)
        tx_hash = w3.eth.send_raw_transaction(signed.raw_transaction)
        receipt = w3.eth.wait_for_transaction_receipt(tx_hash, timeout=timeout)
    except (Web3Exception, ValueError) as e:
        raise error_cls(f"Transaction failed: {e}") from e

    if receipt["status"] != 1:
        raise error_cls(f"Transaction {tx_hash.hex()} reverted")
    return tx_hash.hex(), receipt


class Web3TokenLedger:
    """TokenLedger backed by a deployed token contract.

    Usage:
        token = Web3TokenLedger.connect(
            rpc_url, token_address, private_key,
            token_precision=config.token_precision,
        )
        service = CrowdsaleService(config, token=token)
    """

    def __init__(
        self,
        w3: Any,
        contract: Any,
        account: Any,
        decimals: int = 18,
        chain_id: Optional[int] = None,
        gas: int = 200_000,
        gas_price_gwei: Optional[str] = None,
        receipt_timeout: int = 300,
        token_precision: Optional[Decimal] = None,
    ) -> None:
        base_unit = Decimal(1).scaleb(-decimals)
        if token_precision is not None and token_precision < base_unit:
            raise ValueError(
                f"token_precision {token_precision} is finer than the contract's "
                f"base unit {base_unit} ({decimals} decimals)"
            )
        self._w3 = w3
        self._contract = contract
        self._account = account
        self._decimals = decimals
        self._chain_id = chain_id
        self._gas = gas
        self._gas_price_gwei = gas_price_gwei
        self._receipt_timeout = receipt_timeout
        self._last_tx_hash: Optional[str] = None

    @classmethod
    def connect(
        cls,
        rpc_url: str,
        token_address: str,
        private_key: str,
        chain_id: int = 11155111,  # Sepolia
        decimals: int = 18,
        gas_price_gwei: Optional[str] = None,
        token_precision: Optional[Decimal] = None,
    ) -> "Web3TokenLedger":
        from web3 import HTTPProvider, Web3
        from eth_account import Account

        w3 = Web3(HTTPProvider(rpc_url))
        contract = w3.eth.contract(
            address=Web3.to_checksum_address(token_address),
            abi=MINTABLE_TOKEN_ABI,
        )
        return cls(
            w3,
            contract,
            Account.from_key(private_key),
            decimals=decimals,
            chain_id=chain_id,
            gas_price_gwei=gas_price_gwei,
            token_precision=token_precision,
        )

    @property
    def address(self) -> str:
        """The custody account this ledger signs as."""
        return self._account.address

    @property
    def last_tx_hash(self) -> Optional[str]:
        return self._last_tx_hash

    @property
    def owner(self) -> str:
        return self._call(self._contract.functions.owner())

    def to_units(self, amount: Decimal) -> int:
        scaled = (amount * (Decimal(10) ** self._decimals)).to_integral_value(rounding=ROUND_DOWN)
        return int(scaled)

    def from_units(self, units: int) -> Decimal:
        return Decimal(units).scaleb(-self._decimals)

    def mint(self, to: str, amount: Decimal, sender: str) -> None:
        self._require_sender(sender)
        self._send(self._contract.functions.mint(to, self.to_units(amount)))

    def transfer(self, to: str, amount: Decimal, sender: str) -> None:
        self._require_sender(sender)
        self._send(self._contract.functions.transfer(to, self.to_units(amount)))

    def balance_of(self, address: str) -> Decimal:
        return self.from_units(self._call(self._contract.functions.balanceOf(address)))

    def transfer_ownership(self, new_owner: str, sender: str) -> None:
        self._require_sender(sender)
        if not new_owner:
            raise TokenLedgerError("New owner must not be blank")
        self._send(self._contract.functions.transferOwnership(new_owner))

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _require_sender(self, sender: str) -> None:
        if sender.lower() != self._account.address.lower():
            raise TokenLedgerError(
                f"Cannot sign as {sender}: ledger account is {self._account.address}"
            )

    def _call(self, fn: Any) -> Any:
        try:
            return fn.call()
        except (Web3Exception, ValueError) as e:
            raise TokenLedgerError(f"Token contract call failed: {e}") from e

    def _send(self, fn: Any) -> str:
        """Build one contract transaction and submit it."""
        try:
            tx = fn.build_transaction({
                "from": self._account.address,
                "nonce": self._w3.eth.get_transaction_count(self._account.address),
                "gas": self._gas,
                "gasPrice": gas_price_wei(self._w3, self._gas_price_gwei),
                "chainId": self._chain_id if self._chain_id is not None else self._w3.eth.chain_id,
            })
        except (Web3Exception, ValueError) as e:
            raise TokenLedgerError(f"Token transaction failed: {e}") from e

        tx_hash, _ = submit_transaction(
            self._w3, self._account, tx, timeout=self._receipt_timeout,
        )
        self._last_tx_hash = tx_hash
        return tx_hash
