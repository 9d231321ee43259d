"""Audit log anchoring — witnesses the sale's event log on chain.

The SHA-256 of events.jsonl goes into the data field of a 0-value
self-send from the anchoring account. Because the log is append-only,
re-hashing the first ``event_count`` records of a later log must
reproduce an earlier anchor's digest; any rewrite of sale history shows
up as a mismatch.

Transactions go through the same sign/send/receipt path as the on-chain
token ledger. A reverted receipt or RPC failure raises AnchorError and
no AnchorRecord is produced.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping, Optional

from web3.exceptions import Web3Exception

from crowdsale.errors import AnchorError
from crowdsale.token.chain import gas_price_wei, submit_transaction


@dataclass(frozen=True)
class AnchorSettings:
    """Where and how to anchor, read from the environment.

    SEPOLIA_RPC_URL and PRIVATE_KEY are required. ANCHOR_CHAIN_ID,
    ANCHOR_EXPLORER_TX_URL and ANCHOR_GAS_PRICE_GWEI override the
    Sepolia defaults.
    """
    rpc_url: str
    private_key: str
    chain_id: int = 11155111
    explorer_tx_url: str = "https://sepolia.etherscan.io/tx/"
    gas: int = 30_000
    gas_price_gwei: Optional[str] = None

    @classmethod
    def from_env(cls, environ: Mapping[str, str]) -> "AnchorSettings":
        rpc_url = environ.get("SEPOLIA_RPC_URL")
        private_key = environ.get("PRIVATE_KEY") or environ.get("SEPOLIA_PRIVATE_KEY")
        if not rpc_url or not private_key:
            raise ValueError("SEPOLIA_RPC_URL and PRIVATE_KEY must be set")
        kwargs: dict[str, Any] = {}
        if environ.get("ANCHOR_CHAIN_ID"):
            kwargs["chain_id"] = int(environ["ANCHOR_CHAIN_ID"])
        if environ.get("ANCHOR_EXPLORER_TX_URL"):
            kwargs["explorer_tx_url"] = environ["ANCHOR_EXPLORER_TX_URL"]
        if environ.get("ANCHOR_GAS_PRICE_GWEI"):
            kwargs["gas_price_gwei"] = environ["ANCHOR_GAS_PRICE_GWEI"]
        return cls(rpc_url=rpc_url, private_key=private_key, **kwargs)


@dataclass(frozen=True)
class AnchorRecord:
    """One successful anchor of the sale's audit log."""
    log_path: str
    event_count: int
    log_digest: str
    tx_hash: str
    block_number: int
    chain_id: int
    anchored_utc: str
    explorer_url: str


def event_log_digest(log_path: Path) -> str:
    """SHA-256 hex digest of the raw JSONL bytes."""
    return hashlib.sha256(log_path.read_bytes()).hexdigest()


def _event_count(log_path: Path) -> int:
    with log_path.open("r", encoding="utf-8") as f:
        return sum(1 for line in f if line.strip())


def anchor_event_log(
    log_path: Path,
    settings: AnchorSettings,
    now: Optional[datetime] = None,
    w3: Optional[Any] = None,
) -> AnchorRecord:
    """Anchor the current state of the audit log.

    ``w3`` may be supplied to reuse an existing connection; otherwise one
    is opened on settings.rpc_url.

    Raises:
        AnchorError: the transaction failed or reverted.
    """
    from eth_account import Account

    if w3 is None:
        from web3 import HTTPProvider, Web3
        w3 = Web3(HTTPProvider(settings.rpc_url))
    account = Account.from_key(settings.private_key)
    digest = event_log_digest(log_path)

    try:
        tx = {
            "to": account.address,
            "value": 0,
            "gas": settings.gas,
            "gasPrice": gas_price_wei(w3, settings.gas_price_gwei),
            "nonce": w3.eth.get_transaction_count(account.address),
            "chainId": settings.chain_id,
            "data": bytes.fromhex(digest),
        }
    except (Web3Exception, ValueError) as e:
        raise AnchorError(f"Could not prepare anchor transaction: {e}") from e
    tx_hash, receipt = submit_transaction(w3, account, tx, error_cls=AnchorError)

    anchored = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
    return AnchorRecord(
        log_path=str(log_path),
        event_count=_event_count(log_path),
        log_digest=digest,
        tx_hash=tx_hash,
        block_number=receipt["blockNumber"],
        chain_id=settings.chain_id,
        anchored_utc=anchored.strftime("%Y-%m-%dT%H:%M:%SZ"),
        explorer_url=settings.explorer_tx_url + tx_hash,
    )
