#!/usr/bin/env python3
"""Anchor the crowdsale audit log on chain.

Computes the SHA-256 of data/events.jsonl and embeds it in a blockchain
transaction, giving tamper-evident proof of the sale's history at this
moment. Each anchor is appended to data/anchors.jsonl.

Usage:
    python3 tools/anchor_event_log.py
    python3 tools/anchor_event_log.py path/to/events.jsonl

Requires:
    SEPOLIA_RPC_URL and PRIVATE_KEY in a .env file at the project root.
    ANCHOR_CHAIN_ID, ANCHOR_EXPLORER_TX_URL and ANCHOR_GAS_PRICE_GWEI
    are optional.
"""

import json
import os
import sys
from dataclasses import asdict
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT / "src"))

from dotenv import load_dotenv
from crowdsale.errors import AnchorError
from crowdsale.persistence.anchor import AnchorSettings, anchor_event_log


def main(argv: list) -> int:
    load_dotenv(ROOT / ".env")
    try:
        settings = AnchorSettings.from_env(os.environ)
    except ValueError as e:
        print(f"ERROR: {e} (check .env)")
        return 1

    log_path = Path(argv[0]) if argv else ROOT / "data" / "events.jsonl"
    if not log_path.exists():
        print(f"ERROR: Event log not found: {log_path}")
        return 1

    print(f"  Event log:  {log_path}")
    print(f"Anchoring to chain {settings.chain_id} ...")
    try:
        record = anchor_event_log(log_path, settings)
    except AnchorError as e:
        print(f"ERROR: {e}")
        return 1

    anchors_path = log_path.parent / "anchors.jsonl"
    with anchors_path.open("a", encoding="utf-8") as f:
        f.write(json.dumps(asdict(record), sort_keys=True) + "\n")

    print(f"  SHA-256:    {record.log_digest}")
    print(f"  Events:     {record.event_count}")
    print(f"  Tx:         {record.tx_hash}")
    print(f"  Block:      {record.block_number}")
    print(f"  Explorer:   {record.explorer_url}")
    print(f"  Logged:     {anchors_path}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
