#!/usr/bin/env python3
"""Crowdsale invariant checks against the sale parameter file."""

import json
import sys
from datetime import datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path


ROOT = Path(__file__).resolve().parents[1]
PARAMS_PATH = ROOT / "config" / "sale_params.json"


def load_json(path: Path) -> dict:
    with path.open("r", encoding="utf-8") as handle:
        return json.load(handle)


def to_decimal(value, label: str, errors: list[str]):
    try:
        return Decimal(str(value))
    except InvalidOperation:
        errors.append(f"{label} is not a decimal: {value!r}")
        return None


def check_window(sale: dict, errors: list[str]) -> None:
    """Sale window must be timezone-aware and non-empty."""
    try:
        start = datetime.fromisoformat(sale["start_time"])
        end = datetime.fromisoformat(sale["end_time"])
    except (KeyError, TypeError, ValueError) as e:
        errors.append(f"sale window is malformed: {e}")
        return
    if start.tzinfo is None or end.tzinfo is None:
        errors.append("start_time and end_time must carry a UTC offset")
        return
    if start >= end:
        errors.append("start_time must be before end_time")


def check_bonus_tiers(tiers: list, errors: list[str]) -> None:
    """Day thresholds strictly increase; percentages never increase."""
    previous_day, previous_pct = 0, 100
    for tier in tiers:
        day, pct = tier["until_day"], tier["percent"]
        if day <= previous_day:
            errors.append(f"bonus tier until_day {day} must exceed {previous_day}")
        if not (0 <= pct <= previous_pct):
            errors.append(f"bonus tier percent {pct} must be in [0, {previous_pct}]")
        previous_day, previous_pct = day, pct


def check(params_path: Path = PARAMS_PATH) -> int:
    params = load_json(params_path)
    errors: list[str] = []

    # --- Sale invariants ---
    sale = params["sale"]
    check_window(sale, errors)
    rate = to_decimal(sale.get("rate"), "rate", errors)
    if rate is not None and rate <= 0:
        errors.append(f"rate must be > 0, got {rate}")
    if not sale.get("admin"):
        errors.append("admin must be set")
    addresses = [sale.get(k) for k in ("sale_address", "wallet_address", "team_address")]
    if len({a for a in addresses if a}) != len([a for a in addresses if a]):
        errors.append("sale, wallet and team addresses must be distinct")

    # --- Allocation invariants ---
    allocation = params["allocation"]
    min_alloc = to_decimal(allocation["min_initial_allocation"], "min_initial_allocation", errors)
    max_alloc = to_decimal(allocation["max_initial_allocation"], "max_initial_allocation", errors)
    cap = to_decimal(allocation["sale_supply_cap"], "sale_supply_cap", errors)
    team = to_decimal(allocation.get("team_allocation", "0"), "team_allocation", errors)
    if None not in (min_alloc, max_alloc, cap):
        if min_alloc <= 0:
            errors.append("min_initial_allocation must be > 0")
        if min_alloc > max_alloc:
            errors.append("min_initial_allocation must be <= max_initial_allocation")
        if max_alloc > cap:
            errors.append("max_initial_allocation must be <= sale_supply_cap")
    if team is not None and team < 0:
        errors.append("team_allocation must be >= 0")

    # --- Vesting invariants ---
    vesting = params.get("vesting", {})
    if vesting.get("vesting_duration_days", 1) <= 0:
        errors.append("vesting_duration_days must be > 0")
    for key in ("bonus_vesting_duration_days", "lock_period_days"):
        if vesting.get(key, 0) < 0:
            errors.append(f"{key} must be >= 0")
    interval = vesting.get("release_interval_days")
    if interval is not None and interval <= 0:
        errors.append("release_interval_days must be > 0 when set")

    # --- Bonus tier invariants ---
    check_bonus_tiers(params.get("bonus_tiers", []), errors)

    if errors:
        print("Invariant check failed:")
        for err in errors:
            print(f"- {err}")
        return 1

    print("Invariant check passed.")
    return 0


if __name__ == "__main__":
    raise SystemExit(check(Path(sys.argv[1]) if len(sys.argv) > 1 else PARAMS_PATH))
