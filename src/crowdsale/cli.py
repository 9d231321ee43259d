"""Crowdsale CLI — command-line interface for the sale engine.

Usage:
    python -m crowdsale.cli status
    python -m crowdsale.cli --caller owner whitelist-add alice bob
    python -m crowdsale.cli --caller alice --now 2026-11-02T12:00:00+00:00 buy --value 1
    python -m crowdsale.cli --caller owner mint-and-vest --beneficiary carol --amount 500000
    python -m crowdsale.cli --caller alice release --beneficiary alice
    python -m crowdsale.cli check-invariants

State lives in <data>/state.json and the audit trail in <data>/events.jsonl.
"""

from __future__ import annotations

import argparse
import json
import sys
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Optional

from crowdsale.service import CrowdsaleService, ServiceResult


DEFAULT_CONFIG = Path(__file__).resolve().parents[2] / "config"
DEFAULT_DATA = Path(__file__).resolve().parents[2] / "data"


def _make_service(args: argparse.Namespace) -> CrowdsaleService:
    """Create a CrowdsaleService with durable persistence."""
    return CrowdsaleService.from_config_dir(
        args.config, data_dir=args.data, env_file=args.config.parent / ".env",
    )


def _decimal_arg(value: str) -> Decimal:
    try:
        amount = Decimal(value)
    except InvalidOperation as e:
        raise argparse.ArgumentTypeError(f"not a decimal: {value!r}") from e
    if not amount.is_finite():
        raise argparse.ArgumentTypeError(f"not a finite decimal: {value!r}")
    return amount


def _timestamp_arg(value: str) -> datetime:
    try:
        ts = datetime.fromisoformat(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"not an ISO-8601 timestamp: {value!r}") from e
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


def _report(result: ServiceResult) -> int:
    if result.success:
        print(json.dumps(result.data, indent=2, sort_keys=True))
        if "warning" in result.data:
            print(f"Warning: {result.data['warning']}", file=sys.stderr)
        return 0
    print(f"Failed [{result.error_code}]: {'; '.join(result.errors)}", file=sys.stderr)
    return 1


def _caller(args: argparse.Namespace) -> Optional[str]:
    if not args.caller:
        print("Failed: --caller is required for this command", file=sys.stderr)
        return None
    return args.caller


def cmd_status(args: argparse.Namespace) -> int:
    service = _make_service(args)
    print(json.dumps(service.status(now=args.now), indent=2))
    return 0


def cmd_whitelist_add(args: argparse.Namespace) -> int:
    caller = _caller(args)
    if caller is None:
        return 2
    return _report(_make_service(args).add_to_whitelist(caller, args.addresses))


def cmd_whitelist_remove(args: argparse.Namespace) -> int:
    caller = _caller(args)
    if caller is None:
        return 2
    return _report(_make_service(args).remove_from_whitelist(caller, args.addresses))


def cmd_update_rate(args: argparse.Namespace) -> int:
    caller = _caller(args)
    if caller is None:
        return 2
    return _report(_make_service(args).update_rate(caller, args.rate))


def cmd_buy(args: argparse.Namespace) -> int:
    caller = _caller(args)
    if caller is None:
        return 2
    service = _make_service(args)
    beneficiary = args.beneficiary or caller
    return _report(service.buy_tokens(caller, beneficiary, args.value, now=args.now))


def cmd_mint_and_vest(args: argparse.Namespace) -> int:
    caller = _caller(args)
    if caller is None:
        return 2
    service = _make_service(args)
    return _report(service.mint_and_vest(
        caller, args.beneficiary, args.amount, args.bonus, now=args.now,
    ))


def cmd_update_schedule(args: argparse.Namespace) -> int:
    caller = _caller(args)
    if caller is None:
        return 2
    service = _make_service(args)
    return _report(service.update_vesting_schedule(
        caller, args.beneficiary, args.amount, args.bonus, now=args.now,
    ))


def cmd_release(args: argparse.Namespace) -> int:
    caller = _caller(args)
    if caller is None:
        return 2
    service = _make_service(args)
    beneficiary = args.beneficiary or caller
    return _report(service.release(caller, beneficiary, now=args.now))


def cmd_revoke(args: argparse.Namespace) -> int:
    caller = _caller(args)
    if caller is None:
        return 2
    return _report(_make_service(args).revoke_vesting(caller, args.beneficiary, now=args.now))


def cmd_transfer_revoked(args: argparse.Namespace) -> int:
    caller = _caller(args)
    if caller is None:
        return 2
    service = _make_service(args)
    return _report(service.transfer_revoked_tokens(caller, args.to, args.amount, now=args.now))


def cmd_finalize(args: argparse.Namespace) -> int:
    caller = _caller(args)
    if caller is None:
        return 2
    return _report(_make_service(args).finalize(caller, now=args.now))


def cmd_update_token_owner(args: argparse.Namespace) -> int:
    caller = _caller(args)
    if caller is None:
        return 2
    return _report(_make_service(args).update_token_owner(caller, args.new_owner, now=args.now))


def cmd_show_schedule(args: argparse.Namespace) -> int:
    service = _make_service(args)
    schedule = service.get_schedule(args.beneficiary)
    if schedule is None:
        print(f"No vesting schedule for {args.beneficiary}", file=sys.stderr)
        return 1
    principal, bonus = service.releasable(args.beneficiary, now=args.now)
    output = schedule.to_dict()
    output["releasable_principal"] = str(principal)
    output["releasable_bonus"] = str(bonus)
    output["history"] = [h.to_dict() for h in service.schedule_history(args.beneficiary)]
    print(json.dumps(output, indent=2, sort_keys=True))
    return 0


def cmd_check_invariants(args: argparse.Namespace) -> int:
    """Check sale parameters, then the accounting of the persisted state."""
    tools_dir = Path(__file__).resolve().parents[2] / "tools"
    sys.path.insert(0, str(tools_dir))
    from check_invariants import check
    status = check(args.config / "sale_params.json")
    if status != 0:
        return status

    errors = _make_service(args).check_invariants()
    if errors:
        print("State invariant check failed:")
        for err in errors:
            print(f"- {err}")
        return 1
    print("State invariant check passed.")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="crowdsale",
        description="Crowdsale with vesting: sale engine CLI",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=DEFAULT_CONFIG,
        help="Path to config directory (default: config/)",
    )
    parser.add_argument(
        "--data",
        type=Path,
        default=DEFAULT_DATA,
        help="Path to state directory (default: data/)",
    )
    parser.add_argument("--caller", help="Identity performing the action")
    parser.add_argument(
        "--now",
        type=_timestamp_arg,
        help="ISO-8601 time to act at (default: current UTC time)",
    )
    sub = parser.add_subparsers(dest="command")

    # status
    sub.add_parser("status", help="Show sale status")

    # whitelist
    p_wl_add = sub.add_parser("whitelist-add", help="Whitelist addresses for purchase")
    p_wl_add.add_argument("addresses", nargs="+", help="Addresses to add")
    p_wl_rm = sub.add_parser("whitelist-remove", help="Remove addresses from the whitelist")
    p_wl_rm.add_argument("addresses", nargs="+", help="Addresses to remove")

    # update-rate
    p_rate = sub.add_parser("update-rate", help="Change the rate (within ±10%%)")
    p_rate.add_argument("--rate", type=_decimal_arg, required=True, help="New rate (Decimal)")

    # buy
    p_buy = sub.add_parser("buy", help="Purchase tokens")
    p_buy.add_argument("--value", type=_decimal_arg, required=True, help="Value sent (Decimal)")
    p_buy.add_argument("--beneficiary", help="Recipient (default: caller)")

    # mint-and-vest
    p_mint = sub.add_parser("mint-and-vest", help="Grant a vesting allocation")
    p_mint.add_argument("--beneficiary", required=True, help="Recipient")
    p_mint.add_argument("--amount", type=_decimal_arg, required=True, help="Principal (Decimal)")
    p_mint.add_argument("--bonus", type=_decimal_arg, default=Decimal("0"), help="Bonus (Decimal)")

    # update-schedule
    p_upd = sub.add_parser("update-schedule", help="Lower a schedule's remaining balances")
    p_upd.add_argument("--beneficiary", required=True, help="Schedule owner")
    p_upd.add_argument("--amount", type=_decimal_arg, required=True, help="New principal balance")
    p_upd.add_argument("--bonus", type=_decimal_arg, required=True, help="New bonus balance")

    # release
    p_rel = sub.add_parser("release", help="Release unlocked tokens")
    p_rel.add_argument("--beneficiary", help="Schedule owner (default: caller)")

    # revoke
    p_rev = sub.add_parser("revoke", help="Revoke a vesting schedule")
    p_rev.add_argument("--beneficiary", required=True, help="Schedule owner")

    # transfer-revoked
    p_tr = sub.add_parser("transfer-revoked", help="Transfer tokens out of the revoked pool")
    p_tr.add_argument("--to", required=True, help="Recipient")
    p_tr.add_argument("--amount", type=_decimal_arg, required=True, help="Amount (Decimal)")

    # finalize
    sub.add_parser("finalize", help="Finalize the sale and mint the team allocation")

    # update-token-owner
    p_own = sub.add_parser("update-token-owner", help="Hand token mint authority over")
    p_own.add_argument("--new-owner", required=True, help="New token owner")

    # show-schedule
    p_show = sub.add_parser("show-schedule", help="Show a vesting schedule")
    p_show.add_argument("--beneficiary", required=True, help="Schedule owner")

    # check-invariants
    sub.add_parser("check-invariants", help="Run sale parameter and accounting checks")

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    commands = {
        "status": cmd_status,
        "whitelist-add": cmd_whitelist_add,
        "whitelist-remove": cmd_whitelist_remove,
        "update-rate": cmd_update_rate,
        "buy": cmd_buy,
        "mint-and-vest": cmd_mint_and_vest,
        "update-schedule": cmd_update_schedule,
        "release": cmd_release,
        "revoke": cmd_revoke,
        "transfer-revoked": cmd_transfer_revoked,
        "finalize": cmd_finalize,
        "update-token-owner": cmd_update_token_owner,
        "show-schedule": cmd_show_schedule,
        "check-invariants": cmd_check_invariants,
    }

    handler = commands.get(args.command)
    if handler is None:
        print(f"Unknown command: {args.command}", file=sys.stderr)
        return 1

    return handler(args)


if __name__ == "__main__":
    raise SystemExit(main())
