"""Crowdsale service — unified facade for the sale engine.

This is the primary interface for programmatic access. It wires and
orchestrates all subsystems:
- Access gate (administrator identity, whitelist)
- Rate controller and bonus tiers
- Contribution processor (public purchases)
- Administrative allocator (grants and corrections)
- Vesting ledger, release engine, revoked pool
- Sale lifecycle (finalization, token owner hand-off)
- Persistence (event log, state store)

The engine is a single serialized state machine: every entry point runs
under one process-wide lock, so no operation observes another's partial
effects. Caller identity and the current time are explicit inputs; the
service only falls back to the wall clock when ``now`` is omitted.

All operations return a ServiceResult. A failed operation changes
nothing. A committed operation appends exactly one audit event; if the
audit log or state store then fails, the in-memory state stays committed
(tokens have already moved) and the service reports a degraded warning.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any, Callable, Iterable, Optional, Union

from crowdsale.access.gate import AccessGate
from crowdsale.errors import SaleError
from crowdsale.models.sale import SaleConfig, VestingSchedule
from crowdsale.persistence.event_log import EventKind, EventLog, EventRecord
from crowdsale.persistence.state_store import StateStore
from crowdsale.policy.resolver import SalePolicy
from crowdsale.pricing.bonus import bonus_percent, is_open
from crowdsale.pricing.rate import RateController
from crowdsale.sale.allocation import AdministrativeAllocator
from crowdsale.sale.contribution import ContributionProcessor
from crowdsale.sale.lifecycle import SaleLifecycle
from crowdsale.token.ledger import (
    FundsWallet,
    InMemoryTokenLedger,
    InMemoryWallet,
    TokenLedger,
)
from crowdsale.vesting.ledger import VestingLedger
from crowdsale.vesting.release import ReleaseEngine
from crowdsale.vesting.revocation import RevocationManager, RevokedPool


@dataclass(frozen=True)
class ServiceResult:
    """Result of a service operation."""
    success: bool
    errors: list[str] = field(default_factory=list)
    data: dict[str, Any] = field(default_factory=dict)

    @property
    def error_code(self) -> Optional[str]:
        return self.data.get("error")


def _jsonable(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


def _schedule_data(schedule: VestingSchedule) -> dict[str, Any]:
    return {
        "beneficiary": schedule.beneficiary,
        "initial_amount": schedule.initial_amount,
        "initial_bonus": schedule.initial_bonus,
        "initial_balance": schedule.initial_balance,
        "bonus_balance": schedule.bonus_balance,
        "start_timestamp": schedule.start_timestamp,
        "end_timestamp": schedule.end_timestamp,
        "state": schedule.state.value,
    }


class CrowdsaleService:
    """Unified crowdsale engine facade.

    Usage:
        config = SalePolicy.from_config_dir(config_dir).sale_config()
        service = CrowdsaleService(config)

        service.add_to_whitelist("owner", ["alice", "bob"])
        service.buy_tokens("alice", "alice", Decimal("1"), now=day_one)
        service.finalize("owner", now=after_end)
        service.release("alice", "alice", now=a_month_later)

    Persistence (optional):
        service = CrowdsaleService(config, event_log=log, state_store=store)
        # State is saved after each committed operation and loaded on
        # construction.
    """

    def __init__(
        self,
        config: SaleConfig,
        token: Optional[TokenLedger] = None,
        wallet: Optional[FundsWallet] = None,
        event_log: Optional[EventLog] = None,
        state_store: Optional[StateStore] = None,
    ) -> None:
        self._config = config
        self._lock = threading.RLock()
        self._event_log = event_log
        self._state_store = state_store

        snapshot = state_store.load() if state_store is not None else None
        if token is None:
            if snapshot is not None and "token" in snapshot:
                token = InMemoryTokenLedger.from_dict(snapshot["token"])
            else:
                token = InMemoryTokenLedger(owner=config.sale_address)
        if wallet is None:
            if snapshot is not None and "wallet" in snapshot:
                wallet = InMemoryWallet.from_dict(snapshot["wallet"])
            else:
                wallet = InMemoryWallet(config.wallet_address)
        self._token = token
        self._wallet = wallet

        self._gate = AccessGate(config.admin)
        self._rates = RateController(self._gate, config.rate)
        self._ledger = VestingLedger(config)
        self._pool = RevokedPool()
        self._contributions = ContributionProcessor(
            config, self._gate, self._rates, self._ledger, token, wallet,
        )
        self._allocator = AdministrativeAllocator(
            config, self._gate, self._ledger, self._pool, token,
        )
        self._release_engine = ReleaseEngine(config, self._ledger, token)
        self._revocations = RevocationManager(
            config, self._gate, self._ledger, self._pool, token,
        )
        self._lifecycle = SaleLifecycle(config, self._gate, token)

        if snapshot is not None:
            self._restore(snapshot)

        # Continue numbering from the persisted log to avoid ID collisions
        self._event_counter = event_log.count if event_log is not None else 0
        self._persistence_degraded: bool = False

    @classmethod
    def from_config_dir(
        cls,
        config_dir: Path,
        data_dir: Optional[Path] = None,
        env_file: Optional[Path] = None,
    ) -> "CrowdsaleService":
        """Build a service from sale_params.json, durable if data_dir is given."""
        config = SalePolicy.from_config_dir(config_dir, env_file=env_file).sale_config()
        if data_dir is None:
            return cls(config)
        data_dir.mkdir(parents=True, exist_ok=True)
        return cls(
            config,
            event_log=EventLog(storage_path=data_dir / "events.jsonl"),
            state_store=StateStore(storage_path=data_dir / "state.json"),
        )

    # ------------------------------------------------------------------
    # Access gate
    # ------------------------------------------------------------------

    def add_to_whitelist(
        self, caller: str, addresses: Union[str, Iterable[str]],
    ) -> ServiceResult:
        def action() -> dict[str, Any]:
            added = self._gate.add_to_whitelist(caller, addresses)
            return {"added": added}
        return self._execute(caller, EventKind.WHITELIST_ADDED, action, None)

    def remove_from_whitelist(
        self, caller: str, addresses: Union[str, Iterable[str]],
    ) -> ServiceResult:
        def action() -> dict[str, Any]:
            removed = self._gate.remove_from_whitelist(caller, addresses)
            return {"removed": removed}
        return self._execute(caller, EventKind.WHITELIST_REMOVED, action, None)

    def is_whitelisted(self, address: str) -> bool:
        with self._lock:
            return self._gate.is_whitelisted(address)

    # ------------------------------------------------------------------
    # Rate
    # ------------------------------------------------------------------

    def update_rate(self, caller: str, new_rate: Decimal) -> ServiceResult:
        def action() -> dict[str, Any]:
            previous = self._rates.update_rate(caller, new_rate)
            return {"previous_rate": previous, "rate": self._rates.rate}
        return self._execute(caller, EventKind.RATE_UPDATED, action, None)

    # ------------------------------------------------------------------
    # Purchase and allocation
    # ------------------------------------------------------------------

    def buy_tokens(
        self,
        caller: str,
        beneficiary: str,
        value_sent: Decimal,
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        """Purchase tokens for beneficiary with value_sent."""
        now = now or datetime.now(timezone.utc)

        def action() -> dict[str, Any]:
            schedule = self._contributions.buy_tokens(caller, beneficiary, value_sent, now)
            data = _schedule_data(schedule)
            data["value_sent"] = value_sent
            data["rate"] = self._rates.rate
            data["bonus_percent"] = bonus_percent(self._config, now)
            return data
        return self._execute(caller, EventKind.TOKENS_PURCHASED, action, now)

    def mint_and_vest(
        self,
        caller: str,
        beneficiary: str,
        initial_amount: Decimal,
        initial_bonus: Decimal,
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        """Grant a vesting allocation outside the purchase path."""
        now = now or datetime.now(timezone.utc)

        def action() -> dict[str, Any]:
            schedule = self._allocator.mint_and_vest(
                caller, beneficiary, initial_amount, initial_bonus, now,
            )
            return _schedule_data(schedule)
        return self._execute(caller, EventKind.ALLOCATION_MINTED, action, now)

    def update_vesting_schedule(
        self,
        caller: str,
        beneficiary: str,
        new_initial_amount: Decimal,
        new_initial_bonus: Decimal,
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        """Lower an existing schedule's balances; the difference is pooled."""
        now = now or datetime.now(timezone.utc)

        def action() -> dict[str, Any]:
            forfeiture = self._allocator.update_vesting_schedule(
                caller, beneficiary, new_initial_amount, new_initial_bonus, now,
            )
            data = _schedule_data(self._ledger.require(beneficiary))
            data["reclaimed_principal"] = forfeiture.principal
            data["reclaimed_bonus"] = forfeiture.bonus
            data["revoked_amount"] = self._pool.revoked_amount
            return data
        return self._execute(caller, EventKind.SCHEDULE_CORRECTED, action, now)

    # ------------------------------------------------------------------
    # Release
    # ------------------------------------------------------------------

    def release(
        self,
        caller: str,
        beneficiary: str,
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        """Pay out whatever has unlocked for beneficiary.

        Anyone may trigger a release; tokens always go to beneficiary.
        """
        now = now or datetime.now(timezone.utc)

        def action() -> dict[str, Any]:
            result = self._release_engine.release(beneficiary, now)
            schedule = self._ledger.require(beneficiary)
            return {
                "beneficiary": beneficiary,
                "principal_released": result.principal_released,
                "bonus_released": result.bonus_released,
                "total_released": result.total,
                "initial_balance": schedule.initial_balance,
                "bonus_balance": schedule.bonus_balance,
            }
        return self._execute(caller, EventKind.TOKENS_RELEASED, action, now)

    def releasable(
        self, beneficiary: str, now: Optional[datetime] = None,
    ) -> Optional[tuple[Decimal, Decimal]]:
        """(principal, bonus) claimable at now, or None without a schedule."""
        now = now or datetime.now(timezone.utc)
        with self._lock:
            if not self._ledger.has_schedule(beneficiary):
                return None
            return self._release_engine.releasable(beneficiary, now)

    # ------------------------------------------------------------------
    # Revocation and pool
    # ------------------------------------------------------------------

    def revoke_vesting(
        self,
        caller: str,
        beneficiary: str,
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        """Forfeit beneficiary's unclaimed balance into the revoked pool."""
        now = now or datetime.now(timezone.utc)

        def action() -> dict[str, Any]:
            forfeiture = self._revocations.revoke_vesting(caller, beneficiary, now)
            return {
                "beneficiary": beneficiary,
                "forfeited_principal": forfeiture.principal,
                "forfeited_bonus": forfeiture.bonus,
                "revoked_amount": self._pool.revoked_amount,
            }
        return self._execute(caller, EventKind.VESTING_REVOKED, action, now)

    def transfer_revoked_tokens(
        self,
        caller: str,
        to: str,
        amount: Decimal,
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        now = now or datetime.now(timezone.utc)

        def action() -> dict[str, Any]:
            transfer = self._revocations.transfer_revoked_tokens(caller, to, amount, now)
            return {
                "recipient": transfer.recipient,
                "amount": transfer.amount,
                "revoked_amount": self._pool.revoked_amount,
            }
        return self._execute(caller, EventKind.REVOKED_TOKENS_TRANSFERRED, action, now)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def finalize(self, caller: str, now: Optional[datetime] = None) -> ServiceResult:
        """Close the sale and mint the team allocation (once)."""
        now = now or datetime.now(timezone.utc)

        def action() -> dict[str, Any]:
            self._lifecycle.finalize(caller, now)
            return {
                "team_address": self._config.team_address,
                "team_allocation": self._config.team_allocation,
            }
        return self._execute(caller, EventKind.SALE_FINALIZED, action, now)

    def update_token_owner(
        self, caller: str, new_owner: str, now: Optional[datetime] = None,
    ) -> ServiceResult:
        """Hand token mint authority to new_owner."""
        def action() -> dict[str, Any]:
            previous = self._lifecycle.update_token_owner(caller, new_owner)
            return {"previous_owner": previous, "new_owner": new_owner}
        return self._execute(caller, EventKind.TOKEN_OWNER_UPDATED, action, now)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def config(self) -> SaleConfig:
        return self._config

    @property
    def token(self) -> TokenLedger:
        return self._token

    @property
    def wallet(self) -> FundsWallet:
        return self._wallet

    @property
    def event_log(self) -> Optional[EventLog]:
        return self._event_log

    @property
    def rate(self) -> Decimal:
        return self._rates.rate

    @property
    def revoked_amount(self) -> Decimal:
        return self._pool.revoked_amount

    @property
    def tokens_allocated(self) -> Decimal:
        return self._ledger.tokens_allocated

    @property
    def finalized(self) -> bool:
        return self._lifecycle.finalized

    @property
    def persistence_degraded(self) -> bool:
        return self._persistence_degraded

    def get_schedule(self, beneficiary: str) -> Optional[VestingSchedule]:
        with self._lock:
            return self._ledger.get(beneficiary)

    def schedule_history(self, beneficiary: str) -> list[VestingSchedule]:
        with self._lock:
            return self._ledger.history(beneficiary)

    def whitelist(self) -> list[str]:
        with self._lock:
            return self._gate.whitelist()

    def check_invariants(self) -> list[str]:
        """Accounting invariant violations. Empty = consistent.

        Custody must cover every unclaimed balance plus the revoked pool.
        """
        with self._lock:
            errors = self._ledger.check_invariants()
            pool = self._pool.get_state()
            if pool.revoked_amount < Decimal("0"):
                errors.append("revoked_amount is negative")
            if pool.revoked_amount != pool.total_forfeited - pool.total_transferred:
                errors.append("revoked_amount does not match forfeitures minus transfers")
            owed = self._custody_obligations()
            custody = self._token.balance_of(self._config.sale_address)
            if custody < owed:
                errors.append(f"custody balance {custody} below obligations {owed}")
            return errors

    def status(self, now: Optional[datetime] = None) -> dict[str, Any]:
        """Return a sale-wide status summary."""
        now = now or datetime.now(timezone.utc)
        with self._lock:
            schedules = self._ledger.schedules()
            custody = self._token.balance_of(self._config.sale_address)
            return {
                "version": "0.1.0",
                "sale": {
                    "open": is_open(self._config, now),
                    "start_time": self._config.start_time.isoformat(),
                    "end_time": self._config.end_time.isoformat(),
                    "rate": str(self._rates.rate),
                    "finalized": self._lifecycle.finalized,
                },
                "supply": {
                    "cap": str(self._config.sale_supply_cap),
                    "allocated": str(self._ledger.tokens_allocated),
                    "remaining": str(self._ledger.remaining_supply),
                },
                "schedules": {
                    "total": len(schedules),
                    "revoked": sum(1 for s in schedules if s.revoked),
                },
                "whitelist_size": len(self._gate.whitelist()),
                "revoked_amount": str(self._pool.revoked_amount),
                "custody_balance": str(custody),
                "custody_surplus": str(max(custody - self._custody_obligations(), Decimal("0"))),
                "token_owner": self._token.owner,
                "persistence_degraded": self._persistence_degraded,
            }

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _execute(
        self,
        caller: str,
        kind: EventKind,
        action: Callable[[], dict[str, Any]],
        now: Optional[datetime],
    ) -> ServiceResult:
        """Run one state-mutating operation under the global lock.

        The action either raises SaleError having changed nothing, or
        commits and returns its result data.
        """
        with self._lock:
            try:
                data = action()
            except SaleError as e:
                return ServiceResult(success=False, errors=[str(e)], data={"error": e.code})

            payload = _jsonable(data)
            warnings = [
                w for w in (
                    self._record_event(kind, caller, payload, now),
                    self._safe_persist_post_audit(),
                )
                if w
            ]
            if warnings:
                payload["warning"] = "; ".join(warnings)
            return ServiceResult(success=True, data=payload)

    def _custody_obligations(self) -> Decimal:
        """Unclaimed schedule balances plus the revoked pool."""
        return sum(
            (s.total_balance for s in self._ledger.schedules()), Decimal("0"),
        ) + self._pool.revoked_amount

    def _next_event_id(self) -> str:
        """Generate a monotonically increasing unique event ID."""
        self._event_counter += 1
        return f"EVT-{self._event_counter:08d}"

    def _record_event(
        self,
        kind: EventKind,
        caller: str,
        payload: dict[str, Any],
        now: Optional[datetime],
    ) -> Optional[str]:
        """Append an audit event. Returns a warning string or None."""
        if self._event_log is None:
            return None
        try:
            self._event_log.append(EventRecord.create(
                event_id=self._next_event_id(),
                event_kind=kind,
                actor_id=caller,
                payload=payload,
                timestamp_utc=now,
            ))
            return None
        except (ValueError, OSError) as e:
            self._persistence_degraded = True
            return f"Event log failure: {e}; operation committed without audit record"

    def _snapshot(self) -> dict[str, Any]:
        snapshot: dict[str, Any] = {
            "rate": str(self._rates.rate),
            "whitelist": self._gate.whitelist(),
            "schedules": [s.to_dict() for s in self._ledger.schedules()],
            "history": {
                s.beneficiary: [h.to_dict() for h in self._ledger.history(s.beneficiary)]
                for s in self._ledger.schedules()
                if self._ledger.history(s.beneficiary)
            },
            "tokens_allocated": str(self._ledger.tokens_allocated),
            "pool": self._pool.to_dict(),
            "finalized": self._lifecycle.finalized,
            "finalized_utc": (
                self._lifecycle.finalized_utc.isoformat()
                if self._lifecycle.finalized_utc
                else None
            ),
        }
        if isinstance(self._token, InMemoryTokenLedger):
            snapshot["token"] = self._token.to_dict()
        if isinstance(self._wallet, InMemoryWallet):
            snapshot["wallet"] = self._wallet.to_dict()
        return snapshot

    def _restore(self, snapshot: dict[str, Any]) -> None:
        self._rates.restore(Decimal(snapshot["rate"]))
        self._gate.restore(snapshot["whitelist"])
        self._ledger.restore(
            [VestingSchedule.from_dict(s) for s in snapshot["schedules"]],
            {
                addr: [VestingSchedule.from_dict(h) for h in records]
                for addr, records in snapshot.get("history", {}).items()
            },
            Decimal(snapshot["tokens_allocated"]),
        )
        self._pool = RevokedPool.from_dict(snapshot["pool"])
        self._allocator = AdministrativeAllocator(
            self._config, self._gate, self._ledger, self._pool, self._token,
        )
        self._revocations = RevocationManager(
            self._config, self._gate, self._ledger, self._pool, self._token,
        )
        finalized_utc = snapshot.get("finalized_utc")
        self._lifecycle.restore(
            snapshot["finalized"],
            datetime.fromisoformat(finalized_utc) if finalized_utc else None,
        )

    def _safe_persist_post_audit(self) -> Optional[str]:
        """Persist state after the operation has committed.

        MUST NOT roll back in-memory state; tokens have already moved.
        On failure sets the degraded flag and returns a warning.
        """
        if self._state_store is None:
            return None
        try:
            self._state_store.save(self._snapshot())
            return None
        except OSError as e:
            self._persistence_degraded = True
            return f"Persistence degraded: {e}; state committed but StateStore is stale"
