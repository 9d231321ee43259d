"""Sale policy resolver — loads sale parameters into a SaleConfig.

Parameters live in ``<config_dir>/sale_params.json``. A handful of
deployment-specific values can be overridden from the environment, with
an optional ``.env`` file loaded first:

    CROWDSALE_ADMIN          administrator identity
    CROWDSALE_START_TIME     ISO-8601 sale open time (UTC offset required)
    CROWDSALE_END_TIME       ISO-8601 sale close time
    CROWDSALE_RATE           opening tokens-per-unit-value rate
    CROWDSALE_TEAM_ADDRESS   team-distribution recipient

Values already present in the process environment win over the .env
file. Invalid parameters raise ValueError at load time, so a sale never
starts from a config that violates its own invariants.
"""

from __future__ import annotations

import json
import os
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Mapping, Optional

from dotenv import load_dotenv

from crowdsale.models.sale import DEFAULT_BONUS_TIERS, SaleConfig


PARAMS_FILENAME = "sale_params.json"

ENV_OVERRIDES = {
    "CROWDSALE_ADMIN": ("sale", "admin"),
    "CROWDSALE_START_TIME": ("sale", "start_time"),
    "CROWDSALE_END_TIME": ("sale", "end_time"),
    "CROWDSALE_RATE": ("sale", "rate"),
    "CROWDSALE_TEAM_ADDRESS": ("sale", "team_address"),
}


def _decimal(value: Any, name: str) -> Decimal:
    try:
        amount = Decimal(str(value))
    except InvalidOperation as e:
        raise ValueError(f"{name} is not a valid decimal: {value!r}") from e
    if not amount.is_finite():
        raise ValueError(f"{name} must be finite: {value!r}")
    return amount


def _timestamp(value: str, name: str) -> datetime:
    try:
        ts = datetime.fromisoformat(value)
    except (TypeError, ValueError) as e:
        raise ValueError(f"{name} is not an ISO-8601 timestamp: {value!r}") from e
    if ts.tzinfo is None:
        raise ValueError(f"{name} must carry a UTC offset: {value!r}")
    return ts


def _days(value: Any) -> Optional[timedelta]:
    if value is None:
        return None
    return timedelta(days=float(value))


class SalePolicy:
    """Parsed sale parameters.

    Usage:
        policy = SalePolicy.from_config_dir(config_dir)
        config = policy.sale_config()
    """

    def __init__(self, params: dict[str, Any]) -> None:
        self._params = params
        self._config = self._build(params)

    @classmethod
    def from_config_dir(
        cls,
        config_dir: Path,
        env_file: Optional[Path] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> "SalePolicy":
        """Load sale_params.json, then apply environment overrides."""
        path = config_dir / PARAMS_FILENAME
        with path.open("r", encoding="utf-8") as handle:
            params = json.load(handle)
        if env_file is not None and env_file.exists():
            load_dotenv(env_file, override=False)
        return cls(cls.apply_overrides(params, os.environ if environ is None else environ))

    @staticmethod
    def apply_overrides(
        params: dict[str, Any], environ: Mapping[str, str],
    ) -> dict[str, Any]:
        """Return a copy of params with CROWDSALE_* variables applied."""
        merged = json.loads(json.dumps(params))
        for var, (section, key) in ENV_OVERRIDES.items():
            value = environ.get(var)
            if value:
                merged.setdefault(section, {})[key] = value
        return merged

    @property
    def params(self) -> dict[str, Any]:
        return self._params

    def sale_config(self) -> SaleConfig:
        return self._config

    @staticmethod
    def _build(params: dict[str, Any]) -> SaleConfig:
        sale = params["sale"]
        allocation = params["allocation"]
        vesting = params.get("vesting", {})
        tiers = params.get("bonus_tiers")
        bonus_tiers = (
            tuple((int(t["until_day"]), int(t["percent"])) for t in tiers)
            if tiers is not None
            else DEFAULT_BONUS_TIERS
        )
        kwargs: dict[str, Any] = {}
        for key in ("sale_address", "wallet_address", "team_address"):
            if key in sale:
                kwargs[key] = sale[key]
        if "team_allocation" in allocation:
            kwargs["team_allocation"] = _decimal(allocation["team_allocation"], "team_allocation")
        if "vesting_duration_days" in vesting:
            kwargs["vesting_duration"] = _days(vesting["vesting_duration_days"])
        if "bonus_vesting_duration_days" in vesting:
            kwargs["bonus_vesting_duration"] = _days(vesting["bonus_vesting_duration_days"])
        if "lock_period_days" in vesting:
            kwargs["lock_period"] = _days(vesting["lock_period_days"])
        if "release_interval_days" in vesting:
            kwargs["release_interval"] = _days(vesting["release_interval_days"])
        if "revocable" in vesting:
            kwargs["revocable"] = bool(vesting["revocable"])
        if "token_precision" in vesting:
            kwargs["token_precision"] = _decimal(vesting["token_precision"], "token_precision")

        return SaleConfig(
            start_time=_timestamp(sale["start_time"], "start_time"),
            end_time=_timestamp(sale["end_time"], "end_time"),
            rate=_decimal(sale["rate"], "rate"),
            admin=sale["admin"],
            min_initial_allocation=_decimal(
                allocation["min_initial_allocation"], "min_initial_allocation",
            ),
            max_initial_allocation=_decimal(
                allocation["max_initial_allocation"], "max_initial_allocation",
            ),
            sale_supply_cap=_decimal(allocation["sale_supply_cap"], "sale_supply_cap"),
            bonus_tiers=bonus_tiers,
            **kwargs,
        )
