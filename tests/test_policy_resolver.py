"""Tests for the sale policy — proves config loading and environment overrides."""

import json
import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path

from crowdsale.policy.resolver import SalePolicy


CONFIG_DIR = Path(__file__).resolve().parents[1] / "config"


@pytest.fixture
def policy() -> SalePolicy:
    return SalePolicy.from_config_dir(CONFIG_DIR, environ={})


def _write_params(tmp_path: Path, mutate=None) -> Path:
    params = json.loads((CONFIG_DIR / "sale_params.json").read_text(encoding="utf-8"))
    if mutate is not None:
        mutate(params)
    (tmp_path / "sale_params.json").write_text(json.dumps(params), encoding="utf-8")
    return tmp_path


class TestShippedParameters:
    def test_sale_window(self, policy: SalePolicy) -> None:
        cfg = policy.sale_config()
        assert cfg.start_time == datetime(2026, 11, 2, tzinfo=timezone.utc)
        assert cfg.end_time == datetime(2026, 11, 30, tzinfo=timezone.utc)

    def test_allocation_bounds(self, policy: SalePolicy) -> None:
        cfg = policy.sale_config()
        assert cfg.min_initial_allocation == Decimal("333000")
        assert cfg.max_initial_allocation == Decimal("13500000")
        assert cfg.sale_supply_cap == Decimal("165000000")
        assert cfg.team_allocation == Decimal("135000000")

    def test_vesting_terms(self, policy: SalePolicy) -> None:
        cfg = policy.sale_config()
        assert cfg.vesting_duration == timedelta(days=150)
        assert cfg.bonus_vesting_duration == timedelta(days=60)
        assert cfg.lock_period == timedelta(0)
        assert cfg.release_interval is None
        assert cfg.revocable is True

    def test_bonus_tiers(self, policy: SalePolicy) -> None:
        assert policy.sale_config().bonus_tiers == ((2, 30), (4, 20), (6, 10), (8, 5))

    def test_addresses(self, policy: SalePolicy) -> None:
        cfg = policy.sale_config()
        assert cfg.admin == "owner"
        assert cfg.sale_address == "crowdsale"
        assert cfg.wallet_address == "wallet"
        assert cfg.team_address == "team_distribution"


class TestOverrides:
    def test_environment_overrides_file(self) -> None:
        policy = SalePolicy.from_config_dir(
            CONFIG_DIR,
            environ={"CROWDSALE_ADMIN": "treasurer", "CROWDSALE_RATE": "1200"},
        )
        cfg = policy.sale_config()
        assert cfg.admin == "treasurer"
        assert cfg.rate == Decimal("1200")

    def test_blank_variable_ignored(self) -> None:
        policy = SalePolicy.from_config_dir(CONFIG_DIR, environ={"CROWDSALE_ADMIN": ""})
        assert policy.sale_config().admin == "owner"

    def test_overrides_do_not_mutate_input(self) -> None:
        params = {"sale": {"admin": "owner"}}
        merged = SalePolicy.apply_overrides(params, {"CROWDSALE_ADMIN": "x"})
        assert merged["sale"]["admin"] == "x"
        assert params["sale"]["admin"] == "owner"

    def test_dotenv_file_loaded(self, tmp_path: Path, monkeypatch) -> None:
        # setenv first so teardown removes whatever load_dotenv writes
        monkeypatch.setenv("CROWDSALE_TEAM_ADDRESS", "placeholder")
        monkeypatch.delenv("CROWDSALE_TEAM_ADDRESS")
        env_file = tmp_path / ".env"
        env_file.write_text("CROWDSALE_TEAM_ADDRESS=team_multisig\n", encoding="utf-8")
        policy = SalePolicy.from_config_dir(CONFIG_DIR, env_file=env_file)
        assert policy.sale_config().team_address == "team_multisig"

    def test_process_environment_wins_over_dotenv(self, tmp_path: Path, monkeypatch) -> None:
        monkeypatch.setenv("CROWDSALE_ADMIN", "from_process")
        env_file = tmp_path / ".env"
        env_file.write_text("CROWDSALE_ADMIN=from_file\n", encoding="utf-8")
        policy = SalePolicy.from_config_dir(CONFIG_DIR, env_file=env_file)
        assert policy.sale_config().admin == "from_process"


class TestInvalidParameters:
    def test_naive_timestamp_rejected(self, tmp_path: Path) -> None:
        def mutate(p: dict) -> None:
            p["sale"]["start_time"] = "2026-11-02T00:00:00"
        with pytest.raises(ValueError, match="UTC offset"):
            SalePolicy.from_config_dir(_write_params(tmp_path, mutate), environ={})

    def test_bad_decimal_rejected(self, tmp_path: Path) -> None:
        def mutate(p: dict) -> None:
            p["sale"]["rate"] = "a lot"
        with pytest.raises(ValueError, match="rate"):
            SalePolicy.from_config_dir(_write_params(tmp_path, mutate), environ={})

    def test_non_finite_decimal_rejected(self, tmp_path: Path) -> None:
        def mutate(p: dict) -> None:
            p["allocation"]["sale_supply_cap"] = "Infinity"
        with pytest.raises(ValueError, match="sale_supply_cap must be finite"):
            SalePolicy.from_config_dir(_write_params(tmp_path, mutate), environ={})

    def test_inverted_window_rejected(self, tmp_path: Path) -> None:
        def mutate(p: dict) -> None:
            p["sale"]["end_time"] = "2026-11-01T00:00:00+00:00"
        with pytest.raises(ValueError, match="start_time"):
            SalePolicy.from_config_dir(_write_params(tmp_path, mutate), environ={})

    def test_release_interval_parsed(self, tmp_path: Path) -> None:
        def mutate(p: dict) -> None:
            p["vesting"]["release_interval_days"] = 30
        policy = SalePolicy.from_config_dir(_write_params(tmp_path, mutate), environ={})
        assert policy.sale_config().release_interval == timedelta(days=30)
