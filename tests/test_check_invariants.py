"""Tests for the parameter invariant tool — proves it accepts good and rejects bad files."""

import json
from pathlib import Path

from check_invariants import PARAMS_PATH, check


def _write(tmp_path: Path, mutate) -> Path:
    params = json.loads(PARAMS_PATH.read_text(encoding="utf-8"))
    mutate(params)
    path = tmp_path / "sale_params.json"
    path.write_text(json.dumps(params), encoding="utf-8")
    return path


class TestShippedParams:
    def test_passes(self, capsys) -> None:
        assert check() == 0
        assert "passed" in capsys.readouterr().out


class TestViolations:
    def test_inverted_window(self, tmp_path: Path, capsys) -> None:
        def mutate(p: dict) -> None:
            p["sale"]["end_time"] = p["sale"]["start_time"]
        assert check(_write(tmp_path, mutate)) == 1
        assert "start_time must be before end_time" in capsys.readouterr().out

    def test_non_positive_rate(self, tmp_path: Path, capsys) -> None:
        def mutate(p: dict) -> None:
            p["sale"]["rate"] = "0"
        assert check(_write(tmp_path, mutate)) == 1
        assert "rate must be > 0" in capsys.readouterr().out

    def test_allocation_ordering(self, tmp_path: Path, capsys) -> None:
        def mutate(p: dict) -> None:
            p["allocation"]["max_initial_allocation"] = "200000000"
        assert check(_write(tmp_path, mutate)) == 1
        assert "sale_supply_cap" in capsys.readouterr().out

    def test_tier_order(self, tmp_path: Path, capsys) -> None:
        def mutate(p: dict) -> None:
            p["bonus_tiers"][1]["percent"] = 40
        assert check(_write(tmp_path, mutate)) == 1
        assert "bonus tier percent 40" in capsys.readouterr().out

    def test_shared_addresses(self, tmp_path: Path, capsys) -> None:
        def mutate(p: dict) -> None:
            p["sale"]["team_address"] = p["sale"]["wallet_address"]
        assert check(_write(tmp_path, mutate)) == 1
        assert "distinct" in capsys.readouterr().out
