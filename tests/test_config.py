"""Tests for configuration and ABI loading."""

import json

import pytest

from ledger_indexer.abi import EVENT_ABI, load_event_abi
from ledger_indexer.config import load_config, require
from ledger_indexer.decoder import EventDecoder
from ledger_indexer.errors import ConfigError


def test_defaults_apply_without_a_file(tmp_path):
    cfg = load_config(str(tmp_path / "missing.json"), environ={})

    assert cfg["batch_size"] == 1000
    assert cfg["confirmations"] == 1
    assert cfg["start_block"] == 0
    assert cfg["db_path"] == "./ledger.db"


def test_file_values_and_env_overrides(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"rpc_http": "http://node:8545", "batch_size": "250", "start_block": 12}))

    cfg = load_config(str(path), environ={"LEDGER_RPC_HTTP": "http://override:8545", "LEDGER_DB_PATH": "x.db"})

    assert cfg["rpc_http"] == "http://override:8545"
    assert cfg["db_path"] == "x.db"
    assert cfg["batch_size"] == 250
    assert cfg["start_block"] == 12


@pytest.mark.parametrize("value", ["abc", 0, -5])
def test_invalid_batch_size_is_rejected(tmp_path, value):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"batch_size": value}))

    with pytest.raises(ConfigError):
        load_config(str(path), environ={})


def test_require_names_the_missing_key():
    with pytest.raises(ConfigError, match="contract_address"):
        require({"contract_address": None}, "contract_address")


def test_bundled_abi_is_default():
    assert load_event_abi(None) is EVENT_ABI


def test_hardhat_artifact_directory_is_searched(tmp_path, capsys):
    nested = tmp_path / "artifacts" / "contracts"
    nested.mkdir(parents=True)
    functions = [{"type": "function", "name": "balanceOf", "inputs": [], "outputs": []}]
    (nested / "CarbonCreditToken.json").write_text(json.dumps({"abi": functions + EVENT_ABI}))

    events = load_event_abi(str(tmp_path))

    assert [item["name"] for item in events] == [item["name"] for item in EVENT_ABI]
    assert f"from {nested / 'CarbonCreditToken.json'}" in capsys.readouterr().err


def test_partial_abi_leaves_missing_events_unrecognized(tmp_path):
    path = tmp_path / "abi.json"
    path.write_text(json.dumps([item for item in EVENT_ABI if item["name"] == "Transfer"]))

    decoder = EventDecoder(load_event_abi(str(path)))

    assert decoder.event_names == ["Transfer"]


def test_missing_abi_path_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_event_abi(str(tmp_path / "nope.json"))
