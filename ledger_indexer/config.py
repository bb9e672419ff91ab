import os
from typing import Any, Dict, Optional

from ._util import load_json
from .errors import ConfigError


DEFAULTS: Dict[str, Any] = {
    "rpc_http": None,
    "rpc_ws": None,
    "contract_address": None,
    "abi": None,
    "db_path": "./ledger.db",
    "start_block": 0,
    "batch_size": 1000,
    "confirmations": 1,
    "reconnect_delay": 5,
    "confirm_interval": 15,
}

ENV_OVERRIDES = {
    "LEDGER_RPC_HTTP": "rpc_http",
    "LEDGER_RPC_WS": "rpc_ws",
    "LEDGER_CONTRACT_ADDRESS": "contract_address",
    "LEDGER_DB_PATH": "db_path",
}

_INT_KEYS = {
    "start_block": 0,
    "batch_size": 1,
    "confirmations": 1,
    "reconnect_delay": 1,
    "confirm_interval": 1,
}


def load_config(path: Optional[str] = None, environ: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
    cfg: Dict[str, Any] = dict(DEFAULTS)
    if path and os.path.exists(path):
        loaded = load_json(path)
        if not isinstance(loaded, dict):
            raise ConfigError(f"config {path} must contain a JSON object")
        cfg.update(loaded)

    env = os.environ if environ is None else environ
    for var, key in ENV_OVERRIDES.items():
        if env.get(var):
            cfg[key] = env[var]

    for key, minimum in _INT_KEYS.items():
        try:
            cfg[key] = int(cfg[key])
        except (TypeError, ValueError):
            raise ConfigError(f"config.{key} must be an integer, got {cfg[key]!r}") from None
        if cfg[key] < minimum:
            raise ConfigError(f"config.{key} must be >= {minimum}, got {cfg[key]}")
    return cfg


def require(cfg: Dict[str, Any], key: str) -> Any:
    value = cfg.get(key)
    if not value:
        raise ConfigError(f"config.{key} is required for this command")
    return value
