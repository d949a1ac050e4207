"""Configuration for the mirror trader: populated from CLI + env."""
from __future__ import annotations

import argparse
import math
import re
from dataclasses import dataclass, field
from typing import Optional
from urllib.parse import urlparse

from .data_api import DATA_API_BASE
from .env import (
    DEFAULT_ENV_FILE,
    bootstrap_env_file,
    env_bool,
    env_float,
    env_int,
    env_str,
    load_env_file,
    parse_list,
)
from .errors import ConfigError
from .exchange import CLOB_HOST
from .wallet import USDC_POLYGON


_Argv = Optional[list[str]]

_ADDRESS_RE = re.compile(r"^0x[a-fA-F0-9]{40}$")
_PRIVATE_KEY_RE = re.compile(r"^[a-fA-F0-9]{64}$")
_URL_SCHEMES = {"http", "https", "ws", "wss"}


# ──────────────────────────────────────────────────────────────
# Config dataclass
# ──────────────────────────────────────────────────────────────

@dataclass(slots=True)
class Config:
    """Runtime configuration: populated from CLI + env."""

    # ── Accounts ──
    user_addresses: tuple[str, ...] = ()
    proxy_wallet: str = ""
    private_key: str = field(default="", repr=False)
    rpc_url: str = ""
    usdc_contract_address: str = USDC_POLYGON

    # ── Copying ──
    fetch_interval: float = 1.0
    trade_multiplier: float = 1.0
    retry_limit: int = 3
    aggregation_enabled: bool = False
    aggregation_window_seconds: float = 300.0
    max_slippage_percent: float = 2.0

    # ── Endpoints ──
    clob_host: str = CLOB_HOST
    data_api_host: str = DATA_API_BASE
    chain_id: int = 137
    signature_type: int = 0

    # ── Circuit breaker around the exchange ──
    circuit_failure_threshold: int = 5
    circuit_success_threshold: int = 2
    circuit_timeout_seconds: float = 60.0

    # ── Operations ──
    health_check_port: int = 3000
    ledger_path: str = ""
    debug: bool = False
    env_file: str = DEFAULT_ENV_FILE


def parse_args(argv: _Argv = None) -> Config:
    env_file = bootstrap_env_file(argv)

    parser = argparse.ArgumentParser(
        description="Mirror trades of tracked Polymarket traders onto a follower wallet"
    )
    parser.add_argument("--env-file", default=env_file, help="path to env file (default: .env)")
    parser.add_argument(
        "--user-addresses",
        default=env_str("USER_ADDRESSES", ""),
        help="traders to follow: JSON list or comma separated",
    )
    parser.add_argument("--proxy-wallet", default=env_str("PROXY_WALLET", ""))
    parser.add_argument("--private-key", default=env_str("PRIVATE_KEY", ""))
    parser.add_argument("--rpc-url", default=env_str("RPC_URL", ""))
    parser.add_argument("--usdc-contract-address", default=env_str("USDC_CONTRACT_ADDRESS", USDC_POLYGON))

    parser.add_argument("--fetch-interval", type=float, default=env_float("FETCH_INTERVAL", 1.0))
    parser.add_argument("--trade-multiplier", type=float, default=env_float("TRADE_MULTIPLIER", 1.0))
    parser.add_argument("--retry-limit", type=int, default=env_int("RETRY_LIMIT", 3))
    parser.add_argument(
        "--aggregation-enabled",
        action=argparse.BooleanOptionalAction,
        default=env_bool("TRADE_AGGREGATION_ENABLED", False),
    )
    parser.add_argument(
        "--aggregation-window-seconds",
        type=float,
        default=env_float("TRADE_AGGREGATION_WINDOW_SECONDS", 300.0),
        help="ignore activity older than this many seconds",
    )
    parser.add_argument("--max-slippage-percent", type=float, default=env_float("MAX_SLIPPAGE_PERCENT", 2.0))

    parser.add_argument("--clob-host", default=env_str("CLOB_HOST", CLOB_HOST))
    parser.add_argument("--data-api-host", default=env_str("DATA_API_HOST", DATA_API_BASE))
    parser.add_argument("--chain-id", type=int, default=env_int("CHAIN_ID", 137))
    parser.add_argument("--signature-type", type=int, default=env_int("SIGNATURE_TYPE", 0))

    parser.add_argument(
        "--circuit-failure-threshold", type=int, default=env_int("CIRCUIT_FAILURE_THRESHOLD", 5)
    )
    parser.add_argument(
        "--circuit-success-threshold", type=int, default=env_int("CIRCUIT_SUCCESS_THRESHOLD", 2)
    )
    parser.add_argument(
        "--circuit-timeout-seconds", type=float, default=env_float("CIRCUIT_TIMEOUT_SECONDS", 60.0)
    )

    parser.add_argument("--health-check-port", type=int, default=env_int("HEALTH_CHECK_PORT", 3000))
    parser.add_argument(
        "--ledger-path",
        default=env_str("LEDGER_PATH", ""),
        help="SQLite file for trade/position bookkeeping; empty disables the ledger",
    )
    parser.add_argument("--debug", action=argparse.BooleanOptionalAction, default=env_bool("DEBUG", False))

    args = parser.parse_args(argv)
    cli_env_file = str(args.env_file).strip() or DEFAULT_ENV_FILE
    if cli_env_file != env_file:
        load_env_file(cli_env_file)
        env_file = cli_env_file

    return Config(
        user_addresses=tuple(parse_list(str(args.user_addresses))),
        proxy_wallet=str(args.proxy_wallet).strip(),
        private_key=str(args.private_key).strip(),
        rpc_url=str(args.rpc_url).strip(),
        usdc_contract_address=str(args.usdc_contract_address).strip(),
        fetch_interval=args.fetch_interval,
        trade_multiplier=args.trade_multiplier,
        retry_limit=args.retry_limit,
        aggregation_enabled=bool(args.aggregation_enabled),
        aggregation_window_seconds=args.aggregation_window_seconds,
        max_slippage_percent=args.max_slippage_percent,
        clob_host=str(args.clob_host).strip().rstrip("/"),
        data_api_host=str(args.data_api_host).strip().rstrip("/"),
        chain_id=args.chain_id,
        signature_type=args.signature_type,
        circuit_failure_threshold=args.circuit_failure_threshold,
        circuit_success_threshold=args.circuit_success_threshold,
        circuit_timeout_seconds=args.circuit_timeout_seconds,
        health_check_port=args.health_check_port,
        ledger_path=str(args.ledger_path).strip(),
        debug=bool(args.debug),
        env_file=env_file,
    )


# ──────────────────────────────────────────────────────────────
# Validation
# ──────────────────────────────────────────────────────────────

def is_valid_address(value: str) -> bool:
    return bool(_ADDRESS_RE.match(value or ""))


def is_valid_private_key(value: str) -> bool:
    key = value[2:] if (value or "").startswith("0x") else (value or "")
    return bool(_PRIVATE_KEY_RE.match(key))


def is_valid_url(value: str) -> bool:
    parsed = urlparse(value or "")
    return parsed.scheme in _URL_SCHEMES and bool(parsed.netloc)


def _check_range(name: str, value: float, low: float, high: float) -> None:
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{name} must be a valid number, got: {value!r}") from None
    if not math.isfinite(number):
        raise ConfigError(f"{name} must be a valid number, got: {value!r}")
    if number < low or number > high:
        raise ConfigError(f"{name} must be between {low:g} and {high:g}, got: {value!r}")


def validate_config(cfg: Config) -> None:
    if not cfg.user_addresses:
        raise ConfigError("USER_ADDRESSES must contain at least one trader address")
    for address in cfg.user_addresses:
        if not is_valid_address(address):
            raise ConfigError(f"invalid trader address in USER_ADDRESSES: {address}")

    if not cfg.proxy_wallet:
        raise ConfigError("missing required setting: PROXY_WALLET")
    if not is_valid_address(cfg.proxy_wallet):
        raise ConfigError(f"invalid PROXY_WALLET: {cfg.proxy_wallet}")
    if not cfg.private_key:
        raise ConfigError("missing required setting: PRIVATE_KEY")
    if not is_valid_private_key(cfg.private_key):
        raise ConfigError("invalid PRIVATE_KEY: expected 64 hex characters with optional 0x prefix")
    if not cfg.rpc_url:
        raise ConfigError("missing required setting: RPC_URL")
    if not is_valid_url(cfg.rpc_url):
        raise ConfigError(f"invalid RPC_URL: {cfg.rpc_url} (expected http, https, ws or wss)")
    if not is_valid_address(cfg.usdc_contract_address):
        raise ConfigError(f"invalid USDC_CONTRACT_ADDRESS: {cfg.usdc_contract_address}")

    _check_range("FETCH_INTERVAL", cfg.fetch_interval, 0.1, 3600)
    _check_range("TRADE_MULTIPLIER", cfg.trade_multiplier, 0, 100)
    _check_range("RETRY_LIMIT", cfg.retry_limit, 0, 10)
    _check_range("TRADE_AGGREGATION_WINDOW_SECONDS", cfg.aggregation_window_seconds, 0, 86400)
    _check_range("MAX_SLIPPAGE_PERCENT", cfg.max_slippage_percent, 0, 100)
    _check_range("HEALTH_CHECK_PORT", cfg.health_check_port, 1000, 65535)
    _check_range("CHAIN_ID", cfg.chain_id, 1, 2**32)
    _check_range("SIGNATURE_TYPE", cfg.signature_type, 0, 2)
    _check_range("CIRCUIT_FAILURE_THRESHOLD", cfg.circuit_failure_threshold, 1, 1000)
    _check_range("CIRCUIT_SUCCESS_THRESHOLD", cfg.circuit_success_threshold, 1, 1000)
    _check_range("CIRCUIT_TIMEOUT_SECONDS", cfg.circuit_timeout_seconds, 0, 86400)

    if not is_valid_url(cfg.clob_host):
        raise ConfigError(f"invalid CLOB_HOST: {cfg.clob_host}")
    if not is_valid_url(cfg.data_api_host):
        raise ConfigError(f"invalid DATA_API_HOST: {cfg.data_api_host}")
