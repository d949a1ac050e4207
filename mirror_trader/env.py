from __future__ import annotations

import argparse
import json
import math
import os
from pathlib import Path
from typing import Dict, List, Optional, Union


DEFAULT_ENV_FILE = ".env"

_Argv = Optional[List[str]]


def _strip_quotes(value: str) -> str:
    text = value.strip()
    if len(text) >= 2 and ((text[0] == '"' and text[-1] == '"') or (text[0] == "'" and text[-1] == "'")):
        return text[1:-1]
    return text


def parse_env_file(path: str) -> Dict[str, str]:
    values: Dict[str, str] = {}
    target = Path(path)
    if not target.exists() or not target.is_file():
        return values
    for raw in target.read_text(encoding="utf-8").splitlines():
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        if line.lower().startswith("export "):
            line = line[7:].strip()
        if "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        if not key:
            continue
        values[key] = _strip_quotes(value)
    return values


def load_env_file(path: str, *, override: bool = False) -> Dict[str, str]:
    parsed = parse_env_file(path)
    for key, value in parsed.items():
        if override or key not in os.environ:
            os.environ[key] = value
    return parsed


def bootstrap_env_file(argv: _Argv) -> str:
    """Load the env file early so parser defaults come from it."""
    pre = argparse.ArgumentParser(add_help=False)
    pre.add_argument("--env-file", default=os.environ.get("ENV_FILE", DEFAULT_ENV_FILE))
    pre_args, _ = pre.parse_known_args(argv)
    env_file = str(pre_args.env_file).strip() or DEFAULT_ENV_FILE
    load_env_file(env_file)
    return env_file


# ──────────────────────────────────────────────────────────────
# Typed readers
# ──────────────────────────────────────────────────────────────
#
# Numeric readers return NaN for unparseable text so validation can
# report the offending key instead of silently using the default.

def env_str(name: str, default: str) -> str:
    raw = os.environ.get(name)
    if raw is None:
        return default
    text = str(raw).strip()
    return text if text else default


def env_float(name: str, default: float) -> float:
    text = env_str(name, "")
    if not text:
        return float(default)
    try:
        return float(text)
    except ValueError:
        return float("nan")


def env_int(name: str, default: int) -> Union[int, float]:
    """Integer setting, or NaN when the value is not a finite whole number."""
    value = env_float(name, default)
    if not math.isfinite(value) or value != int(value):
        return float("nan")
    return int(value)


def env_bool(name: str, default: bool) -> bool:
    text = env_str(name, "").lower()
    if not text:
        return bool(default)
    if text in {"1", "true", "yes", "y", "on"}:
        return True
    if text in {"0", "false", "no", "n", "off"}:
        return False
    return bool(default)


def env_list(name: str) -> List[str]:
    """A JSON array or a comma-separated list."""
    text = env_str(name, "")
    return parse_list(text)


def parse_list(text: str) -> List[str]:
    text = text.strip()
    if not text:
        return []
    if text.startswith("["):
        try:
            items = json.loads(text)
        except ValueError:
            items = None
        if isinstance(items, list):
            return [str(item).strip() for item in items if str(item).strip()]
    return [part.strip() for part in text.split(",") if part.strip()]
