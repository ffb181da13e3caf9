"""
Runtime settings, read from the environment (and a local .env file if present).
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv

DEFAULT_STORE_DIR = ".zkret-store"
DEFAULT_KEYPAIR_FILE = "key.zkret"
DEFAULT_CONFIRM_ATTEMPTS = 60  # 5 minutes at 5 second intervals
DEFAULT_CONFIRM_INTERVAL = 5.0
PHASE_POLICIES = ("permissive", "strict")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class Settings:
    store_dir: Path = Path(DEFAULT_STORE_DIR)
    keypair_file: Path = Path(DEFAULT_KEYPAIR_FILE)
    confirm_attempts: int = DEFAULT_CONFIRM_ATTEMPTS
    confirm_interval: float = DEFAULT_CONFIRM_INTERVAL
    phase_policy: str = "permissive"
    log_level: str = "WARNING"


def _int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")
    if value < 1:
        raise ValueError(f"{name} must be at least 1, got {value}")
    return value


def _float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}")
    if value < 0:
        raise ValueError(f"{name} must not be negative, got {value}")
    return value


def _choice(env: Mapping[str, str], name: str, default: str, allowed: tuple, *, upper: bool = False) -> str:
    raw = env.get(name) or default
    value = raw.upper() if upper else raw.lower()
    if value not in allowed:
        raise ValueError(f"{name} must be one of {', '.join(allowed)}, got {raw!r}")
    return value


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    """
    Build Settings from ``env`` (defaults to os.environ after loading .env).
    Raises ValueError naming the offending variable on bad input.
    """
    if env is None:
        load_dotenv()
        env = os.environ
    return Settings(
        store_dir=Path(env.get("ZKRET_STORE_DIR") or DEFAULT_STORE_DIR),
        keypair_file=Path(env.get("ZKRET_KEYPAIR_FILE") or DEFAULT_KEYPAIR_FILE),
        confirm_attempts=_int(env, "ZKRET_CONFIRM_ATTEMPTS", DEFAULT_CONFIRM_ATTEMPTS),
        confirm_interval=_float(env, "ZKRET_CONFIRM_INTERVAL", DEFAULT_CONFIRM_INTERVAL),
        phase_policy=_choice(env, "ZKRET_PHASE_POLICY", "permissive", PHASE_POLICIES),
        log_level=_choice(env, "ZKRET_LOG_LEVEL", "WARNING", LOG_LEVELS, upper=True),
    )
