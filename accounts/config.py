"""Configuration management for the accounts service."""
from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Dict, Mapping, Optional

import yaml

from .lockout import DEFAULT_MAX_ATTEMPTS, DEFAULT_WINDOW

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}

_ENV_OVERRIDES = {
    "ACCOUNTS_LOCKOUT_MAX_ATTEMPTS": ("lockout", "max_attempts"),
    "ACCOUNTS_LOCKOUT_WINDOW_MINUTES": ("lockout", "window_minutes"),
    "ACCOUNTS_LOCKOUT_NORMALIZE_EMAIL": ("lockout", "normalize_email"),
    "ACCOUNTS_PASSWORD_MIN_LENGTH": ("passwords", "min_length"),
    "ACCOUNTS_PASSWORD_MAX_LENGTH": ("passwords", "max_length"),
}


def _parse_bool(value: object, field: str) -> bool:
    if isinstance(value, bool):
        return value
    lowered = str(value).strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValueError(f"Invalid boolean value for {field}: {value!r}")


def _parse_positive_int(value: object, field: str) -> int:
    try:
        parsed = int(str(value).strip())
    except ValueError as exc:
        raise ValueError(f"Invalid integer value for {field}: {value!r}") from exc
    if parsed < 1:
        raise ValueError(f"{field} must be a positive integer")
    return parsed


@dataclass(frozen=True)
class Settings:
    """Tunable limits for the login lockout and password policy."""

    lockout_max_attempts: int = DEFAULT_MAX_ATTEMPTS
    lockout_window: timedelta = DEFAULT_WINDOW
    lockout_normalize_email: bool = False
    password_min_length: int = 6
    password_max_length: int = 32

    @staticmethod
    def from_dict(data: Mapping[str, object]) -> "Settings":
        """Create :class:`Settings` from the nested structure of the YAML file."""

        lockout = data.get("lockout") or {}
        passwords = data.get("passwords") or {}
        if not isinstance(lockout, Mapping) or not isinstance(passwords, Mapping):
            raise ValueError("The 'lockout' and 'passwords' sections must be mappings")

        defaults = Settings()
        max_attempts = defaults.lockout_max_attempts
        if lockout.get("max_attempts") is not None:
            max_attempts = _parse_positive_int(lockout["max_attempts"], "lockout.max_attempts")

        window = defaults.lockout_window
        if lockout.get("window_minutes") is not None:
            window = timedelta(
                minutes=_parse_positive_int(lockout["window_minutes"], "lockout.window_minutes")
            )

        normalize = defaults.lockout_normalize_email
        if lockout.get("normalize_email") is not None:
            normalize = _parse_bool(lockout["normalize_email"], "lockout.normalize_email")

        min_length = defaults.password_min_length
        if passwords.get("min_length") is not None:
            min_length = _parse_positive_int(passwords["min_length"], "passwords.min_length")

        max_length = defaults.password_max_length
        if passwords.get("max_length") is not None:
            max_length = _parse_positive_int(passwords["max_length"], "passwords.max_length")

        if min_length > max_length:
            raise ValueError("passwords.min_length must not exceed passwords.max_length")

        return Settings(
            lockout_max_attempts=max_attempts,
            lockout_window=window,
            lockout_normalize_email=normalize,
            password_min_length=min_length,
            password_max_length=max_length,
        )


def resolve_config_path(env_value: Optional[str]) -> Path:
    """Resolve the path to the configuration file."""
    if env_value:
        candidate = Path(env_value).expanduser().resolve(strict=False)
    else:
        candidate = (Path(__file__).resolve().parent.parent / "config" / "accounts.yaml").resolve(strict=False)
    return candidate


def load_settings(
    config_path: Optional[Path] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Settings:
    """Load settings from an optional YAML file, then apply environment overrides."""
    if environ is None:
        environ = os.environ
    if config_path is None:
        config_path = resolve_config_path(environ.get("ACCOUNTS_CONFIG"))

    raw: Dict[str, Dict[str, object]] = {}
    if config_path.exists():
        with config_path.open("r", encoding="utf-8") as handle:
            loaded = yaml.safe_load(handle) or {}
        if not isinstance(loaded, dict):
            raise ValueError("Configuration file must contain a mapping at the top level")
        for section, values in loaded.items():
            raw[str(section)] = dict(values) if isinstance(values, Mapping) else values  # type: ignore[assignment]

    for variable, (section, key) in _ENV_OVERRIDES.items():
        value = environ.get(variable)
        if value is None or not value.strip():
            continue
        target = raw.setdefault(section, {})
        if not isinstance(target, dict):
            raise ValueError(f"The '{section}' section must be a mapping")
        target[key] = value

    return Settings.from_dict(raw)


__all__ = ["Settings", "load_settings", "resolve_config_path"]
