"""Daemon configuration — file discovery, TOML/YAML decoding, validation."""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass
from pathlib import Path

import yaml

from ltfw.errors import ConfigError
from ltfw.firewall.models import Verdict

DEFAULT_CONFIG_NAME = "config.toml"
SYSTEM_CONFIG_PATH = Path("/etc/ltfw") / DEFAULT_CONFIG_NAME


def _default_config_dir() -> Path:
    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg) / "ltfw"
    return Path.home() / ".config" / "ltfw"


@dataclass(frozen=True)
class LtfwConfig:
    """Read-only settings shared by the classifier, builder and synchronizer."""

    every: int
    drop_or_reject: Verdict
    close_ips: frozenset[str] = frozenset()
    protected_ports: frozenset[str] = frozenset()
    table: str = "filter"
    chain: str = "INPUT"


def resolve_config_path(explicit: str | Path | None = None) -> Path:
    """Pick the config file: explicit path, then ./config.toml, XDG, /etc.

    An explicit path is returned as-is even if it does not exist so the
    loader can report it.
    """
    if explicit:
        return Path(explicit)

    candidates = [
        Path.cwd() / DEFAULT_CONFIG_NAME,
        _default_config_dir() / DEFAULT_CONFIG_NAME,
        SYSTEM_CONFIG_PATH,
    ]
    for candidate in candidates:
        if candidate.is_file():
            return candidate
    return candidates[0]


def load_config(path: str | Path) -> LtfwConfig:
    """Load and validate a config file. YAML is chosen by extension."""
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise ConfigError(f"Config file not found: {path}") from None
    except OSError as exc:
        raise ConfigError(f"Cannot read config file {path}: {exc}") from exc

    if path.suffix.lower() in (".yaml", ".yml"):
        return load_config_from_yaml(text)
    return load_config_from_toml(text)


def load_config_from_toml(text: str) -> LtfwConfig:
    try:
        data = tomllib.loads(text)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Invalid TOML: {exc}") from exc
    return _build_config(data)


def load_config_from_yaml(text: str) -> LtfwConfig:
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError("Config YAML must be a mapping")
    return _build_config(data)


def _build_config(data: dict) -> LtfwConfig:
    # Keys are case-insensitive: dropOrReject, droporreject and DropOrReject
    # all name the same setting.
    fields = {str(k).lower(): v for k, v in data.items()}

    every = fields.get("every")
    if every is None:
        raise ConfigError("Configuration/Every: missing")
    if isinstance(every, bool) or not isinstance(every, int) or every <= 0:
        raise ConfigError(
            f"Configuration/Every: should be a positive number of seconds, got {every!r}"
        )

    raw_verdict = fields.get("droporreject")
    try:
        verdict = Verdict(str(raw_verdict).lower())
    except ValueError:
        raise ConfigError(
            "Configuration/DropOrReject: should be one of 'drop' or 'reject'"
        ) from None

    return LtfwConfig(
        every=every,
        drop_or_reject=verdict,
        close_ips=frozenset(_string_list(fields, "closeips")),
        protected_ports=frozenset(_string_list(fields, "protectedports")),
        table=str(fields.get("table", "filter")),
        chain=str(fields.get("chain", "INPUT")),
    )


def _string_list(fields: dict, key: str) -> list[str]:
    raw = fields.get(key, [])
    if isinstance(raw, (str, int)) and not isinstance(raw, bool):
        raw = [raw]
    if not isinstance(raw, list):
        raise ConfigError(f"Configuration/{key}: should be a list")

    items: list[str] = []
    for item in raw:
        if isinstance(item, bool) or not isinstance(item, (str, int)):
            raise ConfigError(
                f"Configuration/{key}: entries should be strings, got {item!r}"
            )
        items.append(str(item).strip())
    return items
