import dataclasses
import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional, cast

import yaml
from dotenv import load_dotenv

logger = logging.getLogger("assistant_bot.core.config")

CONFIG_FILENAME = "assistant-bot.yml"
OVERRIDE_FILENAME = "assistant-bot.override.yml"
DOTENV_FILENAME = ".env"

DEFAULT_CONFIG: Dict[str, Any] = {
    "log": {
        "path": ".assistant-bot/assistant-bot.log",
        "max_bytes": 10_000_000,
        "backup_count": 3,
    },
    "discord_bot": {},
}


class ConfigError(Exception):
    """Raised when configuration is invalid. Fatal at startup."""


@dataclasses.dataclass
class LogConfig:
    path: Path
    max_bytes: int
    backup_count: int


@dataclasses.dataclass
class BotConfig:
    root: Path
    config_path: Optional[Path]
    raw: Dict[str, Any]
    log: LogConfig

    def section(self, key: str) -> Dict[str, Any]:
        value = self.raw.get(key)
        return value if isinstance(value, dict) else {}


def _merge_defaults(base: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    merged = cast(Dict[str, Any], json.loads(json.dumps(base)))
    for key, value in overrides.items():
        if isinstance(value, dict) and key in merged and isinstance(merged[key], dict):
            merged[key] = _merge_defaults(merged[key], value)
        else:
            merged[key] = value
    return merged


def _load_yaml_dict(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc
    except OSError as exc:
        raise ConfigError(f"Failed to read config file {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Config file must be a mapping: {path}")
    return data


def load_dotenv_for_root(root: Path) -> None:
    candidate = root / DOTENV_FILENAME
    try:
        if candidate.exists():
            load_dotenv(dotenv_path=candidate, override=True)
    except OSError as exc:
        logger.debug("Failed to load .env file: %s", exc)


def find_config_path(start: Path) -> Optional[Path]:
    current = start.resolve()
    for candidate_dir in (current, *current.parents):
        candidate = candidate_dir / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
    return None


def load_bot_config_data(root: Path) -> Dict[str, Any]:
    """Load defaults, the root config and its override file, merged in that order."""
    merged = _merge_defaults(DEFAULT_CONFIG, {})
    base = _load_yaml_dict(root / CONFIG_FILENAME)
    if base:
        merged = _merge_defaults(merged, base)
    override_path = root / OVERRIDE_FILENAME
    try:
        override = _load_yaml_dict(override_path)
    except ConfigError as exc:
        raise ConfigError(
            f"Invalid override config {override_path}; fix or delete it: {exc}"
        ) from exc
    if override:
        merged = _merge_defaults(merged, override)
    return merged


def _parse_log_config(root: Path, raw: Any) -> LogConfig:
    if not isinstance(raw, dict):
        raise ConfigError("log must be a mapping")
    path_value = raw.get("path", DEFAULT_CONFIG["log"]["path"])
    if not isinstance(path_value, str) or not path_value.strip():
        raise ConfigError("log.path must be a non-empty string")
    try:
        max_bytes = int(raw.get("max_bytes", DEFAULT_CONFIG["log"]["max_bytes"]))
        backup_count = int(
            raw.get("backup_count", DEFAULT_CONFIG["log"]["backup_count"])
        )
    except (TypeError, ValueError) as exc:
        raise ConfigError("log.max_bytes and log.backup_count must be integers") from exc
    if max_bytes <= 0:
        raise ConfigError("log.max_bytes must be > 0")
    if backup_count < 0:
        raise ConfigError("log.backup_count must be >= 0")
    return LogConfig(
        path=root / path_value,
        max_bytes=max_bytes,
        backup_count=backup_count,
    )


def load_bot_config(start: Path) -> BotConfig:
    """Load the nearest bot config walking upward from ``start``.

    When no config file exists the defaults are used with ``start`` as root.
    """
    config_path = find_config_path(start)
    root = config_path.parent if config_path is not None else start.resolve()
    load_dotenv_for_root(root)
    merged = load_bot_config_data(root)
    discord_raw = merged.get("discord_bot")
    if discord_raw is not None and not isinstance(discord_raw, dict):
        raise ConfigError("discord_bot must be a mapping")
    return BotConfig(
        root=root,
        config_path=config_path,
        raw=merged,
        log=_parse_log_config(root, merged.get("log", {})),
    )
