"""Configuration management for the lead capture service."""
from __future__ import annotations

import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Dict, Mapping, Optional, Sequence, Tuple

import yaml

from .database import resolve_database_path


def _env_flag(value: Optional[str], default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _parse_hosts(value: object) -> Tuple[str, ...]:
    """Accept a comma-separated string or a list of proxy addresses."""

    if not value:
        return ("127.0.0.1",)
    items: Sequence[object] = value.split(",") if isinstance(value, str) else value  # type: ignore[assignment]
    hosts = tuple(str(item).strip() for item in items if str(item).strip())
    return hosts or ("127.0.0.1",)


@dataclass(frozen=True)
class Settings:
    """Runtime settings for the CLI and the HTTP service."""

    database_path: Path
    session_secret: Optional[str] = None
    session_cookie: str = "leadcapture_session"
    secure_cookies: bool = False
    host: str = "127.0.0.1"
    port: int = 8000
    log_level: str = "INFO"
    trusted_proxies: Tuple[str, ...] = ("127.0.0.1",)

    @staticmethod
    def from_dict(data: Mapping[str, object], base_path: Path | None = None) -> "Settings":
        """Create :class:`Settings` from raw dictionary data."""

        known = {item.name for item in fields(Settings)}
        unknown = set(data.keys()) - known
        if unknown:
            raise ValueError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")

        raw_path = data.get("database_path")
        if raw_path:
            candidate = Path(str(raw_path)).expanduser()
            if not candidate.is_absolute() and base_path is not None:
                candidate = base_path / candidate
            database_path = candidate.resolve(strict=False)
        else:
            database_path = resolve_database_path(None)

        secret = data.get("session_secret")
        return Settings(
            database_path=database_path,
            session_secret=str(secret) if secret else None,
            session_cookie=str(data.get("session_cookie", "leadcapture_session")),
            secure_cookies=bool(data.get("secure_cookies", False)),
            host=str(data.get("host", "127.0.0.1")),
            port=int(data.get("port", 8000)),  # type: ignore[arg-type]
            log_level=str(data.get("log_level", "INFO")).upper(),
            trusted_proxies=_parse_hosts(data.get("trusted_proxies")),
        )


def resolve_config_path(env_value: Optional[str]) -> Path:
    """Resolve the path to the configuration file."""
    if env_value:
        candidate = Path(env_value).expanduser().resolve(strict=False)
    else:
        candidate = (Path(__file__).resolve().parent.parent / "config" / "settings.yaml").resolve(strict=False)
    return candidate


def load_settings(config_path: Optional[Path] = None, environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Load settings from YAML (when present) and apply environment overrides."""

    env = os.environ if environ is None else environ
    path = config_path or resolve_config_path(env.get("LEADCAPTURE_CONFIG"))

    raw: Dict[str, object] = {}
    if path.exists():
        with path.open("r", encoding="utf-8") as handle:
            loaded = yaml.safe_load(handle) or {}
        if not isinstance(loaded, dict):
            raise ValueError("Configuration file must contain a mapping at the top level")
        raw = loaded

    settings = Settings.from_dict(raw, base_path=path.parent)

    overrides: Dict[str, object] = {}
    if env.get("LEADCAPTURE_DB_PATH"):
        overrides["database_path"] = resolve_database_path(env["LEADCAPTURE_DB_PATH"])
    if env.get("LEADCAPTURE_SESSION_SECRET"):
        overrides["session_secret"] = env["LEADCAPTURE_SESSION_SECRET"]
    if "LEADCAPTURE_SESSION_SECURE" in env:
        overrides["secure_cookies"] = _env_flag(env.get("LEADCAPTURE_SESSION_SECURE"))
    if env.get("LEADCAPTURE_LOG_LEVEL"):
        overrides["log_level"] = env["LEADCAPTURE_LOG_LEVEL"].strip().upper()
    if env.get("LEADCAPTURE_TRUSTED_PROXIES"):
        overrides["trusted_proxies"] = _parse_hosts(env["LEADCAPTURE_TRUSTED_PROXIES"])

    return replace(settings, **overrides) if overrides else settings


__all__ = ["Settings", "load_settings", "resolve_config_path"]
