"""Configuration loading and validation."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

from dashsync.common.constants import COLLECTIONS
from dashsync.common.errors import ConfigError
from dashsync.common.fs import read_yaml
from dashsync.common.http import RetryConfig, TimeoutConfig
from dashsync.common.schema import TIMING_KEYS, validate_sync_config

CONFIG_FILENAME = "sync.yml"


@dataclass(frozen=True)
class ApiConfig:
    base_url: str
    timeout: TimeoutConfig
    retry: RetryConfig


@dataclass(frozen=True)
class CollectionConfig:
    name: str
    path: str
    recency_field: str
    mark_seen_path: str
    bulk_delete_path: str | None = None


@dataclass(frozen=True)
class TimingConfig:
    mirror_ttl_seconds: float
    stale_after_seconds: float
    poll_interval_seconds: float
    push_reconnect_seconds: float
    debounce_seconds: float


@dataclass(frozen=True)
class NotificationConfig:
    window_days: int
    drawer_limit: int
    list_limit: int
    roles: tuple[str, ...]

    def allows(self, role: str | None) -> bool:
        return bool(role) and role.upper() in self.roles


@dataclass(frozen=True)
class PushConfig:
    enabled: bool
    url: str | None


@dataclass(frozen=True)
class SyncConfig:
    api: ApiConfig
    collections: dict[str, CollectionConfig]
    timing: TimingConfig
    notifications: NotificationConfig
    push: PushConfig
    badges: dict[str, str]
    mirror_dir: Path


def _deep_merge(base: Any, overlay: Any) -> Any:
    if isinstance(base, dict) and isinstance(overlay, dict):
        merged = dict(base)
        for key, value in overlay.items():
            if key in merged:
                merged[key] = _deep_merge(merged[key], value)
            else:
                merged[key] = value
        return merged
    return overlay


def _load_yaml_with_overlay(path: Path, overlay_path: Path | None) -> dict:
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")
    base = read_yaml(path) or {}
    if overlay_path is None or not overlay_path.exists():
        return base
    overlay = read_yaml(overlay_path)
    if not overlay:
        return base
    return _deep_merge(base, overlay)


def build_sync_config(cfg: dict, *, base_dir: Path | None = None) -> SyncConfig:
    api = cfg["api"]
    timing = cfg["timing"]
    notifications = cfg["notifications"]
    mirror_dir = Path(cfg["storage"]["mirror_dir"])
    if base_dir is not None and not mirror_dir.is_absolute():
        mirror_dir = base_dir / mirror_dir

    return SyncConfig(
        api=ApiConfig(
            base_url=str(api["base_url"]),
            timeout=TimeoutConfig(connect=float(api["timeout"]["connect"]), read=float(api["timeout"]["read"])),
            retry=RetryConfig(read_retries=int(api["read_retries"])),
        ),
        collections={
            name: CollectionConfig(
                name=name,
                path=cfg["collections"][name]["path"],
                recency_field=cfg["collections"][name]["recency_field"],
                mark_seen_path=cfg["collections"][name]["mark_seen_path"],
                bulk_delete_path=cfg["collections"][name].get("bulk_delete_path"),
            )
            for name in COLLECTIONS
        },
        timing=TimingConfig(**{key: float(timing[key]) for key in TIMING_KEYS}),
        notifications=NotificationConfig(
            window_days=int(notifications["window_days"]),
            drawer_limit=int(notifications["drawer_limit"]),
            list_limit=int(notifications["list_limit"]),
            roles=tuple(str(role).upper() for role in notifications["roles"]),
        ),
        push=PushConfig(enabled=bool(cfg["push"]["enabled"]), url=cfg["push"].get("url")),
        badges=dict(cfg["badges"]),
        mirror_dir=mirror_dir,
    )


def load_config(
    config_dir: Path,
    *,
    allow_unknown: bool = False,
    overlay_config_dir: Path | None = None,
    base_dir: Path | None = None,
) -> SyncConfig:
    overlay_path = None
    if overlay_config_dir is not None:
        overlay_path = overlay_config_dir / CONFIG_FILENAME
    raw = _load_yaml_with_overlay(config_dir / CONFIG_FILENAME, overlay_path)
    validated = validate_sync_config(raw, allow_unknown=allow_unknown)
    return build_sync_config(validated, base_dir=base_dir)
