"""Minimal strict schemas for YAML config validation."""

from __future__ import annotations

from dashsync.common.constants import COLLECTIONS
from dashsync.common.errors import ConfigError

TOP_LEVEL_KEYS = {"api", "collections", "timing", "notifications", "push", "badges", "storage"}
TIMING_KEYS = {
    "mirror_ttl_seconds",
    "stale_after_seconds",
    "poll_interval_seconds",
    "push_reconnect_seconds",
    "debounce_seconds",
}


def _assert_required_keys(obj: dict, required: set[str], ctx: str) -> None:
    if not isinstance(obj, dict):
        raise ConfigError(f"{ctx} must be a mapping")
    missing = required - set(obj)
    if missing:
        missing_str = ", ".join(sorted(missing))
        raise ConfigError(f"Missing keys in {ctx}: {missing_str}")


def _assert_no_unknown_keys(obj: dict, known: set[str], ctx: str, allow_unknown: bool) -> None:
    if allow_unknown:
        return
    unknown = set(obj) - known
    if unknown:
        unknown_str = ", ".join(sorted(unknown))
        raise ConfigError(f"Unknown keys in {ctx}: {unknown_str}")


def _assert_positive(value: object, ctx: str, *, allow_zero: bool = False) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"{ctx} must be a number")
    if value < 0 or (value == 0 and not allow_zero):
        raise ConfigError(f"{ctx} must be {'non-negative' if allow_zero else 'positive'}")
    return float(value)


def validate_timing(timing: dict) -> dict:
    for key in sorted(TIMING_KEYS):
        _assert_positive(timing[key], f"timing.{key}", allow_zero=key == "debounce_seconds")
    # A mirror shorter than the staleness window would serve data the query
    # layer already considers stale.
    if timing["mirror_ttl_seconds"] < timing["stale_after_seconds"]:
        raise ConfigError("timing.mirror_ttl_seconds must be >= timing.stale_after_seconds")
    return timing


def validate_sync_config(cfg: dict, *, allow_unknown: bool = False) -> dict:
    _assert_required_keys(cfg, TOP_LEVEL_KEYS, "sync config")
    _assert_no_unknown_keys(cfg, TOP_LEVEL_KEYS, "sync config", allow_unknown)

    _assert_required_keys(cfg["api"], {"base_url", "timeout", "read_retries"}, "api")
    _assert_required_keys(cfg["api"]["timeout"], {"connect", "read"}, "api.timeout")
    if isinstance(cfg["api"]["read_retries"], bool) or not isinstance(cfg["api"]["read_retries"], int):
        raise ConfigError("api.read_retries must be an integer")
    if cfg["api"]["read_retries"] < 0:
        raise ConfigError("api.read_retries must be non-negative")

    _assert_required_keys(cfg["collections"], set(COLLECTIONS), "collections")
    _assert_no_unknown_keys(cfg["collections"], set(COLLECTIONS), "collections", allow_unknown)
    for name in COLLECTIONS:
        collection = cfg["collections"][name]
        _assert_required_keys(collection, {"path", "recency_field", "mark_seen_path"}, f"collections.{name}")
        _assert_no_unknown_keys(
            collection,
            {"path", "recency_field", "mark_seen_path", "bulk_delete_path"},
            f"collections.{name}",
            allow_unknown,
        )

    _assert_required_keys(cfg["timing"], TIMING_KEYS, "timing")
    _assert_no_unknown_keys(cfg["timing"], TIMING_KEYS, "timing", allow_unknown)
    validate_timing(cfg["timing"])

    _assert_required_keys(
        cfg["notifications"],
        {"window_days", "drawer_limit", "list_limit", "roles"},
        "notifications",
    )
    for key in ("window_days", "drawer_limit", "list_limit"):
        _assert_positive(cfg["notifications"][key], f"notifications.{key}")
    if not isinstance(cfg["notifications"]["roles"], list):
        raise ConfigError("notifications.roles must be a list")

    _assert_required_keys(cfg["push"], {"enabled", "url"}, "push")

    if not isinstance(cfg["badges"], dict):
        raise ConfigError("badges must be a mapping of path to collection")
    for path, collection in cfg["badges"].items():
        if collection not in COLLECTIONS:
            raise ConfigError(f"badges.{path} references unknown collection: {collection}")

    _assert_required_keys(cfg["storage"], {"mirror_dir"}, "storage")
    return cfg
