import json
import os
from dataclasses import dataclass, fields
from pathlib import Path

from hn_timeline import constants

CONFIG_DIR = Path.home() / ".config" / "hn_timeline"
CONFIG_FILE = CONFIG_DIR / "config.json"
DEBUG_ENV_VAR = "HN_TIMELINE_DEBUG"


def load_config() -> dict:
    if not CONFIG_FILE.exists():
        return {}
    try:
        with open(CONFIG_FILE, "r") as f:
            data = json.load(f)
    except Exception:
        return {}
    return data if isinstance(data, dict) else {}


def save_config(key: str, value: object):
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    config = load_config()
    config[key] = value
    with open(CONFIG_FILE, "w") as f:
        json.dump(config, f, indent=2)


def is_debug_enabled() -> bool:
    by_env = os.environ.get(DEBUG_ENV_VAR) == "1"
    by_config = load_config().get("debug") == "1"
    return by_env or by_config


def set_debug_logging(enabled: bool) -> None:
    save_config("debug", "1" if enabled else "0")


@dataclass
class Settings:
    """Caller-tunable limits. Any same-named key in the config file overrides a default."""

    story_limit: int = constants.DEFAULT_STORY_LIMIT
    snapshot_ttl_ms: int = constants.SNAPSHOT_TTL_MS
    full_snapshot_ttl_ms: int = constants.FULL_SNAPSHOT_TTL_MS
    max_persisted_stories: int = constants.MAX_PERSISTED_STORIES
    max_persisted_comments: int = constants.MAX_PERSISTED_COMMENTS
    feed_batch_size: int = constants.FEED_BATCH_SIZE
    feed_concurrency: int = constants.FEED_CONCURRENCY
    thread_batch_size: int = constants.THREAD_BATCH_SIZE
    thread_concurrency: int = constants.THREAD_CONCURRENCY
    max_comments_per_story: int = constants.MAX_COMMENTS_PER_STORY
    ancestor_max_hops: int = constants.ANCESTOR_MAX_HOPS
    story_thread_max_comments: int = constants.STORY_THREAD_MAX_COMMENTS
    context_thread_max_comments: int = constants.CONTEXT_THREAD_MAX_COMMENTS
    story_ratio: float = constants.DEFAULT_STORY_RATIO
    cache_dir: str = constants.CACHE_DIR


def load_settings() -> Settings:
    settings = Settings()
    config = load_config()
    for f in fields(Settings):
        value = config.get(f.name)
        if value is None or isinstance(value, bool):
            continue
        default = getattr(settings, f.name)
        if isinstance(default, float) and isinstance(value, (int, float)):
            setattr(settings, f.name, float(value))
        elif isinstance(value, type(default)):
            setattr(settings, f.name, value)
    return settings
