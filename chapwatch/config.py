"""Runtime configuration.

Values come from a JSON settings file (section "ChapNotifierConfig" or the top
level), then environment variables, which win. A local .env file is loaded
into the environment first without overriding variables already set.
"""

from __future__ import annotations
import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from dotenv import load_dotenv

from .diff import ORDERS, ORDER_PAGE
from .errors import ConfigError
from .fetchers import BROWSER_UA, DEFAULT_TIMEOUT
from .utils.state import DEFAULT_STATE_FILE
from .watchers.chapter_page import (
    DEFAULT_LINK_SELECTOR,
    DEFAULT_MAX_ITEMS,
    DEFAULT_NUMBER_SELECTOR,
    DEFAULT_TITLE_SELECTOR,
)

DEFAULT_CONFIG_FILE = "appsettings.json"
CONFIG_SECTION = "ChapNotifierConfig"
DEFAULT_POLL_SECONDS = 300
FETCHERS = ("http", "browser")

# --------------------------------------------------------------------
# option name -> (env var, settings-file key)
# --------------------------------------------------------------------
_KEYS = {
    "target_url": ("TARGET_URL", "TargetUrl"),
    "bot_token": ("TELEGRAM_BOT_TOKEN", "BotToken"),
    "chat_id": ("TELEGRAM_CHAT_ID", "ChatId"),
    "state_file": ("STATE_FILE", "StateFile"),
    "poll_interval": ("POLL_SECONDS", "PollSeconds"),
    "run_once": ("RUN_ONCE", "RunOnce"),
    "dry_run": ("DRY_RUN", "DryRun"),
    "fetcher": ("FETCHER", "Fetcher"),
    "fetch_timeout": ("FETCH_TIMEOUT", "FetchTimeout"),
    "user_agent": ("USER_AGENT", "UserAgent"),
    "max_items": ("MAX_CHAPTERS", "MaxChapters"),
    "notify_order": ("NOTIFY_ORDER", "NotifyOrder"),
    "link_selector": ("CHAPTER_LINK_SELECTOR", "ChapterLinkSelector"),
    "title_selector": ("CHAPTER_TITLE_SELECTOR", "ChapterTitleSelector"),
    "number_selector": ("CHAPTER_NUMBER_SELECTOR", "ChapterNumberSelector"),
}


@dataclass(frozen=True)
class Config:
    target_url: str
    bot_token: str = ""
    chat_id: str = ""
    state_file: str = DEFAULT_STATE_FILE
    poll_interval: float = DEFAULT_POLL_SECONDS
    run_once: bool = False
    dry_run: bool = False
    fetcher: str = "http"
    fetch_timeout: float = DEFAULT_TIMEOUT
    user_agent: str = BROWSER_UA
    max_items: int = DEFAULT_MAX_ITEMS
    notify_order: str = ORDER_PAGE
    link_selector: str = DEFAULT_LINK_SELECTOR
    title_selector: str = DEFAULT_TITLE_SELECTOR
    number_selector: str = DEFAULT_NUMBER_SELECTOR


# --------------------------------------------------------------------
# Parsing helpers
# --------------------------------------------------------------------
def _bool(name: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    s = str(value).strip().lower()
    if s in ("1", "true", "yes", "on"):
        return True
    if s in ("0", "false", "no", "off", ""):
        return False
    raise ConfigError(f"{name} must be a boolean, got {value!r}")


def _number(name: str, value: Any, cast=float, minimum=None):
    try:
        n = cast(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{name} must be a number, got {value!r}") from None
    if minimum is not None and n < minimum:
        raise ConfigError(f"{name} must be >= {minimum}, got {n}")
    return n


def _choice(name: str, value: Any, choices) -> str:
    s = str(value).strip().lower()
    if s not in choices:
        raise ConfigError(f"{name} must be one of {', '.join(choices)}, got {value!r}")
    return s


def read_settings_file(path: str | Path) -> Dict[str, Any]:
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise ConfigError(f"cannot read settings file {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"settings file {path} must contain a JSON object")
    section = data.get(CONFIG_SECTION)
    return section if isinstance(section, dict) else data


def load_config(path: Optional[str | Path] = None, environ: Optional[Mapping[str, str]] = None, **overrides) -> Config:
    """Build a Config from the settings file, the environment and overrides.

    `path` defaults to $CHAPWATCH_CONFIG, else ./appsettings.json when it
    exists. Keyword overrides (e.g. run_once=True from the CLI) win over
    everything else.
    """
    if environ is None:
        load_dotenv(override=False)
        environ = os.environ

    if path is None:
        path = environ.get("CHAPWATCH_CONFIG") or (DEFAULT_CONFIG_FILE if Path(DEFAULT_CONFIG_FILE).exists() else None)
    settings = read_settings_file(path) if path else {}

    raw: Dict[str, Any] = {}
    for opt, (env_name, file_key) in _KEYS.items():
        if env_name in environ and str(environ[env_name]).strip() != "":
            raw[opt] = environ[env_name].strip()
        elif settings.get(file_key) not in (None, ""):
            raw[opt] = settings[file_key]
    raw.update({k: v for k, v in overrides.items() if v is not None})

    target_url = str(raw.get("target_url", "")).strip()
    if not target_url:
        raise ConfigError("TargetUrl / TARGET_URL is required")

    cfg = Config(
        target_url=target_url,
        bot_token=str(raw.get("bot_token", "")).strip(),
        chat_id=str(raw.get("chat_id", "")).strip(),
        state_file=str(raw.get("state_file", DEFAULT_STATE_FILE)),
        poll_interval=_number("POLL_SECONDS", raw.get("poll_interval", DEFAULT_POLL_SECONDS), minimum=1),
        run_once=_bool("RUN_ONCE", raw.get("run_once", False)),
        dry_run=_bool("DRY_RUN", raw.get("dry_run", False)),
        fetcher=_choice("FETCHER", raw.get("fetcher", "http"), FETCHERS),
        fetch_timeout=_number("FETCH_TIMEOUT", raw.get("fetch_timeout", DEFAULT_TIMEOUT), minimum=1),
        user_agent=str(raw.get("user_agent", BROWSER_UA)),
        max_items=_number("MAX_CHAPTERS", raw.get("max_items", DEFAULT_MAX_ITEMS), cast=int, minimum=1),
        notify_order=_choice("NOTIFY_ORDER", raw.get("notify_order", ORDER_PAGE), ORDERS),
        link_selector=str(raw.get("link_selector", DEFAULT_LINK_SELECTOR)),
        title_selector=str(raw.get("title_selector", DEFAULT_TITLE_SELECTOR)),
        number_selector=str(raw.get("number_selector", DEFAULT_NUMBER_SELECTOR)),
    )

    if not cfg.dry_run and not (cfg.bot_token and cfg.chat_id):
        raise ConfigError("BotToken / TELEGRAM_BOT_TOKEN and ChatId / TELEGRAM_CHAT_ID are required unless DRY_RUN is on")
    return cfg
