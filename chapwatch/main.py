# chapwatch/main.py
# Entry point: load config -> prepare state dir -> wire fetcher/extractor/
# notifier -> run the poll loop until a signal (or one check with --once).

from __future__ import annotations
import argparse
import signal
import sys
from typing import List, Optional

from .config import Config, load_config
from .errors import ConfigError, PersistenceError
from .fetchers import make_fetcher
from .notifiers.telegram import DryRunNotifier, Notifier, TelegramNotifier
from .poller import PollLoop
from .utils.log import get_logger
from .utils.state import StateStore
from .watchers.chapter_page import ChapterPageExtractor

logger = get_logger("chapwatch")

EXIT_OK = 0
EXIT_STORAGE = 1
EXIT_CONFIG = 2


def _parse_args(argv: Optional[List[str]]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="chapwatch",
        description="Watch a manga page for new chapters and announce them on Telegram",
    )
    parser.add_argument("--config", default=None, help="JSON settings file (default: $CHAPWATCH_CONFIG or ./appsettings.json)")
    parser.add_argument("--once", action="store_true", default=None, help="Exit after one completed check (RUN_ONCE)")
    parser.add_argument("--dry-run", action="store_true", default=None, help="Log messages instead of sending them (DRY_RUN)")
    return parser.parse_args(argv)


def build_notifier(cfg: Config) -> Notifier:
    if cfg.dry_run:
        return DryRunNotifier()
    return TelegramNotifier(cfg.bot_token, cfg.chat_id)


def build_loop(cfg: Config, store: StateStore) -> PollLoop:
    extractor = ChapterPageExtractor(
        link_selector=cfg.link_selector,
        title_selector=cfg.title_selector,
        number_selector=cfg.number_selector,
        max_items=cfg.max_items,
    )
    fetcher = make_fetcher(cfg.fetcher, user_agent=cfg.user_agent, timeout=cfg.fetch_timeout)
    return PollLoop(cfg, fetcher, extractor, build_notifier(cfg), store)


def _install_signal_handlers(loop: PollLoop) -> None:
    def _handler(signum, _frame):
        logger.info("Received %s; finishing current step and shutting down.", signal.Signals(signum).name)
        loop.stop()

    signal.signal(signal.SIGINT, _handler)
    if hasattr(signal, "SIGTERM"):
        signal.signal(signal.SIGTERM, _handler)


def main(argv: Optional[List[str]] = None) -> int:
    args = _parse_args(argv)
    try:
        cfg = load_config(args.config, run_once=args.once, dry_run=args.dry_run)
    except ConfigError as e:
        logger.error("Configuration error: %s", e)
        return EXIT_CONFIG

    store = StateStore(cfg.state_file)
    try:
        store.ensure_location()
    except PersistenceError as e:
        logger.error("Cannot prepare state storage: %s", e)
        return EXIT_STORAGE

    logger.info(
        "Watching %s every %ss (fetcher=%s, order=%s, once=%s, dry_run=%s, state=%s)",
        cfg.target_url, cfg.poll_interval, cfg.fetcher, cfg.notify_order, cfg.run_once, cfg.dry_run, store.path,
    )
    try:
        loop = build_loop(cfg, store)
    except ConfigError as e:
        logger.error("Configuration error: %s", e)
        return EXIT_CONFIG
    _install_signal_handlers(loop)
    return loop.run()


if __name__ == "__main__":
    sys.exit(main())
