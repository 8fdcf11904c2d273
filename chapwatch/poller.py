# chapwatch/poller.py
# Poll loop: fetch page -> extract chapters -> diff against seen-set ->
# notify each new chapter -> persist -> sleep.

from __future__ import annotations
import enum
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, List, Optional

from .config import Config
from .diff import diff
from .errors import ChapwatchError, CorruptStateError, ExtractError, FetchError, NotifyError, PersistenceError
from .notifiers.telegram import Notifier
from .utils.log import DIVIDER, get_logger
from .utils.state import SeenSet, StateStore
from .watchers.base import CandidateItem, Extractor, Fetcher

logger = get_logger("chapwatch.poller")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LoopState(enum.Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    EXTRACTING = "extracting"
    DIFFING = "diffing"
    NOTIFYING = "notifying"
    PERSISTING = "persisting"
    SLEEPING = "sleeping"
    TERMINATING = "terminating"


class CycleOutcome(enum.Enum):
    STATE_UNAVAILABLE = "state_unavailable"
    FETCH_FAILED = "fetch_failed"
    EXTRACT_FAILED = "extract_failed"
    NO_CANDIDATES = "no_candidates"
    NO_NEW_ITEMS = "no_new_items"
    NOTIFIED = "notified"
    CANCELLED = "cancelled"


@dataclass
class CycleReport:
    outcome: CycleOutcome
    seen: SeenSet
    candidates: int = 0
    new_items: List[CandidateItem] = field(default_factory=list)
    notified: List[CandidateItem] = field(default_factory=list)
    failed: List[NotifyError] = field(default_factory=list)
    persisted: bool = False
    error: Optional[ChapwatchError] = None

    @property
    def completed(self) -> bool:
        """True when the page was read; state read, fetch/extract failures and cancellation are not."""
        return self.outcome not in (
            CycleOutcome.STATE_UNAVAILABLE, CycleOutcome.FETCH_FAILED, CycleOutcome.EXTRACT_FAILED, CycleOutcome.CANCELLED,
        )


class PollLoop:
    def __init__(
        self,
        config: Config,
        fetcher: Fetcher,
        extractor: Extractor,
        notifier: Notifier,
        store: StateStore,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.config = config
        self.fetcher = fetcher
        self.extractor = extractor
        self.notifier = notifier
        self.store = store
        self.clock = clock
        self.state = LoopState.IDLE
        self._stop = threading.Event()

    # ----------------------- control -----------------------

    def stop(self) -> None:
        """Ask the loop to finish. Observed between stages and while sleeping."""
        self._stop.set()

    @property
    def stopping(self) -> bool:
        return self._stop.is_set()

    def _enter(self, state: LoopState) -> None:
        logger.debug("State %s -> %s", self.state.value, state.value)
        self.state = state

    # ----------------------- one cycle -----------------------

    def _load_seen(self) -> SeenSet:
        try:
            return self.store.load()
        except CorruptStateError as e:
            bak = self.store.quarantine()
            logger.error(
                "%s. Starting from an empty seen-set; previously announced chapters may be announced again. Backup: %s",
                e, bak,
            )
            return SeenSet()

    def _notify_all(self, items: List[CandidateItem], report: CycleReport) -> List[CandidateItem]:
        attempted: List[CandidateItem] = []
        for item in items:
            if self.stopping:
                logger.warning("Stop requested; %d chapter(s) left for the next run.", len(items) - len(attempted))
                break
            attempted.append(item)
            try:
                self.notifier.send(item)
            except NotifyError as e:
                logger.error("Notify failed for %s (%s): %s", item.identifier, item.title, e.reason)
                report.failed.append(e)
                continue
            report.notified.append(item)
            logger.info("Notified chapter: %s (%s)", item.title, item.identifier)
        return attempted

    def _persist(self, seen: SeenSet, attempted: List[CandidateItem], report: CycleReport) -> SeenSet:
        merged = self.store.merge(seen, attempted, self.clock())
        try:
            self.store.save(merged)
        except PersistenceError as e:
            logger.error("%s. These chapters may be announced again next cycle: %s", e, ", ".join(it.identifier for it in attempted))
            report.error = e
        else:
            report.persisted = True
        return merged

    def run_cycle(self) -> CycleReport:
        url = self.config.target_url
        try:
            seen = self._load_seen()
        except PersistenceError as e:
            # without the history every listed chapter would look new
            logger.error("%s. Skipping this cycle; the state file is left untouched.", e)
            return CycleReport(CycleOutcome.STATE_UNAVAILABLE, SeenSet(), error=e)

        self._enter(LoopState.FETCHING)
        try:
            content = self.fetcher.fetch(url)
        except FetchError as e:
            logger.error("Fetch failed for %s: %s", url, e.reason)
            return CycleReport(CycleOutcome.FETCH_FAILED, seen, error=e)
        if self.stopping:
            return CycleReport(CycleOutcome.CANCELLED, seen)

        self._enter(LoopState.EXTRACTING)
        try:
            candidates = self.extractor.extract(content, url)
        except ExtractError as e:
            logger.error("Could not extract chapters from %s: %s", url, e)
            return CycleReport(CycleOutcome.EXTRACT_FAILED, seen, error=e)
        if not candidates:
            logger.warning("No chapter titles found on %s.", url)
            return CycleReport(CycleOutcome.NO_CANDIDATES, seen)

        self._enter(LoopState.DIFFING)
        fresh = diff(candidates, seen, order=self.config.notify_order)
        report = CycleReport(CycleOutcome.NO_NEW_ITEMS, seen, candidates=len(candidates), new_items=fresh)
        if not fresh:
            logger.info("No new chapters found (%d listed).", len(candidates))
            return report

        self._enter(LoopState.NOTIFYING)
        report.outcome = CycleOutcome.NOTIFIED
        attempted = self._notify_all(fresh, report)
        if not attempted:
            report.outcome = CycleOutcome.CANCELLED
            return report

        # a save that has started always runs to the end
        self._enter(LoopState.PERSISTING)
        report.seen = self._persist(seen, attempted, report)
        logger.info(
            "Cycle done: %d new, %d sent, %d failed, persisted=%s",
            len(fresh), len(report.notified), len(report.failed), report.persisted,
        )
        return report

    # ----------------------- loop -----------------------

    def _sleep(self) -> bool:
        """Wait out the poll interval. Returns True if a stop was requested."""
        self._enter(LoopState.SLEEPING)
        logger.info("Sleeping %ss until next check.", self.config.poll_interval)
        return self._stop.wait(self.config.poll_interval)

    def run(self) -> int:
        """Run cycles until stopped (or, with run_once, until one completes). Returns 0."""
        while not self.stopping:
            self._enter(LoopState.IDLE)
            logger.info(DIVIDER)
            logger.info("Checking %s", self.config.target_url)
            try:
                report = self.run_cycle()
            except Exception:
                logger.exception("Poll cycle raised unexpectedly")
                report = None

            if self.config.run_once and report is not None and report.completed:
                logger.info("Single-cycle mode: exiting after a completed check.")
                break
            if self._sleep():
                break

        self._enter(LoopState.TERMINATING)
        return 0
