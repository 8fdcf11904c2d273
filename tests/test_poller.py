"""Poll loop: one cycle end to end with fake collaborators."""

import dataclasses
from unittest.mock import patch

from chapwatch.errors import ExtractError, FetchError, PersistenceError
from chapwatch.poller import CycleOutcome, LoopState, PollLoop
from chapwatch.utils.state import NotifiedRecord, SeenSet

from conftest import FIXED_NOW, FakeFetcher, FixedExtractor, RecordingNotifier, chapter

CH12 = chapter("/c/12", "Ch 12")
CH13 = chapter("/c/13", "Ch 13")


def make_loop(config, store, items=(), fetcher=None, notifier=None, extractor=None):
    return PollLoop(
        config,
        fetcher or FakeFetcher(),
        extractor or FixedExtractor(items),
        notifier or RecordingNotifier(),
        store,
        clock=lambda: FIXED_NOW,
    )


class TestScenarios:
    def test_a_everything_new(self, config, store):
        """Empty seen-set: both chapters announced in page order and stored"""
        notifier = RecordingNotifier()
        report = make_loop(config, store, [CH12, CH13], notifier=notifier).run_cycle()

        assert report.outcome is CycleOutcome.NOTIFIED
        assert [it.identifier for it in notifier.sent] == ["/c/12", "/c/13"]
        assert report.persisted
        assert set(store.load().identifiers()) == {"/c/12", "/c/13"}
        assert store.load().get("/c/13").notified_at == FIXED_NOW

    def test_b_partially_seen(self, config, store):
        store.save(SeenSet([NotifiedRecord("/c/12", "Ch 12", FIXED_NOW)]))
        notifier = RecordingNotifier()
        report = make_loop(config, store, [CH12, CH13], notifier=notifier).run_cycle()

        assert [it.identifier for it in report.new_items] == ["/c/13"]
        assert [it.identifier for it in notifier.sent] == ["/c/13"]
        assert store.load().identifiers() == ["/c/12", "/c/13"]

    def test_c_empty_title_never_notified(self, config, store):
        notifier = RecordingNotifier()
        report = make_loop(config, store, [chapter("/c/14", "  "), CH13], notifier=notifier).run_cycle()

        assert [it.identifier for it in notifier.sent] == ["/c/13"]
        assert "/c/14" not in store.load()
        assert report.candidates == 2

    def test_d_fetch_timeout(self, config, store, timeout_fetcher):
        store.save(SeenSet([NotifiedRecord("/c/11", "Ch 11", FIXED_NOW)]))
        before = store.path.read_text(encoding="utf-8")
        notifier = RecordingNotifier()
        report = make_loop(config, store, [CH12, CH13], fetcher=timeout_fetcher, notifier=notifier).run_cycle()

        assert report.outcome is CycleOutcome.FETCH_FAILED
        assert isinstance(report.error, FetchError)
        assert notifier.sent == []
        assert store.path.read_text(encoding="utf-8") == before

    def test_e_one_notify_failure(self, config, store):
        """Both items are stored even though one send failed"""
        notifier = RecordingNotifier(fail_for={"/c/12"})
        report = make_loop(config, store, [CH12, CH13], notifier=notifier).run_cycle()

        assert [it.identifier for it in notifier.sent] == ["/c/13"]
        assert [e.identifier for e in report.failed] == ["/c/12"]
        assert set(store.load().identifiers()) == {"/c/12", "/c/13"}


class TestCycleOutcomes:
    def test_no_candidates(self, config, store):
        report = make_loop(config, store, []).run_cycle()
        assert report.outcome is CycleOutcome.NO_CANDIDATES
        assert not store.path.exists()

    def test_extract_error(self, config, store):
        class Broken(FixedExtractor):
            def extract(self, content, page_url):
                raise ExtractError("empty page")

        report = make_loop(config, store, extractor=Broken([])).run_cycle()
        assert report.outcome is CycleOutcome.EXTRACT_FAILED
        assert not report.completed

    def test_nothing_new_does_not_rewrite_state(self, config, store):
        store.save(SeenSet([NotifiedRecord("/c/12", "Ch 12", FIXED_NOW)]))
        mtime = store.path.stat().st_mtime_ns
        report = make_loop(config, store, [CH12]).run_cycle()
        assert report.outcome is CycleOutcome.NO_NEW_ITEMS
        assert store.path.stat().st_mtime_ns == mtime

    def test_second_cycle_sends_nothing(self, config, store):
        notifier = RecordingNotifier()
        loop = make_loop(config, store, [CH12, CH13], notifier=notifier)
        loop.run_cycle()
        report = loop.run_cycle()
        assert report.outcome is CycleOutcome.NO_NEW_ITEMS
        assert len(notifier.sent) == 2

    def test_identifier_order(self, config, store):
        cfg = dataclasses.replace(config, notify_order="identifier")
        notifier = RecordingNotifier()
        make_loop(cfg, store, [CH13, CH12], notifier=notifier).run_cycle()
        assert [it.identifier for it in notifier.sent] == ["/c/12", "/c/13"]

    def test_corrupt_state_starts_fresh(self, config, store):
        store.path.parent.mkdir(parents=True)
        store.path.write_text("[{broken", encoding="utf-8")
        notifier = RecordingNotifier()
        report = make_loop(config, store, [CH12], notifier=notifier).run_cycle()

        assert [it.identifier for it in notifier.sent] == ["/c/12"]
        assert store.load().identifiers() == ["/c/12"]
        assert store.path.with_suffix(".json.bak").read_text(encoding="utf-8") == "[{broken"
        assert report.persisted

    def test_unreadable_state_skips_cycle(self, config, store):
        """No fetch, no announcements and no backup when the seen-set cannot be read"""
        store.save(SeenSet([NotifiedRecord("/c/12", "Ch 12", FIXED_NOW)]))
        fetcher, notifier = FakeFetcher(), RecordingNotifier()
        loop = make_loop(config, store, [CH12, CH13], fetcher=fetcher, notifier=notifier)
        with patch.object(store, "load", side_effect=PersistenceError(store.path, "read failed: denied")):
            report = loop.run_cycle()

        assert report.outcome is CycleOutcome.STATE_UNAVAILABLE
        assert report.completed is False
        assert isinstance(report.error, PersistenceError)
        assert fetcher.calls == [] and notifier.sent == []
        assert not store.path.with_suffix(".json.bak").exists()
        assert store.load().identifiers() == ["/c/12"]

    def test_persistence_failure_is_reported_not_raised(self, config, store):
        notifier = RecordingNotifier()
        loop = make_loop(config, store, [CH12], notifier=notifier)
        with patch.object(store, "save", side_effect=PersistenceError(store.path, "read-only")):
            report = loop.run_cycle()

        assert [it.identifier for it in notifier.sent] == ["/c/12"]
        assert report.persisted is False
        assert isinstance(report.error, PersistenceError)
        assert "/c/12" in report.seen


class TestLoop:
    def test_run_once_exits_after_completed_cycle(self, config, store):
        cfg = dataclasses.replace(config, run_once=True)
        fetcher = FakeFetcher()
        loop = make_loop(cfg, store, [CH12], fetcher=fetcher)
        assert loop.run() == 0
        assert len(fetcher.calls) == 1
        assert loop.state is LoopState.TERMINATING

    def test_run_once_retries_after_fetch_failure(self, config, store):
        cfg = dataclasses.replace(config, run_once=True)

        class Flaky(FakeFetcher):
            def fetch(self, url):
                self.calls.append(url)
                if len(self.calls) == 1:
                    raise FetchError(url, "timed out")
                return self.content

        fetcher = Flaky()
        notifier = RecordingNotifier()
        assert make_loop(cfg, store, [CH12], fetcher=fetcher, notifier=notifier).run() == 0
        assert len(fetcher.calls) == 2
        assert len(notifier.sent) == 1

    def test_stop_during_sleep_ends_loop(self, config, store):
        cfg = dataclasses.replace(config, poll_interval=3600)
        fetcher = FakeFetcher()
        loop = make_loop(cfg, store, [CH12], fetcher=fetcher)

        def stop_on_wait(timeout):
            loop.stop()
            return True

        with patch.object(loop._stop, "wait", side_effect=stop_on_wait):
            assert loop.run() == 0
        assert len(fetcher.calls) == 1

    def test_stop_before_start_runs_nothing(self, config, store):
        fetcher = FakeFetcher()
        loop = make_loop(config, store, [CH12], fetcher=fetcher)
        loop.stop()
        assert loop.run() == 0
        assert fetcher.calls == []

    def test_stop_mid_notify_persists_attempted_only(self, config, store):
        """Chapters not yet sent stay unrecorded for the next run"""
        loop = None

        class StopAfterFirst(RecordingNotifier):
            def send(self, item):
                super().send(item)
                loop.stop()

        notifier = StopAfterFirst()
        loop = make_loop(config, store, [CH12, CH13], notifier=notifier)
        report = loop.run_cycle()

        assert [it.identifier for it in notifier.sent] == ["/c/12"]
        assert report.persisted
        assert store.load().identifiers() == ["/c/12"]

    def test_unexpected_error_does_not_kill_loop(self, config, store):
        cfg = dataclasses.replace(config, run_once=True)

        class Buggy(FakeFetcher):
            def fetch(self, url):
                self.calls.append(url)
                if len(self.calls) == 1:
                    raise RuntimeError("bug")
                return self.content

        fetcher = Buggy()
        assert make_loop(cfg, store, [CH12], fetcher=fetcher).run() == 0
        assert len(fetcher.calls) == 2
