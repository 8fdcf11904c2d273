"""Shared test doubles for the poll loop."""

from datetime import datetime, timezone

import pytest

from chapwatch.config import Config
from chapwatch.errors import FetchError, NotifyError
from chapwatch.notifiers.telegram import Notifier
from chapwatch.utils.state import StateStore
from chapwatch.watchers.base import CandidateItem, Extractor, Fetcher

FIXED_NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


class FakeFetcher(Fetcher):
    def __init__(self, content="<html></html>", error=None):
        self.content = content
        self.error = error
        self.calls = []

    def fetch(self, url):
        self.calls.append(url)
        if self.error is not None:
            raise self.error
        return self.content


class FixedExtractor(Extractor):
    def __init__(self, items):
        self.items = list(items)

    def extract(self, content, page_url):
        return list(self.items)


class RecordingNotifier(Notifier):
    def __init__(self, fail_for=()):
        self.fail_for = set(fail_for)
        self.sent = []

    def send(self, item):
        if item.identifier in self.fail_for:
            raise NotifyError(item.identifier, "HTTP 500: boom")
        self.sent.append(item)


def chapter(ident, title, number=None):
    return CandidateItem(url=ident, title=title, number=number)


@pytest.fixture
def config(tmp_path):
    return Config(
        target_url="https://manga.example/series/1",
        bot_token="t0ken",
        chat_id="42",
        state_file=str(tmp_path / "data" / "seen.json"),
        poll_interval=0,
    )


@pytest.fixture
def store(config):
    return StateStore(config.state_file)


@pytest.fixture
def timeout_fetcher():
    return FakeFetcher(error=FetchError("https://manga.example/series/1", "timed out"))
