# chapwatch/errors.py
# Error kinds raised by each stage of a poll cycle. The poll loop decides per
# kind whether the cycle continues; only ConfigError and a PersistenceError
# while preparing the state directory stop the process.

from __future__ import annotations


class ChapwatchError(Exception):
    """Base class for every error chapwatch raises on purpose."""


class ConfigError(ChapwatchError):
    pass


class FetchError(ChapwatchError):
    """Network failure, timeout or non-2xx status while loading the page."""

    def __init__(self, url: str, reason: str):
        super().__init__(f"fetch failed for {url}: {reason}")
        self.url = url
        self.reason = reason


class ExtractError(ChapwatchError):
    """Page content could not be parsed into chapter candidates."""


class CorruptStateError(ChapwatchError):
    """State file exists but cannot be read back."""

    def __init__(self, path, reason: str):
        super().__init__(f"state file {path} is unreadable: {reason}")
        self.path = path
        self.reason = reason


class NotifyError(ChapwatchError):
    def __init__(self, identifier: str, reason: str):
        super().__init__(f"notification failed for {identifier}: {reason}")
        self.identifier = identifier
        self.reason = reason


class PersistenceError(ChapwatchError):
    def __init__(self, path, reason: str):
        super().__init__(f"could not write state to {path}: {reason}")
        self.path = path
        self.reason = reason
