# chapwatch/fetchers.py
# Page loaders. HttpFetcher does a plain GET; BrowserFetcher renders the page
# in headless Chromium for listings that are built client-side.

from __future__ import annotations
import importlib.util

import requests

from .errors import ConfigError, FetchError
from .watchers.base import Fetcher
from .utils.log import get_logger

BROWSER_UA = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/115.0.0.0 Safari/537.36"
DEFAULT_TIMEOUT = 60  # seconds

logger = get_logger("chapwatch.fetchers")


def make_session(user_agent: str = BROWSER_UA) -> requests.Session:
    s = requests.Session()
    s.headers.update({
        "User-Agent": user_agent,
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
        "Accept-Language": "en-US,en;q=0.9,vi;q=0.8",
        "Connection": "keep-alive",
    })
    return s


class HttpFetcher(Fetcher):
    name = "http"

    def __init__(self, user_agent: str = BROWSER_UA, timeout: float = DEFAULT_TIMEOUT, session: requests.Session | None = None):
        self.timeout = timeout
        self.session = session or make_session(user_agent)

    def fetch(self, url: str) -> str:
        logger.info("Fetching %s", url)
        try:
            r = self.session.get(url, timeout=self.timeout, allow_redirects=True)
            r.raise_for_status()
        except requests.RequestException as e:
            raise FetchError(url, str(e)) from e
        return r.text


def playwright_available() -> bool:
    return importlib.util.find_spec("playwright") is not None


class BrowserFetcher(Fetcher):
    """Loads the page in headless Chromium and returns the rendered DOM.

    Playwright is an optional dependency (``pip install chapwatch[browser]``
    followed by ``playwright install chromium``). Its presence is checked when
    the fetcher is built; the module itself is imported on first fetch.
    """

    name = "browser"

    def __init__(self, user_agent: str = BROWSER_UA, timeout: float = DEFAULT_TIMEOUT):
        if not playwright_available():
            raise ConfigError("FETCHER=browser needs Playwright: pip install chapwatch[browser] && playwright install chromium")
        self.user_agent = user_agent
        self.timeout = timeout

    def fetch(self, url: str) -> str:
        from playwright.sync_api import sync_playwright, Error as PwError

        logger.info("Rendering %s in headless Chromium", url)
        try:
            with sync_playwright() as pw:
                browser = pw.chromium.launch(headless=True)
                try:
                    context = browser.new_context(user_agent=self.user_agent)
                    page = context.new_page()
                    page.goto(url, wait_until="load", timeout=int(self.timeout * 1000))
                    return page.content()
                finally:
                    browser.close()
        except PwError as e:
            raise FetchError(url, str(e)) from e


def make_fetcher(kind: str, user_agent: str = BROWSER_UA, timeout: float = DEFAULT_TIMEOUT) -> Fetcher:
    if kind == "browser":
        return BrowserFetcher(user_agent=user_agent, timeout=timeout)
    return HttpFetcher(user_agent=user_agent, timeout=timeout)
