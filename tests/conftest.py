"""
Pytest fixtures for the browser gateway test suite.
"""

from datetime import datetime, timezone
from pathlib import Path

import pytest
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from browser_gateway.config import GatewayConfig
from browser_gateway.models import RunState
from browser_gateway.session_store import BrowserSessionStore


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def set(self, *args) -> None:
        self.now = datetime(*args, tzinfo=timezone.utc)


class FakeElement:
    def __init__(self, text: str = "", image: bytes = b"element-png"):
        self.text = text
        self.image = image

    async def screenshot(self, type="png"):
        return self.image

    async def inner_text(self):
        return self.text


class FakeNavigation:
    def __init__(self, page):
        self.page = page

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        if exc_type is not None:
            return False
        if self.page.navigate_on_click is None:
            raise PlaywrightTimeoutError("Timeout 10000ms exceeded.")
        return False


class FakePage:
    def __init__(self, *, url: str = "about:blank", title: str = "Example Domain", html: str = ""):
        self.url = url
        self._title = title
        self.html = html
        self.elements = {}
        self.redirect_to = None
        self.goto_error = None
        self.goto_calls = []
        self.wait_for_selector_calls = []
        self.evaluate_calls = []
        self.evaluate_result = None
        self.evaluate_error = None
        self.pdf_kwargs = None
        self.screenshot_kwargs = None
        self.click_calls = []
        self.click_error = None
        self.navigate_on_click = None

    async def goto(self, url, wait_until=None, timeout=None):
        self.goto_calls.append({"url": url, "wait_until": wait_until, "timeout": timeout})
        if self.goto_error is not None:
            raise self.goto_error
        self.url = self.redirect_to or url
        return None

    async def wait_for_selector(self, selector, timeout=None):
        self.wait_for_selector_calls.append(selector)
        return self.elements.get(selector)

    async def query_selector(self, selector):
        return self.elements.get(selector)

    async def screenshot(self, **kwargs):
        self.screenshot_kwargs = kwargs
        return b"full-page-png"

    async def content(self):
        return self.html

    async def pdf(self, **kwargs):
        self.pdf_kwargs = kwargs
        return b"%PDF-1.4 fake"

    async def evaluate(self, expression, *args):
        self.evaluate_calls.append(expression)
        if self.evaluate_error is not None:
            raise self.evaluate_error
        return self.evaluate_result

    async def click(self, selector, timeout=None):
        self.click_calls.append(selector)
        if self.click_error is not None:
            raise self.click_error
        if self.navigate_on_click is not None:
            self.url = self.navigate_on_click

    def expect_navigation(self, wait_until=None, timeout=None):
        return FakeNavigation(self)

    async def title(self):
        return self._title


class FakeSessionManager:
    def __init__(self, page: FakePage = None):
        self.page = page or FakePage()
        self.start_calls = 0
        self.shutdown_calls = 0
        self.start_error = None
        self.shutdown_error = None

    async def start(self, run_id):
        self.start_calls += 1
        if self.start_error is not None:
            raise self.start_error
        return RunState(run_id=run_id, active=True, page=self.page, metadata={"timeout_ms": 30000})

    async def shutdown(self, run_state):
        self.shutdown_calls += 1
        if self.shutdown_error is not None:
            raise self.shutdown_error
        run_state.active = False


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 10, 18, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def config(tmp_path: Path) -> GatewayConfig:
    return GatewayConfig(api_token="test-token", activity_db_path=str(tmp_path / "sessions.db"))


@pytest.fixture
def store(config: GatewayConfig, clock: FakeClock):
    s = BrowserSessionStore(Path(config.activity_db_path), clock=clock)
    s.start()
    yield s
    s.close()


@pytest.fixture
def fake_page() -> FakePage:
    return FakePage()


@pytest.fixture
def session_manager(fake_page: FakePage) -> FakeSessionManager:
    return FakeSessionManager(fake_page)
