"""Per-action page handlers for the gateway."""

from __future__ import annotations

import base64
import json
import logging
import re
import time
from typing import Any, Awaitable, Callable, Dict, Optional

from bs4 import BeautifulSoup
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from .config import GatewayConfig
from .models import (
    ACTION_CLICK,
    ACTION_EXTRACT,
    ACTION_NAVIGATE,
    ACTION_PDF,
    ACTION_SCRAPE,
    ACTION_SCREENSHOT,
    BrowserAction,
    BrowserResult,
    RunState,
)

logger = logging.getLogger(__name__)

_EXCESS_NEWLINES = re.compile(r"\n{3,}")
_HORIZONTAL_WS = re.compile(r"[ \t]+")
_STRIPPED_TAGS = ["script", "style", "noscript"]

_VISIBLE_TEXT_JS = """() => {
    document.querySelectorAll("script, style, noscript").forEach((el) => el.remove());
    return document.body ? document.body.innerText : null;
}"""

PDF_MARGIN = {"top": "1cm", "right": "1cm", "bottom": "1cm", "left": "1cm"}


def clean_text(text: str) -> str:
    """Collapse blank-line runs and horizontal whitespace, then trim."""
    cleaned = _EXCESS_NEWLINES.sub("\n\n", str(text or ""))
    cleaned = _HORIZONTAL_WS.sub(" ", cleaned)
    return cleaned.strip()


def html_to_text(html: str) -> str:
    """Body text of an HTML document without script/style/noscript.

    Used for documents without a rendered body. Elements hidden by CSS are not
    filtered out here.
    """
    soup = BeautifulSoup(html or "", "html.parser")
    for tag in soup(_STRIPPED_TAGS):
        tag.decompose()
    root = soup.body or soup
    return root.get_text("\n")


def element_not_found(selector: str) -> str:
    return f"Element not found for selector: {selector}"


class PageActionsFeature:
    """Run exactly one gateway action against an already-navigated page."""

    def __init__(self, config: Optional[GatewayConfig] = None):
        self.config = config or GatewayConfig()
        self._handlers: Dict[str, Callable[[RunState, BrowserAction, float], Awaitable[BrowserResult]]] = {
            ACTION_SCREENSHOT: self.screenshot,
            ACTION_SCRAPE: self.scrape,
            ACTION_PDF: self.pdf,
            ACTION_EXTRACT: self.extract,
            ACTION_CLICK: self.click,
            ACTION_NAVIGATE: self.navigate,
        }

    async def perform(self, run_state: RunState, action: BrowserAction, started: Optional[float] = None) -> BrowserResult:
        start = time.monotonic() if started is None else started
        handler = self._handlers.get(action.action)
        if handler is None:
            return self._fail(run_state, start, f"Unsupported action: {action.action}")
        result = await handler(run_state, action, start)
        self._log_action(run_state, action=action.action, result=result)
        return result

    async def screenshot(self, run_state: RunState, action: BrowserAction, started: float) -> BrowserResult:
        page = self._require_page(run_state)
        if action.selector:
            element = await page.query_selector(action.selector)
            if element is None:
                return self._fail(run_state, started, element_not_found(action.selector))
            image = await element.screenshot(type="png")
        else:
            image = await page.screenshot(type="png", full_page=True)
        return self._ok(run_state, started, base64.b64encode(bytes(image)).decode("ascii"))

    async def scrape(self, run_state: RunState, action: BrowserAction, started: float) -> BrowserResult:
        page = self._require_page(run_state)
        if action.selector:
            element = await page.query_selector(action.selector)
            if element is None:
                return self._fail(run_state, started, element_not_found(action.selector))
            text = await element.inner_text()
        else:
            text = await page.evaluate(_VISIBLE_TEXT_JS)
            if not isinstance(text, str):
                text = html_to_text(await page.content())
        return self._ok(run_state, started, clean_text(text))

    async def pdf(self, run_state: RunState, action: BrowserAction, started: float) -> BrowserResult:
        page = self._require_page(run_state)
        document = await page.pdf(format="A4", print_background=True, margin=dict(PDF_MARGIN))
        return self._ok(run_state, started, base64.b64encode(bytes(document)).decode("ascii"))

    async def extract(self, run_state: RunState, action: BrowserAction, started: float) -> BrowserResult:
        page = self._require_page(run_state)
        if not action.javascript:
            return self._fail(run_state, started, "JavaScript code is required for the extract action")
        try:
            value = await page.evaluate(action.javascript)
        except PlaywrightTimeoutError:
            raise
        except Exception as e:
            return self._fail(run_state, started, f"JavaScript evaluation error: {e}")
        if isinstance(value, str):
            data = value
        elif value is None:
            data = ""
        else:
            data = json.dumps(value, indent=2, ensure_ascii=False, default=str)
        return self._ok(run_state, started, data)

    async def click(self, run_state: RunState, action: BrowserAction, started: float) -> BrowserResult:
        page = self._require_page(run_state)
        selector = str(action.selector or "").strip()
        if not selector:
            return self._fail(run_state, started, "Selector is required for the click action")

        element = await page.query_selector(selector)
        if element is None:
            return self._fail(run_state, started, element_not_found(selector))

        clicked = False
        try:
            async with page.expect_navigation(
                wait_until="networkidle",
                timeout=float(self.config.click_navigation_timeout_ms),
            ):
                await page.click(selector, timeout=float(self.config.timeout_ms))
                clicked = True
        except PlaywrightTimeoutError as e:
            # AJAX and modal clicks never navigate.
            if not clicked:
                return self._fail(run_state, started, f"Click failed: {e}")
        except Exception as e:
            return self._fail(run_state, started, f"Click failed: {e}")

        run_state.current_url = page.url or run_state.current_url
        return self._ok(
            run_state,
            started,
            f'Clicked element "{selector}". Current URL: {page.url}',
        )

    async def navigate(self, run_state: RunState, action: BrowserAction, started: float) -> BrowserResult:
        page = self._require_page(run_state)
        title = await page.title()
        final_url = page.url
        return self._ok(run_state, started, f'Navigated to "{title}" at {final_url}')

    @staticmethod
    def _require_page(run_state: RunState) -> Any:
        page = getattr(run_state, "page", None)
        if page is None:
            raise RuntimeError("No active browser page. Start a browser session first.")
        return page

    @staticmethod
    def _elapsed_ms(started: float) -> int:
        return int((time.monotonic() - started) * 1000)

    def _ok(self, run_state: RunState, started: float, data: str) -> BrowserResult:
        url = self._page_url(run_state)
        run_state.current_url = url
        return BrowserResult(success=True, data=data, url=url, timing=self._elapsed_ms(started))

    def _fail(self, run_state: RunState, started: float, message: str) -> BrowserResult:
        return BrowserResult.failure(self._page_url(run_state), message, timing=self._elapsed_ms(started))

    @staticmethod
    def _page_url(run_state: RunState) -> str:
        page = getattr(run_state, "page", None)
        url = getattr(page, "url", None) if page is not None else None
        return str(url or run_state.current_url or "")

    def _log_action(self, run_state: RunState, *, action: str, result: BrowserResult) -> None:
        logger.debug(
            "browser action run=%s action=%s success=%s bytes=%s timing_ms=%s error=%s",
            run_state.run_id,
            action,
            result.success,
            result.size_bytes,
            result.timing,
            result.error_message,
        )
