"""Action executor: one remote browser session per gateway call."""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from typing import Any, Optional

from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from .config import GatewayConfig
from .models import BrowserAction, BrowserResult, RunState
from .page_actions import PageActionsFeature

logger = logging.getLogger(__name__)


def is_timeout_error(error: BaseException) -> bool:
    if isinstance(error, (PlaywrightTimeoutError, asyncio.TimeoutError)):
        return True
    return "timeout" in str(error).lower()


class BrowserActionExecutor:
    """Connect, navigate, run one action, disconnect. Never raises."""

    def __init__(
        self,
        *,
        session_manager: Any,
        page_actions: PageActionsFeature,
        config: Optional[GatewayConfig] = None,
    ):
        self.session_manager = session_manager
        self.page_actions = page_actions
        self.config = config or GatewayConfig()

    async def execute(self, action: BrowserAction) -> BrowserResult:
        started = time.monotonic()
        timeout_ms = int(self.config.timeout_ms)

        requirement_error = action.requirement_error()
        if requirement_error:
            return BrowserResult.failure(action.url, requirement_error, timing=self._elapsed_ms(started))

        run_state: Optional[RunState] = None
        try:
            run_state = await self.session_manager.start(str(uuid.uuid4()))
            page = run_state.page

            await page.goto(action.url, wait_until="networkidle", timeout=float(timeout_ms))
            run_state.current_url = page.url or action.url

            await self._wait(page, action.wait_for, timeout_ms)

            return await self.page_actions.perform(run_state, action, started)
        except Exception as e:
            timed_out = is_timeout_error(e)
            if timed_out:
                message = f"Browser action timed out after {timeout_ms}ms"
            else:
                message = str(e) or "Unknown browser error"
            logger.info("Browser action %s failed for url=%s: %s", action.action, action.url, e)
            return BrowserResult.failure(
                action.url,
                message,
                timing=self._elapsed_ms(started),
                timed_out=timed_out,
            )
        finally:
            if run_state is not None:
                try:
                    await self.session_manager.shutdown(run_state)
                except Exception as e:
                    logger.error("Error disconnecting browser run=%s: %s", run_state.run_id, e)

    @staticmethod
    async def _wait(page: Any, wait_for: Any, timeout_ms: int) -> None:
        if wait_for is None or wait_for == "" or isinstance(wait_for, bool):
            return
        if isinstance(wait_for, (int, float)):
            delay_ms = min(max(0.0, float(wait_for)), float(timeout_ms))
            await asyncio.sleep(delay_ms / 1000.0)
            return
        await page.wait_for_selector(str(wait_for), timeout=float(timeout_ms))

    @staticmethod
    def _elapsed_ms(started: float) -> int:
        return int((time.monotonic() - started) * 1000)
