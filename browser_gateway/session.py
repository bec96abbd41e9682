"""Remote browser connection lifecycle."""

from __future__ import annotations

import logging
import time
from typing import Optional

from playwright.async_api import async_playwright

from .config import GatewayConfig
from .models import RunState

logger = logging.getLogger(__name__)


class BrowserSessionManager:
    """Open and tear down one remote CDP browser per invocation."""

    def __init__(self, config: GatewayConfig):
        self.config = config

    async def start(self, run_id: str) -> RunState:
        endpoint = self.config.cdp_endpoint()
        timeout_ms = float(self.config.timeout_ms)

        state = RunState(run_id=run_id, started_at=time.time())
        state.metadata["timeout_ms"] = int(self.config.timeout_ms)
        try:
            state.playwright = await async_playwright().start()
            state.browser = await state.playwright.chromium.connect_over_cdp(endpoint, timeout=timeout_ms)
            state.browser_context = await state.browser.new_context(
                viewport={
                    "width": int(self.config.viewport_width),
                    "height": int(self.config.viewport_height),
                },
                user_agent=self.config.user_agent,
            )
            state.browser_context.set_default_timeout(timeout_ms)
            state.browser_context.set_default_navigation_timeout(timeout_ms)

            page = await state.browser_context.new_page()
            page.set_default_timeout(timeout_ms)
            page.set_default_navigation_timeout(timeout_ms)
            state.page = page
        except BaseException:
            await self.shutdown(state)
            raise

        state.active = True
        return state

    async def shutdown(self, run_state: Optional[RunState]) -> None:
        """Release the remote session; failures are logged, never raised."""
        if run_state is None:
            return

        if run_state.browser_context is not None:
            try:
                await run_state.browser_context.close()
            except Exception as e:
                logger.warning("Error closing browser context run=%s: %s", run_state.run_id, e)

        if run_state.browser is not None:
            try:
                await run_state.browser.close()
            except Exception as e:
                logger.warning("Error disconnecting remote browser run=%s: %s", run_state.run_id, e)

        if run_state.playwright is not None:
            try:
                await run_state.playwright.stop()
            except Exception as e:
                logger.warning("Error stopping playwright run=%s: %s", run_state.run_id, e)

        run_state.active = False
        run_state.ended_at = time.time()
