from __future__ import annotations

import logging
import time
from typing import Any, Dict, Optional

from browser_gateway.models import (
    STATUS_COMPLETED,
    STATUS_FAILED,
    STATUS_TIMEOUT,
    BrowserAction,
    BrowserResult,
    SessionHandle,
    result_type_for,
)


class ExecutionNode:
    """Run the admitted action between a ``running`` insert and its terminal update."""

    def __init__(self, *, executor: Any, store: Any, logger: Optional[logging.Logger] = None) -> None:
        self._executor = executor
        self._store = store
        self._logger = logger or logging.getLogger(__name__)

    async def run(self, state: Dict[str, Any]) -> Dict[str, Any]:
        action: BrowserAction = state["action"]
        context = state["context"]

        handle: Optional[SessionHandle] = None
        try:
            handle = self._store.begin_session(context, action)
        except Exception as e:
            self._logger.error("Failed to record browser session start for user=%s: %s", context.user_id, e)

        started = time.monotonic()
        try:
            result = await self._executor.execute(action)
        except Exception as e:
            self._logger.error("Unexpected browser gateway error for url=%s: %s", action.url, e)
            result = BrowserResult.failure(
                action.url,
                str(e) or "An unexpected error occurred during browser action",
                timing=int((time.monotonic() - started) * 1000),
            )

        if handle is not None:
            self._finish(handle, action, result)

        updated = dict(state)
        updated["session_handle"] = handle
        updated["result"] = result
        return updated

    def _finish(self, handle: SessionHandle, action: BrowserAction, result: BrowserResult) -> None:
        if result.success:
            status = STATUS_COMPLETED
        elif result.timed_out:
            status = STATUS_TIMEOUT
        else:
            status = STATUS_FAILED
        try:
            updated = self._store.finish_session(
                handle,
                status=status,
                result_type=result_type_for(action.action),
                result_size_bytes=result.size_bytes,
                timing_ms=result.timing,
                error_message=result.error_message,
            )
            if not updated:
                self._logger.warning("Browser session %s was already finalized", handle.session_id)
        except Exception as e:
            self._logger.error("Failed to finalize browser session %s: %s", handle.session_id, e)
