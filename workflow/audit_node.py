from __future__ import annotations

import logging
from typing import Any, Dict, Optional


class RejectionAuditNode:
    """Write the terminal ``failed`` record for a request refused before execution."""

    def __init__(self, *, store: Any, logger: Optional[logging.Logger] = None) -> None:
        self._store = store
        self._logger = logger or logging.getLogger(__name__)

    async def run(self, state: Dict[str, Any]) -> Dict[str, Any]:
        updated = dict(state)
        try:
            updated["session_id"] = self._store.log_rejection(state["context"], state["action"], state["result"])
        except Exception as e:
            self._logger.error("Error logging rejected browser session: %s", e)
            updated["session_id"] = None
        return updated
