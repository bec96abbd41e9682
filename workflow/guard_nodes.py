from __future__ import annotations

from typing import Any, Dict

from browser_gateway.models import BrowserAction, BrowserResult


class ValidationNode:
    """Reject unsupported actions and unsafe navigation targets."""

    def __init__(self, *, url_validator: Any) -> None:
        self._url_validator = url_validator

    async def run(self, state: Dict[str, Any]) -> Dict[str, Any]:
        action: BrowserAction = state["action"]
        updated = dict(state)

        if not action.is_supported:
            updated["result"] = BrowserResult.failure(action.url, f"Unsupported action: {action.action}")
            updated["rejected"] = True
            return updated

        validation = self._url_validator.validate(action.url)
        updated["validation"] = validation
        if not validation.valid:
            updated["result"] = BrowserResult.failure(action.url, str(validation.reason or "Invalid URL"))
            updated["rejected"] = True
        return updated

    @staticmethod
    def route(state: Dict[str, Any]) -> str:
        return "log_rejection" if state.get("rejected") else "check_quota"


class QuotaNode:
    """Deny the call once the user's daily allowance is spent."""

    def __init__(self, *, quota_tracker: Any) -> None:
        self._quota_tracker = quota_tracker

    async def run(self, state: Dict[str, Any]) -> Dict[str, Any]:
        action: BrowserAction = state["action"]
        quota = self._quota_tracker.check_quota(state["context"].user_id)
        updated = dict(state)
        updated["quota"] = quota
        if not quota.allowed:
            updated["result"] = BrowserResult.failure(
                action.url,
                (
                    "Daily browser session quota exceeded. Remaining: 0. "
                    f"Resets at {quota.reset_at.isoformat()}."
                ),
            )
            updated["rejected"] = True
        return updated

    @staticmethod
    def route(state: Dict[str, Any]) -> str:
        return "log_rejection" if state.get("rejected") else "execute_action"
