"""Browser action gateway agent."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, TypedDict

from langgraph.graph import END, StateGraph

from browser_gateway.automation import BrowserActionExecutor
from browser_gateway.config import GatewayConfig, load_config
from browser_gateway.models import (
    BrowserAction,
    BrowserResult,
    ExecutionContext,
    QuotaCheckResult,
    SessionHandle,
    UrlValidation,
)
from browser_gateway.page_actions import PageActionsFeature
from browser_gateway.quota import QuotaTracker, utc_day_window
from browser_gateway.session import BrowserSessionManager
from browser_gateway.session_store import BrowserSessionStore
from browser_gateway.tools import BrowseWebToolkit
from browser_gateway.url_validator import UrlValidator
from workflow import ExecutionNode, QuotaNode, RejectionAuditNode, ValidationNode


class GatewayState(TypedDict, total=False):
    action: BrowserAction
    context: ExecutionContext
    validation: UrlValidation
    quota: QuotaCheckResult
    rejected: bool
    session_handle: Optional[SessionHandle]
    session_id: Optional[str]
    result: BrowserResult


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class BrowserGatewayAgent:
    """Validated, quota-gated entry point to the remote headless browser."""

    name = "browser_gateway"
    description = "SSRF-safe, quota-gated headless browser gateway"

    def __init__(
        self,
        config: Optional[GatewayConfig] = None,
        *,
        store: Any = None,
        session_manager: Any = None,
        page_actions: Optional[PageActionsFeature] = None,
        clock: Optional[Callable[[], datetime]] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.config = config or GatewayConfig()
        self.logger = logger or logging.getLogger(__name__)
        self._clock = clock or _utc_now

        self.store = store if store is not None else BrowserSessionStore(
            Path(self.config.activity_db_path), clock=self._clock
        )
        self.url_validator = UrlValidator(self.config)
        self.quota_tracker = QuotaTracker(self.store, self.config, clock=self._clock)
        self.session_manager = session_manager if session_manager is not None else BrowserSessionManager(self.config)
        self.page_actions = page_actions or PageActionsFeature(self.config)
        self.executor = BrowserActionExecutor(
            session_manager=self.session_manager,
            page_actions=self.page_actions,
            config=self.config,
        )

        self.validation_node_impl = ValidationNode(url_validator=self.url_validator)
        self.quota_node_impl = QuotaNode(quota_tracker=self.quota_tracker)
        self.execution_node_impl = ExecutionNode(executor=self.executor, store=self.store, logger=self.logger)
        self.rejection_node_impl = RejectionAuditNode(store=self.store, logger=self.logger)
        self._app = self._build_graph()

    @classmethod
    def from_config_file(cls, config_path: Optional[str] = None, **kwargs: Any) -> "BrowserGatewayAgent":
        return cls(load_config(config_path), **kwargs)

    async def execute_browser_action(self, action: BrowserAction, context: ExecutionContext) -> BrowserResult:
        """Validate, check quota, run and audit one browser action. Never raises."""
        state: GatewayState = {
            "action": action,
            "context": context,
            "rejected": False,
            "session_handle": None,
            "session_id": None,
        }
        try:
            final_state = await self._app.ainvoke(state)
        except Exception as e:
            self.logger.error("Browser gateway workflow failed for url=%s: %s", action.url, e)
            return BrowserResult.failure(
                action.url,
                str(e) or "An unexpected error occurred during browser action",
            )

        result = final_state.get("result") if isinstance(final_state, dict) else None
        if isinstance(result, BrowserResult):
            return result
        return BrowserResult.failure(action.url, "workflow_finished_without_result")

    async def process(self, input_data: Any) -> Dict[str, Any]:
        """
        Dict entry point for the tool-calling layer.

        Input must be a JSON object with ``action``, ``url`` and ``user_id`` plus
        optional ``selector``, ``wait_for``, ``javascript``, ``organization_id``
        and ``conversation_id``.
        """
        if not isinstance(input_data, dict):
            raise TypeError("Payload must be a JSON object with direct keys")

        payload: Dict[str, Any] = dict(input_data)
        user_id = str(payload.get("user_id") or "").strip()
        if not user_id:
            raise ValueError("Missing required field: user_id")

        context = ExecutionContext(
            user_id=user_id,
            organization_id=_optional(payload.get("organization_id")),
            conversation_id=_optional(payload.get("conversation_id")),
        )
        result = await self.execute_browser_action(BrowserAction.from_payload(payload), context)
        return result.to_dict()

    def get_tools(self, context: ExecutionContext) -> List[Any]:
        """LangChain tools bound to one caller context."""
        return BrowseWebToolkit(self, context).get_tools()

    def usage(self, user_id: str) -> Dict[str, Any]:
        """Today's audited usage and the current quota position."""
        today_start, tomorrow_start = utc_day_window(self._clock())
        summary = self.store.usage_summary(user_id, today_start, tomorrow_start)
        quota = self.quota_tracker.check_quota(user_id)
        summary["quota"] = {
            "allowed": quota.allowed,
            "remaining": quota.remaining,
            "limit": quota.limit,
            "reset_at": quota.reset_at.isoformat(),
        }
        return summary

    def health(self, _data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Return health and runtime wiring status."""
        return {
            "status": "ok",
            "agent": self.name,
            "browser_configured": bool(self.config.api_token),
            "activity_db_path": self.config.activity_db_path,
            "timeout_ms": int(self.config.timeout_ms),
        }

    def close(self) -> None:
        close = getattr(self.store, "close", None)
        if callable(close):
            close()

    def _build_graph(self) -> Any:
        graph = StateGraph(GatewayState)
        graph.add_node("validate_action", self._validate_action_node)
        graph.add_node("check_quota", self._check_quota_node)
        graph.add_node("execute_action", self._execute_action_node)
        graph.add_node("log_rejection", self._log_rejection_node)
        graph.set_entry_point("validate_action")
        graph.add_conditional_edges("validate_action", self.validation_node_impl.route)
        graph.add_conditional_edges("check_quota", self.quota_node_impl.route)
        graph.add_edge("execute_action", END)
        graph.add_edge("log_rejection", END)
        return graph.compile()

    async def _validate_action_node(self, state: Dict[str, Any]) -> Dict[str, Any]:
        """Validation node delegate."""
        return await self.validation_node_impl.run(state)

    async def _check_quota_node(self, state: Dict[str, Any]) -> Dict[str, Any]:
        """Quota node delegate."""
        return await self.quota_node_impl.run(state)

    async def _execute_action_node(self, state: Dict[str, Any]) -> Dict[str, Any]:
        """Execution node delegate."""
        return await self.execution_node_impl.run(state)

    async def _log_rejection_node(self, state: Dict[str, Any]) -> Dict[str, Any]:
        """Rejection audit delegate."""
        return await self.rejection_node_impl.run(state)


def _optional(value: Any) -> Optional[str]:
    text = str(value or "").strip()
    return text or None
