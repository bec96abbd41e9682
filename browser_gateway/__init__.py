"""Browser action gateway runtime package."""

from .automation import BrowserActionExecutor
from .config import GatewayConfig, QuotaPolicy, load_config
from .models import (
    BrowserAction,
    BrowserResult,
    BrowserSessionRecord,
    ExecutionContext,
    QuotaCheckResult,
    RunState,
    SessionHandle,
    UrlValidation,
)
from .page_actions import PageActionsFeature
from .quota import QuotaTracker
from .session import BrowserSessionManager
from .session_store import BrowserSessionStore, SessionStoreError
from .tools import BrowseWebToolkit
from .url_validator import UrlValidator

__all__ = [
    "BrowseWebToolkit",
    "BrowserAction",
    "BrowserActionExecutor",
    "BrowserResult",
    "BrowserSessionManager",
    "BrowserSessionRecord",
    "BrowserSessionStore",
    "ExecutionContext",
    "GatewayConfig",
    "PageActionsFeature",
    "QuotaCheckResult",
    "QuotaPolicy",
    "QuotaTracker",
    "RunState",
    "SessionHandle",
    "SessionStoreError",
    "UrlValidation",
    "UrlValidator",
    "load_config",
]
