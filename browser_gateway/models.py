"""Shared models for the browser action gateway."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional, Union

ACTION_SCREENSHOT = "screenshot"
ACTION_SCRAPE = "scrape"
ACTION_PDF = "pdf"
ACTION_EXTRACT = "extract"
ACTION_CLICK = "click"
ACTION_NAVIGATE = "navigate"

SUPPORTED_ACTIONS = (
    ACTION_SCREENSHOT,
    ACTION_SCRAPE,
    ACTION_PDF,
    ACTION_EXTRACT,
    ACTION_CLICK,
    ACTION_NAVIGATE,
)

STATUS_PENDING = "pending"
STATUS_RUNNING = "running"
STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"
STATUS_TIMEOUT = "timeout"

TERMINAL_STATUSES = frozenset({STATUS_COMPLETED, STATUS_FAILED, STATUS_TIMEOUT})

_RESULT_TYPES = {
    ACTION_SCREENSHOT: "image/png",
    ACTION_PDF: "application/pdf",
    ACTION_SCRAPE: "text/plain",
    ACTION_EXTRACT: "text/plain",
    ACTION_CLICK: "text/plain",
    ACTION_NAVIGATE: "text/plain",
}


def result_type_for(action: str) -> str:
    """Content-type tag recorded for an action's output."""
    return _RESULT_TYPES.get(str(action or ""), "unknown")


@dataclass(frozen=True)
class BrowserAction:
    """One requested browser operation."""

    action: str
    url: str
    selector: Optional[str] = None
    wait_for: Optional[Union[int, float, str]] = None
    javascript: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "BrowserAction":
        """Build an action from a tool-call payload.

        Unknown action kinds are kept as-is so they can be rejected and audited
        downstream instead of failing here.
        """
        if not isinstance(payload, dict):
            raise TypeError("Browser action payload must be a JSON object")
        wait_for = payload.get("wait_for", payload.get("waitFor"))
        if isinstance(wait_for, str) and not wait_for.strip():
            wait_for = None
        return cls(
            action=str(payload.get("action") or "").strip().lower(),
            url=str(payload.get("url") or "").strip(),
            selector=_optional_str(payload.get("selector")),
            wait_for=wait_for,
            javascript=_optional_str(payload.get("javascript")),
        )

    @property
    def is_supported(self) -> bool:
        return self.action in SUPPORTED_ACTIONS

    def requirement_error(self) -> Optional[str]:
        """Return an error message when a required field is missing."""
        if not self.is_supported:
            return f"Unsupported action: {self.action}"
        if self.action == ACTION_EXTRACT and not self.javascript:
            return "JavaScript code is required for the extract action"
        if self.action == ACTION_CLICK and not self.selector:
            return "Selector is required for the click action"
        return None


@dataclass(frozen=True)
class ExecutionContext:
    """Caller identity attached to a gateway call."""

    user_id: str
    organization_id: Optional[str] = None
    conversation_id: Optional[str] = None

    def __post_init__(self) -> None:
        if not str(self.user_id or "").strip():
            raise ValueError("user_id is required")


@dataclass
class BrowserResult:
    """Normalized outcome of one gateway call."""

    success: bool
    data: str = ""
    url: str = ""
    timing: int = 0
    error_message: Optional[str] = None
    timed_out: bool = False

    @classmethod
    def failure(
        cls,
        url: str,
        error_message: str,
        *,
        timing: int = 0,
        timed_out: bool = False,
    ) -> "BrowserResult":
        return cls(
            success=False,
            data="",
            url=url,
            timing=int(timing),
            error_message=error_message,
            timed_out=timed_out,
        )

    @property
    def size_bytes(self) -> int:
        return len((self.data or "").encode("utf-8"))

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "success": bool(self.success),
            "data": self.data or "",
            "url": self.url,
            "timing": int(self.timing),
        }
        if self.error_message:
            payload["error_message"] = self.error_message
        if self.timed_out:
            payload["timed_out"] = True
        return payload


@dataclass(frozen=True)
class UrlValidation:
    valid: bool
    reason: Optional[str] = None


@dataclass(frozen=True)
class QuotaCheckResult:
    allowed: bool
    remaining: int
    reset_at: datetime
    limit: int = 0
    used: int = 0


@dataclass(frozen=True)
class SessionHandle:
    """Proof that a ``running`` audit row exists and awaits its terminal update."""

    session_id: str
    user_id: str
    action: str
    created_at: float


@dataclass(frozen=True)
class BrowserSessionRecord:
    """Read model of one persisted browser session."""

    id: str
    user_id: str
    organization_id: Optional[str]
    action: str
    url: str
    status: str
    result_type: Optional[str]
    result_size_bytes: Optional[int]
    timing_ms: Optional[int]
    error_message: Optional[str]
    metadata: Dict[str, Any]
    created_at: float
    completed_at: Optional[float] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


@dataclass
class RunState:
    """Mutable browser runtime state for one gateway invocation."""

    run_id: str
    active: bool = False
    started_at: Optional[float] = None
    ended_at: Optional[float] = None
    current_url: Optional[str] = None
    playwright: Any = None
    browser: Any = None
    browser_context: Any = None
    page: Any = None
    metadata: Dict[str, Any] = field(default_factory=dict)


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value)
    return text if text.strip() else None
