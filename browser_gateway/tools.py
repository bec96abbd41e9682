"""Tool-calling surface: exposes the gateway as LangChain tools."""

from __future__ import annotations

import inspect
from typing import Any, Callable, List, Optional

from langchain_core.tools import StructuredTool

from .models import ACTION_SCREENSHOT, BrowserAction, BrowserResult, ExecutionContext


def mcp_tool(
    _func: Optional[Callable[..., Any]] = None,
    *,
    name: Optional[str] = None,
    examples: Optional[List[str]] = None,
) -> Any:
    """Decorator to mark a method as an MCP-exposed tool."""

    def _decorate(func: Callable[..., Any]) -> Callable[..., Any]:
        setattr(func, "_is_mcp_tool", True)
        setattr(func, "_mcp_name", name or func.__name__)
        setattr(func, "_mcp_examples", examples or [])
        return func

    if _func is None:
        return _decorate
    return _decorate(_func)


def format_tool_output(action: BrowserAction, result: BrowserResult) -> str:
    """Render a gateway result as text for the model."""
    if not result.success:
        return f"Browser action failed: {result.error_message or 'Unknown browser error'}"
    if action.action == ACTION_SCREENSHOT:
        return f"Screenshot taken of {action.url}. Image data available."
    return f"Browser {action.action} result from {action.url}:\n{result.data}"


class BrowseWebToolkit:
    """Bind the gateway to one caller context and export its tools."""

    def __init__(self, gateway: Any, context: ExecutionContext):
        self.gateway = gateway
        self.context = context
        self.last_result: Optional[BrowserResult] = None
        self._tools: List[Any] = []

    def get_tools(self) -> List[Any]:
        """Export decorated methods as LangChain structured tools."""
        if self._tools:
            return self._tools

        tools: List[Any] = []
        for method_name in dir(self):
            method = getattr(self, method_name, None)
            if not callable(method):
                continue
            if not bool(getattr(method, "_is_mcp_tool", False)):
                continue

            tool_name = str(getattr(method, "_mcp_name", method.__name__) or method.__name__)
            doc = inspect.getdoc(method) or f"MCP tool: {tool_name}"
            examples = list(getattr(method, "_mcp_examples", []) or [])
            if examples:
                doc = f"{doc}\n\nExamples:\n" + "\n".join(f"- {x}" for x in examples)

            tools.append(
                StructuredTool.from_function(
                    name=tool_name,
                    description=doc,
                    coroutine=method,
                )
            )

        self._tools = tools
        return self._tools

    @mcp_tool(
        name="browse_web",
        examples=[
            "browse_web(action='scrape', url='https://example.com')",
            "browse_web(action='extract', url='https://example.com', javascript='document.title')",
            "browse_web(action='click', url='https://example.com', selector='a.more')",
        ],
    )
    async def mcp_browse_web(
        self,
        action: str,
        url: str,
        selector: str = "",
        javascript: str = "",
        wait_for: str = "",
    ) -> str:
        """
        Browse the web using a real browser. Can take screenshots, scrape page content,
        extract data, generate PDFs, and interact with web pages.

        Args:
            action: The browser action to perform.
                Allowed values: [`screenshot`, `scrape`, `pdf`, `extract`, `click`, `navigate`].
            url: Absolute http(s) URL to browse.
            selector (optional): CSS selector to target a specific element
                (screenshot/scrape scope, required for click).
            javascript (optional): JavaScript expression to evaluate (required for extract).
            wait_for (optional): CSS selector to wait for, or a number of milliseconds
                to pause after the page loads.

        Returns:
            Text summary of the result, or `Browser action failed: <reason>`.
        """
        payload = {
            "action": action,
            "url": url,
            "selector": selector,
            "javascript": javascript,
            "wait_for": _parse_wait_for(wait_for),
        }
        browser_action = BrowserAction.from_payload(payload)
        result = await self.gateway.execute_browser_action(browser_action, self.context)
        self.last_result = result
        return format_tool_output(browser_action, result)


def _parse_wait_for(value: Any) -> Any:
    text = str(value or "").strip()
    if not text:
        return None
    try:
        number = float(text)
    except ValueError:
        return text
    if number.is_integer():
        return int(number)
    return number
