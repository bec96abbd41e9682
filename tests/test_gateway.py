from datetime import datetime, timezone

import pytest
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from agents import BrowserGatewayAgent
from browser_gateway.models import BrowserAction, BrowserResult, ExecutionContext
from browser_gateway.session_store import SessionStoreError

USER = "user-1"
CONTEXT = ExecutionContext(user_id=USER, conversation_id="conv-7")


def _seed(store, clock, count):
    for i in range(count):
        clock.set(2026, 10, 18, 9, i, 0)
        handle = store.begin_session(CONTEXT, BrowserAction(action="scrape", url="https://example.com"))
        store.finish_session(handle, status="completed", result_type="text/plain", result_size_bytes=10, timing_ms=5)
    clock.set(2026, 10, 18, 12, 0, 0)


def _rows(store):
    return store.list_sessions(USER, limit=100)


@pytest.fixture
def agent(config, store, session_manager, clock):
    return BrowserGatewayAgent(config, store=store, session_manager=session_manager, clock=clock)


class BeginFailsStore:
    def __init__(self, inner):
        self.inner = inner

    def __getattr__(self, name):
        return getattr(self.inner, name)

    def begin_session(self, context, action):
        raise SessionStoreError("database is locked")


@pytest.mark.asyncio
async def test_free_user_with_four_sessions_can_navigate(agent, store, clock, session_manager):
    _seed(store, clock, 4)

    result = await agent.execute_browser_action(BrowserAction(action="navigate", url="https://example.com"), CONTEXT)

    assert result.success is True
    assert "Example Domain" in result.data
    assert session_manager.start_calls == 1

    latest = _rows(store)[0]
    assert latest.status == "completed"
    assert latest.action == "navigate"
    assert latest.result_type == "text/plain"
    assert latest.result_size_bytes == len(result.data.encode("utf-8"))
    assert latest.metadata["conversation_id"] == "conv-7"

    quota = agent.quota_tracker.check_quota(USER)
    assert quota.allowed is False
    assert quota.remaining == 0


@pytest.mark.asyncio
async def test_sixth_request_is_rejected_at_quota(agent, store, clock, session_manager):
    _seed(store, clock, 5)

    result = await agent.execute_browser_action(BrowserAction(action="navigate", url="https://example.com"), CONTEXT)

    assert result.success is False
    assert result.timing == 0
    assert "quota exceeded" in result.error_message
    assert "Remaining: 0" in result.error_message
    assert datetime(2026, 10, 19, tzinfo=timezone.utc).isoformat() in result.error_message
    assert session_manager.start_calls == 0

    rows = _rows(store)
    assert len(rows) == 6
    rejected = rows[0]
    assert rejected.status == "failed"
    assert rejected.timing_ms == 0
    assert rejected.metadata["pre_execution_failure"] is True


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "url",
    ["file:///etc/passwd", "javascript:alert(1)", "http://127.0.0.1:9222/json", "http://foo.internal/"],
)
async def test_unsafe_urls_never_reach_the_browser(agent, store, session_manager, url):
    result = await agent.execute_browser_action(BrowserAction(action="screenshot", url=url), CONTEXT)

    assert result.success is False
    assert result.url == url
    assert session_manager.start_calls == 0
    rows = _rows(store)
    assert len(rows) == 1
    assert rows[0].status == "failed"
    assert rows[0].timing_ms == 0


@pytest.mark.asyncio
async def test_unsupported_action_is_rejected_and_audited(agent, store, session_manager):
    result = await agent.execute_browser_action(BrowserAction(action="download", url="https://example.com"), CONTEXT)

    assert result.error_message == "Unsupported action: download"
    assert session_manager.start_calls == 0
    assert [r.status for r in _rows(store)] == ["failed"]


@pytest.mark.asyncio
async def test_timeout_is_recorded_with_timeout_status(agent, store, fake_page):
    fake_page.goto_error = PlaywrightTimeoutError("Timeout 30000ms exceeded.")

    result = await agent.execute_browser_action(BrowserAction(action="scrape", url="https://slow.example"), CONTEXT)

    assert result.timed_out is True
    record = _rows(store)[0]
    assert record.status == "timeout"
    assert record.error_message == "Browser action timed out after 30000ms"


@pytest.mark.asyncio
async def test_element_not_found_is_recorded_as_failed(agent, store):
    result = await agent.execute_browser_action(
        BrowserAction(action="screenshot", url="https://example.com", selector="#missing"), CONTEXT
    )

    assert result.success is False
    record = _rows(store)[0]
    assert record.status == "failed"
    assert record.result_type == "image/png"
    assert record.error_message == "Element not found for selector: #missing"


@pytest.mark.asyncio
async def test_every_invocation_leaves_exactly_one_terminal_record(agent, store, fake_page):
    actions = [
        BrowserAction(action="navigate", url="https://example.com"),
        BrowserAction(action="scrape", url="ftp://example.com"),
        BrowserAction(action="extract", url="https://example.com"),
        BrowserAction(action="screenshot", url="https://example.com", selector="#nope"),
        BrowserAction(action="pdf", url="http://192.168.1.1"),
    ]
    for i, action in enumerate(actions, start=1):
        await agent.execute_browser_action(action, CONTEXT)
        rows = _rows(store)
        assert len(rows) == i
        assert all(r.is_terminal for r in rows)


@pytest.mark.asyncio
async def test_audit_store_failure_does_not_block_execution(config, store, session_manager, clock):
    agent = BrowserGatewayAgent(config, store=BeginFailsStore(store), session_manager=session_manager, clock=clock)

    result = await agent.execute_browser_action(BrowserAction(action="navigate", url="https://example.com"), CONTEXT)

    assert result.success is True
    assert _rows(store) == []


@pytest.mark.asyncio
async def test_unexpected_executor_error_is_contained(agent, store):
    async def explode(action):
        raise RuntimeError("executor crashed")

    agent.executor.execute = explode

    result = await agent.execute_browser_action(BrowserAction(action="navigate", url="https://example.com"), CONTEXT)

    assert isinstance(result, BrowserResult)
    assert result.success is False
    assert result.error_message == "executor crashed"
    assert _rows(store)[0].status == "failed"


@pytest.mark.asyncio
async def test_process_accepts_tool_payload(agent, store):
    payload = {
        "action": "navigate",
        "url": "https://example.com",
        "user_id": USER,
        "organization_id": "org-1",
        "waitFor": 0,
    }
    out = await agent.process(payload)

    assert out["success"] is True
    assert out["url"] == "https://example.com"
    assert "error_message" not in out
    assert _rows(store)[0].organization_id == "org-1"


@pytest.mark.asyncio
async def test_process_requires_user_id(agent):
    with pytest.raises(ValueError):
        await agent.process({"action": "navigate", "url": "https://example.com"})
    with pytest.raises(TypeError):
        await agent.process(["navigate"])


@pytest.mark.asyncio
async def test_usage_reports_today_and_quota(agent, store, clock):
    _seed(store, clock, 2)
    await agent.execute_browser_action(BrowserAction(action="scrape", url="http://10.1.1.1"), CONTEXT)

    usage = agent.usage(USER)
    assert usage["total"] == 3
    assert usage["by_status"] == {"completed": 2, "failed": 1}
    assert usage["quota"]["remaining"] == 2
    assert usage["quota"]["reset_at"] == "2026-10-19T00:00:00+00:00"


def test_health_reports_wiring(agent):
    health = agent.health()
    assert health["status"] == "ok"
    assert health["browser_configured"] is True
