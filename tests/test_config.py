from pathlib import Path

import pytest

from browser_gateway.config import (
    DEFAULT_BLOCKED_HOST_PATTERNS,
    DEFAULT_BLOCKED_SCHEMES,
    GatewayConfig,
    QuotaPolicy,
    load_config,
)

SAMPLE_CONFIG = Path(__file__).resolve().parent.parent / "config" / "browser_gateway.yaml"


def test_defaults_match_hosted_product():
    cfg = GatewayConfig()
    assert cfg.timeout_ms == 30000
    assert cfg.free_daily_limit == 5
    assert cfg.paid_daily_limit == 50
    assert cfg.paid_tiers == ("pro", "enterprise", "team")
    assert cfg.quota_policy == QuotaPolicy("admit", "restrict")


def test_cdp_endpoint_appends_token():
    cfg = GatewayConfig(api_token="abc/123")
    assert cfg.cdp_endpoint() == "wss://chrome.browserless.io?token=abc%2F123"

    proxied = GatewayConfig(browserless_url="wss://proxy.example/chrome?stealth=true", api_token="abc")
    assert proxied.cdp_endpoint() == "wss://proxy.example/chrome?stealth=true&token=abc"


def test_cdp_endpoint_requires_token():
    with pytest.raises(ValueError):
        GatewayConfig().cdp_endpoint()


def test_invalid_timeout_is_rejected():
    with pytest.raises(ValueError):
        GatewayConfig(timeout_ms=0)


def test_from_dict_reads_sections(monkeypatch):
    monkeypatch.setenv("TEST_BROWSERLESS_KEY", "secret")
    cfg = GatewayConfig.from_dict(
        {
            "browser": {"url": "wss://eu.browserless.example", "api_token_env": "TEST_BROWSERLESS_KEY", "timeout_ms": 15000},
            "quota": {
                "free_daily_limit": 3,
                "paid_daily_limit": 30,
                "paid_tiers": ["Pro", "team"],
                "policy": {"on_count_query_error": "deny"},
            },
            "url_policy": {"blocked_schemes": ["file", "gopher:"], "blocked_host_patterns": [r"\.corp$"]},
            "storage": {"activity_db_path": "/var/lib/gateway/sessions.db"},
        }
    )
    assert cfg.browserless_url == "wss://eu.browserless.example"
    assert cfg.api_token == "secret"
    assert cfg.timeout_ms == 15000
    assert cfg.free_daily_limit == 3
    assert cfg.paid_daily_limit == 30
    assert cfg.paid_tiers == ("pro", "team")
    assert cfg.quota_policy.on_count_query_error == "deny"
    assert cfg.quota_policy.on_tier_lookup_error == "restrict"
    assert cfg.blocked_schemes == ("file:", "gopher:")
    assert cfg.blocked_host_patterns == (r"\.corp$",)
    assert cfg.activity_db_path == "/var/lib/gateway/sessions.db"


def test_explicit_token_wins_over_env(monkeypatch):
    monkeypatch.setenv("TEST_BROWSERLESS_KEY", "from-env")
    cfg = GatewayConfig.from_dict({"browser": {"api_token": "inline", "api_token_env": "TEST_BROWSERLESS_KEY"}})
    assert cfg.api_token == "inline"


def test_load_config_reads_yaml(tmp_path):
    path = tmp_path / "gateway.yaml"
    path.write_text(
        "browser_gateway:\n"
        "  browser:\n"
        "    api_token: yaml-token\n"
        "  quota:\n"
        "    free_daily_limit: 1\n",
        encoding="utf-8",
    )
    cfg = load_config(str(path))
    assert cfg.api_token == "yaml-token"
    assert cfg.free_daily_limit == 1
    assert cfg.paid_daily_limit == 50


def test_load_config_without_path_gives_defaults():
    assert load_config(None) == GatewayConfig()


def test_load_config_rejects_non_mapping(tmp_path):
    path = tmp_path / "bad.yaml"
    path.write_text("- just\n- a list\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_config(str(path))


def test_sample_config_spells_out_the_url_policy():
    cfg = load_config(str(SAMPLE_CONFIG))
    assert cfg.blocked_schemes == DEFAULT_BLOCKED_SCHEMES
    assert cfg.blocked_host_patterns == DEFAULT_BLOCKED_HOST_PATTERNS
