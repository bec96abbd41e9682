"""Gateway configuration loaded once and injected into every component."""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Optional, Tuple
from urllib.parse import quote

import yaml

DEFAULT_BROWSERLESS_URL = "wss://chrome.browserless.io"
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/121.0.0.0 Safari/537.36"
)

DEFAULT_BLOCKED_SCHEMES: Tuple[str, ...] = (
    "file:",
    "ftp:",
    "data:",
    "javascript:",
    "about:",
    "chrome:",
    "chrome-extension:",
    "view-source:",
    "blob:",
)

DEFAULT_BLOCKED_HOST_PATTERNS: Tuple[str, ...] = (
    r"^localhost$",
    r"\.localhost$",
    r"^127\.",
    r"^10\.",
    r"^172\.(1[6-9]|2[0-9]|3[01])\.",
    r"^192\.168\.",
    r"^169\.254\.",
    r"^0\.",
    r"^::1$",
    r"^::$",
    r"^f[cd][0-9a-f]{2}:",
    r"^fe[89ab][0-9a-f]:",
    r"\.local$",
    r"\.internal$",
)

COUNT_ERROR_ADMIT = "admit"
COUNT_ERROR_DENY = "deny"
TIER_ERROR_RESTRICT = "restrict"
TIER_ERROR_GRANT = "grant"


@dataclass(frozen=True)
class QuotaPolicy:
    """What the quota check does when the data store misbehaves.

    The defaults keep the asymmetry of the hosted product: a failed count query
    admits the request, a failed tier lookup falls back to the free ceiling.
    """

    on_count_query_error: str = COUNT_ERROR_ADMIT
    on_tier_lookup_error: str = TIER_ERROR_RESTRICT

    def __post_init__(self) -> None:
        if self.on_count_query_error not in {COUNT_ERROR_ADMIT, COUNT_ERROR_DENY}:
            raise ValueError(f"Unknown on_count_query_error policy: {self.on_count_query_error}")
        if self.on_tier_lookup_error not in {TIER_ERROR_RESTRICT, TIER_ERROR_GRANT}:
            raise ValueError(f"Unknown on_tier_lookup_error policy: {self.on_tier_lookup_error}")


@dataclass(frozen=True)
class GatewayConfig:
    """Immutable gateway configuration."""

    browserless_url: str = DEFAULT_BROWSERLESS_URL
    api_token: Optional[str] = None
    timeout_ms: int = 30000
    click_navigation_timeout_ms: int = 10000
    viewport_width: int = 1280
    viewport_height: int = 720
    user_agent: str = DEFAULT_USER_AGENT
    free_daily_limit: int = 5
    paid_daily_limit: int = 50
    paid_tiers: Tuple[str, ...] = ("pro", "enterprise", "team")
    blocked_schemes: Tuple[str, ...] = DEFAULT_BLOCKED_SCHEMES
    blocked_host_patterns: Tuple[str, ...] = DEFAULT_BLOCKED_HOST_PATTERNS
    activity_db_path: str = "/tmp/browser_gateway/sessions.db"
    quota_policy: QuotaPolicy = field(default_factory=QuotaPolicy)

    def __post_init__(self) -> None:
        if int(self.timeout_ms) <= 0:
            raise ValueError("timeout_ms must be positive")
        if int(self.free_daily_limit) < 0 or int(self.paid_daily_limit) < 0:
            raise ValueError("daily limits must not be negative")

    def cdp_endpoint(self) -> str:
        """Build the authenticated CDP WebSocket endpoint."""
        token = str(self.api_token or "").strip()
        if not token:
            raise ValueError("Browserless API token is not configured")
        base = str(self.browserless_url or DEFAULT_BROWSERLESS_URL).strip()
        sep = "&" if "?" in base else "?"
        return f"{base}{sep}token={quote(token, safe='')}"

    def with_overrides(self, **changes: Any) -> "GatewayConfig":
        return replace(self, **changes)

    @classmethod
    def from_dict(cls, raw: Optional[Dict[str, Any]]) -> "GatewayConfig":
        """Build config from a nested mapping.

        Recognised sections: ``browser``, ``quota``, ``url_policy`` and
        ``storage``. Unknown keys are ignored.
        """
        cfg = raw if isinstance(raw, dict) else {}
        browser_cfg = cfg.get("browser") if isinstance(cfg.get("browser"), dict) else {}
        quota_cfg = cfg.get("quota") if isinstance(cfg.get("quota"), dict) else {}
        url_cfg = cfg.get("url_policy") if isinstance(cfg.get("url_policy"), dict) else {}
        storage_cfg = cfg.get("storage") if isinstance(cfg.get("storage"), dict) else {}

        kwargs: Dict[str, Any] = {}

        if browser_cfg.get("url"):
            kwargs["browserless_url"] = str(browser_cfg["url"])
        token = browser_cfg.get("api_token")
        token_env = str(browser_cfg.get("api_token_env") or "").strip()
        if not token and token_env:
            token = os.environ.get(token_env)
        if token:
            kwargs["api_token"] = str(token)
        for key in ("timeout_ms", "click_navigation_timeout_ms", "viewport_width", "viewport_height"):
            if browser_cfg.get(key) is not None:
                kwargs[key] = int(browser_cfg[key])
        if browser_cfg.get("user_agent"):
            kwargs["user_agent"] = str(browser_cfg["user_agent"])

        if quota_cfg.get("free_daily_limit") is not None:
            kwargs["free_daily_limit"] = int(quota_cfg["free_daily_limit"])
        if quota_cfg.get("paid_daily_limit") is not None:
            kwargs["paid_daily_limit"] = int(quota_cfg["paid_daily_limit"])
        if isinstance(quota_cfg.get("paid_tiers"), list):
            kwargs["paid_tiers"] = tuple(str(t).strip().lower() for t in quota_cfg["paid_tiers"] if str(t).strip())
        policy_cfg = quota_cfg.get("policy") if isinstance(quota_cfg.get("policy"), dict) else {}
        if policy_cfg:
            kwargs["quota_policy"] = QuotaPolicy(
                on_count_query_error=str(policy_cfg.get("on_count_query_error") or COUNT_ERROR_ADMIT),
                on_tier_lookup_error=str(policy_cfg.get("on_tier_lookup_error") or TIER_ERROR_RESTRICT),
            )

        if isinstance(url_cfg.get("blocked_schemes"), list):
            kwargs["blocked_schemes"] = tuple(_normalize_scheme(s) for s in url_cfg["blocked_schemes"] if str(s).strip())
        if isinstance(url_cfg.get("blocked_host_patterns"), list):
            kwargs["blocked_host_patterns"] = tuple(str(p) for p in url_cfg["blocked_host_patterns"] if str(p))

        if storage_cfg.get("activity_db_path"):
            kwargs["activity_db_path"] = str(storage_cfg["activity_db_path"])

        return cls(**kwargs)


def _normalize_scheme(value: Any) -> str:
    scheme = str(value or "").strip().lower()
    return scheme if scheme.endswith(":") else f"{scheme}:"


def load_config(path: Optional[str] = None) -> GatewayConfig:
    """Load a YAML config file; a missing path yields defaults."""
    if not path:
        return GatewayConfig()
    config_path = Path(path).expanduser()
    with open(config_path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file must contain a mapping: {config_path}")
    section = data.get("browser_gateway", data)
    return GatewayConfig.from_dict(section if isinstance(section, dict) else {})
