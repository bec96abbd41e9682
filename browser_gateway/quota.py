"""Daily browser-action quota per user."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional, Tuple

from .config import COUNT_ERROR_ADMIT, TIER_ERROR_GRANT, GatewayConfig
from .models import QuotaCheckResult

logger = logging.getLogger(__name__)


def utc_day_window(now: datetime) -> Tuple[datetime, datetime]:
    """Return ``(today 00:00 UTC, tomorrow 00:00 UTC)`` for ``now``."""
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    now = now.astimezone(timezone.utc)
    today_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    return today_start, today_start + timedelta(days=1)


class QuotaTracker:
    """Count today's sessions against the user's plan ceiling.

    The count is a point-in-time read with no reservation, so concurrent
    requests at the boundary can both pass.
    """

    def __init__(
        self,
        store: Any,
        config: Optional[GatewayConfig] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.store = store
        self.config = config or GatewayConfig()
        self.policy = self.config.quota_policy
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def check_quota(self, user_id: str) -> QuotaCheckResult:
        today_start, tomorrow_start = utc_day_window(self._clock())

        try:
            used = int(self.store.count_sessions(user_id, today_start, tomorrow_start) or 0)
        except Exception as e:
            logger.warning("Browser quota count failed for user=%s: %s", user_id, e)
            if self.policy.on_count_query_error == COUNT_ERROR_ADMIT:
                return QuotaCheckResult(allowed=True, remaining=1, reset_at=tomorrow_start)
            return QuotaCheckResult(allowed=False, remaining=0, reset_at=tomorrow_start)

        limit = self.daily_limit(user_id)
        remaining = max(0, limit - used)
        return QuotaCheckResult(
            allowed=remaining > 0,
            remaining=remaining,
            reset_at=tomorrow_start,
            limit=limit,
            used=used,
        )

    def daily_limit(self, user_id: str) -> int:
        """Resolve the ceiling for the user's subscription tier."""
        try:
            tier = self.store.get_subscription_tier(user_id)
        except Exception as e:
            logger.warning("Browser quota tier lookup failed for user=%s: %s", user_id, e)
            if self.policy.on_tier_lookup_error == TIER_ERROR_GRANT:
                return int(self.config.paid_daily_limit)
            return int(self.config.free_daily_limit)

        normalized = str(tier or "").strip().lower()
        if normalized and normalized in self.config.paid_tiers:
            return int(self.config.paid_daily_limit)
        return int(self.config.free_daily_limit)
