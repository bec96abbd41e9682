"""Navigation target validation (SSRF guard)."""

from __future__ import annotations

import ipaddress
import re
import socket
from typing import Any, List, Optional, Pattern
from urllib.parse import urlsplit

from .config import GatewayConfig
from .models import UrlValidation

ALLOWED_SCHEMES = frozenset({"http:", "https:"})

INVALID_FORMAT_REASON = "Invalid URL format. Please provide a valid HTTP or HTTPS URL."
PRIVATE_ADDRESS_REASON = "Access to internal/private network addresses is not allowed."
MISSING_HOST_REASON = "URL must contain a valid hostname."

_NUMERIC_HOST = re.compile(r"^(0x[0-9a-f]*|[0-9]+)(\.(0x[0-9a-f]*|[0-9]+)){0,3}$")


def _scheme_reason(scheme: str) -> str:
    return f'URL scheme "{scheme}" is not allowed. Only HTTP and HTTPS are supported.'


class UrlValidator:
    """Reject URLs the remote browser must never be pointed at."""

    def __init__(self, config: Optional[GatewayConfig] = None):
        cfg = config or GatewayConfig()
        self.blocked_schemes = tuple(str(s).lower() for s in cfg.blocked_schemes)
        self._patterns: List[Pattern[str]] = [re.compile(p, re.IGNORECASE) for p in cfg.blocked_host_patterns]

    def validate(self, url: Any) -> UrlValidation:
        if not isinstance(url, str) or not url.strip():
            return UrlValidation(valid=False, reason=INVALID_FORMAT_REASON)

        try:
            parsed = urlsplit(url.strip())
            # Accessing .port raises on malformed ports such as "http://host:abc".
            parsed.port
            hostname = parsed.hostname
        except ValueError:
            return UrlValidation(valid=False, reason=INVALID_FORMAT_REASON)

        if not parsed.scheme:
            return UrlValidation(valid=False, reason=INVALID_FORMAT_REASON)

        scheme = f"{parsed.scheme.lower()}:"
        if any(scheme.startswith(blocked) for blocked in self.blocked_schemes):
            return UrlValidation(valid=False, reason=_scheme_reason(scheme))
        if scheme not in ALLOWED_SCHEMES:
            return UrlValidation(valid=False, reason=_scheme_reason(scheme))

        host = (hostname or "").strip().lower().rstrip(".")
        if not host:
            return UrlValidation(valid=False, reason=MISSING_HOST_REASON)

        if self.is_blocked_host(host):
            return UrlValidation(valid=False, reason=PRIVATE_ADDRESS_REASON)

        return UrlValidation(valid=True)

    def is_blocked_host(self, host: str) -> bool:
        normalized = str(host or "").strip().lower().strip("[]").rstrip(".")
        if _NUMERIC_HOST.match(normalized):
            # Browsers read decimal, octal and hex forms such as 0x7f.1 as IPv4.
            canonical = _canonical_ipv4(normalized)
            if canonical is None:
                return True
            normalized = canonical
        for pattern in self._patterns:
            if pattern.search(normalized):
                return True
        return _is_non_public_ip(normalized)


def _canonical_ipv4(host: str) -> Optional[str]:
    try:
        return socket.inet_ntoa(socket.inet_aton(host))
    except OSError:
        return None


def _is_non_public_ip(host: str) -> bool:
    try:
        addr = ipaddress.ip_address(host)
    except ValueError:
        return False
    mapped = getattr(addr, "ipv4_mapped", None)
    if mapped is not None:
        addr = mapped
    return bool(
        addr.is_private
        or addr.is_loopback
        or addr.is_link_local
        or addr.is_unspecified
        or addr.is_reserved
        or addr.is_multicast
    )
