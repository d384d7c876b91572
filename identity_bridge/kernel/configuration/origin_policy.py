"""
Request origin authorization backed by the configuration cache.

Matching order:
1. Exact membership in TRUSTED_ORIGINS.
2. Each ALLOWED_DOMAIN_PATTERNS entry, first match wins:
   - ".example.com"         origin ends with the suffix
   - "https://example.com"  origin equals the pattern
   - "example"              origin contains the pattern

A suffix pattern never matches the bare domain: "https://example.com" is
only allowed by ".example.com" if an explicit "https://example.com" pattern
is configured as well.

Without usable configuration only the fallback allow-list applies: localhost,
plus hosts equal to or under the fallback suffix on a label boundary.
"""

import re
from typing import Iterable, Optional
from urllib.parse import urlsplit

from starlette.middleware.cors import CORSMiddleware
from starlette.types import ASGIApp

from identity_bridge.logging_config import get_logger

logger = get_logger(__name__)

TRUSTED_ORIGINS_KEY = "TRUSTED_ORIGINS"
DOMAIN_PATTERNS_KEY = "ALLOWED_DOMAIN_PATTERNS"

LOCAL_HOSTS = frozenset({"localhost", "127.0.0.1"})

_SCHEME_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*://")


def matches_pattern(origin: str, pattern: str) -> bool:
    if not pattern:
        return False
    if pattern.startswith("."):
        return origin.endswith(pattern)
    if _SCHEME_RE.match(pattern):
        return origin == pattern
    return pattern in origin


class OriginPolicy:
    """Decides whether a request origin is authorized."""

    def __init__(self, config, fallback_suffix: str = ""):
        self.config = config
        self.fallback_suffix = fallback_suffix

    def is_allowed(self, origin: Optional[str]) -> bool:
        if not origin:
            return False
        if self.config is None:
            return self._fallback_allows(origin)
        try:
            trusted = self.config.get_list(TRUSTED_ORIGINS_KEY, "")
            patterns = self.config.get_list(DOMAIN_PATTERNS_KEY, "")
        except Exception:
            logger.warning("Origin configuration unavailable; using fallback allow-list", exc_info=True)
            return self._fallback_allows(origin)

        if origin in trusted:
            return True
        return self._match_any(origin, patterns)

    @staticmethod
    def _match_any(origin: str, patterns: Iterable[str]) -> bool:
        return any(matches_pattern(origin, pattern) for pattern in patterns)

    def _fallback_allows(self, origin: str) -> bool:
        hostname = urlsplit(origin).hostname or ""
        if hostname in LOCAL_HOSTS:
            return True
        # Label boundary: "example.com" covers app.example.com, not evilexample.com
        suffix = self.fallback_suffix.lstrip(".").lower()
        if not suffix:
            return False
        return hostname == suffix or hostname.endswith("." + suffix)


class PolicyCORSMiddleware(CORSMiddleware):
    """Starlette CORS middleware that asks an OriginPolicy about each origin."""

    def __init__(self, app: ASGIApp, origin_policy: OriginPolicy, **kwargs):
        super().__init__(app, **kwargs)
        self.origin_policy = origin_policy

    def is_allowed_origin(self, origin: str) -> bool:
        return self.origin_policy.is_allowed(origin)
