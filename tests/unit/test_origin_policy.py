"""Unit tests for origin authorization."""

import pytest

from identity_bridge.kernel.configuration.cache import split_list
from identity_bridge.kernel.configuration.origin_policy import OriginPolicy, matches_pattern


class StaticConfig:
    def __init__(self, values):
        self.values = values

    def get_list(self, key, default=None):
        return split_list(self.values.get(key, default or ""))


class BrokenConfig:
    def get_list(self, key, default=None):
        raise RuntimeError("config store down")


@pytest.fixture
def policy() -> OriginPolicy:
    return OriginPolicy(StaticConfig({
        "TRUSTED_ORIGINS": "http://localhost:5173,https://app.partner.io",
        "ALLOWED_DOMAIN_PATTERNS": ".example.com,https://example.net,staging",
    }))


class TestMatchesPattern:

    def test_suffix_pattern(self):
        assert matches_pattern("https://app.example.com", ".example.com") is True
        assert matches_pattern("https://example.com", ".example.com") is False

    def test_scheme_pattern_is_exact(self):
        assert matches_pattern("https://example.com", "https://example.com") is True
        assert matches_pattern("https://example.com.evil.io", "https://example.com") is False

    def test_plain_pattern_is_substring(self):
        assert matches_pattern("https://staging.acme.io", "staging") is True

    def test_empty_pattern_never_matches(self):
        assert matches_pattern("https://a.com", "") is False


class TestOriginPolicy:

    def test_trusted_origin_exact(self, policy):
        assert policy.is_allowed("https://app.partner.io") is True
        assert policy.is_allowed("https://app.partner.io.evil.com") is False

    def test_suffix_pattern_allows_subdomain(self, policy):
        assert policy.is_allowed("https://shop.example.com") is True

    def test_suffix_pattern_excludes_bare_domain(self, policy):
        assert policy.is_allowed("https://example.com") is False

    def test_explicit_scheme_pattern(self, policy):
        assert policy.is_allowed("https://example.net") is True
        assert policy.is_allowed("http://example.net") is False

    def test_unknown_origin_rejected(self, policy):
        assert policy.is_allowed("https://attacker.io") is False

    def test_missing_origin_rejected(self, policy):
        assert policy.is_allowed(None) is False
        assert policy.is_allowed("") is False

    def test_config_failure_uses_fallback(self):
        policy = OriginPolicy(BrokenConfig(), fallback_suffix=".example.com")

        assert policy.is_allowed("http://localhost:3000") is True
        assert policy.is_allowed("http://127.0.0.1:8080") is True
        assert policy.is_allowed("https://app.example.com") is True
        assert policy.is_allowed("https://attacker.io") is False

    def test_no_config_uses_fallback(self):
        policy = OriginPolicy(None)

        assert policy.is_allowed("http://localhost:5173") is True
        assert policy.is_allowed("https://app.example.com") is False

    @pytest.mark.parametrize("suffix", ["example.com", ".example.com"])
    def test_fallback_suffix_respects_label_boundary(self, suffix):
        policy = OriginPolicy(None, fallback_suffix=suffix)

        assert policy.is_allowed("https://app.example.com") is True
        assert policy.is_allowed("https://example.com") is True
        assert policy.is_allowed("https://evilexample.com") is False
        assert policy.is_allowed("https://example.com.attacker.io") is False
