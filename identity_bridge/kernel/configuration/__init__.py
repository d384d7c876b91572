"""
Configuration Core - cached key/value configuration and origin policy.
"""

from identity_bridge.kernel.configuration.cache import ConfigCache, ConfigStore, split_list
from identity_bridge.kernel.configuration.store import SqlConfigStore
from identity_bridge.kernel.configuration.origin_policy import (
    OriginPolicy,
    PolicyCORSMiddleware,
    matches_pattern,
)

__all__ = [
    "ConfigCache",
    "ConfigStore",
    "SqlConfigStore",
    "split_list",
    "OriginPolicy",
    "PolicyCORSMiddleware",
    "matches_pattern",
]
