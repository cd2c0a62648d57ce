"""
Referenda Tester Configuration

Loads reftester.toml at startup.
Environment variables override TOML values.
"""

from .endpoint import ParsedEndpoint, parse_endpoint, parse_multiple_endpoints
from .loader import (
    ForkSettings,
    PollingSettings,
    TesterConfig,
    load_config,
)

__all__ = [
    "ForkSettings",
    "ParsedEndpoint",
    "PollingSettings",
    "TesterConfig",
    "load_config",
    "parse_endpoint",
    "parse_multiple_endpoints",
]
