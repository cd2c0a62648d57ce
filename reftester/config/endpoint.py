"""
Chain endpoint parsing.

Endpoints are given as ``url`` or ``url,block`` where ``block`` pins the fork
to a historical block number.
"""

from dataclasses import dataclass
from typing import List, Optional

from ..exceptions import ConfigurationError


@dataclass(frozen=True)
class ParsedEndpoint:
    url: str
    block: Optional[int] = None

    def __str__(self) -> str:
        return self.url if self.block is None else f"{self.url},{self.block}"


def _parse_block(raw: str, source: str) -> int:
    raw = raw.strip()
    if not raw.isdigit():
        raise ConfigurationError(f"Invalid block number in {source!r}: must be a non-negative integer")
    return int(raw)


def parse_endpoint(value: str) -> ParsedEndpoint:
    """Parses ``"wss://rpc.example,1234"`` into url and pinned block."""
    if not value or not value.strip():
        raise ConfigurationError("Endpoint cannot be empty")

    parts = value.strip().split(',')
    if len(parts) > 2:
        raise ConfigurationError(f"Invalid endpoint format {value!r}: expected 'url' or 'url,block'")

    url = parts[0].strip()
    if not url:
        raise ConfigurationError(f"Invalid endpoint format {value!r}: missing url")
    if len(parts) == 1:
        return ParsedEndpoint(url)
    return ParsedEndpoint(url, _parse_block(parts[1], value))


def parse_multiple_endpoints(value: str) -> List[ParsedEndpoint]:
    """
    Parses a comma separated endpoint list where each url may be followed by
    its own block number: ``"wss://a,100,wss://b,wss://c,42"``.
    """
    if not value or not value.strip():
        return []

    endpoints: List[ParsedEndpoint] = []
    for part in (p.strip() for p in value.split(',')):
        if not part:
            continue
        if '://' in part:
            endpoints.append(ParsedEndpoint(part))
        elif endpoints and endpoints[-1].block is None:
            endpoints[-1] = ParsedEndpoint(endpoints[-1].url, _parse_block(part, value))
        else:
            raise ConfigurationError(f"Unexpected value {part!r} in endpoint list {value!r}")
    return endpoints
