"""
Chain access: clients for reading state, forks for mutating it.
"""

from .client import ChainClient, SubstrateChainClient, connect_client, wait_for_chain_ready
from .fork import ChopsticksEngine, Fork, ForkConfig, ForkEngine
from .registry import describe_chain, detect_chain, relay_network_key
from .session import ForkSession

__all__ = [
    "ChainClient",
    "ChopsticksEngine",
    "Fork",
    "ForkConfig",
    "ForkEngine",
    "ForkSession",
    "SubstrateChainClient",
    "connect_client",
    "describe_chain",
    "detect_chain",
    "relay_network_key",
    "wait_for_chain_ready",
]
