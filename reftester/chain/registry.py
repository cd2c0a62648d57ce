"""
Chain identification from the runtime spec name.
"""

from typing import Optional

from ..constants import FALLBACK_RELAY_KEY, RELAY_SPEC_NAMES, WIRED_RELAY_KEYS
from ..exceptions import ChainConnectionError
from ..logger import get_logger
from ..types import ChainDescriptor, ChainKind, ChainNetwork
from .client import ChainClient

logger = get_logger(__name__)


def describe_chain(spec_name: str, endpoint: str, block: Optional[int] = None) -> ChainDescriptor:
    """
    Builds a descriptor from a runtime spec name.

    ``polkadot`` is a relay, ``collectives-polkadot`` is a parachain on the
    polkadot network: only an exact spec name match makes a relay chain.
    """
    name = spec_name.strip().lower()
    network = next(
        (ChainNetwork(candidate) for candidate in RELAY_SPEC_NAMES if candidate in name),
        ChainNetwork.UNKNOWN,
    )
    kind = ChainKind.RELAY if name in RELAY_SPEC_NAMES else ChainKind.PARACHAIN
    return ChainDescriptor(
        endpoint=endpoint,
        network=network,
        kind=kind,
        label=name.replace('_', '-') or 'unknown',
        block=block,
    )


def unknown_chain(endpoint: str, block: Optional[int] = None) -> ChainDescriptor:
    return ChainDescriptor(endpoint, ChainNetwork.UNKNOWN, ChainKind.PARACHAIN, 'unknown', block)


async def detect_chain(client: ChainClient, endpoint: str, block: Optional[int] = None) -> ChainDescriptor:
    """Describes the chain behind *client*; an unreadable spec name yields an unknown parachain."""
    try:
        spec_name = await client.spec_name()
    except (ChainConnectionError, KeyError, TypeError) as e:
        logger.warning(f"Could not detect chain type for {endpoint}: {e}")
        return unknown_chain(endpoint, block)

    descriptor = describe_chain(spec_name, endpoint, block)
    logger.info(
        f"Detected {descriptor.label} ({descriptor.kind.value}, network {descriptor.network.value}) at {endpoint}"
    )
    return descriptor


def relay_network_key(network: ChainNetwork) -> str:
    """Network key a relay chain must be forked under for parachain wiring to find it."""
    if network.value in WIRED_RELAY_KEYS:
        return network.value
    return FALLBACK_RELAY_KEY
