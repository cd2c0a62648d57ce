"""
Chain Topology Builder

Decides which chains are forked, under which network key, and with which
storage injections. Relay chains are keyed by their network name because the
fork engine wires parachains to the relay it finds under that key; every
other chain gets a logical key (governance, fellowship, additional_N).
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Set

from ..chain.fork import ForkConfig
from ..chain.registry import relay_network_key
from ..config.loader import ForkSettings
from ..logger import get_logger
from ..governance.creator import fellowship_injection, funded_account_injection, merge_injections
from ..types import ChainDescriptor

logger = get_logger(__name__)

GOVERNANCE_KEY = 'governance'
FELLOWSHIP_KEY = 'fellowship'


class StorageInjection(str, Enum):
    FUNDED_ACCOUNT = 'funded-account'
    FELLOWSHIP = 'fellowship'

    def storage(self) -> Dict[str, Any]:
        if self is StorageInjection.FELLOWSHIP:
            return fellowship_injection()
        return funded_account_injection()


@dataclass
class TopologyEntry:
    """One fork: the chain, its network key and its fork config."""
    role: str
    chain: ChainDescriptor
    network_key: str
    config: ForkConfig


@dataclass
class NetworkTopology:
    entries: Dict[str, TopologyEntry] = field(default_factory=dict)
    governance_key: Optional[str] = None
    fellowship_key: Optional[str] = None
    chain_to_key: Dict[str, str] = field(default_factory=dict)

    @property
    def shared_fork(self) -> bool:
        """Governance and fellowship live on the same fork."""
        return self.governance_key is not None and self.governance_key == self.fellowship_key

    @property
    def has_relay(self) -> bool:
        return any(entry.chain.is_relay for entry in self.entries.values())

    @property
    def additional_keys(self) -> List[str]:
        return [key for key in self.entries if key not in (self.governance_key, self.fellowship_key)]

    def fork_configs(self) -> Dict[str, ForkConfig]:
        return {key: entry.config for key, entry in self.entries.items()}

    def to_dict(self) -> Dict[str, Any]:
        return {
            key: {'role': entry.role, 'label': entry.chain.label, 'endpoint': entry.chain.endpoint}
            for key, entry in self.entries.items()
        }


class ChainTopologyBuilder:
    """Builds a ``NetworkTopology`` for one run."""

    def __init__(self, settings: Optional[ForkSettings] = None):
        self.settings = settings or ForkSettings()

    def build_config(self, chain: ChainDescriptor, injections: Optional[List[StorageInjection]] = None) -> ForkConfig:
        return ForkConfig(
            endpoint=chain.endpoint,
            block=chain.block,
            import_storage=merge_injections(*(injection.storage() for injection in injections or [])),
            build_block_mode=self.settings.build_block_mode,
            runtime_log_level=self.settings.runtime_log_level,
            db=self.settings.db,
            mock_signature_host=self.settings.mock_signature_host,
            allow_unresolved_imports=self.settings.allow_unresolved_imports,
        )

    def _key_for(self, chain: ChainDescriptor, logical_key: str) -> str:
        return relay_network_key(chain.network) if chain.is_relay else logical_key

    def build(
        self,
        governance: Optional[ChainDescriptor] = None,
        fellowship: Optional[ChainDescriptor] = None,
        additional: Optional[List[ChainDescriptor]] = None,
        create_governance: bool = False,
        create_fellowship: bool = False,
    ) -> NetworkTopology:
        topology = NetworkTopology()
        governance_injections = [StorageInjection.FUNDED_ACCOUNT] if create_governance else []
        fellowship_injections = [StorageInjection.FELLOWSHIP] if create_fellowship else []

        if governance is not None and fellowship is not None and self._same_fork(governance, fellowship):
            key = self._key_for(governance, GOVERNANCE_KEY)
            topology.entries[key] = TopologyEntry(
                'governance+fellowship', governance, key,
                self.build_config(governance, governance_injections + fellowship_injections),
            )
            topology.governance_key = topology.fellowship_key = key
            logger.info(f"Governance and fellowship share one fork [{key}] of {governance.label}")
        else:
            if governance is not None and fellowship is not None and not (governance.is_relay or fellowship.is_relay):
                logger.info("Neither chain is a relay chain, forking them independently")
            if governance is not None:
                key = self._key_for(governance, GOVERNANCE_KEY)
                topology.entries[key] = TopologyEntry(
                    'governance', governance, key, self.build_config(governance, governance_injections),
                )
                topology.governance_key = key
            if fellowship is not None:
                key = self._key_for(fellowship, FELLOWSHIP_KEY)
                if key in topology.entries:
                    key = FELLOWSHIP_KEY
                topology.entries[key] = TopologyEntry(
                    'fellowship', fellowship, key, self.build_config(fellowship, fellowship_injections),
                )
                topology.fellowship_key = key

        for role_key in (topology.governance_key, topology.fellowship_key):
            if role_key is not None:
                entry = topology.entries[role_key]
                logger.info(f"Fork [{role_key}] -> {entry.chain.label} ({entry.chain.endpoint})")

        if additional:
            topology.chain_to_key = self.register_additional_chains(topology, additional)
        return topology

    @staticmethod
    def _same_fork(a: ChainDescriptor, b: ChainDescriptor) -> bool:
        return a.endpoint == b.endpoint and a.block == b.block

    def register_additional_chains(
        self,
        topology: NetworkTopology,
        chains: List[ChainDescriptor],
    ) -> Dict[str, str]:
        """
        Adds monitored chains to *topology*. Returns label -> network key for
        each chain that was added.

        A chain whose endpoint is already forked is skipped; a relay chain
        whose network key is taken is skipped with a warning.
        """
        used_endpoints: Set[str] = {entry.chain.endpoint for entry in topology.entries.values()}
        used_keys: Set[str] = set(topology.entries)
        chain_to_key: Dict[str, str] = {}

        for index, chain in enumerate(chains):
            if chain.endpoint in used_endpoints:
                logger.debug(f"Skipping additional chain {chain.label}: {chain.endpoint} is already forked")
                continue

            if chain.is_relay:
                key = relay_network_key(chain.network)
                if key in used_keys:
                    logger.warning(
                        f"Skipping additional relay chain {chain.label}: network key {key!r} is already in use"
                    )
                    continue
            else:
                key = f"additional_{index}"

            topology.entries[key] = TopologyEntry(f"additional_{index}", chain, key, self.build_config(chain))
            used_endpoints.add(chain.endpoint)
            used_keys.add(key)
            chain_to_key[chain.label] = key
            logger.info(f"Fork [{key}] -> {chain.label} ({chain.endpoint}) for event monitoring")

        return chain_to_key
