"""
Multi-chain topology and run coordination.
"""

from .coordinator import (
    ChainEvents,
    CoordinatorState,
    NetworkCoordinator,
    RunReport,
    RunRequest,
)
from .topology import (
    ChainTopologyBuilder,
    NetworkTopology,
    StorageInjection,
    TopologyEntry,
)

__all__ = [
    "ChainEvents",
    "ChainTopologyBuilder",
    "CoordinatorState",
    "NetworkCoordinator",
    "NetworkTopology",
    "RunReport",
    "RunRequest",
    "StorageInjection",
    "TopologyEntry",
]
