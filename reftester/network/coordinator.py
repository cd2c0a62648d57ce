"""
Network Coordinator

Top-level state machine for a dry run:

    Idle -> DetectingChainTypes -> Forking -> WaitingReady
         -> [CreatingReferenda] -> FetchingReferenda -> ForcingAndExecuting
         -> PropagatingXCM -> CollectingAdditionalChainEvents -> Cleanup | Paused

Forks are advanced strictly one at a time. With governance and fellowship on
distinct forks, the fellowship referendum runs first; then both forks build a
block so any XCM it sent is delivered before governance starts, and again
after governance so its own XCM is delivered and observed.
"""

from contextlib import AsyncExitStack
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, AsyncContextManager, Callable, Dict, List, Optional

from ..chain.client import ChainClient, connect_client, wait_for_chain_ready
from ..chain.fork import ChopsticksEngine, Fork, ForkEngine
from ..chain.registry import detect_chain, unknown_chain
from ..chain.session import ForkSession
from ..codec.events import parse_block_events
from ..config.endpoint import ParsedEndpoint
from ..config.loader import TesterConfig
from ..exceptions import ChainConnectionError, ConfigurationError, ReferendaTesterError
from ..governance.creator import CreationCalls, create_referendum
from ..governance.fetcher import fetch_referendum, list_referenda
from ..governance.simulator import simulate_referendum
from ..logger import get_logger
from ..types import (
    ChainDescriptor,
    GovernanceDomain,
    ParsedEvent,
    ReferendumRecord,
    ReferendumStatus,
    SimulationOutcome,
)
from .topology import ChainTopologyBuilder, NetworkTopology

logger = get_logger(__name__)

ClientFactory = Callable[[str], AsyncContextManager[ChainClient]]


class CoordinatorState(str, Enum):
    IDLE = 'idle'
    DETECTING_CHAIN_TYPES = 'detecting-chain-types'
    FORKING = 'forking'
    WAITING_READY = 'waiting-ready'
    CREATING_REFERENDA = 'creating-referenda'
    FETCHING_REFERENDA = 'fetching-referenda'
    FORCING_AND_EXECUTING = 'forcing-and-executing'
    PROPAGATING_XCM = 'propagating-xcm'
    COLLECTING_ADDITIONAL_CHAIN_EVENTS = 'collecting-additional-chain-events'
    CLEANUP = 'cleanup'
    PAUSED = 'paused'


# ══════════════════════════════════════════════════════════════════════
#  REQUEST / REPORT
# ══════════════════════════════════════════════════════════════════════

@dataclass
class RunRequest:
    """Everything one dry run needs, as parsed from the command line."""
    governance_endpoint: Optional[ParsedEndpoint] = None
    fellowship_endpoint: Optional[ParsedEndpoint] = None
    additional_endpoints: List[ParsedEndpoint] = field(default_factory=list)
    governance_referendum: Optional[int] = None
    fellowship_referendum: Optional[int] = None
    governance_creation: Optional[CreationCalls] = None
    fellowship_creation: Optional[CreationCalls] = None
    pre_call: Optional[str] = None
    pre_origin: Optional[str] = None
    cleanup: bool = True

    @property
    def runs_governance(self) -> bool:
        return self.governance_referendum is not None or self.governance_creation is not None

    @property
    def runs_fellowship(self) -> bool:
        return self.fellowship_referendum is not None or self.fellowship_creation is not None

    def validate(self) -> None:
        if self.governance_referendum is not None and self.governance_creation is not None:
            raise ConfigurationError("Give either a governance referendum id or a call to create one, not both")
        if self.fellowship_referendum is not None and self.fellowship_creation is not None:
            raise ConfigurationError("Give either a fellowship referendum id or a call to create one, not both")
        if not (self.runs_governance or self.runs_fellowship):
            raise ConfigurationError("At least one referendum (governance or fellowship) is required")
        if self.runs_governance and self.governance_endpoint is None:
            raise ConfigurationError("A governance referendum needs --governance-chain-url")
        if self.runs_fellowship and self.fellowship_endpoint is None:
            raise ConfigurationError("A fellowship referendum needs --fellowship-chain-url")
        if self.pre_origin and not self.pre_call:
            raise ConfigurationError("--pre-origin requires --pre-call")


@dataclass
class ChainEvents:
    """Events of the latest block of one fork."""
    label: str
    key: str
    block: int
    events: List[ParsedEvent] = field(default_factory=list)


@dataclass
class RunReport:
    outcomes: List[SimulationOutcome] = field(default_factory=list)
    referenda: Dict[GovernanceDomain, ReferendumRecord] = field(default_factory=dict)
    chain_events: List[ChainEvents] = field(default_factory=list)
    topology: Optional[NetworkTopology] = None

    @property
    def ok(self) -> bool:
        return bool(self.outcomes) and all(outcome.passed for outcome in self.outcomes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'ok': self.ok,
            'outcomes': [outcome.to_dict() for outcome in self.outcomes],
            'topology': self.topology.to_dict() if self.topology else None,
        }


# ══════════════════════════════════════════════════════════════════════
#  COORDINATOR
# ══════════════════════════════════════════════════════════════════════

class NetworkCoordinator:
    """Runs referenda across one or more forks."""

    def __init__(
        self,
        config: Optional[TesterConfig] = None,
        engine: Optional[ForkEngine] = None,
        client_factory: ClientFactory = connect_client,
        topology_builder: Optional[ChainTopologyBuilder] = None,
    ):
        self.config = config or TesterConfig()
        self.engine = engine or ChopsticksEngine(self.config.fork, self.config.polling)
        self.client_factory = client_factory
        self.topology_builder = topology_builder or ChainTopologyBuilder(self.config.fork)
        self.paused_forks: Dict[str, Fork] = {}
        self._descriptors: Dict[str, ChainDescriptor] = {}
        self._state = CoordinatorState.IDLE

    @property
    def state(self) -> CoordinatorState:
        return self._state

    def _transition(self, state: CoordinatorState) -> None:
        logger.debug(f"Coordinator: {self._state.value} -> {state.value}")
        self._state = state

    # ── Chain detection ─────────────────────────────────────────────

    async def describe(self, endpoint: ParsedEndpoint) -> ChainDescriptor:
        """Descriptor for *endpoint*, detected once per url and cached."""
        cached = self._descriptors.get(endpoint.url)
        if cached is None:
            try:
                async with self.client_factory(endpoint.url) as client:
                    cached = await detect_chain(client, endpoint.url)
            except ChainConnectionError as e:
                logger.warning(f"Could not connect to {endpoint.url} for chain detection: {e}")
                cached = unknown_chain(endpoint.url)
            self._descriptors[endpoint.url] = cached
        return ChainDescriptor(cached.endpoint, cached.network, cached.kind, cached.label, endpoint.block)

    # ── Run ─────────────────────────────────────────────────────────

    async def run(self, request: RunRequest) -> RunReport:
        """
        Performs one dry run.

        Configuration, forking and creation errors propagate after cleanup;
        errors while simulating a referendum become a failed outcome.
        """
        request.validate()
        report = RunReport()
        forks: Dict[str, Fork] = {}

        try:
            self._transition(CoordinatorState.DETECTING_CHAIN_TYPES)
            governance = await self.describe(request.governance_endpoint) if request.runs_governance else None
            fellowship = await self.describe(request.fellowship_endpoint) if request.runs_fellowship else None
            additional = [await self.describe(endpoint) for endpoint in request.additional_endpoints]

            topology = self.topology_builder.build(
                governance,
                fellowship,
                additional,
                create_governance=request.governance_creation is not None,
                create_fellowship=request.fellowship_creation is not None,
            )
            report.topology = topology

            self._transition(CoordinatorState.FORKING)
            forks.update(await self.engine.setup(topology.fork_configs()))

            async with AsyncExitStack() as stack:
                self._transition(CoordinatorState.WAITING_READY)
                sessions: Dict[str, ForkSession] = {}
                for key in (topology.governance_key, topology.fellowship_key):
                    if key is None or key in sessions:
                        continue
                    client = await stack.enter_async_context(self.client_factory(forks[key].endpoint))
                    await wait_for_chain_ready(client, self.config.polling)
                    sessions[key] = ForkSession(key, forks[key], client, self.config.polling)

                await self._run_referenda(
                    request,
                    topology,
                    sessions.get(topology.governance_key),
                    sessions.get(topology.fellowship_key),
                    report,
                )

            if topology.additional_keys:
                await self._collect_additional_events(topology, forks, report)
        finally:
            await self._release_forks(forks, request.cleanup)

        return report

    async def _run_referenda(
        self,
        request: RunRequest,
        topology: NetworkTopology,
        governance: Optional[ForkSession],
        fellowship: Optional[ForkSession],
        report: RunReport,
    ) -> None:
        governance_id = request.governance_referendum
        fellowship_id = request.fellowship_referendum
        distinct = governance is not None and fellowship is not None and not topology.shared_fork

        if request.fellowship_creation or request.governance_creation:
            self._transition(CoordinatorState.CREATING_REFERENDA)
            if request.fellowship_creation:
                fellowship_id = await create_referendum(
                    fellowship, GovernanceDomain.FELLOWSHIP, request.fellowship_creation,
                )
            if request.governance_creation:
                governance_id = await create_referendum(
                    governance, GovernanceDomain.MAIN, request.governance_creation,
                )

        if fellowship_id is not None:
            outcome = await self._simulate(fellowship, fellowship_id, GovernanceDomain.FELLOWSHIP, report)
            if not outcome.passed and governance_id is not None:
                message = f"Skipped: fellowship referendum #{fellowship_id} did not execute"
                logger.error(f"Governance referendum #{governance_id} not simulated, fellowship #{fellowship_id} failed")
                report.outcomes.append(SimulationOutcome(
                    governance_id, GovernanceDomain.MAIN, success=False, execution_succeeded=False, errors=[message],
                ))
                return
            if distinct:
                self._transition(CoordinatorState.PROPAGATING_XCM)
                await fellowship.new_block()
                await governance.new_block()

        if governance_id is not None:
            await self._simulate(
                governance, governance_id, GovernanceDomain.MAIN, report, request.pre_call, request.pre_origin,
            )
            if distinct:
                self._transition(CoordinatorState.PROPAGATING_XCM)
                await governance.new_block()
                await fellowship.new_block()
                for session in (governance, fellowship):
                    report.chain_events.append(await self._latest_events(session))

    async def _simulate(
        self,
        session: ForkSession,
        referendum_id: int,
        domain: GovernanceDomain,
        report: RunReport,
        pre_call: Optional[str] = None,
        pre_origin: Optional[str] = None,
    ) -> SimulationOutcome:
        try:
            self._transition(CoordinatorState.FETCHING_REFERENDA)
            record = await fetch_referendum(session.client, referendum_id, domain)
            report.referenda[domain] = record

            self._transition(CoordinatorState.FORCING_AND_EXECUTING)
            outcome = await simulate_referendum(session, record, domain, pre_call, pre_origin)
        except ReferendaTesterError as e:
            logger.error(f"{domain.pallet} #{referendum_id} on [{session.label}] failed: {e}")
            outcome = SimulationOutcome(
                referendum_id, domain, success=False, execution_succeeded=False, errors=[str(e)],
            )
        report.outcomes.append(outcome)
        return outcome

    async def _latest_events(self, session: ForkSession) -> ChainEvents:
        block = await session.client.block_number()
        events = parse_block_events(await session.client.events())
        return ChainEvents(session.label, session.label, block, events)

    async def _collect_additional_events(
        self,
        topology: NetworkTopology,
        forks: Dict[str, Fork],
        report: RunReport,
    ) -> None:
        self._transition(CoordinatorState.COLLECTING_ADDITIONAL_CHAIN_EVENTS)
        for key in topology.additional_keys:
            entry = topology.entries[key]
            try:
                async with self.client_factory(forks[key].endpoint) as client:
                    session = ForkSession(key, forks[key], client, self.config.polling)
                    await session.new_block()
                    events = await self._latest_events(session)
                    events.label = entry.chain.label
                    report.chain_events.append(events)
            except ReferendaTesterError as e:
                logger.error(f"Could not collect events from {entry.chain.label} [{key}]: {e}")

    # ── Cleanup ─────────────────────────────────────────────────────

    async def _release_forks(self, forks: Dict[str, Fork], cleanup: bool) -> None:
        if not forks:
            return
        self._transition(CoordinatorState.CLEANUP if cleanup else CoordinatorState.PAUSED)
        for key, fork in forks.items():
            try:
                if cleanup:
                    await fork.teardown()
                else:
                    await fork.pause()
                    self.paused_forks[key] = fork
            except Exception as e:
                action = 'tear down' if cleanup else 'pause'
                logger.warning(f"Could not {action} fork [{key}]: {e}")

    async def teardown_paused(self) -> None:
        """Tears down forks left running by a no-cleanup run."""
        forks, self.paused_forks = self.paused_forks, {}
        await self._release_forks(forks, cleanup=True)

    # ── Listing ─────────────────────────────────────────────────────

    async def list_referenda(
        self,
        endpoint: ParsedEndpoint,
        domain: GovernanceDomain,
        status: Optional[ReferendumStatus] = None,
    ) -> List[ReferendumRecord]:
        """Forks *endpoint* and lists its referenda."""
        chain = await self.describe(endpoint)
        forks: Dict[str, Fork] = {}
        try:
            self._transition(CoordinatorState.FORKING)
            forks.update(await self.engine.setup({domain.value: self.topology_builder.build_config(chain)}))
            fork = forks[domain.value]
            async with self.client_factory(fork.endpoint) as client:
                self._transition(CoordinatorState.WAITING_READY)
                await wait_for_chain_ready(client, self.config.polling)
                self._transition(CoordinatorState.FETCHING_REFERENDA)
                return await list_referenda(client, domain, status)
        finally:
            await self._release_forks(forks, cleanup=True)
