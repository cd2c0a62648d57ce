"""
Referenda Tester Types

Value types shared by the codec, chain, governance and network layers.

Chain values arrive from the chain client as plain Python data with two
normalisations applied once at the client boundary: enum variants are
tagged dicts ``{"type": <variant>, "value": <payload>}`` and binary
payloads are ``Bytes``. The closed unions below (``BoundedCall``,
``Origin``, ``DispatchOutcome``) are parsed from that representation.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from .constants import MAIN_REFERENDA_PALLET, FELLOWSHIP_REFERENDA_PALLET


_HEX_RE = re.compile(r'^0x(?:[0-9a-fA-F]{2})*$')


# ══════════════════════════════════════════════════════════════════════
#  BYTES
# ══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Bytes:
    """Immutable binary payload with canonical 0x-prefixed lowercase hex."""

    data: bytes

    @classmethod
    def from_hex(cls, value: str) -> "Bytes":
        if not _HEX_RE.match(value):
            raise ValueError(f"Not a hex string: {value!r}")
        return cls(bytes.fromhex(value[2:]))

    @classmethod
    def coerce(cls, value: Any) -> Optional["Bytes"]:
        """Returns ``Bytes`` for any binary-like value, otherwise None."""
        if isinstance(value, Bytes):
            return value
        if isinstance(value, (bytes, bytearray, memoryview)):
            return cls(bytes(value))
        if isinstance(value, str) and _HEX_RE.match(value):
            return cls(bytes.fromhex(value[2:]))
        return None

    @property
    def hex(self) -> str:
        return '0x' + self.data.hex()

    def __len__(self) -> int:
        return len(self.data)

    def __str__(self) -> str:
        return self.hex


def tagged(variant: str, value: Any = None) -> Dict[str, Any]:
    """Builds a chain-client tagged value."""
    return {'type': variant, 'value': value}


def is_tagged(value: Any) -> bool:
    return (
        isinstance(value, dict)
        and isinstance(value.get('type'), str)
        and set(value.keys()) <= {'type', 'value'}
    )


# ══════════════════════════════════════════════════════════════════════
#  CALLS & ORIGINS
# ══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class InlineCall:
    data: Bytes


@dataclass(frozen=True)
class LookupCall:
    hash: Bytes
    len: int


@dataclass(frozen=True)
class LegacyCall:
    hash: Bytes


@dataclass(frozen=True)
class UnknownCall:
    kind: str
    value: Any


BoundedCall = Union[InlineCall, LookupCall, LegacyCall, UnknownCall]


def parse_bounded_call(raw: Any) -> Optional[BoundedCall]:
    """Parses a tagged ``Bounded<Call>`` value. Non-tagged input yields None."""
    if isinstance(raw, (InlineCall, LookupCall, LegacyCall, UnknownCall)):
        return raw
    if not is_tagged(raw):
        return None
    kind = raw['type']
    value = raw.get('value')
    lowered = kind.lower()
    if lowered == 'inline':
        data = Bytes.coerce(value)
        if data is not None:
            return InlineCall(data)
    elif lowered == 'lookup' and isinstance(value, dict):
        digest = Bytes.coerce(value.get('hash'))
        if digest is not None:
            return LookupCall(digest, int(value.get('len') or 0))
    elif lowered == 'legacy':
        digest = Bytes.coerce(value.get('hash') if isinstance(value, dict) else value)
        if digest is not None:
            return LegacyCall(digest)
    return UnknownCall(kind, value)


@dataclass(frozen=True)
class Origin:
    """A dispatch origin such as ``system: Root`` or ``Origins: Treasurer``."""

    kind: str
    variant: Any

    @classmethod
    def parse(cls, raw: Any) -> Optional["Origin"]:
        if isinstance(raw, Origin):
            return raw
        if not is_tagged(raw):
            return None
        inner = raw.get('value')
        if is_tagged(inner):
            inner = inner['type']
        return cls(raw['type'], inner)

    def __str__(self) -> str:
        return f"{self.kind}.{self.variant}"


@dataclass
class DecodedCall:
    """A call decoded against runtime metadata."""

    pallet: str
    method: str
    args: Dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        return f"{self.pallet}.{self.method}"


# ══════════════════════════════════════════════════════════════════════
#  DISPATCH OUTCOME
# ══════════════════════════════════════════════════════════════════════

class Outcome(str, Enum):
    SUCCESS = 'success'
    FAILURE = 'failure'
    UNKNOWN = 'unknown'


@dataclass(frozen=True)
class DispatchOutcome:
    outcome: Outcome
    message: Optional[str] = None

    @classmethod
    def success(cls) -> "DispatchOutcome":
        return cls(Outcome.SUCCESS)

    @classmethod
    def failure(cls, message: str) -> "DispatchOutcome":
        return cls(Outcome.FAILURE, message or 'Unknown dispatch error')

    @classmethod
    def unknown(cls) -> "DispatchOutcome":
        return cls(Outcome.UNKNOWN)

    @property
    def is_success(self) -> bool:
        return self.outcome is Outcome.SUCCESS

    @property
    def is_failure(self) -> bool:
        return self.outcome is Outcome.FAILURE


# ══════════════════════════════════════════════════════════════════════
#  REFERENDA
# ══════════════════════════════════════════════════════════════════════

class GovernanceDomain(str, Enum):
    MAIN = 'governance'
    FELLOWSHIP = 'fellowship'

    @property
    def pallet(self) -> str:
        return FELLOWSHIP_REFERENDA_PALLET if self is GovernanceDomain.FELLOWSHIP else MAIN_REFERENDA_PALLET

    @property
    def is_fellowship(self) -> bool:
        return self is GovernanceDomain.FELLOWSHIP


class ReferendumStatus(str, Enum):
    ONGOING = 'ongoing'
    APPROVED = 'approved'
    REJECTED = 'rejected'
    CANCELLED = 'cancelled'
    TIMEDOUT = 'timedout'
    KILLED = 'killed'

    @classmethod
    def from_variant(cls, variant: str) -> "ReferendumStatus":
        return cls(variant.lower())

    @property
    def is_terminal(self) -> bool:
        return self is not ReferendumStatus.ONGOING


@dataclass
class GovernanceTally:
    ayes: int
    nays: int
    support: int

    def to_storage(self) -> Dict[str, int]:
        return {'ayes': self.ayes, 'nays': self.nays, 'support': self.support}


@dataclass
class FellowshipTally:
    bare_ayes: int
    ayes: int
    nays: int

    def to_storage(self) -> Dict[str, int]:
        return {'bare_ayes': self.bare_ayes, 'ayes': self.ayes, 'nays': self.nays}


Tally = Union[GovernanceTally, FellowshipTally]


def parse_tally(raw: Any) -> Optional[Tally]:
    if not isinstance(raw, dict):
        return None
    bare_ayes = raw.get('bare_ayes', raw.get('bareAyes'))
    if bare_ayes is not None:
        return FellowshipTally(int(bare_ayes), int(raw.get('ayes', 0)), int(raw.get('nays', 0)))
    if 'support' in raw:
        return GovernanceTally(int(raw.get('ayes', 0)), int(raw.get('nays', 0)), int(raw['support']))
    return None


@dataclass
class Deciding:
    since: int
    confirming: Optional[int] = None


@dataclass
class ReferendumRecord:
    """A referendum as read from (forked) chain storage."""

    id: int
    status: ReferendumStatus
    track: Optional[int] = None
    track_name: Optional[str] = None
    origin: Any = None
    proposal: Optional[BoundedCall] = None
    enactment: Any = None
    submitted_at: Optional[int] = None
    submission_deposit: Any = None
    decision_deposit: Any = None
    deciding: Optional[Deciding] = None
    tally: Optional[Tally] = None
    in_queue: bool = False
    alarm: Any = None

    @property
    def proposal_hash(self) -> Optional[str]:
        """Hex identity of the proposal: the preimage hash, or the inline call itself."""
        if isinstance(self.proposal, (LookupCall, LegacyCall)):
            return self.proposal.hash.hex
        if isinstance(self.proposal, InlineCall):
            return self.proposal.data.hex
        return None

    @property
    def proposal_kind(self) -> str:
        if isinstance(self.proposal, InlineCall):
            return 'Inline'
        if isinstance(self.proposal, LookupCall):
            return 'Lookup'
        if isinstance(self.proposal, LegacyCall):
            return 'Legacy'
        if isinstance(self.proposal, UnknownCall):
            return self.proposal.kind
        return 'None'

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'status': self.status.value,
            'track': self.track,
            'trackName': self.track_name,
            'origin': str(self.origin) if self.origin is not None else None,
            'proposalKind': self.proposal_kind,
            'proposalHash': self.proposal_hash,
            'submittedAt': self.submitted_at,
            'deciding': self.deciding.__dict__ if self.deciding else None,
            'tally': self.tally.to_storage() if self.tally else None,
        }


# ══════════════════════════════════════════════════════════════════════
#  CHAINS
# ══════════════════════════════════════════════════════════════════════

class ChainNetwork(str, Enum):
    POLKADOT = 'polkadot'
    KUSAMA = 'kusama'
    PASEO = 'paseo'
    WESTEND = 'westend'
    ROCOCO = 'rococo'
    UNKNOWN = 'unknown'


class ChainKind(str, Enum):
    RELAY = 'relay'
    PARACHAIN = 'parachain'


@dataclass(frozen=True)
class ChainDescriptor:
    endpoint: str
    network: ChainNetwork
    kind: ChainKind
    label: str
    block: Optional[int] = None

    @property
    def is_relay(self) -> bool:
        return self.kind is ChainKind.RELAY


# ══════════════════════════════════════════════════════════════════════
#  EVENTS & OUTCOMES
# ══════════════════════════════════════════════════════════════════════

@dataclass
class ParsedEvent:
    section: str
    method: str
    data: Any = None

    @property
    def name(self) -> str:
        return f"{self.section}.{self.method}"

    def is_event(self, section: str, method: str) -> bool:
        return self.section.lower() == section.lower() and self.method == method


@dataclass(frozen=True)
class SimulationOutcome:
    """Result of dry-running one referendum; never mutated after it is returned."""

    referendum_id: int
    domain: GovernanceDomain
    success: bool
    execution_succeeded: bool
    executed_block: Optional[int] = None
    events: List[ParsedEvent] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return self.success and self.execution_succeeded

    def to_dict(self) -> Dict[str, Any]:
        return {
            'referendumId': self.referendum_id,
            'domain': self.domain.value,
            'success': self.success,
            'executionSucceeded': self.execution_succeeded,
            'executedBlock': self.executed_block,
            'events': [event.name for event in self.events],
            'errors': list(self.errors),
        }
