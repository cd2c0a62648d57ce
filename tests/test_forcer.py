"""
Referendum Fetching & Forcing Test Suite

Coverage:
  - ReferendumInfo parsing (ongoing and terminal variants)
  - Track name resolution
  - Scheduling block selection (relay clock vs own clock)
  - Passing-state storage writes for main governance and the fellowship
"""

import os
import sys

import pytest

# ── Path setup ────────────────────────────────────────────────────────
ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from reftester.exceptions import InvalidStateError, NotFoundError
from reftester.governance.fetcher import (
    fetch_referendum,
    list_referenda,
    parse_referendum_info,
    track_name,
)
from reftester.governance.forcer import (
    SchedulingBlocks,
    apply_passing_state,
    get_scheduling_blocks,
    passing_tally,
)
from reftester.types import (
    Bytes,
    FellowshipTally,
    GovernanceDomain,
    GovernanceTally,
    LookupCall,
    ReferendumStatus,
    tagged,
)

from tests.fakes import FakeChain, hash_of, lookup_proposal, make_session, ongoing_info


PROPOSAL_HASH = hash_of(0x18)
TOTAL_ISSUANCE = 15_000_000_000_000_000_000
RELAY_BLOCK_ITEM = ('ParachainSystem', 'LastRelayChainBlockNumber')


def make_chain(referendum_id=1840, info=None, domain=GovernanceDomain.MAIN, **kwargs):
    chain = FakeChain(**kwargs)
    chain.put(domain.pallet, 'ReferendumInfoFor', [referendum_id],
              info if info is not None else ongoing_info(lookup_proposal(PROPOSAL_HASH)))
    chain.put('Balances', 'TotalIssuance', None, TOTAL_ISSUANCE)
    return chain


def written_record(chain, pallet='Referenda'):
    batch = chain.batches[0]
    ((key, record),) = batch[pallet]['ReferendumInfoFor']
    return key, record['ongoing']


# ══════════════════════════════════════════════════════════════════════
#  FETCHER
# ══════════════════════════════════════════════════════════════════════

class TestParseReferendumInfo:

    def test_ongoing(self):
        record = parse_referendum_info(1840, ongoing_info(lookup_proposal(PROPOSAL_HASH), track=11))
        assert record.status is ReferendumStatus.ONGOING
        assert record.track == 11
        assert record.proposal == LookupCall(PROPOSAL_HASH, 42)
        assert record.proposal_hash == PROPOSAL_HASH.hex
        assert record.proposal_kind == 'Lookup'
        assert str(record.origin) == 'system.Root'
        assert isinstance(record.tally, GovernanceTally)
        assert record.submitted_at == 90

    def test_inline_proposal_hash_is_call_data(self):
        record = parse_referendum_info(3, ongoing_info(tagged('Inline', Bytes(b'\x00\x07'))))
        assert record.proposal_hash == '0x0007'

    def test_fellowship_tally(self):
        info = ongoing_info(lookup_proposal(PROPOSAL_HASH), tally={'bare_ayes': 3, 'ayes': 9, 'nays': 1})
        record = parse_referendum_info(4, info)
        assert record.tally == FellowshipTally(3, 9, 1)

    def test_terminal(self):
        record = parse_referendum_info(5, tagged('Rejected', [1234, None, None]))
        assert record.status is ReferendumStatus.REJECTED
        assert record.submitted_at == 1234
        assert record.proposal is None

    def test_killed_carries_only_block(self):
        record = parse_referendum_info(6, tagged('Killed', 77))
        assert record.status is ReferendumStatus.KILLED
        assert record.submitted_at == 77

    def test_unrecognised(self):
        with pytest.raises(InvalidStateError):
            parse_referendum_info(7, {'ongoing': {}})
        with pytest.raises(InvalidStateError):
            parse_referendum_info(7, tagged('Paused', None))


class TestTrackName:

    def test_runtime_names_win(self):
        assert track_name(11, {11: 'treasury_boss'}) == 'treasury_boss'

    def test_builtin_names(self):
        assert track_name(0) == 'root'
        assert track_name(33) == 'medium_spender'

    def test_fallbacks(self):
        assert track_name(999) == 'track_999'
        assert track_name(None) == 'unknown'


class TestFetchReferendum:

    @pytest.mark.asyncio
    async def test_fetch_with_runtime_track_names(self):
        chain = make_chain(info=ongoing_info(lookup_proposal(PROPOSAL_HASH), track=11))
        chain.constants[('Referenda', 'Tracks')] = [[11, {'name': Bytes(b'treasurer')}]]
        record = await fetch_referendum(chain, 1840, GovernanceDomain.MAIN)
        assert record.track_name == 'treasurer'

    @pytest.mark.asyncio
    async def test_missing(self):
        with pytest.raises(NotFoundError):
            await fetch_referendum(FakeChain(), 1, GovernanceDomain.MAIN)

    @pytest.mark.asyncio
    async def test_list_filters_by_status(self):
        chain = FakeChain()
        chain.put('FellowshipReferenda', 'ReferendumCount', None, 3)
        chain.put('FellowshipReferenda', 'ReferendumInfoFor', [0], tagged('Approved', [10, None, None]))
        chain.put('FellowshipReferenda', 'ReferendumInfoFor', [1], ongoing_info(lookup_proposal(PROPOSAL_HASH)))
        everything = await list_referenda(chain, GovernanceDomain.FELLOWSHIP)
        ongoing = await list_referenda(chain, GovernanceDomain.FELLOWSHIP, ReferendumStatus.ONGOING)
        assert [record.id for record in everything] == [0, 1]
        assert [record.id for record in ongoing] == [1]


# ══════════════════════════════════════════════════════════════════════
#  SCHEDULING BLOCKS
# ══════════════════════════════════════════════════════════════════════

class TestSchedulingBlocks:

    @pytest.mark.asyncio
    async def test_own_clock(self):
        session = make_session(FakeChain(head=100))
        assert await get_scheduling_blocks(session, GovernanceDomain.MAIN) == SchedulingBlocks(100, 101)

    @pytest.mark.asyncio
    async def test_relay_clock_for_parachain_governance(self):
        chain = FakeChain(head=100, storage_items=(RELAY_BLOCK_ITEM,))
        chain.put(*RELAY_BLOCK_ITEM, None, 5000)
        blocks = await get_scheduling_blocks(make_session(chain), GovernanceDomain.MAIN)
        assert blocks == SchedulingBlocks(4999, 5000)

    @pytest.mark.asyncio
    async def test_fellowship_never_reads_relay_clock(self):
        chain = FakeChain(head=100, storage_items=(RELAY_BLOCK_ITEM,))
        chain.put(*RELAY_BLOCK_ITEM, None, 5000)
        blocks = await get_scheduling_blocks(make_session(chain), GovernanceDomain.FELLOWSHIP)
        assert blocks == SchedulingBlocks(100, 101)
        assert RELAY_BLOCK_ITEM not in chain.queries


# ══════════════════════════════════════════════════════════════════════
#  PASSING STATE
# ══════════════════════════════════════════════════════════════════════

class TestPassingTally:

    def test_governance_one_below_issuance(self):
        assert passing_tally(GovernanceDomain.MAIN, 1000) == GovernanceTally(999, 0, 999)

    def test_governance_requires_issuance(self):
        with pytest.raises(ValueError):
            passing_tally(GovernanceDomain.MAIN)

    def test_fellowship_fixed(self):
        assert passing_tally(GovernanceDomain.FELLOWSHIP) == FellowshipTally(100, 1000, 0)


class TestApplyPassingState:

    @pytest.mark.asyncio
    async def test_lookup_referendum_on_own_clock(self):
        chain = make_chain(head=100)
        forced = await apply_passing_state(make_session(chain), 1840, GovernanceDomain.MAIN)

        key, ongoing = written_record(chain)
        assert key == [1840]
        assert ongoing['tally'] == {
            'ayes': TOTAL_ISSUANCE - 1, 'nays': 0, 'support': TOTAL_ISSUANCE - 1,
        }
        assert ongoing['enactment'] == {'after': 0}
        assert ongoing['proposal'] == {'lookup': {'hash': PROPOSAL_HASH.hex, 'len': 42}}
        assert ongoing['origin'] == {'system': 'Root'}
        assert ongoing['deciding'] == {'since': 99, 'confirming': 99}
        assert ongoing['alarm'] == [101, [101, 0]]
        assert ongoing['submission_deposit']['who'] == '0x' + '01' * 32
        assert forced.blocks == SchedulingBlocks(100, 101)
        assert chain.head == 101

    @pytest.mark.asyncio
    async def test_relay_clock(self):
        chain = make_chain(head=100, storage_items=(RELAY_BLOCK_ITEM,))
        chain.put(*RELAY_BLOCK_ITEM, None, 5000)
        await apply_passing_state(make_session(chain), 1840, GovernanceDomain.MAIN)

        _, ongoing = written_record(chain)
        assert ongoing['deciding'] == {'since': 4998, 'confirming': 4998}
        assert ongoing['alarm'] == [5000, [5000, 0]]

    @pytest.mark.asyncio
    async def test_fellowship(self):
        chain = make_chain(referendum_id=12, domain=GovernanceDomain.FELLOWSHIP,
                           storage_items=(RELAY_BLOCK_ITEM,))
        await apply_passing_state(make_session(chain), 12, GovernanceDomain.FELLOWSHIP)

        _, ongoing = written_record(chain, 'FellowshipReferenda')
        assert ongoing['tally'] == {'bare_ayes': 100, 'ayes': 1000, 'nays': 0}
        assert ('Balances', 'TotalIssuance') not in chain.queries
        assert RELAY_BLOCK_ITEM not in chain.queries

    @pytest.mark.asyncio
    async def test_already_approved(self):
        chain = make_chain(info=tagged('Approved', [10, None, None]))
        assert await apply_passing_state(make_session(chain), 1840, GovernanceDomain.MAIN) is None
        assert chain.batches == []
        assert chain.head == 100

    @pytest.mark.asyncio
    async def test_rejected(self):
        chain = make_chain(info=tagged('Rejected', [10, None, None]))
        with pytest.raises(InvalidStateError):
            await apply_passing_state(make_session(chain), 1840, GovernanceDomain.MAIN)
        assert chain.batches == []

    @pytest.mark.asyncio
    async def test_missing(self):
        with pytest.raises(NotFoundError):
            await apply_passing_state(make_session(FakeChain()), 1840, GovernanceDomain.MAIN)
