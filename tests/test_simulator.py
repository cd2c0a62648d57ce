"""
Execution Verification & Simulation Test Suite

Coverage:
  - Scheduler.Dispatched classification and block filtering
  - End-to-end referendum simulation on an in-memory fork
  - Referendum creation and dev-account storage injections
  - Fork session block production
"""

import os
import sys

import pytest

# ── Path setup ────────────────────────────────────────────────────────
ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from reftester.constants import DEV_ACCOUNT_ADDRESS, FELLOWSHIP_COLLECTIVE_PALLET
from reftester.exceptions import ForkTimeoutError, ReferendumCreationError, ScheduledCallNotFoundError
from reftester.governance.creator import (
    CreationCalls,
    create_referendum,
    fellowship_injection,
    funded_account_injection,
    merge_injections,
)
from reftester.governance.fetcher import fetch_referendum
from reftester.governance.simulator import simulate_referendum
from reftester.governance.verifier import check_execution_results, task_block
from reftester.types import DecodedCall, GovernanceDomain, ParsedEvent, tagged

from tests.fakes import (
    FakeChain,
    agenda_item,
    dispatched,
    hash_of,
    lookup_proposal,
    make_session,
    nudge_call,
    ongoing_info,
)


PROPOSAL_HASH = hash_of(0x42)
OK = tagged('Ok', None)


def dispatched_event(block, result=OK):
    return ParsedEvent('Scheduler', 'Dispatched', {'task': [block, 0], 'id': None, 'result': result})


def make_referendum_chain(referendum_id=7, domain=GovernanceDomain.MAIN):
    """Fork at block 100 with an ongoing referendum, its nudge and its enactment scheduled far ahead."""
    chain = FakeChain(head=100)
    chain.put(domain.pallet, 'ReferendumInfoFor', [referendum_id], ongoing_info(lookup_proposal(PROPOSAL_HASH)))
    chain.put('Balances', 'TotalIssuance', None, 10 ** 18)
    chain.put('Scheduler', 'Agenda', [500], [agenda_item(nudge_call(referendum_id, domain))])
    chain.put('Scheduler', 'Agenda', [900], [agenda_item(lookup_proposal(PROPOSAL_HASH))])
    return chain


# ══════════════════════════════════════════════════════════════════════
#  VERIFIER
# ══════════════════════════════════════════════════════════════════════

class TestCheckExecutionResults:

    def test_success(self):
        verdict = check_execution_results([dispatched_event(500)], 7, expected_block=500)
        assert verdict.execution_succeeded
        assert verdict.errors == []
        assert verdict.dispatched == 1

    def test_failure_message(self):
        error = {'Err': {'Module': {'index': 42, 'error': '0x01000000'}}}
        verdict = check_execution_results([dispatched_event(500, error)], 7, expected_block=500)
        assert not verdict.execution_succeeded
        assert verdict.errors[0].startswith('Module error: ')

    def test_other_block_ignored(self):
        verdict = check_execution_results([dispatched_event(499)], 7, expected_block=500)
        assert not verdict.execution_succeeded
        assert verdict.errors == [
            'No Scheduler.Dispatched event found for block 500 - proposal execution did not happen'
        ]

    def test_missing_task_block_ignored_when_expecting_block(self):
        event = ParsedEvent('Scheduler', 'Dispatched', {'result': OK})
        assert not check_execution_results([event], 7, expected_block=500).execution_succeeded

    def test_any_block_without_expectation(self):
        assert check_execution_results([dispatched_event(499)], 7).execution_succeeded

    def test_no_dispatch_without_expectation(self):
        verdict = check_execution_results([ParsedEvent('System', 'NewAccount')], 7)
        assert verdict.errors == ['No Scheduler.Dispatched event found - referendum was not executed']

    def test_extrinsic_failure_fails_block(self):
        events = [
            dispatched_event(500),
            ParsedEvent('System', 'ExtrinsicFailed', {'dispatch_error': tagged('BadOrigin')}),
        ]
        verdict = check_execution_results(events, 7, expected_block=500)
        assert not verdict.execution_succeeded
        assert verdict.errors == ['ExtrinsicFailed: BadOrigin']

    def test_unknown_result(self):
        verdict = check_execution_results([dispatched_event(500, 'pending')], 7, expected_block=500)
        assert not verdict.execution_succeeded
        assert 'could not be interpreted' in verdict.errors[0]

    def test_task_block_from_wrapped_data(self):
        assert task_block(ParsedEvent('Scheduler', 'Dispatched', {'value': {'task': [12, 3]}})) == 12


# ══════════════════════════════════════════════════════════════════════
#  SIMULATOR
# ══════════════════════════════════════════════════════════════════════

class TestSimulateReferendum:

    @pytest.mark.asyncio
    async def test_executes(self):
        chain = make_referendum_chain()
        chain.add_events(103, [dispatched(103, OK)])
        record = await fetch_referendum(chain, 7, GovernanceDomain.MAIN)

        outcome = await simulate_referendum(make_session(chain), record, GovernanceDomain.MAIN)

        assert outcome.passed
        assert outcome.executed_block == 103
        assert [event.name for event in outcome.events] == ['Scheduler.Dispatched']
        # force, nudge move, execution move
        assert [list(batch['Referenda'] if 'Referenda' in batch else batch['Scheduler']) for batch in chain.batches] == [
            ['ReferendumInfoFor'], ['Agenda'], ['Agenda'],
        ]
        assert chain.batches[1]['Scheduler']['Agenda'][1][0] == [102]
        assert chain.batches[2]['Scheduler']['Agenda'][1][0] == [103]

    @pytest.mark.asyncio
    async def test_execution_failure(self):
        chain = make_referendum_chain()
        chain.add_events(103, [dispatched(103, {'Err': tagged('BadOrigin')})])
        record = await fetch_referendum(chain, 7, GovernanceDomain.MAIN)

        outcome = await simulate_referendum(make_session(chain), record, GovernanceDomain.MAIN)

        assert outcome.success
        assert not outcome.execution_succeeded
        assert outcome.errors == ['BadOrigin']

    @pytest.mark.asyncio
    async def test_fellowship(self):
        chain = make_referendum_chain(3, GovernanceDomain.FELLOWSHIP)
        chain.add_events(103, [dispatched(103, OK)])
        record = await fetch_referendum(chain, 3, GovernanceDomain.FELLOWSHIP)

        outcome = await simulate_referendum(make_session(chain, 'fellowship'), record, GovernanceDomain.FELLOWSHIP)

        assert outcome.passed
        assert outcome.domain is GovernanceDomain.FELLOWSHIP

    @pytest.mark.asyncio
    async def test_approved_before_fork(self):
        chain = FakeChain()
        chain.put('Referenda', 'ReferendumInfoFor', [7], tagged('Approved', [10, None, None]))
        record = await fetch_referendum(chain, 7, GovernanceDomain.MAIN)

        outcome = await simulate_referendum(make_session(chain), record, GovernanceDomain.MAIN)

        assert outcome.passed
        assert chain.batches == []

    @pytest.mark.asyncio
    async def test_missing_nudge_propagates(self):
        chain = make_referendum_chain()
        chain.put('Scheduler', 'Agenda', [500], None)
        record = await fetch_referendum(chain, 7, GovernanceDomain.MAIN)

        with pytest.raises(ScheduledCallNotFoundError):
            await simulate_referendum(make_session(chain), record, GovernanceDomain.MAIN)

    @pytest.mark.asyncio
    async def test_pre_call_runs_first(self):
        chain = make_referendum_chain()
        chain.decodable['0x0001'] = DecodedCall('System', 'remark', {})
        chain.add_events(101, [dispatched(101, OK)])
        chain.add_events(104, [dispatched(104, OK)])
        record = await fetch_referendum(chain, 7, GovernanceDomain.MAIN)

        outcome = await simulate_referendum(make_session(chain), record, GovernanceDomain.MAIN, '0x0001', 'Root')

        assert outcome.passed
        assert outcome.executed_block == 104
        assert chain.batches[0]['Scheduler']['Agenda'][0][1][0]['origin'] == {'system': 'Root'}


# ══════════════════════════════════════════════════════════════════════
#  CREATION
# ══════════════════════════════════════════════════════════════════════

SUBMIT = '0x1500'
PREIMAGE = '0x2000'


def count_on_submit(chain, pallet='Referenda'):
    def on_new_block(fake, transactions):
        if SUBMIT + 'ff' in transactions:
            current = fake.storage.get((pallet, 'ReferendumCount', ()), 0)
            fake.put(pallet, 'ReferendumCount', None, current + 1)
    chain.on_new_block = on_new_block


class TestCreateReferendum:

    @pytest.mark.asyncio
    async def test_creates_with_preimage(self):
        chain = FakeChain(head=100)
        chain.decodable[SUBMIT] = DecodedCall('Referenda', 'submit', {})
        chain.decodable[PREIMAGE] = DecodedCall('Preimage', 'note_preimage', {})
        chain.put('Referenda', 'ReferendumCount', None, 5)
        count_on_submit(chain)

        referendum_id = await create_referendum(
            make_session(chain), GovernanceDomain.MAIN, CreationCalls(SUBMIT, PREIMAGE),
        )

        assert referendum_id == 5
        assert chain.transactions == [[PREIMAGE + 'ff'], [], [SUBMIT + 'ff'], []]

    @pytest.mark.asyncio
    async def test_nothing_created(self):
        chain = FakeChain()
        chain.decodable[SUBMIT] = DecodedCall('Referenda', 'submit', {})

        with pytest.raises(ReferendumCreationError):
            await create_referendum(make_session(chain), GovernanceDomain.MAIN, CreationCalls(SUBMIT))


class TestStorageInjections:

    def test_funded_account(self):
        ((key, account),) = funded_account_injection()['System']['Account']
        assert key == [DEV_ACCOUNT_ADDRESS]
        assert account['data']['free'] > 2 ** 53

    def test_fellowship_membership(self):
        collective = fellowship_injection()[FELLOWSHIP_COLLECTIVE_PALLET]
        assert collective['Members'] == [[[DEV_ACCOUNT_ADDRESS], {'rank': 7}]]
        assert len(collective['MemberCount']) == 8
        assert collective['$removePrefix'] == ['IdToIndex', 'IndexToId', 'MemberCount', 'Members']

    def test_merge(self):
        merged = merge_injections(funded_account_injection(), None, fellowship_injection())
        assert set(merged) == {'System', FELLOWSHIP_COLLECTIVE_PALLET}


# ══════════════════════════════════════════════════════════════════════
#  FORK SESSION
# ══════════════════════════════════════════════════════════════════════

class TestForkSession:

    @pytest.mark.asyncio
    async def test_new_block_returns_head(self):
        chain = FakeChain(head=10)
        assert await make_session(chain).new_block() == 11

    @pytest.mark.asyncio
    async def test_stuck_head_times_out(self):
        chain = FakeChain(head=10)
        chain.stuck = True
        with pytest.raises(ForkTimeoutError):
            await make_session(chain).new_block()
