"""
Referendum State Forcer

Rewrites a forked ``ReferendumInfoFor`` record so the referendum passes at
the next nudge and enacts immediately:

  - deciding since/confirming one block in the past (confirmation complete)
  - a tally no threshold can reject
  - ``enactment = after 0``
  - the alarm at the next block
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from ..chain.session import ForkSession
from ..codec.format_converter import convert_origin, convert_proposal, to_plain
from ..constants import FELLOWSHIP_AYES, FELLOWSHIP_BARE_AYES, FELLOWSHIP_NAYS
from ..exceptions import InvalidStateError, NotFoundError
from ..logger import get_logger
from ..types import (
    FellowshipTally,
    GovernanceDomain,
    GovernanceTally,
    ReferendumStatus,
    Tally,
    is_tagged,
)
from .fetcher import parse_referendum_info

logger = get_logger(__name__)


# ══════════════════════════════════════════════════════════════════════
#  SCHEDULING BLOCKS
# ══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class SchedulingBlocks:
    """Block numbers as seen by the governance pallet's own clock."""
    current: int
    target: int


async def get_scheduling_blocks(session: ForkSession, domain: GovernanceDomain) -> SchedulingBlocks:
    """
    Main governance running on a parachain counts deciding periods and
    enactment in relay-chain blocks, so its numbers come from
    ``ParachainSystem.LastRelayChainBlockNumber``. The fellowship always uses
    the fork's own block numbers.
    """
    head = await session.client.block_number()

    if domain is GovernanceDomain.FELLOWSHIP:
        return SchedulingBlocks(head, head + 1)

    if await session.client.has_storage('ParachainSystem', 'LastRelayChainBlockNumber'):
        relay_block = await session.client.query('ParachainSystem', 'LastRelayChainBlockNumber')
        if relay_block is not None:
            relay_block = int(relay_block)
            logger.debug(f"[{session.label}] using relay chain block #{relay_block} for scheduling")
            return SchedulingBlocks(relay_block - 1, relay_block)

    return SchedulingBlocks(head, head + 1)


# ══════════════════════════════════════════════════════════════════════
#  PASSING STATE
# ══════════════════════════════════════════════════════════════════════

def passing_tally(domain: GovernanceDomain, total_issuance: Optional[int] = None) -> Tally:
    if domain is GovernanceDomain.FELLOWSHIP:
        return FellowshipTally(FELLOWSHIP_BARE_AYES, FELLOWSHIP_AYES, FELLOWSHIP_NAYS)
    if total_issuance is None:
        raise ValueError("Main governance tally needs the total issuance")
    # One below issuance: a tally equal to issuance trips the support curve edge case
    votes = int(total_issuance) - 1
    return GovernanceTally(ayes=votes, nays=0, support=votes)


def build_passing_record(ongoing: Dict[str, Any], blocks: SchedulingBlocks, tally: Tally) -> Dict[str, Any]:
    """The storage-format ``ReferendumInfo::Ongoing`` value that replaces the forked one."""
    confirmed_at = blocks.current - 1
    alarm_at = blocks.current + 1
    return {
        'ongoing': {
            'track': ongoing.get('track'),
            'origin': convert_origin(ongoing.get('origin')),
            'proposal': convert_proposal(ongoing.get('proposal')),
            'enactment': {'after': 0},
            'submitted': ongoing.get('submitted'),
            'submission_deposit': to_plain(ongoing.get('submission_deposit')),
            'decision_deposit': to_plain(ongoing.get('decision_deposit')),
            'deciding': {'since': confirmed_at, 'confirming': confirmed_at},
            'tally': tally.to_storage(),
            'in_queue': bool(ongoing.get('in_queue') or False),
            'alarm': [alarm_at, [alarm_at, 0]],
        }
    }


@dataclass
class ForcedReferendum:
    referendum_id: int
    domain: GovernanceDomain
    blocks: SchedulingBlocks
    record: Dict[str, Any]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'referendumId': self.referendum_id,
            'domain': self.domain.value,
            'currentBlock': self.blocks.current,
            'targetBlock': self.blocks.target,
            'record': self.record,
        }


async def apply_passing_state(
    session: ForkSession,
    referendum_id: int,
    domain: GovernanceDomain,
) -> Optional[ForcedReferendum]:
    """
    Forces referendum *referendum_id* into a passing state and commits it with one block.

    Returns None when the referendum is already approved (nothing to force).

    Raises:
        NotFoundError: the referendum does not exist on the fork
        InvalidStateError: the referendum ended other than approved
    """
    pallet = domain.pallet
    raw = await session.client.query(pallet, 'ReferendumInfoFor', [referendum_id])
    if raw is None:
        raise NotFoundError(f"Referendum #{referendum_id} not found in {pallet}")

    current = parse_referendum_info(referendum_id, raw)
    if current.status is ReferendumStatus.APPROVED:
        logger.warning(f"{pallet} #{referendum_id} is already approved, skipping to execution")
        return None
    if current.status.is_terminal:
        raise InvalidStateError(
            f"{pallet} #{referendum_id} is {current.status.value} and cannot be executed"
        )

    total_issuance = None
    if domain is GovernanceDomain.MAIN:
        total_issuance = int(await session.client.query('Balances', 'TotalIssuance'))

    blocks = await get_scheduling_blocks(session, domain)
    tally = passing_tally(domain, total_issuance)
    record = build_passing_record(raw.get('value') or {}, blocks, tally)

    logger.info(
        f"Forcing {pallet} #{referendum_id} to pass: deciding since block {blocks.current - 1}, "
        f"alarm at block {blocks.current + 1}"
    )
    await session.set_storage({pallet: {'ReferendumInfoFor': [[[referendum_id], record]]}})
    await session.new_block()

    await _verify_forced_record(session, referendum_id, domain, tally)
    return ForcedReferendum(referendum_id, domain, blocks, record)


async def _verify_forced_record(
    session: ForkSession,
    referendum_id: int,
    domain: GovernanceDomain,
    tally: Tally,
) -> None:
    pallet = domain.pallet
    raw = await session.client.query(pallet, 'ReferendumInfoFor', [referendum_id])
    if not is_tagged(raw):
        logger.warning(f"{pallet} #{referendum_id} could not be re-read after forcing")
        return

    written = parse_referendum_info(referendum_id, raw)
    if written.status is not ReferendumStatus.ONGOING:
        # The nudge may already have run when the alarm block was produced
        logger.info(f"{pallet} #{referendum_id} is {written.status.value} after forcing")
        return

    logger.debug(
        f"{pallet} #{referendum_id} after forcing: tally={written.tally}, "
        f"deciding={written.deciding}, enactment={written.enactment}"
    )
    if written.tally != tally:
        logger.warning(f"{pallet} #{referendum_id} tally mismatch after forcing: {written.tally} != {tally}")
