"""
Referendum Simulator: runs one referendum end to end on a fork:

    [pre-call] -> force passing state -> move nudge -> block
               -> move execution -> block -> verify events
"""

from typing import Optional

from ..chain.session import ForkSession
from ..codec.events import parse_block_events
from ..logger import get_logger
from ..types import GovernanceDomain, ReferendumRecord, ReferendumStatus, SimulationOutcome
from .forcer import apply_passing_state
from .scheduler import CallType, execute_pre_call, move_scheduled_call
from .verifier import check_execution_results

logger = get_logger(__name__)


async def simulate_referendum(
    session: ForkSession,
    referendum: ReferendumRecord,
    domain: GovernanceDomain,
    pre_call: Optional[str] = None,
    pre_origin: Optional[str] = None,
) -> SimulationOutcome:
    """
    Forces *referendum* through and executes it on the session's fork.

    Typed errors (NotFoundError, InvalidStateError, DecodeError,
    ScheduledCallNotFoundError, ForkTimeoutError) propagate to the caller.
    """
    referendum_id = referendum.id
    pallet = domain.pallet

    if referendum.status is ReferendumStatus.APPROVED:
        logger.warning(f"{pallet} #{referendum_id} was approved before the fork, nothing to execute")
        return SimulationOutcome(referendum_id, domain, success=True, execution_succeeded=True)

    if pre_call:
        await execute_pre_call(session, domain, pre_call, pre_origin)

    forced = await apply_passing_state(session, referendum_id, domain)
    if forced is None:
        return SimulationOutcome(referendum_id, domain, success=True, execution_succeeded=True)

    await move_scheduled_call(session, referendum_id, CallType.NUDGE, domain)
    await session.new_block()

    scheduled_block = await move_scheduled_call(
        session, referendum_id, CallType.EXECUTE, domain, referendum.proposal_hash,
    )
    executed_block = await session.new_block()

    events = parse_block_events(await session.client.events())
    logger.info(f"[{session.label}] block #{executed_block}: {len(events)} event(s)")
    verdict = check_execution_results(events, referendum_id, expected_block=scheduled_block)

    if verdict.execution_succeeded:
        logger.info(f"{pallet} #{referendum_id} SUCCEEDED at block #{executed_block}")
    else:
        logger.error(f"{pallet} #{referendum_id} FAILED at block #{executed_block}")

    return SimulationOutcome(
        referendum_id=referendum_id,
        domain=domain,
        success=True,
        execution_succeeded=verdict.execution_succeeded,
        executed_block=executed_block,
        events=events,
        errors=verdict.errors,
    )
