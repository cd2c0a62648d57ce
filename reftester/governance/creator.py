"""
Referendum creation on a fork.

Submitting a referendum from scratch needs a signer with funds (and, for the
fellowship, membership at a high rank). Forks are started with storage
injections that provide both for the dev account.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from ..chain.session import ForkSession
from ..constants import (
    DEV_ACCOUNT_ADDRESS,
    DEV_ACCOUNT_FREE_BALANCE,
    FELLOWSHIP_COLLECTIVE_PALLET,
    FELLOWSHIP_MAX_RANK,
)
from ..exceptions import ReferendumCreationError
from ..logger import get_logger
from ..types import GovernanceDomain
from .scheduler import validate_call_hex

logger = get_logger(__name__)


# ══════════════════════════════════════════════════════════════════════
#  STORAGE INJECTIONS
# ══════════════════════════════════════════════════════════════════════

def funded_account_injection() -> Dict[str, Any]:
    """Funds the dev account so it can pay deposits and fees."""
    return {
        'System': {
            'Account': [[
                [DEV_ACCOUNT_ADDRESS],
                {'providers': 1, 'data': {'free': DEV_ACCOUNT_FREE_BALANCE}},
            ]],
        },
    }


def fellowship_injection() -> Dict[str, Any]:
    """Funds the dev account and makes it the only fellow, at the top rank."""
    ranks = range(FELLOWSHIP_MAX_RANK + 1)
    injection = funded_account_injection()
    injection[FELLOWSHIP_COLLECTIVE_PALLET] = {
        '$removePrefix': ['IdToIndex', 'IndexToId', 'MemberCount', 'Members'],
        'IdToIndex': [[[rank, DEV_ACCOUNT_ADDRESS], 0] for rank in ranks],
        'IndexToId': [[[rank, 0], DEV_ACCOUNT_ADDRESS] for rank in ranks],
        'MemberCount': [[[rank], 1] for rank in ranks],
        'Members': [[[DEV_ACCOUNT_ADDRESS], {'rank': FELLOWSHIP_MAX_RANK}]],
        'Voting': [],
    }
    return injection


def merge_injections(*injections: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Merges injections pallet by pallet; later injections win per storage item."""
    merged: Dict[str, Any] = {}
    for injection in injections:
        for pallet, items in (injection or {}).items():
            merged.setdefault(pallet, {}).update(items)
    return merged


# ══════════════════════════════════════════════════════════════════════
#  CREATION
# ══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class CreationCalls:
    """Call data used to create a referendum: the submit call and an optional preimage note."""
    submit: str
    preimage: Optional[str] = None


async def _submit(session: ForkSession, call_hex: str, what: str) -> None:
    call = validate_call_hex(call_hex, what)
    decoded = await session.client.decode_call(call)
    logger.info(f"[{session.label}] submitting {what}: {decoded}")
    extrinsic = await session.client.sign_extrinsic(call)
    await session.new_block([extrinsic])
    await session.new_block()


async def create_referendum(
    session: ForkSession,
    domain: GovernanceDomain,
    calls: CreationCalls,
) -> int:
    """
    Notes the preimage (if any), submits the referendum and returns its id.

    Raises:
        ConfigurationError: malformed call hex
        DecodeError: call data does not decode against the fork's runtime
        ReferendumCreationError: no referendum was added
    """
    if calls.preimage:
        await _submit(session, calls.preimage, 'preimage note')

    pallet = domain.pallet
    count_before = int(await session.client.query(pallet, 'ReferendumCount') or 0)
    await _submit(session, calls.submit, f'{domain.value} referendum')
    count_after = int(await session.client.query(pallet, 'ReferendumCount') or 0)

    if count_after <= count_before:
        raise ReferendumCreationError(
            f"No new {pallet} referendum after submission (count stayed at {count_after}); "
            f"check the call and the signer's funds"
        )

    referendum_id = count_after - 1
    logger.info(f"Created {pallet} referendum #{referendum_id}")
    return referendum_id
