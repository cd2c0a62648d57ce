"""
Referendum fetching: reads ``ReferendumInfoFor`` records into ``ReferendumRecord``.
"""

from typing import Any, Dict, List, Optional

from ..chain.client import ChainClient
from ..constants import TRACK_NAMES
from ..exceptions import InvalidStateError, NotFoundError
from ..logger import get_logger
from ..types import (
    Bytes,
    Deciding,
    GovernanceDomain,
    Origin,
    ReferendumRecord,
    ReferendumStatus,
    is_tagged,
    parse_bounded_call,
    parse_tally,
)

logger = get_logger(__name__)


def _optional_int(value: Any) -> Optional[int]:
    return int(value) if value is not None else None


def _parse_deciding(raw: Any) -> Optional[Deciding]:
    if not isinstance(raw, dict) or raw.get('since') is None:
        return None
    return Deciding(int(raw['since']), _optional_int(raw.get('confirming')))


def parse_referendum_info(referendum_id: int, raw: Any) -> ReferendumRecord:
    """Parses a tagged ``ReferendumInfo`` value."""
    if not is_tagged(raw):
        raise InvalidStateError(f"Referendum #{referendum_id} has an unrecognised info shape: {raw!r}")
    try:
        status = ReferendumStatus.from_variant(raw['type'])
    except ValueError:
        raise InvalidStateError(f"Referendum #{referendum_id} has unknown status {raw['type']!r}")

    value = raw.get('value')
    if status is not ReferendumStatus.ONGOING:
        # Terminal variants carry (since, submission_deposit, decision_deposit) or just since
        since = value[0] if isinstance(value, list) and value else value
        return ReferendumRecord(
            id=referendum_id,
            status=status,
            submitted_at=since if isinstance(since, int) else None,
        )

    value = value or {}
    origin = value.get('origin')
    return ReferendumRecord(
        id=referendum_id,
        status=status,
        track=_optional_int(value.get('track')),
        origin=Origin.parse(origin) or origin,
        proposal=parse_bounded_call(value.get('proposal')),
        enactment=value.get('enactment'),
        submitted_at=_optional_int(value.get('submitted')),
        submission_deposit=value.get('submission_deposit'),
        decision_deposit=value.get('decision_deposit'),
        deciding=_parse_deciding(value.get('deciding')),
        tally=parse_tally(value.get('tally')),
        in_queue=bool(value.get('in_queue', False)),
        alarm=value.get('alarm'),
    )


async def fetch_track_names(client: ChainClient, domain: GovernanceDomain) -> Dict[int, str]:
    """Track names from the runtime's ``Tracks`` constant; empty if not exposed."""
    tracks = await client.constant(domain.pallet, 'Tracks')
    names: Dict[int, str] = {}
    for entry in tracks or []:
        if not isinstance(entry, list) or len(entry) != 2 or not isinstance(entry[1], dict):
            continue
        name = entry[1].get('name')
        if isinstance(name, Bytes):
            name = name.data.decode('utf-8', errors='replace')
        if name:
            names[int(entry[0])] = str(name)
    return names


def track_name(track: Optional[int], runtime_names: Optional[Dict[int, str]] = None) -> str:
    if track is None:
        return 'unknown'
    if runtime_names and track in runtime_names:
        return runtime_names[track]
    return TRACK_NAMES.get(track, f"track_{track}")


async def fetch_referendum(client: ChainClient, referendum_id: int, domain: GovernanceDomain) -> ReferendumRecord:
    """
    Reads one referendum.

    Raises:
        NotFoundError: no record for *referendum_id*
    """
    raw = await client.query(domain.pallet, 'ReferendumInfoFor', [referendum_id])
    if raw is None:
        raise NotFoundError(f"Referendum #{referendum_id} not found in {domain.pallet}")

    record = parse_referendum_info(referendum_id, raw)
    record.track_name = track_name(record.track, await fetch_track_names(client, domain))

    if record.status is ReferendumStatus.ONGOING:
        logger.info(
            f"{domain.pallet} #{referendum_id}: ongoing on track {record.track_name}, "
            f"{record.proposal_kind} proposal {record.proposal_hash}"
        )
    elif record.status is ReferendumStatus.APPROVED:
        logger.info(f"{domain.pallet} #{referendum_id} is already approved")
    else:
        logger.warning(f"{domain.pallet} #{referendum_id} is {record.status.value}")
    return record


async def list_referenda(
    client: ChainClient,
    domain: GovernanceDomain,
    status: Optional[ReferendumStatus] = None,
) -> List[ReferendumRecord]:
    """Every referendum from 0 to ``ReferendumCount - 1``, optionally filtered by status."""
    count = int(await client.query(domain.pallet, 'ReferendumCount') or 0)
    names = await fetch_track_names(client, domain)
    logger.info(f"{domain.pallet}: {count} referend(a) on chain")

    records = []
    for referendum_id in range(count):
        raw = await client.query(domain.pallet, 'ReferendumInfoFor', [referendum_id])
        if raw is None:
            continue
        record = parse_referendum_info(referendum_id, raw)
        if status is not None and record.status is not status:
            continue
        record.track_name = track_name(record.track, names)
        records.append(record)
    return records
