"""
Scheduler Relocator

After a referendum is forced, the runtime itself schedules two calls:

  nudge    ``nudge_referendum(index)`` at the referendum's alarm block
  execute  the proposal, at its enactment block

Both may land far in the future (relay-chain numbering, enactment delays),
so the agenda slot holding each one is moved to the next block. A slot is
always moved whole: sibling items keep their relative order.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from ..chain.session import ForkSession
from ..codec.dispatch_result import interpret_dispatch_result
from ..codec.events import parse_block_events
from ..codec.format_converter import convert_agenda, to_plain
from ..constants import (
    CUSTOM_ORIGINS,
    NUDGE_INDEX_ARG_NAMES,
    NUDGE_METHOD_NAMES,
    VALID_CALL_HEX_PATTERN,
)
from ..exceptions import ConfigurationError, DecodeError, ScheduledCallNotFoundError
from ..logger import get_logger
from ..types import (
    Bytes,
    DispatchOutcome,
    GovernanceDomain,
    InlineCall,
    LegacyCall,
    LookupCall,
    is_tagged,
    parse_bounded_call,
)
from .forcer import get_scheduling_blocks

logger = get_logger(__name__)


class CallType(str, Enum):
    NUDGE = 'nudge'
    EXECUTE = 'execute'


# ══════════════════════════════════════════════════════════════════════
#  MATCHING
# ══════════════════════════════════════════════════════════════════════

def _index_argument(args: Any) -> Optional[int]:
    if isinstance(args, dict):
        for name in NUDGE_INDEX_ARG_NAMES:
            if args.get(name) is not None:
                return _as_int(args[name])
        return None
    if isinstance(args, list) and args:
        first = args[0]
        if isinstance(first, dict) and 'value' in first:
            first = first['value']
        return _as_int(first)
    return None


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _structural_nudge_match(call: Any, referendum_id: int, domain: GovernanceDomain) -> bool:
    """
    Strict shape match for calls the decoder could not handle.

    Accepts ``{type: Pallet, value: {type: method, value: args}}`` and
    ``{pallet/call_module, method/call_function, args/call_args}`` shapes and
    only matches when pallet, method and an explicit index all agree.
    """
    if is_tagged(call) and is_tagged(call.get('value')):
        pallet, method, args = call['type'], call['value']['type'], call['value'].get('value')
    elif isinstance(call, dict):
        pallet = call.get('pallet', call.get('call_module', call.get('section')))
        method = call.get('method', call.get('call_function'))
        args = call.get('args', call.get('call_args'))
    else:
        return False

    if pallet != domain.pallet or method not in NUDGE_METHOD_NAMES:
        return False
    return _index_argument(args) == referendum_id


async def is_nudge_call(
    session: ForkSession,
    call: Any,
    referendum_id: int,
    domain: GovernanceDomain,
) -> bool:
    parsed = parse_bounded_call(call)
    if isinstance(parsed, InlineCall):
        try:
            decoded = await session.client.decode_call(parsed.data)
        except DecodeError as e:
            logger.debug(f"[{session.label}] agenda call not decodable, checking its shape: {e}")
            return _structural_nudge_match(call, referendum_id, domain)
        return (
            decoded.pallet == domain.pallet
            and decoded.method in NUDGE_METHOD_NAMES
            and _index_argument(decoded.args) == referendum_id
        )
    return _structural_nudge_match(call, referendum_id, domain)


def is_execution_call(call: Any, proposal_hash: Optional[str]) -> bool:
    parsed = parse_bounded_call(call)
    if isinstance(parsed, (LookupCall, LegacyCall)):
        return proposal_hash is None or parsed.hash.hex == proposal_hash.lower()
    if isinstance(parsed, InlineCall):
        return proposal_hash is None or parsed.data.hex == proposal_hash.lower()
    return False


async def _matches(
    session: ForkSession,
    item: Dict[str, Any],
    referendum_id: int,
    call_type: CallType,
    domain: GovernanceDomain,
    proposal_hash: Optional[str],
) -> bool:
    call = item.get('call')
    if call_type is CallType.NUDGE:
        return await is_nudge_call(session, call, referendum_id, domain)
    return is_execution_call(call, proposal_hash)


def _maybe_id(item: Dict[str, Any]) -> Any:
    return item.get('maybeId', item.get('maybe_id'))


# ══════════════════════════════════════════════════════════════════════
#  RELOCATION
# ══════════════════════════════════════════════════════════════════════

async def move_scheduled_call(
    session: ForkSession,
    referendum_id: int,
    call_type: CallType,
    domain: GovernanceDomain,
    proposal_hash: Optional[str] = None,
) -> int:
    """
    Moves the agenda slot holding the referendum's *call_type* call to the
    next scheduling block. Returns that block.

    Raises:
        ScheduledCallNotFoundError: no agenda item matched
    """
    call_type = CallType(call_type)
    target = (await get_scheduling_blocks(session, domain)).target
    entries = await session.client.query_entries('Scheduler', 'Agenda')
    slots = {int(key_args[0]): items for key_args, items in entries if key_args and items}

    for source in sorted(slots):
        items = slots[source]
        for position, item in enumerate(items):
            if not isinstance(item, dict):
                continue
            if not await _matches(session, item, referendum_id, call_type, domain, proposal_hash):
                continue

            logger.info(
                f"Found {call_type.value} call for #{referendum_id} at block {source} "
                f"(item {position} of {len(items)})"
            )
            if source == target:
                logger.info(f"{call_type.value.capitalize()} call already scheduled at block {target}")
                return target

            displaced = slots.get(target)
            if displaced:
                logger.warning(f"Relocation overwrites {len(displaced)} item(s) already scheduled at block {target}")

            updates: Dict[str, Any] = {
                'Agenda': [[[source], None], [[target], convert_agenda(items)]],
            }
            task_name = _maybe_id(item)
            if task_name is not None and await session.client.query('Scheduler', 'Lookup', [task_name]) is not None:
                # Keeps the item's index in the moved slot rather than forcing 0; same result for one-item slots.
                updates['Lookup'] = [[[to_plain(task_name)], [target, position]]]

            await session.set_storage({'Scheduler': updates})
            logger.info(f"Moved {call_type.value} call for #{referendum_id} from block {source} to block {target}")
            return target

    raise ScheduledCallNotFoundError(referendum_id, call_type.value)


# ══════════════════════════════════════════════════════════════════════
#  PRE-EXECUTION CALL
# ══════════════════════════════════════════════════════════════════════

def parse_origin_string(origin: Optional[str]) -> Dict[str, str]:
    """
    ``Root`` -> ``{"system": "Root"}``, ``Pallet.Variant`` -> ``{"pallet": "Variant"}``,
    a known custom origin -> ``{"origins": name}``.
    """
    if not origin or origin == 'Root':
        return {'system': 'Root'}
    if '.' in origin:
        pallet, variant = origin.split('.', 1)
        return {pallet[:1].lower() + pallet[1:]: variant}
    if origin in CUSTOM_ORIGINS:
        return {'origins': origin}
    logger.warning(f"Unknown origin {origin!r}, treating it as a system origin")
    return {'system': origin}


def validate_call_hex(call_hex: str, what: str = 'call') -> Bytes:
    """Accepts call data with or without the ``0x`` prefix."""
    if call_hex and not call_hex.startswith('0x'):
        call_hex = '0x' + call_hex
    if not call_hex or not VALID_CALL_HEX_PATTERN.match(call_hex) or len(call_hex) % 2:
        raise ConfigurationError(f"Invalid {what} hex {call_hex!r}: expected an even number of hex digits")
    return Bytes.from_hex(call_hex)


async def execute_pre_call(
    session: ForkSession,
    domain: GovernanceDomain,
    call_hex: str,
    origin: Optional[str] = None,
) -> DispatchOutcome:
    """Schedules *call_hex* with *origin* at the next block, builds it and reports the dispatch."""
    call = validate_call_hex(call_hex, 'pre-call')
    decoded = await session.client.decode_call(call)
    target = (await get_scheduling_blocks(session, domain)).target
    storage_origin = parse_origin_string(origin)

    logger.info(f"Executing pre-call {decoded} as {storage_origin} at block {target}")
    await session.set_storage({
        'Scheduler': {
            'Agenda': [[[target], [{
                'call': {'inline': call.hex},
                'origin': storage_origin,
                'maybeId': None,
                'priority': 0,
                'maybePeriodic': None,
            }]]],
        },
    })
    await session.new_block()

    for event in parse_block_events(await session.client.events()):
        if not event.is_event('Scheduler', 'Dispatched'):
            continue
        data = event.data if isinstance(event.data, dict) else {}
        outcome = interpret_dispatch_result(data.get('result'))
        if outcome.is_failure:
            logger.warning(f"Pre-call {decoded} FAILED: {outcome.message}")
        else:
            logger.info(f"Pre-call {decoded} dispatched ({outcome.outcome.value})")
        return outcome

    logger.warning(f"Pre-call {decoded} produced no Scheduler.Dispatched event")
    return DispatchOutcome.unknown()
