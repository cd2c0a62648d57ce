"""
Storage format conversion.

The chain client hands back enum values as tagged dicts
``{"type": "Inline", "value": Bytes(...)}``; the fork engine's storage
import expects single-key maps ``{"inline": "0x..."}``. These functions
convert one into the other. Anything that is not a tagged value (already
converted maps, primitives, None) passes through unchanged, which makes
every converter idempotent.
"""

from typing import Any, Dict, List, Optional

from ..types import (
    Bytes,
    InlineCall,
    LegacyCall,
    LookupCall,
    Origin,
    is_tagged,
    parse_bounded_call,
)


def to_plain(value: Any) -> Any:
    """Flattens one level of binary payloads into canonical hex."""
    binary = Bytes.coerce(value) if not isinstance(value, str) else None
    if binary is not None:
        return binary.hex
    if isinstance(value, dict):
        return {key: _hex_or_self(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_hex_or_self(item) for item in value]
    return value


def _hex_or_self(value: Any) -> Any:
    binary = Bytes.coerce(value) if not isinstance(value, str) else None
    return binary.hex if binary is not None else value


def convert_origin(origin: Any) -> Any:
    """``{type: "Origins", value: {type: "Treasurer"}}`` -> ``{"origins": "Treasurer"}``."""
    if isinstance(origin, Origin):
        return {origin.kind.lower(): to_plain(origin.variant)}
    if not is_tagged(origin):
        return origin
    parsed = Origin.parse(origin)
    return {parsed.kind.lower(): to_plain(parsed.variant)}


def convert_call(call: Any) -> Any:
    """Converts a ``Bounded<Call>`` (inline, lookup or legacy) into storage format."""
    parsed = parse_bounded_call(call)
    if parsed is None:
        return call
    if isinstance(parsed, InlineCall):
        return {'inline': parsed.data.hex}
    if isinstance(parsed, LookupCall):
        return {'lookup': {'hash': parsed.hash.hex, 'len': parsed.len}}
    if isinstance(parsed, LegacyCall):
        return {'legacy': {'hash': parsed.hash.hex}}
    inner = parsed.value['type'] if is_tagged(parsed.value) else parsed.value
    return {parsed.kind.lower(): to_plain(inner)}


def convert_proposal(proposal: Any) -> Any:
    """Converts a referendum proposal, which is a bounded call like any scheduled one."""
    return convert_call(proposal)


# Chain clients disagree on casing; both spellings are accepted by the storage import.
OPTIONAL_AGENDA_KEYS = ('maybeId', 'maybe_id', 'priority', 'maybePeriodic', 'maybe_periodic')


def convert_agenda_item(item: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not isinstance(item, dict):
        return item
    converted = {
        'call': convert_call(item.get('call')),
        'origin': convert_origin(item.get('origin')),
    }
    for key in OPTIONAL_AGENDA_KEYS:
        if key in item:
            converted[key] = to_plain(item[key])
    return converted


def convert_agenda(agenda: Any) -> Any:
    """Converts a whole agenda slot. Item count and order are preserved, None items kept."""
    if not isinstance(agenda, (list, tuple)):
        return agenda
    return [convert_agenda_item(item) for item in agenda]


__all__ = [
    'convert_agenda',
    'convert_agenda_item',
    'convert_call',
    'convert_origin',
    'convert_proposal',
    'to_plain',
]
