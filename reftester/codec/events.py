"""
Block event parsing.

Chain clients report events in a handful of shapes; ``parse_block_event``
turns any of them into a ``ParsedEvent``.
"""

from typing import Any, Iterable, List

from ..types import ParsedEvent, is_tagged
from .dispatch_result import to_json


def parse_block_event(record: Any) -> ParsedEvent:
    if isinstance(record, ParsedEvent):
        return record
    if not isinstance(record, dict):
        return ParsedEvent('unknown', 'unknown', record)

    if 'module_id' in record and 'event_id' in record:
        return ParsedEvent(str(record['module_id']), str(record['event_id']), record.get('attributes'))

    if 'section' in record and 'method' in record:
        return ParsedEvent(str(record['section']), str(record['method']), record.get('data'))

    if 'event' in record:
        return parse_block_event(record['event'])

    if is_tagged(record):
        inner = record.get('value')
        if is_tagged(inner):
            return ParsedEvent(record['type'], inner['type'], inner.get('value'))
        return ParsedEvent(record['type'], 'unknown', inner)

    return ParsedEvent('unknown', 'unknown', record)


def parse_block_events(records: Iterable[Any]) -> List[ParsedEvent]:
    return [parse_block_event(record) for record in records]


def describe_event(event: ParsedEvent, limit: int = 240) -> str:
    """One-line rendering of an event for logs and reports."""
    if event.data is None:
        return event.name
    payload = to_json(event.data)
    if len(payload) > limit:
        payload = payload[:limit - 3] + '...'
    return f"{event.name} {payload}"
