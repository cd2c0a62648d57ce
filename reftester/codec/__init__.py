"""
Conversions between chain-client values and fork storage values.
"""

from .dispatch_result import format_dispatch_error, interpret_dispatch_result
from .events import describe_event, parse_block_event, parse_block_events
from .format_converter import (
    convert_agenda,
    convert_call,
    convert_origin,
    convert_proposal,
)

__all__ = [
    'convert_agenda',
    'convert_call',
    'convert_origin',
    'convert_proposal',
    'describe_event',
    'format_dispatch_error',
    'interpret_dispatch_result',
    'parse_block_event',
    'parse_block_events',
]
