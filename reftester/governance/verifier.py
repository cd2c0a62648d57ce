"""
Execution Verifier: decides from block events whether a proposal executed.
"""

from dataclasses import dataclass, field
from typing import Any, Iterable, List, Optional

from ..codec.dispatch_result import format_dispatch_error, interpret_dispatch_result
from ..codec.events import describe_event
from ..logger import get_logger
from ..types import ParsedEvent

logger = get_logger(__name__)


@dataclass
class ExecutionVerdict:
    execution_succeeded: bool
    errors: List[str] = field(default_factory=list)
    dispatched: int = 0


def _event_fields(event: ParsedEvent) -> dict:
    data = event.data
    if isinstance(data, dict) and set(data) == {'value'}:
        data = data['value']
    return data if isinstance(data, dict) else {}


def task_block(event: ParsedEvent) -> Optional[int]:
    """Block component of a Scheduler event's ``task`` (block, index) tuple."""
    task = _event_fields(event).get('task')
    if isinstance(task, (list, tuple)) and task:
        try:
            return int(task[0])
        except (TypeError, ValueError):
            return None
    return None


def check_execution_results(
    events: Iterable[ParsedEvent],
    referendum_id: int,
    expected_block: Optional[int] = None,
) -> ExecutionVerdict:
    """
    Classifies the events of the execution block.

    Only ``Scheduler.Dispatched`` events for *expected_block* (when given)
    count. Execution succeeded iff at least one of them succeeded, none failed
    and no extrinsic failed in the block.
    """
    successes = 0
    failures: List[str] = []
    unknown = 0
    extrinsic_failures: List[str] = []

    for event in events:
        logger.debug(f"  {describe_event(event)}")

        if event.is_event('System', 'ExtrinsicFailed'):
            fields = _event_fields(event)
            error: Any = fields.get('dispatch_error', fields.get('dispatchError', event.data))
            extrinsic_failures.append(f"ExtrinsicFailed: {format_dispatch_error(error)}")
            continue

        if event.is_event('Scheduler', 'Scheduled'):
            when = _event_fields(event).get('when')
            logger.info(f"Referendum #{referendum_id} scheduled a future task at block {when}")
            continue

        if not event.is_event('Scheduler', 'Dispatched'):
            continue

        block = task_block(event)
        if expected_block is not None and block != expected_block:
            logger.info(
                f"Ignoring Scheduler.Dispatched for task at block {block}, expected block {expected_block}"
            )
            continue

        outcome = interpret_dispatch_result(_event_fields(event).get('result'))
        if outcome.is_success:
            successes += 1
        elif outcome.is_failure:
            failures.append(outcome.message or 'Scheduler dispatch failed')
        else:
            unknown += 1

    errors = failures + extrinsic_failures
    if errors:
        for error in errors:
            logger.error(f"Referendum #{referendum_id}: {error}")
        return ExecutionVerdict(False, errors, successes + len(failures) + unknown)

    if successes:
        logger.info(f"Referendum #{referendum_id} executed successfully ({successes} dispatch(es))")
        return ExecutionVerdict(True, [], successes + unknown)

    if unknown:
        where = f" for block {expected_block}" if expected_block is not None else ""
        message = f"Scheduler.Dispatched result{where} could not be interpreted"
    elif expected_block is not None:
        message = (
            f"No Scheduler.Dispatched event found for block {expected_block} - "
            f"proposal execution did not happen"
        )
    else:
        message = "No Scheduler.Dispatched event found - referendum was not executed"
    logger.error(f"Referendum #{referendum_id}: {message}")
    return ExecutionVerdict(False, [message], unknown)
