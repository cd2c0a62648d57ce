"""
Referendum dry-run engine

Provides:
  - fetch_referendum / list_referenda             (fetcher.py)
  - get_scheduling_blocks / apply_passing_state   (forcer.py)
  - move_scheduled_call / execute_pre_call        (scheduler.py)
  - check_execution_results                       (verifier.py)
  - create_referendum / storage injections        (creator.py)
  - simulate_referendum                           (simulator.py)
"""

from .creator import (
    CreationCalls,
    create_referendum,
    fellowship_injection,
    funded_account_injection,
    merge_injections,
)
from .fetcher import fetch_referendum, list_referenda, parse_referendum_info
from .forcer import (
    ForcedReferendum,
    SchedulingBlocks,
    apply_passing_state,
    get_scheduling_blocks,
)
from .scheduler import (
    CallType,
    execute_pre_call,
    move_scheduled_call,
    parse_origin_string,
)
from .simulator import simulate_referendum
from .verifier import ExecutionVerdict, check_execution_results

__all__ = [
    # Fetching
    "fetch_referendum",
    "list_referenda",
    "parse_referendum_info",
    # Forcing
    "ForcedReferendum",
    "SchedulingBlocks",
    "apply_passing_state",
    "get_scheduling_blocks",
    # Scheduler
    "CallType",
    "execute_pre_call",
    "move_scheduled_call",
    "parse_origin_string",
    # Verification
    "ExecutionVerdict",
    "check_execution_results",
    # Creation
    "CreationCalls",
    "create_referendum",
    "fellowship_injection",
    "funded_account_injection",
    "merge_injections",
    # Simulation
    "simulate_referendum",
]
