"""
Console report for dry runs and referendum listings.
"""

from typing import Iterable, List, Optional

from rich import box
from rich.console import Console
from rich.table import Table

from .codec.dispatch_result import to_json
from .codec.events import describe_event
from .network.coordinator import ChainEvents, RunReport
from .types import FellowshipTally, GovernanceTally, ReferendumRecord, SimulationOutcome

console = Console()

STATUS_COLORS = {
    'ongoing': 'yellow',
    'approved': 'green',
    'rejected': 'red',
    'cancelled': 'dim',
    'timedout': 'dim',
    'killed': 'red',
}


def referendum_line(record: ReferendumRecord) -> str:
    """``id,status[,track=..][,ayes=..][,nays=..][,support=..][,bareAyes=..]``"""
    parts = [str(record.id), record.status.value]
    if record.track is not None:
        parts.append(f"track={record.track}")
    tally = record.tally
    if tally is not None:
        parts.append(f"ayes={tally.ayes}")
        parts.append(f"nays={tally.nays}")
        if isinstance(tally, GovernanceTally):
            parts.append(f"support={tally.support}")
        elif isinstance(tally, FellowshipTally):
            parts.append(f"bareAyes={tally.bare_ayes}")
    return ','.join(parts)


def render_referendum_list(records: Iterable[ReferendumRecord], out: Optional[Console] = None) -> List[str]:
    """Prints one machine-readable line per referendum and returns the lines."""
    out = out or console
    lines = [referendum_line(record) for record in records]
    for line in lines:
        out.print(line, highlight=False, markup=False, soft_wrap=True)
    return lines


def referendum_table(record: ReferendumRecord, title: str) -> Table:
    table = Table(title=title, box=box.ROUNDED, show_header=False)
    table.add_column("Field", style="cyan", no_wrap=True)
    table.add_column("Value", style="white")
    color = STATUS_COLORS.get(record.status.value, 'white')
    table.add_row("Status", f"[{color}]{record.status.value.upper()}[/]")
    table.add_row("Track", f"{record.track_name or record.track} ({record.track})" if record.track is not None else "-")
    table.add_row("Origin", str(record.origin) if record.origin is not None else "-")
    table.add_row("Proposal", f"{record.proposal_kind} {record.proposal_hash or ''}".strip())
    table.add_row("Submitted", str(record.submitted_at) if record.submitted_at is not None else "-")
    if record.tally is not None:
        table.add_row("Tally", to_json(record.tally.to_storage()))
    return table


def outcome_table(outcomes: Iterable[SimulationOutcome]) -> Table:
    table = Table(title="Simulation Results", box=box.ROUNDED, show_lines=True)
    table.add_column("Referendum", style="cyan", no_wrap=True)
    table.add_column("Domain")
    table.add_column("Result")
    table.add_column("Block", justify="right")
    table.add_column("Errors", style="red", max_width=80)
    for outcome in outcomes:
        result = "[bold green]EXECUTED[/]" if outcome.passed else "[bold red]FAILED[/]"
        block = str(outcome.executed_block) if outcome.executed_block is not None else "-"
        table.add_row(f"#{outcome.referendum_id}", outcome.domain.value, result, block, "\n".join(outcome.errors))
    return table


def events_table(chain_events: ChainEvents, verbose: bool = False) -> Table:
    table = Table(
        title=f"{chain_events.label} [{chain_events.key}] block #{chain_events.block}",
        box=box.ROUNDED,
    )
    table.add_column("#", justify="right", style="dim")
    table.add_column("Event", style="cyan")
    if verbose:
        table.add_column("Data", max_width=100)
    for index, event in enumerate(chain_events.events):
        if verbose:
            table.add_row(str(index), event.name, describe_event(event)[len(event.name):].strip())
        else:
            table.add_row(str(index), event.name)
    return table


def render_run_report(report: RunReport, verbose: bool = False, out: Optional[Console] = None) -> None:
    out = out or console
    for domain, record in report.referenda.items():
        out.print(referendum_table(record, f"{domain.pallet} #{record.id}"))
    for outcome in report.outcomes:
        if verbose and outcome.events:
            out.print(events_table(
                ChainEvents(outcome.domain.value, outcome.domain.value, outcome.executed_block or 0, outcome.events),
                verbose,
            ))
    for chain_events in report.chain_events:
        out.print(events_table(chain_events, verbose))
    if report.outcomes:
        out.print(outcome_table(report.outcomes))
