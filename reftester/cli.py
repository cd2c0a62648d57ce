"""
Referenda Tester CLI

Dry-runs Polkadot/Kusama OpenGov and Fellowship referenda on forked chains.

Usage:
    reftester test --governance-chain-url URL[,BLOCK] -r ID
    reftester test --fellowship-chain-url URL -f ID --governance-chain-url URL -r ID
    reftester list --governance-chain-url URL [--status ongoing]
"""

import asyncio
from typing import Optional

import click

from . import __version__
from .config.endpoint import ParsedEndpoint, parse_endpoint, parse_multiple_endpoints
from .config.loader import TesterConfig, load_config
from .exceptions import ReferendaTesterError
from .governance.creator import CreationCalls
from .logger import get_logger, set_log_level
from .network.coordinator import NetworkCoordinator, RunReport, RunRequest
from .report import render_referendum_list, render_run_report
from .types import GovernanceDomain, ReferendumStatus

logger = get_logger(__name__)


def _endpoint(value: Optional[str]) -> Optional[ParsedEndpoint]:
    return parse_endpoint(value) if value else None


def _creation(submit: Optional[str], preimage: Optional[str], domain: str) -> Optional[CreationCalls]:
    if preimage and not submit:
        raise click.UsageError(f"A preimage for the {domain} referendum needs the call to create it")
    return CreationCalls(submit, preimage) if submit else None


def _load(config_path: Optional[str], verbose: bool, port: Optional[int] = None) -> TesterConfig:
    config = load_config(config_path)
    if port is not None:
        config.fork.base_port = port
        config.validate()
    set_log_level('DEBUG' if verbose else config.log_level)
    return config


async def _run_and_hold(coordinator: NetworkCoordinator, request: RunRequest, verbose: bool) -> RunReport:
    report = await coordinator.run(request)
    render_run_report(report, verbose)
    if coordinator.paused_forks:
        for key, fork in coordinator.paused_forks.items():
            logger.info(f"[{key}] {fork.endpoint}")
        logger.info("Forks are left running for inspection. Press Ctrl+C to stop them.")
        try:
            await asyncio.Event().wait()
        finally:
            await coordinator.teardown_paused()
    return report


@click.group()
@click.version_option(version=__version__, prog_name="reftester")
def cli():
    """Dry-run governance referenda on forked Substrate chains."""
    pass


@cli.command("test")
@click.option("--governance-chain-url", help="Governance chain endpoint, optionally 'url,block'")
@click.option("--fellowship-chain-url", help="Fellowship chain endpoint, optionally 'url,block'")
@click.option("-r", "--referendum", type=int, help="Governance referendum id")
@click.option("-f", "--fellowship", type=int, help="Fellowship referendum id")
@click.option("--call-to-create-governance-referendum", help="Hex of the call that submits a governance referendum")
@click.option("--call-to-note-preimage-for-governance-referendum", help="Hex of the call that notes its preimage")
@click.option("--call-to-create-fellowship-referendum", help="Hex of the call that submits a fellowship referendum")
@click.option("--call-to-note-preimage-for-fellowship-referendum", help="Hex of the call that notes its preimage")
@click.option("--pre-call", help="Hex of a call to dispatch before the governance referendum")
@click.option("--pre-origin", help="Origin of the pre-call: Root, Origins.Treasurer, ...")
@click.option("--additional-chains", help="Extra chains to watch for XCM effects: 'url[,block],url[,block]'")
@click.option("-p", "--port", type=int, help="First port for forked chains (default from config)")
@click.option("--no-cleanup", is_flag=True, help="Keep forks running after the test")
@click.option("-v", "--verbose", is_flag=True, help="Debug logging and full event data")
@click.option("--config", "config_path", type=click.Path(dir_okay=False), help="Path to reftester.toml")
def test_command(
    governance_chain_url: Optional[str],
    fellowship_chain_url: Optional[str],
    referendum: Optional[int],
    fellowship: Optional[int],
    call_to_create_governance_referendum: Optional[str],
    call_to_note_preimage_for_governance_referendum: Optional[str],
    call_to_create_fellowship_referendum: Optional[str],
    call_to_note_preimage_for_fellowship_referendum: Optional[str],
    pre_call: Optional[str],
    pre_origin: Optional[str],
    additional_chains: Optional[str],
    port: Optional[int],
    no_cleanup: bool,
    verbose: bool,
    config_path: Optional[str],
):
    """
    Fork the chains, force the referenda through and check they execute.

    Example:
        reftester test --governance-chain-url wss://polkadot.rpc -r 1840
    """
    try:
        config = _load(config_path, verbose, port)
        request = RunRequest(
            governance_endpoint=_endpoint(governance_chain_url),
            fellowship_endpoint=_endpoint(fellowship_chain_url),
            additional_endpoints=parse_multiple_endpoints(additional_chains or ""),
            governance_referendum=referendum,
            fellowship_referendum=fellowship,
            governance_creation=_creation(
                call_to_create_governance_referendum,
                call_to_note_preimage_for_governance_referendum,
                "governance",
            ),
            fellowship_creation=_creation(
                call_to_create_fellowship_referendum,
                call_to_note_preimage_for_fellowship_referendum,
                "fellowship",
            ),
            pre_call=pre_call,
            pre_origin=pre_origin,
            cleanup=not no_cleanup,
        )
        request.validate()
        report = asyncio.run(_run_and_hold(NetworkCoordinator(config), request, verbose))
    except KeyboardInterrupt:
        logger.info("Stopped forks")
        return
    except ReferendaTesterError as e:
        logger.error(str(e))
        raise click.ClickException(str(e))

    if not report.ok:
        raise SystemExit(1)


@cli.command("list")
@click.option("--governance-chain-url", help="Governance chain endpoint, optionally 'url,block'")
@click.option("--fellowship-chain-url", help="Fellowship chain endpoint, optionally 'url,block'")
@click.option(
    "--status",
    type=click.Choice([status.value for status in ReferendumStatus]),
    help="Only list referenda with this status",
)
@click.option("-v", "--verbose", is_flag=True, help="Debug logging")
@click.option("--config", "config_path", type=click.Path(dir_okay=False), help="Path to reftester.toml")
def list_command(
    governance_chain_url: Optional[str],
    fellowship_chain_url: Optional[str],
    status: Optional[str],
    verbose: bool,
    config_path: Optional[str],
):
    """
    List referenda of a chain as 'id,status,track=..,ayes=..' lines.

    Example:
        reftester list --fellowship-chain-url wss://collectives.rpc --status ongoing
    """
    if bool(governance_chain_url) == bool(fellowship_chain_url):
        raise click.UsageError("Give exactly one of --governance-chain-url or --fellowship-chain-url")

    domain = GovernanceDomain.MAIN if governance_chain_url else GovernanceDomain.FELLOWSHIP
    try:
        config = _load(config_path, verbose)
        endpoint = parse_endpoint(governance_chain_url or fellowship_chain_url)
        coordinator = NetworkCoordinator(config)
        records = asyncio.run(coordinator.list_referenda(
            endpoint, domain, ReferendumStatus(status) if status else None,
        ))
    except ReferendaTesterError as e:
        logger.error(str(e))
        raise click.ClickException(str(e))

    render_referendum_list(records)


def main():
    cli()


if __name__ == "__main__":
    main()
