"""
CLI & Report Test Suite

Coverage:
  - Machine-readable referendum list lines
  - Run report rendering
  - Command line validation
"""

import io
import os
import sys

import pytest
from click.testing import CliRunner
from rich.console import Console

# ── Path setup ────────────────────────────────────────────────────────
ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from reftester.cli import cli
from reftester.network.coordinator import ChainEvents, RunReport
from reftester.report import referendum_line, render_referendum_list, render_run_report
from reftester.types import (
    FellowshipTally,
    GovernanceDomain,
    GovernanceTally,
    ParsedEvent,
    ReferendumRecord,
    ReferendumStatus,
    SimulationOutcome,
)


def make_console():
    return Console(file=io.StringIO(), width=200, color_system=None)


# ══════════════════════════════════════════════════════════════════════
#  REPORT
# ══════════════════════════════════════════════════════════════════════

class TestReferendumLine:

    def test_ongoing_governance(self):
        record = ReferendumRecord(1840, ReferendumStatus.ONGOING, track=0, tally=GovernanceTally(5, 1, 3))
        assert referendum_line(record) == '1840,ongoing,track=0,ayes=5,nays=1,support=3'

    def test_ongoing_fellowship(self):
        record = ReferendumRecord(12, ReferendumStatus.ONGOING, track=3, tally=FellowshipTally(2, 9, 0))
        assert referendum_line(record) == '12,ongoing,track=3,ayes=9,nays=0,bareAyes=2'

    def test_terminal(self):
        assert referendum_line(ReferendumRecord(7, ReferendumStatus.TIMEDOUT)) == '7,timedout'


class TestRenderReferendumList:

    def test_prints_one_line_per_record(self):
        console = make_console()
        lines = render_referendum_list([
            ReferendumRecord(1, ReferendumStatus.APPROVED),
            ReferendumRecord(2, ReferendumStatus.REJECTED),
        ], console)
        assert lines == ['1,approved', '2,rejected']
        assert console.file.getvalue().splitlines() == lines


class TestRenderRunReport:

    def test_renders_outcomes_and_events(self):
        report = RunReport(
            outcomes=[SimulationOutcome(
                7, GovernanceDomain.MAIN, success=True, execution_succeeded=False,
                executed_block=103, errors=['BadOrigin'],
            )],
            referenda={GovernanceDomain.MAIN: ReferendumRecord(7, ReferendumStatus.ONGOING, track=0)},
            chain_events=[ChainEvents('asset-hub-polkadot', 'additional_0', 12, [
                ParsedEvent('MessageQueue', 'Processed', {'success': True}),
            ])],
        )
        console = make_console()
        render_run_report(report, verbose=True, out=console)
        output = console.file.getvalue()
        assert 'FAILED' in output
        assert 'BadOrigin' in output
        assert 'MessageQueue.Processed' in output
        assert not report.ok


# ══════════════════════════════════════════════════════════════════════
#  COMMAND LINE
# ══════════════════════════════════════════════════════════════════════

class TestCommandLine:

    @pytest.fixture(autouse=True)
    def isolated(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        monkeypatch.delenv('REFTESTER_CONFIG', raising=False)

    def test_test_requires_a_referendum(self):
        result = CliRunner().invoke(cli, ['test', '--governance-chain-url', 'wss://polkadot'])
        assert result.exit_code == 1
        assert 'At least one referendum' in result.output

    def test_pre_origin_requires_pre_call(self):
        result = CliRunner().invoke(cli, [
            'test', '--governance-chain-url', 'wss://polkadot', '-r', '1', '--pre-origin', 'Root',
        ])
        assert result.exit_code == 1
        assert '--pre-origin requires --pre-call' in result.output

    def test_preimage_without_submit(self):
        result = CliRunner().invoke(cli, [
            'test', '--governance-chain-url', 'wss://polkadot',
            '--call-to-note-preimage-for-governance-referendum', '0x00',
        ])
        assert result.exit_code == 2

    def test_invalid_endpoint_block(self):
        result = CliRunner().invoke(cli, ['test', '--governance-chain-url', 'wss://polkadot,abc', '-r', '1'])
        assert result.exit_code == 1
        assert 'Invalid block number' in result.output

    def test_list_requires_exactly_one_chain(self):
        result = CliRunner().invoke(cli, ['list'])
        assert result.exit_code == 2
        result = CliRunner().invoke(cli, [
            'list', '--governance-chain-url', 'wss://a', '--fellowship-chain-url', 'wss://b',
        ])
        assert result.exit_code == 2

    def test_list_rejects_unknown_status(self):
        result = CliRunner().invoke(cli, ['list', '--governance-chain-url', 'wss://a', '--status', 'paused'])
        assert result.exit_code == 2
