"""
Configuration Test Suite

Coverage:
  - Endpoint parsing (url, url+block, endpoint lists)
  - reftester.toml loading, defaults, environment overrides, validation
  - Chain identification from runtime spec names
"""

import os
import sys

import pytest

# ── Path setup ────────────────────────────────────────────────────────
ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from reftester.chain.registry import describe_chain, detect_chain, relay_network_key
from reftester.config.endpoint import ParsedEndpoint, parse_endpoint, parse_multiple_endpoints
from reftester.config.loader import TesterConfig, load_config
from reftester.exceptions import ChainConnectionError, ConfigurationError
from reftester.types import ChainKind, ChainNetwork

from tests.fakes import FakeChain


ENV_VARS = (
    'REFTESTER_CONFIG',
    'REFTESTER_CHOPSTICKS_COMMAND',
    'REFTESTER_FORK_HOST',
    'REFTESTER_BASE_PORT',
    'REFTESTER_FORK_DB',
    'REFTESTER_BLOCK_TIMEOUT',
    'REFTESTER_STARTUP_TIMEOUT',
    'REFTESTER_LOG_LEVEL',
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


# ══════════════════════════════════════════════════════════════════════
#  ENDPOINTS
# ══════════════════════════════════════════════════════════════════════

class TestParseEndpoint:

    def test_url_only(self):
        assert parse_endpoint('wss://polkadot.rpc') == ParsedEndpoint('wss://polkadot.rpc')

    def test_url_with_block(self):
        endpoint = parse_endpoint(' wss://polkadot.rpc , 21000000 ')
        assert endpoint.url == 'wss://polkadot.rpc'
        assert endpoint.block == 21000000
        assert str(endpoint) == 'wss://polkadot.rpc,21000000'

    @pytest.mark.parametrize('value', ['', '   ', 'wss://a,1,2', 'wss://a,abc', 'wss://a,-5', ',5'])
    def test_invalid(self, value):
        with pytest.raises(ConfigurationError):
            parse_endpoint(value)


class TestParseMultipleEndpoints:

    def test_blocks_attach_to_previous_url(self):
        endpoints = parse_multiple_endpoints('wss://a,100,wss://b,wss://c,42')
        assert endpoints == [
            ParsedEndpoint('wss://a', 100),
            ParsedEndpoint('wss://b'),
            ParsedEndpoint('wss://c', 42),
        ]

    def test_empty(self):
        assert parse_multiple_endpoints('') == []

    def test_leading_block_rejected(self):
        with pytest.raises(ConfigurationError):
            parse_multiple_endpoints('100,wss://a')

    def test_second_block_rejected(self):
        with pytest.raises(ConfigurationError):
            parse_multiple_endpoints('wss://a,1,2')


# ══════════════════════════════════════════════════════════════════════
#  TOML CONFIG
# ══════════════════════════════════════════════════════════════════════

class TestTesterConfig:

    def test_missing_file_gives_defaults(self, tmp_path):
        config = TesterConfig.from_file(str(tmp_path / 'absent.toml'))
        assert config.fork.base_port == 8000
        assert config.fork.build_block_mode == 'manual'
        assert config.polling.block_timeout == 10.0
        assert config.log_level == 'INFO'

    def test_loads_sections(self, tmp_path):
        path = tmp_path / 'reftester.toml'
        path.write_text(
            '[fork]\n'
            'command = "chopsticks"\n'
            'base_port = 9100\n'
            'db = ""\n'
            '\n'
            '[polling]\n'
            'block_timeout = 30.0\n'
            '\n'
            '[logging]\n'
            'level = "DEBUG"\n'
        )
        config = load_config(str(path))
        assert config.fork.command_args == ['chopsticks']
        assert config.fork.base_port == 9100
        assert config.fork.db is None
        assert config.polling.block_timeout == 30.0
        assert config.log_level == 'DEBUG'

    def test_env_overrides_file(self, tmp_path, monkeypatch):
        path = tmp_path / 'reftester.toml'
        path.write_text('[fork]\nbase_port = 9100\n')
        monkeypatch.setenv('REFTESTER_BASE_PORT', '9200')
        monkeypatch.setenv('REFTESTER_BLOCK_TIMEOUT', '2.5')
        config = load_config(str(path))
        assert config.fork.base_port == 9200
        assert config.polling.block_timeout == 2.5

    def test_config_path_from_env(self, tmp_path, monkeypatch):
        path = tmp_path / 'custom.toml'
        path.write_text('[logging]\nlevel = "WARNING"\n')
        monkeypatch.setenv('REFTESTER_CONFIG', str(path))
        assert load_config().log_level == 'WARNING'

    def test_invalid_toml(self, tmp_path):
        path = tmp_path / 'broken.toml'
        path.write_text('[fork\nbase_port = 1\n')
        with pytest.raises(ConfigurationError):
            TesterConfig.from_file(str(path))

    @pytest.mark.parametrize('body', [
        '[fork]\nbase_port = 70000\n',
        '[fork]\nbuild_block_mode = "sometimes"\n',
        '[fork]\ncommand = ""\n',
        '[polling]\nblock_timeout = 0\n',
        '[logging]\nlevel = "LOUD"\n',
    ])
    def test_validation(self, tmp_path, body):
        path = tmp_path / 'reftester.toml'
        path.write_text(body)
        with pytest.raises(ConfigurationError):
            load_config(str(path))

    def test_to_dict(self):
        data = TesterConfig().to_dict()
        assert data['fork']['base_port'] == 8000
        assert data['logging'] == {'level': 'INFO'}


# ══════════════════════════════════════════════════════════════════════
#  CHAIN REGISTRY
# ══════════════════════════════════════════════════════════════════════

class TestDescribeChain:

    def test_relay(self):
        chain = describe_chain('polkadot', 'wss://polkadot.rpc', 5)
        assert chain.kind is ChainKind.RELAY
        assert chain.network is ChainNetwork.POLKADOT
        assert chain.block == 5

    def test_system_parachain(self):
        chain = describe_chain('collectives-polkadot', 'wss://collectives.rpc')
        assert chain.kind is ChainKind.PARACHAIN
        assert chain.network is ChainNetwork.POLKADOT
        assert chain.label == 'collectives-polkadot'

    def test_label_normalised(self):
        chain = describe_chain('asset_hub_kusama', 'wss://ah.rpc')
        assert chain.label == 'asset-hub-kusama'
        assert chain.network is ChainNetwork.KUSAMA

    def test_unknown_network(self):
        chain = describe_chain('moonbeam', 'wss://moonbeam.rpc')
        assert chain.network is ChainNetwork.UNKNOWN
        assert not chain.is_relay


class TestRelayNetworkKey:

    def test_wired_networks(self):
        assert relay_network_key(ChainNetwork.POLKADOT) == 'polkadot'
        assert relay_network_key(ChainNetwork.KUSAMA) == 'kusama'

    def test_other_relays_fall_back(self):
        assert relay_network_key(ChainNetwork.PASEO) == 'relay'


class FailingChain(FakeChain):

    async def spec_name(self) -> str:
        raise ChainConnectionError('connection refused')


class TestDetectChain:

    @pytest.mark.asyncio
    async def test_detects(self):
        chain = await detect_chain(FakeChain(spec_name='kusama'), 'wss://kusama.rpc')
        assert chain.is_relay
        assert chain.network is ChainNetwork.KUSAMA

    @pytest.mark.asyncio
    async def test_failure_gives_unknown_parachain(self):
        chain = await detect_chain(FailingChain(), 'wss://down.rpc', 7)
        assert chain.network is ChainNetwork.UNKNOWN
        assert chain.kind is ChainKind.PARACHAIN
        assert chain.block == 7
