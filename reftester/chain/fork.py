"""
Fork Engine: ephemeral chain replicas

Forks are served by Chopsticks (https://github.com/AcalaNetwork/chopsticks)
running as a child process. Each fork is driven over its JSON-RPC endpoint:

    dev_newBlock            build one block, optionally with extrinsics
    dev_setStorage          bulk storage import
    dev_setBlockBuildMode   switch between manual and instant building
    chain_getHeader         current head

When a relay chain is part of the topology, the relay and every parachain
run in one ``chopsticks xcm`` process so that XCM messages are routed
between them when blocks are built.
"""

import asyncio
import itertools
import tempfile
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import httpx
import yaml

from ..config.loader import ForkSettings, PollingSettings
from ..constants import FALLBACK_RELAY_KEY, JS_MAX_SAFE_INTEGER, WIRED_RELAY_KEYS
from ..exceptions import ForkEngineError, ForkTimeoutError
from ..logger import get_logger
from ..types import Bytes

logger = get_logger(__name__)

RPC_TIMEOUT = 60.0
PROCESS_STOP_TIMEOUT = 10.0


def to_json_safe(value: Any) -> Any:
    """Prepares a storage batch for the fork engine's JSON parser."""
    if value is None or isinstance(value, bool):
        return value
    if isinstance(value, int):
        return str(value) if abs(value) > JS_MAX_SAFE_INTEGER else value
    if isinstance(value, Bytes):
        return value.hex
    if isinstance(value, (bytes, bytearray)):
        return '0x' + bytes(value).hex()
    if isinstance(value, dict):
        return {str(key): to_json_safe(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_json_safe(item) for item in value]
    return value


def is_relay_key(key: str) -> bool:
    return key in WIRED_RELAY_KEYS or key == FALLBACK_RELAY_KEY


# ══════════════════════════════════════════════════════════════════════
#  FORK CONFIG
# ══════════════════════════════════════════════════════════════════════

@dataclass
class ForkConfig:
    """What to fork and how. Rendered to a Chopsticks YAML config."""
    endpoint: str
    block: Optional[int] = None
    import_storage: Dict[str, Any] = field(default_factory=dict)
    build_block_mode: str = 'manual'
    runtime_log_level: int = 0
    db: Optional[str] = None
    mock_signature_host: bool = True
    allow_unresolved_imports: bool = True

    def to_chopsticks(self, port: int) -> Dict[str, Any]:
        config: Dict[str, Any] = {
            'endpoint': self.endpoint,
            'port': port,
            'build-block-mode': self.build_block_mode.capitalize(),
            'mock-signature-host': self.mock_signature_host,
            'allow-unresolved-imports': self.allow_unresolved_imports,
            'runtime-log-level': self.runtime_log_level,
        }
        if self.block is not None:
            config['block'] = self.block
        if self.db:
            config['db'] = self.db
        if self.import_storage:
            config['import-storage'] = to_json_safe(self.import_storage)
        return config


# ══════════════════════════════════════════════════════════════════════
#  FORK  (Abstract)
# ══════════════════════════════════════════════════════════════════════

class Fork(ABC):
    """A running, mutable chain replica."""

    key: str
    endpoint: str

    @abstractmethod
    async def new_block(self, transactions: Optional[List[str]] = None) -> None:
        """Asks the engine for one block. The head may advance after this returns."""
        ...

    @abstractmethod
    async def set_storage(self, updates: Dict[str, Any]) -> None:
        """Applies ``{pallet: {item: [[key, value], ...]}}`` to the head state."""
        ...

    @abstractmethod
    async def head_number(self) -> int:
        ...

    @abstractmethod
    async def pause(self) -> None:
        """Leaves the fork running for manual inspection."""
        ...

    @abstractmethod
    async def teardown(self) -> None:
        ...


class ForkEngine(ABC):
    """Creates forks for a topology, keyed by network key."""

    @abstractmethod
    async def setup(self, configs: Dict[str, ForkConfig]) -> Dict[str, Fork]:
        ...


# ══════════════════════════════════════════════════════════════════════
#  CHOPSTICKS
# ══════════════════════════════════════════════════════════════════════

class ChopsticksProcess:
    """A Chopsticks child process, shared by every fork it serves."""

    def __init__(self, name: str, args: List[str], log_path: Path):
        self.name = name
        self.args = args
        self.log_path = log_path
        self._proc: Optional[asyncio.subprocess.Process] = None
        self._refs = 0

    async def start(self) -> None:
        logger.info(f"Starting chopsticks [{self.name}]: {' '.join(self.args)}")
        log_file = open(self.log_path, 'ab')
        try:
            self._proc = await asyncio.create_subprocess_exec(
                *self.args,
                stdout=log_file,
                stderr=asyncio.subprocess.STDOUT,
            )
        except FileNotFoundError as e:
            raise ForkEngineError(f"Cannot start chopsticks ({self.args[0]} not found): {e}") from e
        finally:
            log_file.close()

    @property
    def running(self) -> bool:
        return self._proc is not None and self._proc.returncode is None

    @property
    def returncode(self) -> Optional[int]:
        return self._proc.returncode if self._proc else None

    def acquire(self) -> None:
        self._refs += 1

    async def release(self) -> None:
        self._refs -= 1
        if self._refs <= 0:
            await self.stop()

    async def stop(self) -> None:
        if not self.running:
            return
        self._proc.terminate()
        try:
            await asyncio.wait_for(self._proc.wait(), timeout=PROCESS_STOP_TIMEOUT)
        except asyncio.TimeoutError:
            logger.warning(f"chopsticks [{self.name}] did not stop, killing it")
            self._proc.kill()
            await self._proc.wait()
        logger.debug(f"chopsticks [{self.name}] exited with {self._proc.returncode}")


class ChopsticksFork(Fork):
    """One chain served by a Chopsticks process, driven over HTTP JSON-RPC."""

    def __init__(
        self,
        key: str,
        host: str,
        port: int,
        process: Optional[ChopsticksProcess] = None,
        http: Optional[httpx.AsyncClient] = None,
    ):
        self.key = key
        self.endpoint = f"ws://{host}:{port}"
        self.process = process
        self._http = http or httpx.AsyncClient(base_url=f"http://{host}:{port}", timeout=RPC_TIMEOUT)
        self._ids = itertools.count(1)
        self._closed = False
        if process is not None:
            process.acquire()

    async def _rpc(self, method: str, params: Optional[List[Any]] = None) -> Any:
        payload = {'jsonrpc': '2.0', 'id': next(self._ids), 'method': method, 'params': params or []}
        try:
            response = await self._http.post('/', json=payload)
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPError as e:
            raise ForkEngineError(f"[{self.key}] {method} failed: {e}") from e
        except ValueError as e:
            raise ForkEngineError(f"[{self.key}] {method} returned invalid JSON: {e}") from e

        if body.get('error'):
            raise ForkEngineError(f"[{self.key}] {method} error: {body['error']}")
        return body.get('result')

    async def new_block(self, transactions: Optional[List[str]] = None) -> None:
        params: Dict[str, Any] = {'count': 1}
        if transactions:
            params['transactions'] = list(transactions)
        await self._rpc('dev_newBlock', [params])

    async def set_storage(self, updates: Dict[str, Any]) -> None:
        await self._rpc('dev_setStorage', [to_json_safe(updates)])

    async def head_number(self) -> int:
        header = await self._rpc('chain_getHeader')
        if not header:
            raise ForkEngineError(f"[{self.key}] chain_getHeader returned no header")
        return int(header['number'], 16)

    async def pause(self) -> None:
        await self._rpc('dev_setBlockBuildMode', ['Instant'])
        await self._http.aclose()
        self._closed = True
        logger.info(f"Fork [{self.key}] left running at {self.endpoint}")

    async def teardown(self) -> None:
        if not self._closed:
            await self._http.aclose()
            self._closed = True
        if self.process is not None:
            await self.process.release()


class ChopsticksEngine(ForkEngine):
    """
    Starts Chopsticks processes for a set of fork configs.

    A relay key in the topology selects ``chopsticks xcm`` with the relay
    passed as ``-r`` and every non-relay fork as ``-p``. Without a relay
    each fork gets its own process.
    """

    def __init__(self, settings: ForkSettings, polling: PollingSettings):
        self.settings = settings
        self.polling = polling

    def _write_config(self, workdir: Path, key: str, config: ForkConfig, port: int) -> Path:
        path = workdir / f"{key}.yml"
        with open(path, 'w') as f:
            yaml.safe_dump(config.to_chopsticks(port), f, sort_keys=False)
        return path

    def _plan(self, configs: Dict[str, ForkConfig]) -> List[List[str]]:
        """Groups fork keys by process; a group led by a relay key is an XCM network."""
        relay_keys = [key for key in configs if is_relay_key(key)]
        parachain_keys = [key for key in configs if not is_relay_key(key)]
        if not relay_keys:
            return [[key] for key in parachain_keys]
        if len(relay_keys) > 1:
            logger.warning(
                f"Only one relay chain can be wired; forking {', '.join(relay_keys[1:])} without XCM routing"
            )
        return [[relay_keys[0], *parachain_keys]] + [[key] for key in relay_keys[1:]]

    async def setup(self, configs: Dict[str, ForkConfig]) -> Dict[str, Fork]:
        workdir = Path(tempfile.mkdtemp(prefix='reftester-'))
        ports = itertools.count(self.settings.base_port)
        forks: Dict[str, ChopsticksFork] = {}
        processes: List[ChopsticksProcess] = []

        try:
            for group in self._plan(configs):
                assigned = {key: next(ports) for key in group}
                paths = {key: self._write_config(workdir, key, configs[key], assigned[key]) for key in group}

                args = list(self.settings.command_args)
                if is_relay_key(group[0]) and len(group) > 1:
                    args += ['xcm', '-r', str(paths[group[0]])]
                    for key in group[1:]:
                        args += ['-p', str(paths[key])]
                else:
                    args += ['--config', str(paths[group[0]])]

                process = ChopsticksProcess('+'.join(group), args, workdir / f"{group[0]}.log")
                await process.start()
                processes.append(process)
                for key in group:
                    forks[key] = ChopsticksFork(key, self.settings.host, assigned[key], process)

            for key, fork in forks.items():
                await self._wait_until_serving(fork)
        except BaseException:
            for fork in forks.values():
                await fork.teardown()
            for process in processes:
                await process.stop()
            raise

        return dict(forks)

    async def _wait_until_serving(self, fork: ChopsticksFork) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.polling.startup_timeout
        while True:
            if fork.process is not None and not fork.process.running:
                raise ForkEngineError(
                    f"chopsticks for [{fork.key}] exited with code {fork.process.returncode}, "
                    f"see {fork.process.log_path}"
                )
            try:
                head = await fork.head_number()
            except ForkEngineError:
                if loop.time() >= deadline:
                    raise ForkTimeoutError(
                        f"Fork [{fork.key}] not serving after {self.polling.startup_timeout:.0f}s"
                    )
                await asyncio.sleep(self.polling.ready_delay)
                continue
            logger.info(f"Fork [{fork.key}] serving at {fork.endpoint}, head #{head}")
            return
