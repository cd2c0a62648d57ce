"""
Chain Client: typed access to (forked) chain state

Every value leaving a client is normalised once, here:
  - single-variant enum dicts become tagged values ``{"type", "value"}``
  - ``0x`` strings and raw bytes become ``Bytes``
  - tuples become lists

Everything downstream (codec, governance) relies on that representation
and never re-detects binary or enum shapes itself.
"""

import asyncio
import re
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable, List, Optional, Sequence, Tuple

from scalecodec.base import ScaleBytes
from scalecodec.exceptions import RemainingScaleBytesNotEmptyException
from substrateinterface import Keypair, SubstrateInterface
from substrateinterface.exceptions import StorageFunctionNotFound, SubstrateRequestException
from websocket import WebSocketException

from ..config.loader import PollingSettings
from ..constants import DEV_ACCOUNT_URI
from ..exceptions import ChainConnectionError, DecodeError, ForkTimeoutError, NotFoundError
from ..logger import get_logger
from ..types import Bytes, DecodedCall, is_tagged, tagged

logger = get_logger(__name__)

_HEX_RE = re.compile(r'^0x(?:[0-9a-fA-F]{2})*$')

# Enum variants that metadata declares in lower case.
LOWERCASE_VARIANTS = ('system',)


def _is_variant_name(key: Any) -> bool:
    return isinstance(key, str) and bool(key) and (key[0].isupper() or key in LOWERCASE_VARIANTS)


def normalize_chain_value(value: Any) -> Any:
    """Converts a decoded SCALE value into the tagged/Bytes representation."""
    if isinstance(value, dict):
        if len(value) == 1:
            (key, inner), = value.items()
            if _is_variant_name(key):
                return tagged(key, normalize_chain_value(inner))
        return {key: normalize_chain_value(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [normalize_chain_value(item) for item in value]
    if isinstance(value, (bytes, bytearray)):
        return Bytes(bytes(value))
    if isinstance(value, str) and len(value) > 2 and _HEX_RE.match(value):
        return Bytes.from_hex(value)
    return value


def to_client_param(value: Any) -> Any:
    """
    Inverse of ``normalize_chain_value`` for storage key parameters.

    substrate-interface encodes hex strings and ``{variant: value}`` maps,
    never ``Bytes`` or tagged dicts.
    """
    if isinstance(value, Bytes):
        return value.hex
    if is_tagged(value):
        inner = value.get('value')
        return {value['type']: to_client_param(inner)} if inner is not None else value['type']
    if isinstance(value, dict):
        return {key: to_client_param(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_client_param(item) for item in value]
    return value


# ══════════════════════════════════════════════════════════════════════
#  CHAIN CLIENT  (Abstract)
# ══════════════════════════════════════════════════════════════════════

class ChainClient(ABC):
    """Read access to chain storage plus the few writes a dry run needs."""

    endpoint: str = ''

    # ── Storage ─────────────────────────────────────────────────────

    @abstractmethod
    async def query(self, pallet: str, item: str, params: Optional[Sequence[Any]] = None) -> Any:
        """Reads one storage value; None when absent."""
        ...

    @abstractmethod
    async def query_entries(self, pallet: str, item: str) -> List[Tuple[List[Any], Any]]:
        """Reads every entry of a storage map as ``(key_args, value)`` pairs."""
        ...

    @abstractmethod
    async def has_storage(self, pallet: str, item: str) -> bool:
        """True when the runtime metadata declares the storage item."""
        ...

    @abstractmethod
    async def constant(self, pallet: str, name: str) -> Any:
        ...

    # ── Runtime ─────────────────────────────────────────────────────

    @abstractmethod
    async def spec_name(self) -> str:
        ...

    @abstractmethod
    async def decode_call(self, call: Bytes) -> DecodedCall:
        """Decodes call data against live metadata. Raises DecodeError."""
        ...

    @abstractmethod
    async def events(self) -> List[Any]:
        """Event records of the current head block."""
        ...

    @abstractmethod
    async def sign_extrinsic(self, call: Bytes, signer_uri: str = DEV_ACCOUNT_URI) -> str:
        """Signs call data with a dev key and returns the extrinsic hex."""
        ...

    async def block_number(self) -> int:
        return int(await self.query('System', 'Number'))

    async def close(self) -> None:
        pass


# ══════════════════════════════════════════════════════════════════════
#  SUBSTRATE-INTERFACE CLIENT
# ══════════════════════════════════════════════════════════════════════

class SubstrateChainClient(ChainClient):
    """
    ``ChainClient`` backed by ``substrateinterface.SubstrateInterface``.

    substrate-interface is blocking, so each call runs in a worker thread.
    Calls on one client are never issued concurrently.
    """

    def __init__(self, endpoint: str, substrate: SubstrateInterface):
        self.endpoint = endpoint
        self._substrate = substrate

    @classmethod
    async def connect(cls, endpoint: str) -> "SubstrateChainClient":
        try:
            substrate = await asyncio.to_thread(SubstrateInterface, url=endpoint)
        except (ConnectionError, OSError, WebSocketException, SubstrateRequestException) as e:
            raise ChainConnectionError(f"Could not connect to {endpoint}: {e}") from e
        logger.debug(f"Connected chain client to {endpoint}")
        return cls(endpoint, substrate)

    async def _run(self, func: Callable, *args, **kwargs) -> Any:
        """Runs a blocking substrate-interface call and maps its failures onto our errors."""
        try:
            return await asyncio.to_thread(func, *args, **kwargs)
        except StorageFunctionNotFound as e:
            raise NotFoundError(f"{self.endpoint}: {e}") from e
        except (ConnectionError, OSError, WebSocketException, SubstrateRequestException) as e:
            raise ChainConnectionError(f"{self.endpoint}: {e}") from e
        except (ValueError, NotImplementedError) as e:
            raise DecodeError(f"{self.endpoint}: SCALE codec error: {e}") from e

    # ── Storage ─────────────────────────────────────────────────────

    async def query(self, pallet: str, item: str, params: Optional[Sequence[Any]] = None) -> Any:
        key_params = [to_client_param(param) for param in params or []]
        result = await self._run(self._substrate.query, pallet, item, key_params)
        return normalize_chain_value(getattr(result, 'value', None))

    async def query_entries(self, pallet: str, item: str) -> List[Tuple[List[Any], Any]]:
        def _collect():
            entries = []
            for key, value in self._substrate.query_map(pallet, item, page_size=200):
                key_value = key.value
                key_args = list(key_value) if isinstance(key_value, (list, tuple)) else [key_value]
                entries.append((key_args, value.value))
            return entries

        entries = await self._run(_collect)
        return [
            ([normalize_chain_value(arg) for arg in key_args], normalize_chain_value(value))
            for key_args, value in entries
        ]

    async def has_storage(self, pallet: str, item: str) -> bool:
        def _lookup():
            self._substrate.init_runtime()
            return self._substrate.get_metadata_storage_function(pallet, item) is not None

        try:
            return await self._run(_lookup)
        except NotFoundError:
            return False

    async def constant(self, pallet: str, name: str) -> Any:
        result = await self._run(self._substrate.get_constant, pallet, name)
        return normalize_chain_value(result.value) if result is not None else None

    # ── Runtime ─────────────────────────────────────────────────────

    async def spec_name(self) -> str:
        response = await self._run(self._substrate.rpc_request, 'state_getRuntimeVersion', [])
        return str(response['result']['specName'])

    def _call_object(self, call: Bytes):
        call_obj = self._substrate.create_scale_object('Call', data=ScaleBytes(call.hex))
        call_obj.decode()
        return call_obj

    async def decode_call(self, call: Bytes) -> DecodedCall:
        def _decode():
            self._substrate.init_runtime()
            return self._call_object(call).value

        try:
            value = await asyncio.to_thread(_decode)
        except (ConnectionError, OSError, WebSocketException, SubstrateRequestException) as e:
            raise ChainConnectionError(f"{self.endpoint}: {e}") from e
        except (ValueError, NotImplementedError, IndexError, KeyError, TypeError, RemainingScaleBytesNotEmptyException) as e:
            raise DecodeError(
                f"Could not decode call {call.hex[:66]} against the runtime of {self.endpoint}: {e}. "
                f"The hex may have been generated for a different runtime version or chain."
            ) from e

        args = {arg['name']: normalize_chain_value(arg['value']) for arg in value.get('call_args', [])}
        return DecodedCall(value['call_module'], value['call_function'], args)

    async def events(self) -> List[Any]:
        records = await self._run(self._substrate.get_events)
        return [normalize_chain_value(record.value) for record in records]

    async def sign_extrinsic(self, call: Bytes, signer_uri: str = DEV_ACCOUNT_URI) -> str:
        def _sign():
            self._substrate.init_runtime()
            keypair = Keypair.create_from_uri(signer_uri)
            extrinsic = self._substrate.create_signed_extrinsic(call=self._call_object(call), keypair=keypair)
            return extrinsic.data.to_hex()

        return await self._run(_sign)

    async def close(self) -> None:
        await asyncio.to_thread(self._substrate.close)
        logger.debug(f"Closed chain client for {self.endpoint}")


@asynccontextmanager
async def connect_client(endpoint: str) -> AsyncIterator[ChainClient]:
    """Connects a chain client and guarantees it is closed on every exit path."""
    client = await SubstrateChainClient.connect(endpoint)
    try:
        yield client
    finally:
        await client.close()


async def wait_for_chain_ready(client: ChainClient, polling: PollingSettings) -> int:
    """Reads the block number until the chain answers. Returns the head number."""
    last_error: Optional[Exception] = None
    for attempt in range(1, polling.ready_attempts + 1):
        try:
            number = await client.block_number()
            logger.debug(f"{client.endpoint} ready at block #{number} (attempt {attempt})")
            return number
        except (ChainConnectionError, DecodeError, TypeError, ValueError) as e:
            last_error = e
            logger.debug(f"{client.endpoint} not ready (attempt {attempt}/{polling.ready_attempts}): {e}")
        await asyncio.sleep(polling.ready_delay)
    raise ForkTimeoutError(
        f"Chain at {client.endpoint} not ready after {polling.ready_attempts} attempts: {last_error}"
    )
