"""Remote chain data source over a Substrate node's websocket RPC.

Every read is pinned to the block hash passed as ``at``. Values are returned
as plain Python objects (the decoded ``.value`` of the SCALE types).
"""

import logging
import time

from substrateinterface import SubstrateInterface
from substrateinterface.exceptions import (
    StorageFunctionNotFound,
    SubstrateRequestException,
)
from websocket import WebSocketException

from .errors import DataFetchError

log = logging.getLogger(__name__)

MAX_RETRIES = 3
RETRY_DELAY = 5

# Errors worth a reconnect; anything else is a bad request or bad data.
CONNECTION_ERRORS = (ConnectionError, BrokenPipeError, OSError, WebSocketException)


def _unwrap(obj):
    return obj.value if hasattr(obj, "value") else obj


class ChainSource:
    """Read-only view of a node's storage.

    Args:
        url: websocket endpoint of the node.
        ss58_format: address format accounts are decoded with.
        timeout: overall budget in seconds for all reads of this source;
            once spent, every read raises DataFetchError.
    """

    def __init__(self, url, ss58_format=None, timeout=None,
                 max_retries=MAX_RETRIES, retry_delay=RETRY_DELAY):
        self.url = url
        self.ss58_format = ss58_format
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self._deadline = time.monotonic() + timeout if timeout else None
        self._substrate = None

    # ── Connection ─────────────────────────────────────────────────────

    def _connect(self):
        """Create a SubstrateInterface connection."""
        self._check_deadline()
        ws_options = {"timeout": self.timeout} if self.timeout else None
        try:
            self._substrate = SubstrateInterface(
                url=self.url,
                ss58_format=self.ss58_format,
                auto_discover=False,
                ws_options=ws_options,
            )
        except CONNECTION_ERRORS as e:
            raise DataFetchError(f"cannot connect to {self.url}: {e}") from e
        return self._substrate

    @property
    def substrate(self):
        if self._substrate is None:
            self._connect()
        return self._substrate

    def close(self):
        if self._substrate is not None:
            self._substrate.close()
            self._substrate = None

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def _check_deadline(self):
        if self._deadline is not None and time.monotonic() > self._deadline:
            raise DataFetchError(
                f"timed out after {self.timeout}s reading from {self.url}"
            )

    def _call(self, what, fn):
        """Run a single request, translating failures into DataFetchError."""
        self._check_deadline()
        try:
            return fn()
        except StorageFunctionNotFound as e:
            raise DataFetchError(f"storage {what} not found: {e}") from e
        except SubstrateRequestException as e:
            raise DataFetchError(f"request {what} failed: {e}") from e
        except CONNECTION_ERRORS as e:
            raise DataFetchError(f"connection lost during {what}: {e}") from e

    # ── Reads ──────────────────────────────────────────────────────────

    def head(self):
        return self._call(
            "chain_getHead",
            lambda: self.substrate.rpc_request("chain_getHead", [])["result"],
        )

    def block_number(self, at):
        header = self._call(
            "chain_getHeader",
            lambda: self.substrate.rpc_request("chain_getHeader", [at])["result"],
        )
        if header is None:
            raise DataFetchError(f"unknown block {at}")
        try:
            return int(header["number"], 16)
        except (KeyError, TypeError, ValueError) as e:
            raise DataFetchError(f"malformed header of {at}: {header!r}") from e

    def spec_name(self, at):
        version = self._call(
            "state_getRuntimeVersion",
            lambda: self.substrate.rpc_request("state_getRuntimeVersion", [at])[
                "result"
            ],
        )
        try:
            return version["specName"]
        except (KeyError, TypeError) as e:
            raise DataFetchError(
                f"malformed runtime version at {at}: {version!r}"
            ) from e

    def _init_runtime(self, at):
        self.substrate.init_runtime(block_hash=at)

    def query(self, pallet, storage, params=None, at=None, optional=False):
        what = f"{pallet}.{storage}"

        def run():
            self._init_runtime(at)
            return self.substrate.query(pallet, storage, params or [], block_hash=at)

        try:
            result = self._call(what, run)
        except DataFetchError:
            if optional and not self._has_storage(pallet, storage, at):
                return None
            raise
        return _unwrap(result)

    def constant(self, pallet, name, at=None):
        def run():
            self._init_runtime(at)
            return self.substrate.get_constant(pallet, name, block_hash=at)

        return _unwrap(self._call(f"{pallet}.{name}", run))

    def _has_storage(self, pallet, storage, at):
        def run():
            self._init_runtime(at)
            return self.substrate.get_metadata_storage_function(
                pallet, storage, block_hash=at
            )

        return self._call(f"metadata {pallet}.{storage}", run) is not None

    def query_map(self, pallet, storage, params=None, at=None, optional=False):
        """Iterate a storage map, yielding (key, value) pairs.

        If the connection drops mid-iteration, reconnects and restarts from
        the beginning, skipping already-seen keys.
        """
        what = f"{pallet}.{storage}"
        if optional and not self._has_storage(pallet, storage, at):
            log.debug("%s not present in the runtime, skipping", what)
            return
        seen_keys = set()
        for attempt in range(self.max_retries):
            try:
                self._check_deadline()
                self._init_runtime(at)
                result = self.substrate.query_map(
                    pallet, storage, params or [], block_hash=at
                )
                for key, value in result:
                    self._check_deadline()
                    k = _unwrap(key)
                    if k not in seen_keys:
                        seen_keys.add(k)
                        yield k, _unwrap(value)
                return  # completed successfully
            except StorageFunctionNotFound as e:
                raise DataFetchError(f"storage {what} not found: {e}") from e
            except SubstrateRequestException as e:
                raise DataFetchError(f"request {what} failed: {e}") from e
            except CONNECTION_ERRORS as e:
                err_name = type(e).__name__
                if attempt < self.max_retries - 1:
                    log.warning(
                        "connection error (%s) reading %s, reconnecting in %ss "
                        "(%d entries preserved)",
                        err_name, what, self.retry_delay, len(seen_keys),
                    )
                    self.close()
                    time.sleep(self.retry_delay)
                else:
                    raise DataFetchError(
                        f"reading {what} failed after {self.max_retries} attempts: {e}"
                    ) from e
