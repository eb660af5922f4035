"""A chain client that retries calls and falls back to backup RPC clients."""

from __future__ import annotations

import concurrent.futures
import itertools
import logging
import random
import time
from dataclasses import dataclass
from typing import Any, Callable, Sequence, TypeVar

from deploykit.deployment.chainsel import ChainRegistry, UnknownChainError, default_registry
from deploykit.deployment.rpc_config import RPC, RPCConfig

RPC_DEFAULT_RETRY_ATTEMPTS = 10
RPC_DEFAULT_RETRY_DELAY = 1.0
RPC_DEFAULT_DIAL_RETRY_ATTEMPTS = 10
RPC_DEFAULT_DIAL_RETRY_DELAY = 1.0

_MAX_JITTER = 0.1

T = TypeVar("T")


class DataError(Exception):
    """An RPC error that carries extra error data."""

    def __init__(self, message: str, error_data: Any = None) -> None:
        super().__init__(message)
        self.error_data = error_data


def maybe_data_err(err: BaseException) -> BaseException:
    """Fold the error data of a DataError into its message; return others unchanged."""
    if isinstance(err, DataError):
        return Exception(f"{err}: {err.error_data}")
    return err


@dataclass
class RetryConfig:
    """How many times, and how far apart, calls are retried on one client."""

    attempts: int = RPC_DEFAULT_RETRY_ATTEMPTS
    delay: float = RPC_DEFAULT_RETRY_DELAY


class AllClientsFailedError(ConnectionError):
    """Raised when the primary client and every backup have failed."""


def _retry(
    operation: Callable[[], T],
    attempts: int,
    delay: float,
    on_error: Callable[[Exception], None],
) -> T:
    """Call operation until it succeeds, backing off exponentially; 0 attempts means no limit."""
    tries = itertools.count(1) if attempts == 0 else range(1, max(attempts, 1) + 1)
    last: Exception | None = None
    for attempt in tries:
        try:
            return operation()
        except Exception as err:  # noqa: BLE001 - any client failure is retryable
            last = err
            on_error(err)
            if attempt == attempts:
                break
            time.sleep(delay * 2 ** (attempt - 1) + random.uniform(0, _MAX_JITTER))
    assert last is not None
    raise last


class MultiClient:
    """Routes chain calls to a primary client, falling back to backups."""

    def __init__(
        self,
        client: Any,
        backups: Sequence[Any] = (),
        chain_name: str = "",
        retry_config: RetryConfig | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.client = client
        self.backups = list(backups)
        self.chain_name = chain_name
        self.retry_config = retry_config if retry_config is not None else RetryConfig()
        self._logger = logger if logger is not None else logging.getLogger(__name__)

    @classmethod
    def connect(
        cls,
        rpc_config: RPCConfig,
        dial: Callable[[str], Any],
        logger: logging.Logger | None = None,
        *args: Callable[["MultiClient"], None],
        registry: ChainRegistry | None = None,
    ) -> "MultiClient":
        """Dial every RPC of the config; the first reachable one becomes the primary.

        Extra positional arguments are options applied to the new client.
        """
        if not rpc_config.rpcs:
            raise ValueError("no RPCs provided, need at least one")
        registry = registry if registry is not None else default_registry()
        try:
            chain = registry.by_selector(rpc_config.chain_selector)
        except UnknownChainError:
            raise ValueError(
                f"chain with selector {rpc_config.chain_selector} not found"
            ) from None

        log = logger if logger is not None else logging.getLogger(__name__)
        clients = []
        for index, rpc in enumerate(rpc_config.rpcs):
            try:
                clients.append(_dial_with_retry(rpc, dial, chain.name, log))
            except Exception as err:  # noqa: BLE001 - try the next RPC
                log.warning(
                    "failed to dial client %d for RPC '%s' trying with the next one: %s",
                    index,
                    rpc.name,
                    err,
                )
        if not clients:
            raise ConnectionError("no valid RPC clients created")

        multi = cls(clients[0], clients[1:], chain.name, RetryConfig(), log)
        for option in args:
            option(multi)
        return multi

    @property
    def _clients(self) -> list[Any]:
        return [self.client, *self.backups]

    def _retry_with_backups(self, op_name: str, op: Callable[[Any], T]) -> T:
        last: Exception | None = None
        for index, client in enumerate(self._clients):

            def attempt(client: Any = client, index: int = index) -> T:
                self._logger.debug(
                    "Trying op %s with chain %s client index %d", op_name, self.chain_name, index
                )
                return op(client)

            def on_error(err: Exception, index: int = index) -> None:
                self._logger.warning(
                    "retryable error '%s' for op %s with chain %s client index %d",
                    maybe_data_err(err),
                    op_name,
                    self.chain_name,
                    index,
                )

            try:
                return _retry(
                    attempt, self.retry_config.attempts, self.retry_config.delay, on_error
                )
            except Exception as err:  # noqa: BLE001 - fall back to the next client
                last = err
                self._logger.info(
                    "Client at index %d failed, trying next client chain %s",
                    index,
                    self.chain_name,
                )
        raise AllClientsFailedError(
            f"{last}\nall backup clients {self.backups!r} failed for chain {self.chain_name}"
        ) from last

    def send_transaction(self, tx: Any) -> None:
        self._retry_with_backups("SendTransaction", lambda c: c.send_transaction(tx))

    def call_contract(self, msg: Any, block_number: int | None = None) -> bytes:
        return self._retry_with_backups(
            "CallContract", lambda c: c.call_contract(msg, block_number)
        )

    def call_contract_at_hash(self, msg: Any, block_hash: Any) -> bytes:
        return self._retry_with_backups(
            "CallContractAtHash", lambda c: c.call_contract_at_hash(msg, block_hash)
        )

    def code_at(self, account: Any, block_number: int | None = None) -> bytes:
        return self._retry_with_backups("CodeAt", lambda c: c.code_at(account, block_number))

    def code_at_hash(self, account: Any, block_hash: Any) -> bytes:
        return self._retry_with_backups(
            "CodeAtHash", lambda c: c.code_at_hash(account, block_hash)
        )

    def nonce_at(self, account: Any, block_number: int | None = None) -> int:
        return self._retry_with_backups("NonceAt", lambda c: c.nonce_at(account, block_number))

    def nonce_at_hash(self, account: Any, block_hash: Any) -> int:
        return self._retry_with_backups(
            "NonceAtHash", lambda c: c.nonce_at_hash(account, block_hash)
        )

    def wait_mined(
        self,
        tx: Any,
        wait: Callable[[Any, Any], Any],
        timeout: float | None = None,
    ) -> Any:
        """Wait on every client at once and return the first receipt.

        ``wait(client, tx)`` blocks until the transaction is mined on that client.
        Raises TimeoutError when the timeout passes first.
        """
        tx_id = getattr(tx, "hash", tx)
        self._logger.debug("Waiting for tx %s to be mined for chain %s", tx_id, self.chain_name)
        clients = self._clients
        executor = concurrent.futures.ThreadPoolExecutor(max_workers=len(clients))
        try:
            futures = [executor.submit(wait, client, tx) for client in clients]
            try:
                for future in concurrent.futures.as_completed(futures, timeout=timeout):
                    err = future.exception()
                    if err is not None:
                        self._logger.warning(
                            "WaitMined error %s with chain %s", err, self.chain_name
                        )
                        continue
                    self._logger.debug("Tx %s mined with chain %s", tx_id, self.chain_name)
                    return future.result()
            except concurrent.futures.TimeoutError:
                self._logger.warning("WaitMined timed out after %s seconds", timeout)
                raise TimeoutError(
                    f"timed out waiting for tx {tx_id} to be mined on chain {self.chain_name}"
                ) from None
        finally:
            executor.shutdown(wait=False, cancel_futures=True)
        raise AllClientsFailedError(
            f"all clients failed waiting for tx {tx_id} on chain {self.chain_name}"
        )


def _dial_with_retry(
    rpc: RPC, dial: Callable[[str], Any], chain_name: str, logger: logging.Logger
) -> Any:
    endpoint = rpc.to_endpoint()

    def attempt() -> Any:
        logger.debug(
            "dialing endpoint '%s' for RPC %s for chain %s", endpoint, rpc.name, chain_name
        )
        return dial(endpoint)

    def on_error(err: Exception) -> None:
        logger.warning(
            "retryable error for RPC %s:%s for chain %s  %s", rpc.name, endpoint, chain_name, err
        )

    try:
        return _retry(
            attempt, RPC_DEFAULT_DIAL_RETRY_ATTEMPTS, RPC_DEFAULT_DIAL_RETRY_DELAY, on_error
        )
    except Exception as err:
        raise ConnectionError(
            f"{err}\nfailed to dial endpoint '{endpoint}' for RPC {rpc.name} "
            f"for chain {chain_name} after retries"
        ) from err