# deploykit

Building blocks for deployment tooling on EVM and other chains:

- **Address books** (`deploykit.deployment.address_book`) that record which
  contract (type, version and labels) lives at which address on which chain,
  keyed by chain selector. EVM addresses are validated and always stored in
  EIP-55 checksum form.
- **A failover chain client** (`deploykit.deployment.multiclient`) that
  retries each call against a primary client and then against backups.
- **Operations and sequences** (`deploykit.operations`): small, versioned
  units of deployment work whose inputs and outputs must be storable as JSON.
  Every run is recorded as a report, and a successful earlier run with the
  same definition and input is returned instead of being executed again.

## Installation

```
pip install deploykit
```

To run the test suite, install the `test` extra and run `pytest`:

```
pip install "deploykit[test]"
pytest
```

## Chain selectors

`deploykit.deployment.chainsel` maps chain selectors to a `ChainDetails`
(selector, name, chain id and `ChainFamily`). `default_registry()` returns a
shared `ChainRegistry` holding a small set of well-known chains (Ethereum
mainnet, Sepolia, a local geth test chain, two test chains, Aptos mainnet and
Solana mainnet). Build your own `ChainRegistry` and `register` further
chains when you need others; unknown selectors raise `UnknownChainError`.

## Addresses

`deploykit.deployment.eip55` offers `is_hex_address`, `hex_to_address`
(returns the EIP-55 checksummed form, keeping the last 20 bytes of longer
input and zero-padding shorter input) and `zero_address()`.

## Address books

```python
from deploykit.deployment.address_book import (
    MemoryAddressBook,
    TypeAndVersion,
    search_address_book,
)

SEPOLIA = 16015286601757825753

book = MemoryAddressBook()
on_ramp = TypeAndVersion.from_string("OnRamp 1.0.0 staging")

book.save(SEPOLIA, "0x0000000000000000000000000000000000000001", on_ramp)

print(book.addresses_for_chain(SEPOLIA))
print(search_address_book(book, SEPOLIA, "OnRamp"))
```

`MemoryAddressBook` is thread-safe and takes an optional initial mapping and
an optional `ChainRegistry`. Saving raises `InvalidChainSelectorError` for a
selector the registry does not know, `InvalidAddressError` for an empty,
malformed or zero EVM address, and `AddressBookError` when the contract type
is empty or the address is already recorded for that chain. Addresses on
non-EVM chains are stored as given. `addresses_for_chain` raises
`ChainNotFoundError` for a known chain with no entries. `addresses()` and
`addresses_for_chain()` return copies.

`merge` saves every entry of another book and raises on the first conflict;
entries saved before the conflict stay in the book. `remove` deletes the
entries of another book only if all of them are present, and leaves the book
unchanged otherwise.

`LabelSet` (in `deploykit.deployment.labels`) holds the labels of an entry
and renders them sorted and space-separated. `address_book_contains` tests
for an address on a chain, `group_by_type_and_version` groups addresses by
type, version and labels, and `ensure_deduped` returns whether each wanted
`TypeAndVersion` is present, raising `AddressBookError` if one appears more
than once.

## RPC configuration and the failover client

`RPC` describes one endpoint with a WebSocket URL, an HTTP URL and a
`URLSchemePreference` (`NONE`, `WS`, `HTTP`; `URLSchemePreference.from_string`
parses them case-insensitively). `RPC.to_endpoint()` returns the HTTP URL
when HTTP is preferred and the WebSocket URL otherwise. `RPCConfig` groups
the endpoints for one chain selector.

`MultiClient.connect(rpc_config, dial, logger, *options, registry=None)`
calls `dial(endpoint)` for each RPC (retrying up to ten times with
exponential backoff), uses the first client that succeeds as primary and the
rest as backups, and then applies each option callable to the new client.
Calls such as `call_contract`, `code_at`, `nonce_at` or `send_transaction`
are passed to the client object's method of the same name, retried on each
client in turn according to `RetryConfig(attempts, delay)`, and raise
`AllClientsFailedError` when every client has failed. `wait_mined(tx, wait,
timeout)` runs `wait(client, tx)` on all clients at once and returns the first
receipt, raising `TimeoutError` if the timeout passes first.
`maybe_data_err` folds the data of a `DataError` into its message.

## Operations and sequences

```python
import logging

import semver

from deploykit.operations.execute import execute_operation, execute_sequence
from deploykit.operations.operation import Operation, new_bundle
from deploykit.operations.report import MemoryReporter
from deploykit.operations.sequence import Sequence

version = semver.Version.parse("1.0.0")


def plus_one(bundle, deps, value):
    return value + 1


op = Operation("plus1", version, "adds one", plus_one, input_type=int, output_type=int)


def twice(bundle, deps, value):
    first = execute_operation(bundle, op, deps, value)
    second = execute_operation(bundle, op, deps, first.output)
    return second.output


seq = Sequence("plus2", version, "adds two", twice, input_type=int, output_type=int)

bundle = new_bundle(lambda: None, logging.getLogger("deploy"), MemoryReporter())

report = execute_sequence(bundle, seq, None, 1)
print(report.output)                  # 3
print(len(report.execution_reports))  # 3: both operations, then the sequence
```

A failing operation is retried (by default up to ten attempts with
exponential backoff). Raise `UnrecoverableError` from a handler to stop
retrying at once, or pass a `RetryConfig` to `execute_operation` to disable
retries, change the number of attempts or delays, or set an `input_hook`
that supplies the input for the next attempt. When an operation or sequence
finally fails, its report is still recorded and a `ReportError` is raised
whose `report` attribute holds it. Inputs and outputs that cannot be stored
as JSON are rejected with `NotSerializableError`; `is_serializable` in
`deploykit.operations.validation` performs that check.

The `input_type` and `output_type` given to an operation or sequence are
used to convert the input and output of a stored report back into those
types when an earlier run is reused (`load_previous_successful_report`).

`deploykit.operations.hashing` provides `to_json_value`, `canonical_json`
(compact JSON with sorted keys) and `construct_unique_hash`, the SHA-256
digest that identifies a definition run with a given input.

Reports can be written with `Report.to_json()` and read back with
`Report.from_json(data, input_type, output_type)`, so a `MemoryReporter` can
be seeded with the reports of an earlier run and skip the work already done.
`RecentReporter` wraps another reporter and remembers the reports added
through it.

## What this package does not do

- It does not talk to any chain by itself. `MultiClient` needs a `dial`
  function and client objects that you provide; it adds only retrying,
  failover and concurrent waiting.
- The only reporter is the in-memory `MemoryReporter`. Saving reports to
  disk or a database is left to you, via `Report.to_json()` and
  `Report.from_json()`.
- The chain registry knows only the few chains listed above unless you
  register more.
- There is no command-line interface.