"""Address book: contract addresses grouped by chain selector."""

from __future__ import annotations

import abc
import threading
from dataclasses import dataclass, field
from typing import Iterable, Mapping, NamedTuple

import semver

from deploykit.deployment.chainsel import (
    ChainFamily,
    ChainRegistry,
    UnknownChainError,
    default_registry,
)
from deploykit.deployment.eip55 import hex_to_address, is_hex_address, zero_address
from deploykit.deployment.labels import LabelSet


class AddressBookError(Exception):
    """Base class for address book failures."""


class InvalidChainSelectorError(AddressBookError, ValueError):
    pass


class InvalidAddressError(AddressBookError, ValueError):
    pass


class ChainNotFoundError(AddressBookError, LookupError):
    pass


def _parse_version(text: str) -> semver.Version:
    if text[:1] in ("v", "V"):
        text = text[1:]
    return semver.Version.parse(text, optional_minor_and_patch=True)


@dataclass
class TypeAndVersion:
    """A contract type, its version and optional labels."""

    type: str
    version: semver.Version
    labels: LabelSet = field(default_factory=LabelSet)

    def __post_init__(self) -> None:
        if isinstance(self.version, str):
            self.version = _parse_version(self.version)
        if not isinstance(self.labels, LabelSet):
            self.labels = LabelSet(*(self.labels or ()))

    def __str__(self) -> str:
        base = f"{self.type} {self.version}"
        return f"{base} {self.labels}" if self.labels else base

    def equal(self, other: "TypeAndVersion") -> bool:
        return self == other

    @classmethod
    def from_string(cls, text: str) -> "TypeAndVersion":
        """Parse "<type> <version> [labels...]"; whitespace runs are ignored."""
        parts = text.split()
        if len(parts) < 2:
            raise ValueError(f"invalid type and version string: {text}")
        return cls(parts[0], _parse_version(parts[1]), LabelSet(*parts[2:]))

    def add_label(self, label: str) -> None:
        self.labels.add(label)


def new_type_and_version(contract_type: str, version: semver.Version | str) -> TypeAndVersion:
    return TypeAndVersion(contract_type, version, LabelSet())


AddressesByChain = dict[int, dict[str, TypeAndVersion]]


class AddressBook(abc.ABC):
    """Stores contract addresses per chain selector."""

    @abc.abstractmethod
    def save(self, chain_selector: int, address: str, type_and_version: TypeAndVersion) -> None:
        ...

    @abc.abstractmethod
    def addresses(self) -> AddressesByChain:
        ...

    @abc.abstractmethod
    def addresses_for_chain(self, chain_selector: int) -> dict[str, TypeAndVersion]:
        ...

    @abc.abstractmethod
    def merge(self, other: "AddressBook") -> None:
        ...

    @abc.abstractmethod
    def remove(self, other: "AddressBook") -> None:
        ...


class MemoryAddressBook(AddressBook):
    """A thread-safe, in-memory address book.

    EVM addresses are always stored in EIP-55 form.
    """

    def __init__(
        self,
        addresses_by_chain: Mapping[int, Mapping[str, TypeAndVersion]] | None = None,
        registry: ChainRegistry | None = None,
    ) -> None:
        self._addresses: AddressesByChain = {
            selector: dict(chain) for selector, chain in (addresses_by_chain or {}).items()
        }
        self._registry = registry if registry is not None else default_registry()
        self._lock = threading.RLock()

    def _save(self, chain_selector: int, address: str, type_and_version: TypeAndVersion) -> None:
        try:
            family = self._registry.family(chain_selector)
        except UnknownChainError:
            raise InvalidChainSelectorError(
                f"chain selector {chain_selector}: invalid chain selector"
            ) from None
        if family is ChainFamily.EVM:
            if not address or address == zero_address():
                raise InvalidAddressError("address cannot be empty: invalid address")
            if not is_hex_address(address):
                raise InvalidAddressError(
                    f"address {address} is not a valid Ethereum address, only Ethereum "
                    "addresses supported for EVM chains: invalid address"
                )
            address = hex_to_address(address)

        if not type_and_version.type:
            raise AddressBookError("type cannot be empty")

        chain = self._addresses.setdefault(chain_selector, {})
        if address in chain:
            raise AddressBookError(f"address {address} already exists for chain {chain_selector}")
        chain[address] = type_and_version

    def save(self, chain_selector: int, address: str, type_and_version: TypeAndVersion) -> None:
        """Save an address; raises if it already exists for the chain."""
        with self._lock:
            self._save(chain_selector, address, type_and_version)

    def addresses(self) -> AddressesByChain:
        with self._lock:
            return {selector: dict(chain) for selector, chain in self._addresses.items()}

    def addresses_for_chain(self, chain_selector: int) -> dict[str, TypeAndVersion]:
        try:
            self._registry.chain_id(chain_selector)
        except UnknownChainError:
            raise InvalidChainSelectorError(
                f"chain selector {chain_selector}: invalid chain selector"
            ) from None
        with self._lock:
            if chain_selector not in self._addresses:
                raise ChainNotFoundError(f"chain selector {chain_selector}: chain not found")
            return dict(self._addresses[chain_selector])

    def merge(self, other: AddressBook) -> None:
        """Add every address of another book; raises on the first conflict."""
        incoming = other.addresses()
        with self._lock:
            for selector, chain in incoming.items():
                for address, type_and_version in chain.items():
                    self._save(selector, address, type_and_version)

    def remove(self, other: AddressBook) -> None:
        """Remove another book's addresses; nothing changes unless all are present."""
        outgoing = other.addresses()
        with self._lock:
            for selector, chain in outgoing.items():
                present = self._addresses.get(selector, {})
                if any(address not in present for address in chain):
                    raise AddressBookError(
                        "address book does not contain address from the given address book"
                    )
            for selector, chain in outgoing.items():
                for address in chain:
                    del self._addresses[selector][address]


def search_address_book(book: AddressBook, chain_selector: int, contract_type: str) -> str:
    """Return the first address on the chain with the given contract type."""
    for address, type_and_version in book.addresses_for_chain(chain_selector).items():
        if type_and_version.type == contract_type:
            return address
    raise AddressBookError("not found")


def address_book_contains(book: AddressBook, chain_selector: int, address: str) -> bool:
    return address in book.addresses_for_chain(chain_selector)


class _TypeVersionKey(NamedTuple):
    type: str
    version: str
    labels: str


def _key(type_and_version: TypeAndVersion) -> _TypeVersionKey:
    return _TypeVersionKey(
        type_and_version.type, str(type_and_version.version), str(type_and_version.labels)
    )


def group_by_type_and_version(
    addresses: Mapping[str, TypeAndVersion],
) -> dict[_TypeVersionKey, list[str]]:
    """Group addresses by (type, version, sorted labels)."""
    grouped: dict[_TypeVersionKey, list[str]] = {}
    for address, type_and_version in addresses.items():
        grouped.setdefault(_key(type_and_version), []).append(address)
    return grouped


def ensure_deduped(
    addresses: Mapping[str, TypeAndVersion], bundle: Iterable[TypeAndVersion]
) -> bool:
    """Return whether every bundle entry is present; raise if any appears twice."""
    grouped = group_by_type_and_version(addresses)
    wanted = list(bundle)
    found = 0
    for type_and_version in wanted:
        key = _key(type_and_version)
        matched = grouped.get(key)
        if matched is not None:
            found += 1
        if matched is not None and len(matched) > 1:
            raise AddressBookError(
                f"found more than one instance of contract {key.type} v{key.version} "
                f"(labels={key.labels})"
            )
    return found == len(wanted)