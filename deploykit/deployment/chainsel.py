"""Chain selectors: mapping of selectors to chain identity and family."""

from __future__ import annotations

import enum
import functools
from dataclasses import dataclass
from typing import Iterable


class ChainFamily(str, enum.Enum):
    EVM = "evm"
    SOLANA = "solana"
    APTOS = "aptos"
    STARKNET = "starknet"
    TRON = "tron"


@dataclass(frozen=True)
class ChainDetails:
    selector: int
    name: str
    chain_id: str
    family: ChainFamily


class UnknownChainError(LookupError):
    """Raised when a chain selector is not registered."""

    def __init__(self, selector: int) -> None:
        super().__init__(f"unknown chain selector {selector}")
        self.selector = selector


class ChainRegistry:
    """A lookup table of known chains keyed by selector."""

    def __init__(self, chains: Iterable[ChainDetails] = ()) -> None:
        self._by_selector: dict[int, ChainDetails] = {}
        for details in chains:
            self.register(details)

    def register(self, details: ChainDetails) -> None:
        if details.selector in self._by_selector:
            raise ValueError(f"chain selector {details.selector} already registered")
        self._by_selector[details.selector] = details

    def by_selector(self, selector: int) -> ChainDetails:
        try:
            return self._by_selector[selector]
        except KeyError:
            raise UnknownChainError(selector) from None

    def family(self, selector: int) -> ChainFamily:
        return self.by_selector(selector).family

    def chain_id(self, selector: int) -> str:
        return self.by_selector(selector).chain_id

    def __contains__(self, selector: object) -> bool:
        return selector in self._by_selector

    def __len__(self) -> int:
        return len(self._by_selector)


_KNOWN_CHAINS = (
    ChainDetails(5009297550715157269, "ethereum-mainnet", "1", ChainFamily.EVM),
    ChainDetails(16015286601757825753, "ethereum-testnet-sepolia", "11155111", ChainFamily.EVM),
    ChainDetails(3379446385462418246, "geth-testnet", "1337", ChainFamily.EVM),
    ChainDetails(909606746561742123, "test-90000001", "90000001", ChainFamily.EVM),
    ChainDetails(5548718428018410741, "test-90000002", "90000002", ChainFamily.EVM),
    ChainDetails(4741433654826277614, "aptos-mainnet", "1", ChainFamily.APTOS),
    ChainDetails(
        124615329519749607,
        "solana-mainnet",
        "5eykt4UsFv8P8NJdTREpY1vzqKqZKvdpKuc147dw2N9d",
        ChainFamily.SOLANA,
    ),
)


@functools.lru_cache(maxsize=None)
def default_registry() -> ChainRegistry:
    """Return the shared registry of well-known chains."""
    return ChainRegistry(_KNOWN_CHAINS)