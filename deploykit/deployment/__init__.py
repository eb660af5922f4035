"""Chain selectors, EIP-55 addresses, contract address books and failover chain clients."""

__all__ = ["address_book", "chainsel", "eip55", "labels", "multiclient", "rpc_config"]