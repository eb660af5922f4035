"""RPC endpoint configuration for a chain."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field


class URLSchemePreference(enum.IntEnum):
    """Which URL of an RPC to connect to."""

    NONE = 0
    WS = 1
    HTTP = 2

    @classmethod
    def from_string(cls, text: str | bytes) -> "URLSchemePreference":
        """Parse "none", "ws" or "http", ignoring case."""
        if isinstance(text, (bytes, bytearray)):
            text = text.decode()
        member = cls.__members__.get(text.upper())
        if member is None:
            raise ValueError(f"invalid URLSchemePreference: {text}")
        return member


@dataclass
class RPC:
    """A named RPC with a websocket and an HTTP URL."""

    name: str
    ws_url: str = ""
    http_url: str = ""
    preferred_url_scheme: URLSchemePreference = URLSchemePreference.NONE

    def to_endpoint(self) -> str:
        """Return the URL matching the preferred scheme; websocket unless HTTP is preferred."""
        if self.preferred_url_scheme in (URLSchemePreference.NONE, URLSchemePreference.WS):
            return self.ws_url
        if self.preferred_url_scheme == URLSchemePreference.HTTP:
            return self.http_url
        raise ValueError("unknown URLSchemePreference")


@dataclass
class RPCConfig:
    """A chain selector together with the RPCs serving that chain."""

    chain_selector: int
    rpcs: list[RPC] = field(default_factory=list)