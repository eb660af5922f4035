import pytest

from deploykit.deployment.rpc_config import RPC, RPCConfig, URLSchemePreference

WS = "ws://example.com"
HTTP = "http://example.com"


@pytest.mark.parametrize(
    "scheme, expected",
    [
        (None, WS),
        (URLSchemePreference.NONE, WS),
        (URLSchemePreference.WS, WS),
        (URLSchemePreference.HTTP, HTTP),
    ],
)
def test_to_endpoint(scheme, expected):
    if scheme is None:
        rpc = RPC(name="TestRPC", ws_url=WS, http_url=HTTP)
    else:
        rpc = RPC(name="TestRPC", ws_url=WS, http_url=HTTP, preferred_url_scheme=scheme)
    assert rpc.to_endpoint() == expected


def test_to_endpoint_unknown_scheme():
    rpc = RPC(name="TestRPC", ws_url=WS, http_url=HTTP, preferred_url_scheme=999)
    with pytest.raises(ValueError, match="^unknown URLSchemePreference$"):
        rpc.to_endpoint()


@pytest.mark.parametrize(
    "text, expected",
    [
        ("none", URLSchemePreference.NONE),
        ("ws", URLSchemePreference.WS),
        ("http", URLSchemePreference.HTTP),
        ("HTTP", URLSchemePreference.HTTP),
        (b"ws", URLSchemePreference.WS),
    ],
)
def test_from_string(text, expected):
    assert URLSchemePreference.from_string(text) is expected


@pytest.mark.parametrize("text", ["invalid", b"invalid"])
def test_from_string_invalid(text):
    with pytest.raises(ValueError) as info:
        URLSchemePreference.from_string(text)
    assert str(info.value) == "invalid URLSchemePreference: invalid"


def test_rpc_config_defaults():
    config = RPCConfig(chain_selector=42)
    assert config.rpcs == []
    assert config.chain_selector == 42