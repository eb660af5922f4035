from concurrent.futures import ThreadPoolExecutor

import pytest
import semver

from deploykit.deployment.address_book import (
    AddressBookError,
    ChainNotFoundError,
    InvalidAddressError,
    InvalidChainSelectorError,
    MemoryAddressBook,
    TypeAndVersion,
    address_book_contains,
    ensure_deduped,
    group_by_type_and_version,
    new_type_and_version,
    search_address_book,
)
from deploykit.deployment.chainsel import ChainDetails, ChainFamily, ChainRegistry
from deploykit.deployment.eip55 import hex_to_address, zero_address
from deploykit.deployment.labels import LabelSet

TEST_1 = 909606746561742123
TEST_2 = 5548718428018410741
APTOS = 4741433654826277614

V100 = semver.Version.parse("1.0.0")
V110 = semver.Version.parse("1.1.0")
V120 = semver.Version.parse("1.2.0")

ADDR1 = hex_to_address("0x1")
ADDR2 = hex_to_address("0x2")
ADDR3 = hex_to_address("0x3")

ON_RAMP_100 = new_type_and_version("OnRamp", V100)
ON_RAMP_110 = new_type_and_version("OnRamp", V110)
ON_RAMP_120 = new_type_and_version("OnRamp", V120)
ON_RAMP_100_LABELED = TypeAndVersion("OnRamp", V100, LabelSet("sa", "staging"))


@pytest.fixture
def registry():
    return ChainRegistry(
        [
            ChainDetails(selector=TEST_1, name="test-90000001", chain_id="90000001", family=ChainFamily.EVM),
            ChainDetails(selector=TEST_2, name="test-90000002", chain_id="90000002", family=ChainFamily.EVM),
            ChainDetails(selector=APTOS, name="aptos-mainnet", chain_id="1", family=ChainFamily.APTOS),
        ]
    )


def test_save(registry):
    ab = MemoryAddressBook(registry=registry)
    ab.save(TEST_1, ADDR1, ON_RAMP_100)

    with pytest.raises(InvalidAddressError):
        ab.save(TEST_1, "asdlfkj", ON_RAMP_100)

    with pytest.raises(ChainNotFoundError):
        ab.addresses_for_chain(TEST_2)

    with pytest.raises(InvalidChainSelectorError):
        ab.save(0, ADDR1, ON_RAMP_100)

    with pytest.raises(AddressBookError, match="already exists"):
        ab.save(TEST_1, ADDR1, ON_RAMP_100)

    with pytest.raises(InvalidAddressError):
        ab.save(TEST_1, zero_address(), ON_RAMP_100)

    aptos_book = MemoryAddressBook(registry=registry)
    aptos_book.save(APTOS, zero_address(), ON_RAMP_100)
    assert aptos_book.addresses() == {APTOS: {zero_address(): ON_RAMP_100}}

    ab.save(TEST_1, ADDR2, ON_RAMP_100)
    ab.save(TEST_2, ADDR1, ON_RAMP_100)
    ab.save(TEST_2, ADDR2, ON_RAMP_110)

    assert ab.addresses() == {
        TEST_1: {ADDR1: ON_RAMP_100, ADDR2: ON_RAMP_100},
        TEST_2: {ADDR1: ON_RAMP_100, ADDR2: ON_RAMP_110},
    }


def test_save_normalises_evm_address(registry):
    ab = MemoryAddressBook(registry=registry)
    body = "5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed"
    ab.save(TEST_1, "0x" + body.lower(), ON_RAMP_100)
    assert list(ab.addresses_for_chain(TEST_1)) == ["0x" + body]


def test_save_rejects_empty_type(registry):
    ab = MemoryAddressBook(registry=registry)
    with pytest.raises(AddressBookError, match="type cannot be empty"):
        ab.save(TEST_1, ADDR1, new_type_and_version("", V100))


def test_addresses_for_chain_invalid_selector(registry):
    with pytest.raises(InvalidChainSelectorError):
        MemoryAddressBook(registry=registry).addresses_for_chain(0)


def test_merge(registry):
    a1 = MemoryAddressBook({TEST_1: {ADDR1: ON_RAMP_100}}, registry=registry)
    a2 = MemoryAddressBook(
        {TEST_1: {ADDR2: ON_RAMP_100}, TEST_2: {ADDR1: ON_RAMP_110}}, registry=registry
    )
    a1.merge(a2)
    expected = {
        TEST_1: {ADDR1: ON_RAMP_100, ADDR2: ON_RAMP_100},
        TEST_2: {ADDR1: ON_RAMP_110},
    }
    assert a1.addresses() == expected

    a3 = MemoryAddressBook({TEST_1: {ADDR1: ON_RAMP_100}}, registry=registry)
    with pytest.raises(AddressBookError):
        a1.merge(a3)
    assert a1.addresses() == expected


def test_remove(registry):
    base = MemoryAddressBook(
        {
            TEST_1: {ADDR1: ON_RAMP_100, ADDR2: ON_RAMP_100},
            TEST_2: {ADDR1: ON_RAMP_110, ADDR3: ON_RAMP_110},
        },
        registry=registry,
    )
    snapshot = base.addresses()

    fail = MemoryAddressBook({TEST_1: {ADDR1: ON_RAMP_100, ADDR3: ON_RAMP_100}}, registry=registry)
    with pytest.raises(AddressBookError):
        base.remove(fail)
    assert base.addresses() == snapshot

    success = MemoryAddressBook(
        {TEST_2: {ADDR3: ON_RAMP_100}, TEST_1: {ADDR2: ON_RAMP_100}}, registry=registry
    )
    base.remove(success)
    assert base.addresses() == {TEST_1: {ADDR1: ON_RAMP_100}, TEST_2: {ADDR1: ON_RAMP_110}}


def test_addresses_returns_copy(registry):
    ab = MemoryAddressBook({TEST_1: {ADDR1: ON_RAMP_100}}, registry=registry)
    snapshot = ab.addresses()
    snapshot[TEST_1][ADDR1] = ON_RAMP_110
    ab.addresses_for_chain(TEST_1)[ADDR2] = ON_RAMP_110
    assert ab.addresses() == {TEST_1: {ADDR1: ON_RAMP_100}}


def test_concurrency(registry):
    base = MemoryAddressBook({TEST_1: {hex_to_address(hex(1)): ON_RAMP_100}}, registry=registry)

    def write(i):
        base.save(TEST_1, hex_to_address(hex(i)), ON_RAMP_100)

    def read(_):
        addresses = base.addresses()
        for selector, chain in addresses.items():
            for address in chain:
                addresses[selector][address] = ON_RAMP_110
            base.addresses_for_chain(selector)

    def merge(i):
        base.merge(MemoryAddressBook({TEST_2: {hex_to_address(hex(i)): ON_RAMP_100}}, registry=registry))

    with ThreadPoolExecutor(max_workers=16) as pool:
        futures = [pool.submit(write, i) for i in range(2, 1000)]
        futures += [pool.submit(read, i) for i in range(100)]
        futures += [pool.submit(merge, i) for i in range(1001, 1100)]
        for future in futures:
            future.result()

    addresses = base.addresses()
    assert len(addresses[TEST_1]) == 999
    assert len(addresses[TEST_2]) == 99
    assert set(addresses[TEST_1].values()) == {str(ON_RAMP_100)} or all(
        tv == ON_RAMP_100 for tv in addresses[TEST_1].values()
    )


@pytest.mark.parametrize(
    "addrs, bundle, want_error, want_result",
    [
        ({ADDR1: ON_RAMP_100, ADDR2: ON_RAMP_100}, [ON_RAMP_100], "found more than one instance of contract", None),
        ({ADDR1: ON_RAMP_110, ADDR2: ON_RAMP_110}, [ON_RAMP_100], None, False),
        ({ADDR1: ON_RAMP_100, ADDR2: ON_RAMP_110, ADDR3: ON_RAMP_120}, [ON_RAMP_100, ON_RAMP_110], None, True),
        ({ADDR1: ON_RAMP_100}, [ON_RAMP_100_LABELED], None, False),
        ({ADDR1: ON_RAMP_100_LABELED}, [ON_RAMP_100_LABELED], None, True),
        ({ADDR1: ON_RAMP_100_LABELED, ADDR2: ON_RAMP_100_LABELED}, [ON_RAMP_100_LABELED], "more than one instance of contract", None),
    ],
)
def test_ensure_deduped(addrs, bundle, want_error, want_result):
    if want_error:
        with pytest.raises(AddressBookError, match=want_error):
            ensure_deduped(addrs, bundle)
    else:
        assert ensure_deduped(addrs, bundle) is want_result


@pytest.mark.parametrize(
    "text, labels, rendered",
    [
        ("CallProxy 1.0.0", LabelSet(), "CallProxy 1.0.0"),
        ("CallProxy 1.0.0 SA staging", LabelSet("SA", "staging"), "CallProxy 1.0.0 SA staging"),
        ("   CallProxy     1.0.0    SA    staging   ", LabelSet("SA", "staging"), "CallProxy 1.0.0 SA staging"),
    ],
)
def test_type_and_version_from_string(text, labels, rendered):
    tv = TypeAndVersion.from_string(text)
    assert tv.type == "CallProxy"
    assert str(tv.version) == str(V100)
    assert tv.labels == labels
    assert str(tv) == rendered


@pytest.mark.parametrize("text", ["CallProxy", "CallProxy notASemver"])
def test_type_and_version_from_string_invalid(text):
    with pytest.raises(ValueError):
        TypeAndVersion.from_string(text)


def test_type_and_version_equal():
    assert ON_RAMP_100.equal(new_type_and_version("OnRamp", "1.0.0"))
    assert not ON_RAMP_100.equal(ON_RAMP_110)
    assert not ON_RAMP_100.equal(ON_RAMP_100_LABELED)
    assert not ON_RAMP_100.equal(new_type_and_version("OffRamp", V100))


@pytest.mark.parametrize(
    "initial, to_add, want_contains, want_len",
    [
        ((), ["foo"], ["foo"], 1),
        (("alpha",), ["beta", "gamma"], ["alpha", "beta", "gamma"], 3),
        (("dup",), ["dup", "dup", "new"], ["dup", "new"], 2),
    ],
)
def test_add_labels(initial, to_add, want_contains, want_len):
    tv = TypeAndVersion("CallProxy", V100, LabelSet(*initial))
    for label in to_add:
        tv.add_label(label)
    assert len(tv.labels) == want_len
    assert all(tv.labels.contains(label) for label in want_contains)


def test_add_label_when_labels_missing():
    tv = TypeAndVersion("CallProxy", V100, None)
    tv.add_label("foo")
    assert tv.labels.list() == ["foo"]


@pytest.mark.parametrize(
    "addrs, want",
    [
        ({"addr1": TypeAndVersion("type1", V100)}, {("type1", "1.0.0", ""): ["addr1"]}),
        (
            {"addr1": TypeAndVersion("type1", V100), "addr2": TypeAndVersion("type1", V100)},
            {("type1", "1.0.0", ""): ["addr1", "addr2"]},
        ),
        (
            {"addr1": TypeAndVersion("type1", V100, LabelSet("test")), "addr2": TypeAndVersion("type1", V100)},
            {("type1", "1.0.0", "test"): ["addr1"], ("type1", "1.0.0", ""): ["addr2"]},
        ),
    ],
)
def test_group_by_type_and_version(addrs, want):
    got = group_by_type_and_version(addrs)
    assert len(got) == len(want)
    for key, addresses in got.items():
        assert sorted(addresses) == sorted(want[tuple(key)])


def test_search_address_book(registry):
    ab = MemoryAddressBook(
        {TEST_1: {ADDR1: ON_RAMP_100, ADDR2: new_type_and_version("OffRamp", V100)}},
        registry=registry,
    )
    assert search_address_book(ab, TEST_1, "OffRamp") == ADDR2
    with pytest.raises(AddressBookError, match="not found"):
        search_address_book(ab, TEST_1, "Router")
    with pytest.raises(ChainNotFoundError):
        search_address_book(ab, TEST_2, "OnRamp")


def test_address_book_contains(registry):
    ab = MemoryAddressBook({TEST_1: {ADDR1: ON_RAMP_100}}, registry=registry)
    assert address_book_contains(ab, TEST_1, ADDR1) is True
    assert address_book_contains(ab, TEST_1, ADDR2) is False
    with pytest.raises(InvalidChainSelectorError):
        address_book_contains(ab, 0, ADDR1)