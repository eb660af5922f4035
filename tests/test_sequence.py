from dataclasses import dataclass

import semver

from deploykit.operations.operation import Operation, new_bundle
from deploykit.operations.report import MemoryReporter
from deploykit.operations.sequence import Sequence


@dataclass
class OpInput:
    A: int
    B: int


def test_new_sequence():
    version = semver.Version.parse("1.0.0")
    op = Operation("sum", version, "test operation", lambda b, d, value: value.A + value.B)

    sequence = Sequence(
        "seq-sum",
        version,
        "test sequence",
        lambda bundle, deps, value: op.execute(bundle, deps, value),
    )

    assert sequence.id == "seq-sum"
    assert sequence.version == "1.0.0"
    assert sequence.description == "test sequence"
    bundle = new_bundle(None, None, MemoryReporter())
    assert sequence.handler(bundle, None, OpInput(1, 2)) == 3
    assert sequence.run(bundle, None, OpInput(2, 5)) == 7


def test_sequence_run_passes_bundle_and_deps():
    seen = []

    def handler(bundle, deps, value):
        seen.append((bundle, deps))
        return value * 2

    sequence = Sequence("double", "1.0.0", "double", handler, int, int)
    bundle = new_bundle(None, None, None)

    assert sequence.run(bundle, "deps", 4) == 8
    assert seen == [(bundle, "deps")]
    assert sequence.input_type is int
    assert sequence.definition.version == semver.Version(1, 0, 0)