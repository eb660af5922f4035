"""Reports of operation and sequence runs, and the reporters that keep them."""

from __future__ import annotations

import abc
import base64
import dataclasses
import datetime as _dt
import enum
import json
import re
import types
import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Iterable, Union, get_args, get_origin

import semver

from deploykit.operations.hashing import to_json_value
from deploykit.operations.operation import Definition


class ReportError(Exception):
    """The error recorded in a report, kept as its message."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __eq__(self, other: object) -> bool:
        return isinstance(other, ReportError) and other.message == self.message

    def __hash__(self) -> int:
        return hash(self.message)

    def to_json(self) -> dict[str, str]:
        return {"message": self.message}


class ReportNotFoundError(LookupError):
    """Raised when a reporter has no report with the requested id."""

    def __init__(self, report_id: str) -> None:
        super().__init__(f"report_id {report_id}: report not found")
        self.report_id = report_id


_TIMESTAMP = re.compile(
    r"^(?P<base>[^.]+?)(?:\.(?P<frac>\d+))?(?P<zone>Z|z|[+-]\d{2}:\d{2})?$"
)

_SIMPLE_TYPE_NAMES: dict[str, Any] = {
    "int": int,
    "float": float,
    "str": str,
    "bool": bool,
    "bytes": bytes,
    "list": list,
    "dict": dict,
    "Any": None,
    "object": None,
}


def _parse_timestamp(text: str) -> _dt.datetime:
    match = _TIMESTAMP.match(text)
    if match is None:
        raise ValueError(f"invalid timestamp: {text}")
    value = match["base"]
    if match["frac"]:
        value += "." + match["frac"][:6].ljust(6, "0")
    zone = match["zone"]
    if zone in ("Z", "z"):
        value += "+00:00"
    elif zone:
        value += zone
    return _dt.datetime.fromisoformat(value)


def _zero(tp: Any) -> Any:
    origin = get_origin(tp)
    if origin is list or tp is list:
        return []
    if origin is dict or tp is dict:
        return {}
    if tp in (int, float, str, bool):
        return tp()
    return None


def _field_types(tp: type) -> dict[str, Any]:
    """Map field names to their types; annotations left as text count as "any" unless simple."""
    hints: dict[str, Any] = {}
    for f in dataclasses.fields(tp):
        field_type = f.type
        if isinstance(field_type, str):
            field_type = _SIMPLE_TYPE_NAMES.get(field_type.strip())
        hints[f.name] = field_type
    return hints


def _dataclass_from_json(data: Any, tp: type) -> Any:
    if not isinstance(data, Mapping):
        raise TypeError(f"cannot decode {type(data).__name__} into {tp.__name__}")
    hints = _field_types(tp)
    folded: dict[str, str] = {}
    for key in data:
        folded.setdefault(key.lower(), key)
    kwargs: dict[str, Any] = {}
    for f in dataclasses.fields(tp):
        if not f.init:
            continue
        name = f.metadata.get("json", f.name)
        key = None
        if name != "-" and not f.name.startswith("_"):
            key = name if name in data else folded.get(name.lower())
        field_type = hints.get(f.name)
        if key is not None:
            kwargs[f.name] = _from_json_value(data[key], field_type)
        elif f.default is dataclasses.MISSING and f.default_factory is dataclasses.MISSING:
            kwargs[f.name] = _zero(field_type)
    return tp(**kwargs)


def _from_json_value(data: Any, tp: Any) -> Any:
    """Rebuild a value of type ``tp`` from plain JSON data; raise TypeError if it does not fit."""
    if tp is None or tp is Any or tp is object:
        return data
    origin = get_origin(tp)
    args = get_args(tp)
    if origin is Union or origin is types.UnionType:
        if data is None and type(None) in args:
            return None
        for arg in args:
            if arg is type(None):
                continue
            try:
                return _from_json_value(data, arg)
            except (TypeError, ValueError):
                continue
        raise TypeError(f"cannot decode {data!r} into {tp}")
    if origin is not None:
        if origin in (list, set, frozenset) or (
            isinstance(origin, type) and issubclass(origin, Iterable) and origin is not tuple
            and not issubclass(origin, Mapping)
        ):
            if not isinstance(data, list):
                raise TypeError(f"cannot decode {type(data).__name__} into {tp}")
            item_type = args[0] if args else None
            items = [_from_json_value(item, item_type) for item in data]
            return origin(items) if origin in (set, frozenset) else items
        if origin is tuple:
            if not isinstance(data, list):
                raise TypeError(f"cannot decode {type(data).__name__} into {tp}")
            if len(args) == 2 and args[1] is Ellipsis:
                return tuple(_from_json_value(item, args[0]) for item in data)
            if len(args) != len(data):
                raise TypeError(f"cannot decode {len(data)} items into {tp}")
            return tuple(_from_json_value(item, arg) for item, arg in zip(data, args))
        if isinstance(origin, type) and issubclass(origin, Mapping):
            if not isinstance(data, Mapping):
                raise TypeError(f"cannot decode {type(data).__name__} into {tp}")
            key_type, value_type = args if args else (None, None)
            return {
                (int(k) if key_type is int else k): _from_json_value(v, value_type)
                for k, v in data.items()
            }
        return _from_json_value(data, origin)
    if tp is bool:
        if not isinstance(data, bool):
            raise TypeError(f"cannot decode {data!r} into bool")
        return data
    if tp is int:
        if isinstance(data, bool) or not isinstance(data, int):
            raise TypeError(f"cannot decode {data!r} into int")
        return data
    if tp is float:
        if isinstance(data, bool) or not isinstance(data, (int, float)):
            raise TypeError(f"cannot decode {data!r} into float")
        return float(data)
    if tp is str:
        if not isinstance(data, str):
            raise TypeError(f"cannot decode {data!r} into str")
        return data
    if tp is bytes:
        if not isinstance(data, str):
            raise TypeError(f"cannot decode {data!r} into bytes")
        return base64.b64decode(data)
    if isinstance(tp, type) and issubclass(tp, enum.Enum):
        return tp(data)
    if tp is semver.Version:
        if not isinstance(data, str):
            raise TypeError(f"cannot decode {data!r} into a version")
        return semver.Version.parse(data.lstrip("vV"), optional_minor_and_patch=True)
    if tp is _dt.datetime:
        if not isinstance(data, str):
            raise TypeError(f"cannot decode {data!r} into a datetime")
        return _parse_timestamp(data)
    from_json = getattr(tp, "from_json", None)
    if callable(from_json):
        return from_json(data)
    if dataclasses.is_dataclass(tp) and isinstance(tp, type):
        return _dataclass_from_json(data, tp)
    if isinstance(tp, type) and isinstance(data, tp):
        return data
    raise TypeError(f"cannot decode {type(data).__name__} into {tp}")


@dataclass
class Report:
    """The record of one operation or sequence run."""

    id: str
    definition: Definition = field(default_factory=Definition)
    output: Any = None
    input: Any = None
    timestamp: _dt.datetime | None = None
    err: ReportError | None = None
    child_operation_reports: list[str] = field(default_factory=list)

    def to_json(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "definition": self.definition.to_json(),
            "output": to_json_value(self.output),
            "input": to_json_value(self.input),
            "timestamp": to_json_value(self.timestamp),
            "error": None if self.err is None else self.err.to_json(),
            "childOperationReports": list(self.child_operation_reports),
        }

    @classmethod
    def from_json(
        cls,
        data: Mapping[str, Any] | str | bytes,
        input_type: Any = None,
        output_type: Any = None,
    ) -> "Report":
        """Load a report, decoding its input and output into the given types."""
        if isinstance(data, (str, bytes, bytearray)):
            data = json.loads(data)
        timestamp = data.get("timestamp")
        error = data.get("error")
        return cls(
            id=data.get("id", ""),
            definition=Definition.from_json(data.get("definition")),
            output=_from_json_value(data.get("output"), output_type),
            input=_from_json_value(data.get("input"), input_type),
            timestamp=None if timestamp is None else _parse_timestamp(timestamp),
            err=None if error is None else ReportError(error.get("message", "")),
            child_operation_reports=list(data.get("childOperationReports") or []),
        )

    def typed(self, input_type: Any, output_type: Any) -> "Report":
        """Return a copy whose input and output are converted to the given types.

        Raises TypeError or ValueError when the stored values do not fit.
        """
        return dataclasses.replace(
            self,
            input=_from_json_value(to_json_value(self.input), input_type),
            output=_from_json_value(to_json_value(self.output), output_type),
        )


@dataclass
class SequenceReport(Report):
    """A sequence's report together with every report produced while it ran."""

    execution_reports: list[Report] = field(default_factory=list)


def new_report(
    definition: Definition, input: Any, output: Any, err: BaseException | None, *args: str
) -> Report:
    """Create a report with a fresh id and the current time; extra arguments are child report ids."""
    return Report(
        id=str(uuid.uuid4()),
        definition=definition,
        output=output,
        input=input,
        timestamp=_dt.datetime.now(_dt.timezone.utc).astimezone(),
        err=None if err is None else ReportError(str(err)),
        child_operation_reports=list(args),
    )


class Reporter(abc.ABC):
    """Stores reports."""

    @abc.abstractmethod
    def get_report(self, report_id: str) -> Report:
        ...

    @abc.abstractmethod
    def get_reports(self) -> list[Report]:
        ...

    @abc.abstractmethod
    def add_report(self, report: Report) -> None:
        ...

    @abc.abstractmethod
    def get_execution_reports(self, report_id: str) -> list[Report]:
        ...


class MemoryReporter(Reporter):
    """Keeps reports in memory, in the order they were added."""

    def __init__(self, reports: Iterable[Report] | None = None) -> None:
        self._reports: list[Report] = list(reports or ())

    def get_report(self, report_id: str) -> Report:
        for report in self._reports:
            if report.id == report_id:
                return report
        raise ReportNotFoundError(report_id)

    def get_reports(self) -> list[Report]:
        return list(self._reports)

    def add_report(self, report: Report) -> None:
        self._reports.append(report)

    def get_execution_reports(self, report_id: str) -> list[Report]:
        """Return the report and all its descendants, children before parents."""
        collected: list[Report] = []

        def visit(current_id: str) -> None:
            report = self.get_report(current_id)
            for child_id in report.child_operation_reports:
                visit(child_id)
            collected.append(report)

        visit(report_id)
        return collected


class RecentReporter(Reporter):
    """Wraps a reporter and remembers the reports added through it."""

    def __init__(self, reporter: Reporter) -> None:
        self.reporter = reporter
        self._recent: list[Report] = []

    def get_report(self, report_id: str) -> Report:
        return self.reporter.get_report(report_id)

    def get_reports(self) -> list[Report]:
        return self.reporter.get_reports()

    def add_report(self, report: Report) -> None:
        self.reporter.add_report(report)
        self._recent.append(report)

    def get_execution_reports(self, report_id: str) -> list[Report]:
        return self.reporter.get_execution_reports(report_id)

    def recent_reports(self) -> list[Report]:
        """Return the reports added since this reporter was created."""
        return list(self._recent)