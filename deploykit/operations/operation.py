"""Operations: the smallest units of deployment work, and the bundle they run with."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Generic, Mapping, TypeVar

import semver

if TYPE_CHECKING:
    from deploykit.operations.report import Reporter

IN = TypeVar("IN")
OUT = TypeVar("OUT")
DEP = TypeVar("DEP")

_DEFAULT_LOGGER_NAME = "deploykit.operations"


def _parse_version(text: str) -> semver.Version:
    if text[:1] in ("v", "V"):
        text = text[1:]
    return semver.Version.parse(text, optional_minor_and_patch=True)


@dataclass(frozen=True)
class Definition:
    """Identity of an operation or sequence: id, version and description."""

    id: str = ""
    version: semver.Version | None = None
    description: str = ""

    def __post_init__(self) -> None:
        if isinstance(self.version, str):
            object.__setattr__(self, "version", _parse_version(self.version))

    def to_json(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "version": None if self.version is None else str(self.version),
            "description": self.description,
        }

    @classmethod
    def from_json(cls, data: Mapping[str, Any] | str | bytes) -> "Definition":
        if isinstance(data, (str, bytes, bytearray)):
            data = json.loads(data)
        if data is None:
            return cls()
        return cls(data.get("id", ""), data.get("version"), data.get("description", ""))


@dataclass
class Bundle:
    """What handlers run with: a logger, a context factory and a reporter."""

    logger: logging.Logger = field(
        default_factory=lambda: logging.getLogger(_DEFAULT_LOGGER_NAME)
    )
    get_context: Callable[[], Any] | None = None
    reporter: "Reporter | None" = None
    report_hash_cache: dict[str, str] = field(default_factory=dict, repr=False)


def new_bundle(
    get_context: Callable[[], Any] | None,
    logger: logging.Logger | None,
    reporter: "Reporter | None",
) -> Bundle:
    """Create a bundle with its own, empty hash cache."""
    return Bundle(
        logger=logger if logger is not None else logging.getLogger(_DEFAULT_LOGGER_NAME),
        get_context=get_context,
        reporter=reporter,
        report_hash_cache={},
    )


class Operation(Generic[IN, OUT, DEP]):
    """A unit of work that should perform at most one side effect.

    ``handler(bundle, deps, input)`` does the work. The optional input and output
    types are used to restore typed values from stored reports.
    """

    def __init__(
        self,
        id: str,
        version: semver.Version | str | None,
        description: str,
        handler: Callable[[Bundle, DEP, IN], OUT],
        input_type: Any = None,
        output_type: Any = None,
    ) -> None:
        self.definition = Definition(id, version, description)
        self.handler = handler
        self.input_type = input_type
        self.output_type = output_type

    @property
    def id(self) -> str:
        return self.definition.id

    @property
    def version(self) -> str:
        version = self.definition.version
        return "" if version is None else str(version)

    @property
    def description(self) -> str:
        return self.definition.description

    def execute(self, bundle: Bundle, deps: DEP, input: IN) -> OUT:
        """Log the run and call the handler."""
        bundle.logger.info(
            "Executing operation",
            extra={"id": self.id, "version": self.version, "description": self.description},
        )
        return self.handler(bundle, deps, input)

    def __repr__(self) -> str:
        return f"Operation(id={self.id!r}, version={self.version!r})"


@dataclass(frozen=True)
class EmptyInput:
    """Input for operations that need none."""