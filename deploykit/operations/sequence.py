"""Sequences: handlers that group operations and child sequences."""

from __future__ import annotations

from typing import Any, Callable, Generic, TypeVar

import semver

from deploykit.operations.operation import Bundle, Definition

IN = TypeVar("IN")
OUT = TypeVar("OUT")
DEP = TypeVar("DEP")


class Sequence(Generic[IN, OUT, DEP]):
    """A named, versioned handler that runs one or more operations or sequences."""

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

    def run(self, bundle: Bundle, deps: DEP, input: IN) -> OUT:
        """Call the handler directly."""
        return self.handler(bundle, deps, input)

    def __repr__(self) -> str:
        return f"Sequence(id={self.id!r}, version={self.version!r})"