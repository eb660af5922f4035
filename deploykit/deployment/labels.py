"""Label sets attached to address book entries."""

from __future__ import annotations

from typing import Iterable


class LabelSet(set):
    """A set of string labels with a stable, sorted textual form."""

    def __init__(self, *labels: str) -> None:
        super().__init__(labels)

    @classmethod
    def from_iterable(cls, labels: Iterable[str]) -> "LabelSet":
        return cls(*labels)

    def add(self, label: str) -> None:
        super().add(label)

    def remove(self, label: str) -> None:
        """Remove a label; removing a missing label does nothing."""
        self.discard(label)

    def contains(self, label: str) -> bool:
        return label in self

    def list(self) -> list[str]:
        """Return the labels sorted."""
        return sorted(self)

    def equal(self, other: Iterable[str]) -> bool:
        return set(self) == set(other)

    def is_empty(self) -> bool:
        return not self

    def copy(self) -> "LabelSet":
        return LabelSet(*self)

    def __str__(self) -> str:
        return " ".join(self.list())

    def __repr__(self) -> str:
        return f"LabelSet({', '.join(map(repr, self.list()))})"